"""Compile OpenAPI schema nodes into type expressions.

:func:`compile_schema` walks one schema node and returns the
:data:`~routegen.models.TypeExpr` a field of that schema should be annotated
with. Every *named* type it meets along the way (titled objects, titled
arrays and primitives, ``oneOf`` choices) is declared into a
:class:`TypeSink`, which becomes the body of one generated module.

Rules, in the order they are checked:

1. ``$ref`` -- a reference to the shared ``schemas`` module; it must name an
   entry of ``components/schemas``. Nothing is declared. A title naming a
   shared component resolves to that component the same way.
2. ``oneOf`` -- a titled choice; each alternative is compiled untitled and
   tagged by its type name.
3. ``allOf`` / ``anyOf`` -- unsupported.
4. No ``type`` -- unsupported.
5. ``object`` needs a title and becomes a record. ``array`` needs ``items``
   and is aliased only when titled; primitives likewise.

An explicit *title* argument always wins over the node's own ``title``.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from routegen.compiler.naming import field_name, to_upper_camel
from routegen.exceptions import SchemaError
from routegen.models import (
    AliasDecl,
    ChoiceDecl,
    ComponentRef,
    Declaration,
    FieldDecl,
    HostType,
    LocalType,
    OptionalType,
    Parameter,
    PrimitiveKind,
    PrimitiveType,
    RecordDecl,
    Schema,
    SchemaType,
    SequenceType,
    TypeExpr,
    Variant,
)
from routegen.parser.document import schema_ref_name

logger = logging.getLogger(__name__)

_PRIMITIVES = {
    SchemaType.STRING: PrimitiveKind.STRING,
    SchemaType.NUMBER: PrimitiveKind.NUMBER,
    SchemaType.INTEGER: PrimitiveKind.INTEGER,
    SchemaType.BOOLEAN: PrimitiveKind.BOOLEAN,
}


class TypeSink:
    """Ordered, name-deduplicated collection of declarations for one scope.

    Args:
        depth: Number of parent scopes between this scope and the package
            root. Component references created here use it as ``hops``.
        component_names: Names already declared in the shared ``schemas``
            module. A route-scope declaration with one of these names is not
            declared again; the component is referenced instead. Leave empty
            for the ``schemas`` scope itself.
        schema_names: Keys of the document's ``components/schemas``; the
            only names a schema ``$ref`` may point at.
    """

    def __init__(
        self,
        depth: int = 0,
        component_names: frozenset[str] = frozenset(),
        schema_names: frozenset[str] = frozenset(),
    ):
        self.depth = depth
        self.component_names = component_names
        self.schema_names = schema_names
        self._declarations: dict[str, Declaration] = {}

    @property
    def declarations(self) -> list[Declaration]:
        return list(self._declarations.values())

    def __contains__(self, name: str) -> bool:
        return name in self._declarations

    def declare(self, decl: Declaration) -> TypeExpr:
        """Add *decl* and return the expression that refers to it.

        Raises:
            SchemaError: If a different declaration already uses the name.
        """
        if decl.name in self.component_names:
            logger.debug("%s resolves to the shared component", decl.name)
            return ComponentRef(name=decl.name, hops=self.depth)

        existing = self._declarations.get(decl.name)
        if existing is None:
            self._declarations[decl.name] = decl
            logger.debug("Declared %s %s at depth %d", decl.kind, decl.name, self.depth)
        elif existing != decl:
            raise SchemaError(
                f"Conflicting definitions for type {decl.name!r} in the same module"
            )
        return LocalType(name=decl.name)


def compile_schema(
    node: Schema, title: Optional[str], depth: int, sink: TypeSink
) -> TypeExpr:
    """Compile *node* into a type expression, declaring named types into *sink*.

    Args:
        node: The schema (or ``$ref``) to compile.
        title: Name to give the resulting type; overrides ``node.title``.
        depth: Scope depth of the point of use, used for component ``hops``.
        sink: Receives every named declaration produced.

    Raises:
        ResolutionError: For a ``$ref`` that does not name an entry of
            ``components/schemas``.
        SchemaError: For unsupported combinators, missing ``type``, titles or
            ``items``, and conflicting declarations.
    """
    if node.ref is not None:
        return ComponentRef(name=schema_ref_name(node.ref, sink.schema_names), hops=depth)

    name = title or node.title
    if name is not None and name in sink.component_names:
        # Replaced by the component before any nested type is declared
        logger.debug("%s resolves to the shared component", name)
        return ComponentRef(name=name, hops=depth)

    if node.one_of:
        return _compile_one_of(node, name, depth, sink)

    if node.all_of:
        raise SchemaError(f"allOf is not supported (schema {_describe(node, name)})")
    if node.any_of:
        raise SchemaError(f"anyOf is not supported (schema {_describe(node, name)})")

    if node.type is None:
        raise SchemaError(
            f"Schema {_describe(node, name)} has neither `type` nor `oneOf`"
        )

    if node.type == SchemaType.OBJECT:
        return _compile_object(node, name, depth, sink)
    if node.type == SchemaType.ARRAY:
        return _compile_array(node, name, depth, sink)

    primitive = PrimitiveType(primitive=_PRIMITIVES[node.type])
    if name is None:
        return primitive
    return sink.declare(
        AliasDecl(name=_type_name(name), target=primitive, description=node.description)
    )


def compile_param(
    param: Parameter, depth: int, sink: TypeSink, required: bool = False
) -> TypeExpr:
    """Compile a parameter's inline schema.

    The result is wrapped in ``Optional`` unless the parameter (or the
    caller, through *required*) marks it required.

    Raises:
        SchemaError: If the parameter has no schema.
    """
    if param.schema_ is None:
        raise SchemaError(
            f"Parameter {param.name!r} ({param.location}) has no schema"
        )
    expr = compile_schema(param.schema_, None, depth, sink)
    if required or param.required:
        return expr
    return OptionalType(inner=expr)


def variant_tag(expr: TypeExpr) -> str:
    """Name an exclusive-choice variant after the type it wraps.

    Primitives are ``String``, ``Number``, ``Integer`` and ``Boolean``; named
    types use their own name; sequences append ``List`` to their item's tag.
    """
    if isinstance(expr, PrimitiveType):
        return to_upper_camel(expr.primitive.value)
    if isinstance(expr, SequenceType):
        return f"{variant_tag(expr.item)}List"
    if isinstance(expr, OptionalType):
        return variant_tag(expr.inner)
    if isinstance(expr, (LocalType, ComponentRef, HostType)):
        return to_upper_camel(expr.name)
    raise TypeError(f"Cannot derive a variant tag from {expr!r}")


def _compile_one_of(
    node: Schema, name: Optional[str], depth: int, sink: TypeSink
) -> TypeExpr:
    if name is None:
        raise _anonymous("oneOf", node)

    variants: list[Variant] = []
    for alternative in node.one_of:
        expr = compile_schema(alternative, None, depth, sink)
        tag = variant_tag(expr)
        if any(v.tag == tag for v in variants):
            raise SchemaError(
                f"oneOf schema {name!r} has two alternatives tagged {tag!r}; "
                "give one of them a distinct title"
            )
        variants.append(Variant(tag=tag, type=expr))

    return sink.declare(
        ChoiceDecl(
            name=_type_name(name), variants=tuple(variants), description=node.description
        )
    )


def _compile_object(
    node: Schema, name: Optional[str], depth: int, sink: TypeSink
) -> TypeExpr:
    if name is None:
        raise _anonymous("object", node)

    fields: list[FieldDecl] = []
    for prop_name, prop_schema in node.properties.items():
        expr = compile_schema(prop_schema, None, depth, sink)
        if prop_name not in node.required:
            expr = OptionalType(inner=expr)
        fields.append(FieldDecl(name=field_name(prop_name), source_name=prop_name, type=expr))

    check_unique_fields(name, fields)
    return sink.declare(
        RecordDecl(name=_type_name(name), fields=tuple(fields), description=node.description)
    )


def _compile_array(
    node: Schema, name: Optional[str], depth: int, sink: TypeSink
) -> TypeExpr:
    if node.items is None:
        raise SchemaError(f"Array schema {_describe(node, name)} is missing `items`")

    sequence = SequenceType(item=compile_schema(node.items, None, depth, sink))
    if name is None:
        return sequence
    return sink.declare(
        AliasDecl(name=_type_name(name), target=sequence, description=node.description)
    )


def check_unique_fields(owner: str, fields: list[FieldDecl]) -> None:
    """Raise :class:`SchemaError` if two fields of *owner* share a Python name."""
    seen: dict[str, str] = {}
    for field in fields:
        if field.name in seen:
            raise SchemaError(
                f"Fields {seen[field.name]!r} and {field.source_name!r} of {owner!r} "
                f"both map to the Python name {field.name!r}"
            )
        seen[field.name] = field.source_name


def _type_name(title: str) -> str:
    if not title.isidentifier():
        raise SchemaError(f"Schema title {title!r} is not a valid Python identifier")
    return title


def _anonymous(what: str, node: Schema) -> SchemaError:
    return SchemaError(
        f"Anonymous {what} schemas are not supported: add a `title`, or move the "
        f"schema to components/schemas and reference it ({_describe(node, None)})"
    )


def _describe(node: Schema, name: Union[str, None]) -> str:
    if name:
        return repr(name)
    dumped = node.model_dump(by_alias=True, exclude_defaults=True, exclude_none=True)
    return str(dumped)
