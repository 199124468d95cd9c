"""Resolve route declarations against an OpenAPI document.

:func:`compile_routes` turns a :class:`~routegen.models.DeclarationRoot` plus
an :class:`~routegen.models.ApiDocument` into a
:class:`~routegen.models.CompiledRoot`:

* every ``components/schemas`` entry is compiled once into the synthesized
  public ``schemas`` module, which is always the first root item;
* every declared method is looked up by document-style path and verb, its
  path, query and body inputs are typed, and the named types it needs are
  declared in the module that contains it;
* modules are compiled recursively, one scope level deeper, each with its own
  declaration sink whose contents follow the module's own items.

The first problem found is raised; nothing is returned partially compiled.
"""

from __future__ import annotations

import keyword
import logging
from typing import Optional

from routegen.compiler.naming import field_name
from routegen.compiler.schema import TypeSink, compile_param, compile_schema
from routegen.exceptions import (
    CompileError,
    ResolutionError,
    RoutegenError,
    SchemaError,
    SourceLocation,
)
from routegen.models import (
    AliasDecl,
    ApiDocument,
    CompiledItem,
    CompiledMethod,
    CompiledModule,
    CompiledRoot,
    DeclarationRoot,
    DeclItem,
    Extractor,
    ExtractionStrategy,
    FieldDecl,
    HostType,
    LocalType,
    MethodDecl,
    ModuleDecl,
    Operation,
    Parameter,
    PathItem,
    RejectionKind,
    RequestBody,
    TypeExpr,
    Visibility,
)
from routegen.parser.document import resolve_parameter, resolve_request_body

logger = logging.getLogger(__name__)

SCHEMAS_MODULE = "schemas"
BODY_BINDING = "body"

#: Names every generated module imports; items may not reuse them.
RESERVED_NAMES = frozenset(
    {
        SCHEMAS_MODULE,
        "runtime",
        "annotations",
        "BaseModel",
        "ConfigDict",
        "Field",
        "RootModel",
        "ClassVar",
        "Optional",
        "Annotated",
        "Any",
        "Discriminator",
        "Tag",
        "Union",
        "FormData",
    }
)

#: Attributes of generated route classes; fields with these names get a
#: trailing underscore and keep the wire name as alias.
ROUTE_ATTRIBUTES = frozenset(
    {"path", "method_router", "from_request", "ROUTE_PATH", "DOCUMENT_PATH", "METHOD"}
)


def compile_routes(declarations: DeclarationRoot, document: ApiDocument) -> CompiledRoot:
    """Compile *declarations* against *document*.

    Raises:
        ResolutionError: A declared path, verb, or path parameter is missing
            from the document, or a parameter is not ``in: path``.
        SchemaError: A schema or request body cannot be compiled.
        CompileError: Names collide within a scope or with generated names.
    """
    compiler = RouteCompiler(document)
    schemas = compiler.compile_components()

    sink = compiler.sink(depth=0)
    items: list[CompiledItem] = [schemas]
    items.extend(compiler.compile_items(declarations.items, 0, sink))
    items.extend(sink.declarations)
    _check_scope(items, scope="the package root")

    logger.debug("Compiled %d method(s)", compiler.method_count)
    return CompiledRoot(spec_path=declarations.spec_path, items=tuple(items))


class RouteCompiler:
    """Walks the declaration tree; holds the document and component names."""

    def __init__(self, document: ApiDocument):
        self.document = document
        self.schema_names = frozenset(document.components.schemas)
        self.component_names: frozenset[str] = frozenset()
        self.method_count = 0

    def compile_components(self) -> CompiledModule:
        sink = TypeSink(depth=0, schema_names=self.schema_names)
        for name, schema in self.document.components.schemas.items():
            expr = compile_schema(schema, name, 0, sink)
            # A component that is itself a plain $ref still needs its own name
            if expr != LocalType(name=name):
                sink.declare(AliasDecl(name=name, target=expr, description=schema.description))

        declarations = sink.declarations
        _check_scope(declarations, scope=f"module {SCHEMAS_MODULE!r}")
        self.component_names = frozenset(decl.name for decl in declarations)
        logger.debug("Compiled %d component declaration(s)", len(declarations))
        return CompiledModule(
            name=SCHEMAS_MODULE, visibility=Visibility.PUBLIC, items=tuple(declarations)
        )

    def sink(self, depth: int) -> TypeSink:
        """A declaration sink for a route scope *depth* levels below the root."""
        return TypeSink(
            depth=depth, component_names=self.component_names, schema_names=self.schema_names
        )

    def compile_items(
        self, items: tuple[DeclItem, ...], depth: int, sink: TypeSink
    ) -> list[CompiledItem]:
        compiled: list[CompiledItem] = []
        for item in items:
            if isinstance(item, ModuleDecl):
                compiled.append(self.compile_module(item, depth))
            else:
                compiled.append(self.compile_method(item, depth, sink))
        return compiled

    def compile_module(self, module: ModuleDecl, depth: int) -> CompiledModule:
        _check_identifier(module.name, "Module", module.location)
        if module.name == SCHEMAS_MODULE:
            raise CompileError(
                f"Module name {SCHEMAS_MODULE!r} is reserved for generated component types",
                module.location,
            )

        sink = self.sink(depth=depth + 1)
        items = self.compile_items(module.items, depth + 1, sink)
        items.extend(sink.declarations)
        _check_scope(items, scope=f"module {module.name!r}", location=module.location)
        return CompiledModule(name=module.name, visibility=module.visibility, items=tuple(items))

    def compile_method(self, method: MethodDecl, depth: int, sink: TypeSink) -> CompiledMethod:
        try:
            compiled = self._compile_method(method, depth, sink)
        except RoutegenError as exc:
            exc.with_location(method.location)
            raise
        self.method_count += 1
        logger.debug(
            "Resolved %s %s as %s", method.method.value.upper(),
            compiled.document_path, compiled.name,
        )
        return compiled

    def _compile_method(self, method: MethodDecl, depth: int, sink: TypeSink) -> CompiledMethod:
        _check_identifier(method.name, "Type", method.location)
        document_path = method.path.to_document_path()

        path_item = self.document.paths.get(document_path)
        if path_item is None:
            raise ResolutionError(
                f"Path {document_path!r} not found in OpenAPI document", method.location
            )
        operation = path_item.operation(method.method)
        if operation is None:
            raise ResolutionError(
                f"Method {method.method.value.upper()} not found for path "
                f"{document_path!r} in OpenAPI document",
                method.location,
            )

        parameters = self.merge_parameters(path_item, operation)

        path_fields: list[FieldDecl] = []
        for segment in method.path.parameters():
            param = _find_path_parameter(parameters, segment.name, segment.location)
            expr = compile_param(param, depth, sink, required=True)
            path_fields.append(_route_field(param.name, expr))

        query_fields = [
            _route_field(param.name, compile_param(param, depth, sink))
            for param in parameters
            if param.location == "query"
        ]

        extractor = None
        if operation.request_body is not None:
            body = resolve_request_body(self.document, operation.request_body)
            extractor = self.compile_body(body, depth, sink)

        _check_route_fields(method.name, path_fields, query_fields, extractor)

        return CompiledMethod(
            method=method.method,
            route_path=method.path.to_route_path(),
            document_path=document_path,
            name=method.name,
            visibility=method.visibility,
            path_params=tuple(path_fields),
            query_params=tuple(query_fields),
            extractor=extractor,
            summary=operation.summary,
            description=operation.description,
        )

    def merge_parameters(self, path_item: PathItem, operation: Operation) -> list[Parameter]:
        """Path-item parameters overridden by operation ones with the same ``(name, in)``."""
        path_level = [resolve_parameter(self.document, p) for p in path_item.parameters]
        op_level = [resolve_parameter(self.document, p) for p in operation.parameters]

        overridden = {(p.name, p.location) for p in op_level}
        merged = [p for p in path_level if (p.name, p.location) not in overridden]
        merged.extend(op_level)
        return merged

    def compile_body(self, body: RequestBody, depth: int, sink: TypeSink) -> Extractor:
        """Choose the extraction strategy for *body* from its single media type."""
        if len(body.content) != 1:
            found = ", ".join(body.content) or "none"
            raise SchemaError(
                f"Exactly one request body media type is supported (found: {found})"
            )

        raw_media_type, media = next(iter(body.content.items()))
        media_type = raw_media_type.split(";", 1)[0].strip().lower()

        if media_type in ("application/json", "application/x-www-form-urlencoded"):
            if media.schema_ is None:
                raise SchemaError(f"Media type {raw_media_type!r} has no schema")
            body_type = compile_schema(media.schema_, None, depth, sink)
            if media_type == "application/json":
                return Extractor(
                    body_type=body_type,
                    strategy=ExtractionStrategy.JSON,
                    rejection=RejectionKind.JSON,
                )
            return Extractor(
                body_type=body_type,
                strategy=ExtractionStrategy.FORM,
                rejection=RejectionKind.FORM,
            )

        if media_type == "multipart/form-data":
            return Extractor(
                body_type=HostType(name="FormData", module="starlette.datastructures"),
                strategy=ExtractionStrategy.MULTIPART,
                rejection=RejectionKind.MULTIPART,
            )
        if media_type.startswith("text/"):
            return Extractor(
                body_type=HostType(name="str"),
                strategy=ExtractionStrategy.TEXT,
                rejection=RejectionKind.TEXT,
            )
        return Extractor(
            body_type=HostType(name="bytes"),
            strategy=ExtractionStrategy.BYTES,
            rejection=RejectionKind.BYTES,
        )


def _find_path_parameter(
    parameters: list[Parameter], name: str, location: Optional[SourceLocation]
) -> Parameter:
    named = [p for p in parameters if p.name == name]
    if not named:
        raise ResolutionError(
            f"Path parameter {name!r} not found in OpenAPI document", location
        )
    for param in named:
        if param.location == "path":
            return param
    raise ResolutionError(
        f"Parameter {name!r} is declared `in: {named[0].location}`, not `in: path`, "
        "in OpenAPI document",
        location,
    )


def _route_field(wire_name: str, expr: TypeExpr) -> FieldDecl:
    name = field_name(wire_name)
    if name in ROUTE_ATTRIBUTES:
        name = f"{name}_"
    return FieldDecl(name=name, source_name=wire_name, type=expr)


def _check_route_fields(
    owner: str,
    path_fields: list[FieldDecl],
    query_fields: list[FieldDecl],
    extractor: Optional[Extractor],
) -> None:
    seen: dict[str, str] = {}
    labelled = [(f.name, f"path parameter {f.source_name!r}") for f in path_fields]
    labelled += [(f.name, f"query parameter {f.source_name!r}") for f in query_fields]
    if extractor is not None:
        labelled.append((extractor.binding, "the request body"))

    for name, label in labelled:
        if name in seen:
            raise CompileError(
                f"{seen[name].capitalize()} and {label} both map to field "
                f"{name!r} of {owner!r}"
            )
        seen[name] = label


def _check_identifier(name: str, what: str, location: Optional[SourceLocation]) -> None:
    if keyword.iskeyword(name):
        raise CompileError(f"{what} name {name!r} is a Python keyword", location)
    if name in RESERVED_NAMES - {SCHEMAS_MODULE}:
        raise CompileError(
            f"{what} name {name!r} clashes with a name generated modules import",
            location,
        )


def _check_scope(
    items: list[CompiledItem], scope: str, location: Optional[SourceLocation] = None
) -> None:
    seen: set[str] = set()
    for item in items:
        if item.name in seen:
            raise CompileError(f"Duplicate item name {item.name!r} in {scope}", location)
        seen.add(item.name)
        if item.name in RESERVED_NAMES and not _is_schemas_module(item):
            raise CompileError(
                f"Name {item.name!r} in {scope} clashes with a name generated "
                "modules import",
                location,
            )


def _is_schemas_module(item: CompiledItem) -> bool:
    return isinstance(item, CompiledModule) and item.name == SCHEMAS_MODULE
