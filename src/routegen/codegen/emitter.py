"""Render a compiled route tree as a Python package.

The package mirrors the module tree: the root becomes ``__init__.py``, the
synthesized component module becomes ``schemas.py``, and every declared
module ``m`` becomes ``m/__init__.py``. Each file gets:

* a header docstring naming the routes file it was generated from;
* only the imports its body uses, with the shared ``schemas`` module
  imported relative to the package root (``from .. import schemas`` one
  level down);
* ``__all__`` listing its public items;
* type declarations first, then route classes, then ``model_rebuild()``
  calls so forward references resolve once every name exists.

Rendering goes through the Jinja2 templates in ``codegen/templates/``. Every
template input is derived from the frozen compiled tree, so the same tree
always yields byte-identical files.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from routegen.models import (
    AliasDecl,
    ChoiceDecl,
    CompiledItem,
    CompiledMethod,
    CompiledModule,
    CompiledRoot,
    ComponentRef,
    ExtractionStrategy,
    FieldDecl,
    GeneratedPackage,
    GeneratorConfig,
    HostType,
    LocalType,
    OptionalType,
    PrimitiveType,
    RecordDecl,
    SequenceType,
    TypeExpr,
    Visibility,
)

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
"""Path to the Jinja2 template directory (``codegen/templates/``)."""

SCHEMAS_MODULE = "schemas"

_BODY_CALLS = {
    ExtractionStrategy.JSON: "await runtime.extract_json(request, {body_type})",
    ExtractionStrategy.FORM: "await runtime.extract_form(request, {body_type})",
    ExtractionStrategy.MULTIPART: "await runtime.extract_multipart(request)",
    ExtractionStrategy.TEXT: "await runtime.extract_text(request)",
    ExtractionStrategy.BYTES: "await runtime.extract_bytes(request)",
}


def emit_package(
    compiled: CompiledRoot,
    source: str = "<routes>",
    config: Optional[GeneratorConfig] = None,
) -> GeneratedPackage:
    """Render *compiled* into an ordered mapping of relative path to source.

    Args:
        compiled: Output of :func:`~routegen.compiler.compile_routes`.
        source: Routes file name quoted in every file header.
        config: Supplies the optional header comment and the runtime module
            generated code imports.
    """
    emitter = PackageEmitter(source, config or GeneratorConfig())
    emitter.emit_module(
        name=None,
        items=compiled.items,
        depth=0,
        path="__init__.py",
        in_schemas=False,
    )
    logger.debug("Emitted %d file(s)", len(emitter.files))
    return GeneratedPackage(files=emitter.files)


def create_jinja_env() -> Environment:
    """Create the Jinja2 environment for the ``.py.j2`` templates."""
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(disabled_extensions=("py.j2",)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


@dataclass
class _Imports:
    """Names one generated file needs, filled in while its body is rendered."""

    typing: set[str] = field(default_factory=set)
    pydantic: set[str] = field(default_factory=set)
    host: set[tuple[str, str]] = field(default_factory=set)
    schemas: bool = False
    runtime: bool = False
    children: list[str] = field(default_factory=list)


class PackageEmitter:
    """Walks the compiled tree and renders one file per module."""

    def __init__(self, source: str, config: GeneratorConfig):
        self.source = source
        self.config = config
        self.env = create_jinja_env()
        self.files: dict[str, str] = {}

    # ------------------------------------------------------------------ #
    # Files
    # ------------------------------------------------------------------ #

    def emit_module(
        self,
        name: Optional[str],
        items: tuple[CompiledItem, ...],
        depth: int,
        path: str,
        in_schemas: bool,
    ) -> None:
        renderer = _FileRenderer(self.env, depth, in_schemas)
        exports: list[str] = []
        declarations: list[str] = []
        routes: list[str] = []
        children: list[tuple[CompiledModule, str, bool]] = []

        for item in items:
            if isinstance(item, CompiledModule):
                child_is_schemas = depth == 0 and item.name == SCHEMAS_MODULE
                if child_is_schemas:
                    child_path = f"{_directory(path)}{SCHEMAS_MODULE}.py"
                    renderer.imports.schemas = True
                else:
                    child_path = f"{_directory(path)}{item.name}/__init__.py"
                    renderer.imports.children.append(item.name)
                children.append((item, child_path, child_is_schemas))
                if item.visibility == Visibility.PUBLIC:
                    exports.append(item.name)
            elif isinstance(item, CompiledMethod):
                routes.append(renderer.route(item))
                if item.visibility == Visibility.PUBLIC:
                    exports.append(item.name)
            else:
                declarations.append(renderer.declaration(item))
                exports.append(item.name)

        self.files[path] = self.env.get_template("module.py.j2").render(
            docstring=self._module_docstring(name, in_schemas),
            import_groups=renderer.import_groups(self.config.runtime_module),
            exports=exports,
            blocks=declarations + routes,
            rebuild=renderer.rebuild,
        )

        for child, child_path, child_is_schemas in children:
            self.emit_module(
                name=child.name,
                items=child.items,
                depth=depth + 1,
                path=child_path,
                in_schemas=child_is_schemas,
            )

    def _module_docstring(self, name: Optional[str], in_schemas: bool) -> str:
        if in_schemas:
            summary = "Component types from the OpenAPI document."
        elif name is None:
            summary = "Request types for the declared routes."
        else:
            summary = f"Request types for the routes of module ``{name}``."

        lines = [f"Generated by routegen from {self.source}. Do not edit.", "", summary]
        if self.config.header_comment:
            lines += ["", self.config.header_comment]
        return _docstring(lines, indent=0)


class _FileRenderer:
    """Renders the blocks of one file and records the imports they use."""

    def __init__(self, env: Environment, depth: int, in_schemas: bool):
        self.env = env
        self.depth = depth
        self.in_schemas = in_schemas
        self.imports = _Imports()
        self.rebuild: list[str] = []

    # ------------------------------------------------------------------ #
    # Types
    # ------------------------------------------------------------------ #

    def type(self, expr: TypeExpr) -> str:
        """Render *expr* as a Python type expression valid in this file."""
        if isinstance(expr, PrimitiveType):
            return expr.primitive.python_type
        if isinstance(expr, SequenceType):
            return f"list[{self.type(expr.item)}]"
        if isinstance(expr, OptionalType):
            self.imports.typing.add("Optional")
            return f"Optional[{self.type(expr.inner)}]"
        if isinstance(expr, LocalType):
            return expr.name
        if isinstance(expr, ComponentRef):
            if self.in_schemas:
                return expr.name
            self.imports.schemas = True
            return f"{SCHEMAS_MODULE}.{expr.name}"
        if isinstance(expr, HostType):
            if expr.module:
                self.imports.host.add((expr.module, expr.name))
            return expr.name
        raise TypeError(f"Unknown type expression {expr!r}")

    def field_line(self, decl: FieldDecl) -> str:
        annotation = self.type(decl.type)
        optional = isinstance(decl.type, OptionalType)
        if decl.has_alias:
            self.imports.pydantic.add("Field")
            if optional:
                return f"{decl.name}: {annotation} = Field(default=None, alias={_string(decl.source_name)})"
            return f"{decl.name}: {annotation} = Field(alias={_string(decl.source_name)})"
        if optional:
            return f"{decl.name}: {annotation} = None"
        return f"{decl.name}: {annotation}"

    def model_config(self, fields: tuple[FieldDecl, ...]) -> Optional[str]:
        options = []
        if any(f.has_alias for f in fields):
            options.append("populate_by_name=True")
        if any(_needs_arbitrary_types(f.type) for f in fields):
            options.append("arbitrary_types_allowed=True")
        if not options:
            return None
        self.imports.pydantic.add("ConfigDict")
        return f"ConfigDict({', '.join(options)})"

    # ------------------------------------------------------------------ #
    # Blocks
    # ------------------------------------------------------------------ #

    def declaration(self, decl: RecordDecl | AliasDecl | ChoiceDecl) -> str:
        if isinstance(decl, RecordDecl):
            doc = [decl.description or "Generated from OpenAPI schema."]
            return self.record(decl.name, decl.fields, doc)
        if isinstance(decl, AliasDecl):
            return self._render(
                "alias.py.j2",
                alias={
                    "name": decl.name,
                    "target": self.type(decl.target),
                    "comment": (decl.description or "").splitlines(),
                },
            )
        return self.choice(decl)

    def record(
        self, name: str, fields: tuple[FieldDecl, ...], doc: Optional[list[str]]
    ) -> str:
        self.imports.pydantic.add("BaseModel")
        self.rebuild.append(name)
        return self._render(
            "record.py.j2",
            record={
                "name": name,
                "base": "BaseModel",
                "docstring": _docstring(doc, indent=4) if doc else None,
                "config": self.model_config(fields),
                "fields": [self.field_line(f) for f in fields],
            },
        )

    def choice(self, decl: ChoiceDecl) -> str:
        """Render a tagged choice: one private wrapper model per variant."""
        self.imports.pydantic.update({"Discriminator", "RootModel", "Tag"})
        self.imports.typing.update({"Annotated", "Any", "ClassVar", "Union"})
        self.imports.runtime = True

        variants = []
        for variant in decl.variants:
            wrapper = f"_{decl.name}{variant.tag}"
            self.rebuild.append(wrapper)
            variants.append(
                {"tag": variant.tag, "wrapper": wrapper, "type": self.type(variant.type)}
            )
        self.rebuild.append(decl.name)

        tags = tuple(v.tag for v in decl.variants)
        doc = [decl.description or "Generated from OpenAPI schema.", ""]
        doc.append("Exactly one of: " + ", ".join(tags) + ".")
        return self._render(
            "choice.py.j2",
            choice={
                "name": decl.name,
                "docstring": _docstring(doc, indent=4),
                "tags": repr(tags),
                "variants": variants,
                "wrappers": ", ".join(v["wrapper"] for v in variants),
            },
        )

    def route(self, method: CompiledMethod) -> str:
        self.imports.runtime = True
        self.imports.typing.add("ClassVar")
        self.imports.host.add(("starlette.requests", "Request"))

        transients: list[str] = []
        steps: list[dict[str, str]] = []
        arguments: list[str] = []

        if method.path_params:
            model = f"_{method.name}Path"
            transients.append(self.record(model, method.path_params, None))
            steps.append(
                {
                    "target": "path",
                    "call": f"runtime.extract_path(request, {model})",
                    "kind": "PATH",
                }
            )
            arguments += [f"{f.name}=path.{f.name}" for f in method.path_params]

        if method.query_params:
            model = f"_{method.name}Query"
            transients.append(self.record(model, method.query_params, None))
            steps.append(
                {
                    "target": "query",
                    "call": f"runtime.extract_query(request, {model})",
                    "kind": "QUERY",
                }
            )
            arguments += [f"{f.name}=query.{f.name}" for f in method.query_params]

        fields = method.path_params + method.query_params
        extractor = method.extractor
        if extractor is not None:
            body_type = self.type(extractor.body_type)
            fields += (
                FieldDecl(
                    name=extractor.binding,
                    source_name=extractor.binding,
                    type=extractor.body_type,
                ),
            )
            steps.append(
                {
                    "target": extractor.binding,
                    "call": _BODY_CALLS[extractor.strategy].format(body_type=body_type),
                    "kind": extractor.rejection.name,
                }
            )
            arguments.append(f"{extractor.binding}={extractor.binding}")

        self.imports.pydantic.add("BaseModel")
        self.rebuild.append(method.name)

        doc = [f"{method.method.value.upper()} {method.document_path}"]
        if method.summary:
            doc += ["", method.summary]
        if method.description:
            doc += ["", method.description]

        return self._render(
            "route.py.j2",
            route={
                "name": method.name,
                "docstring": _docstring(doc, indent=4),
                "config": self.model_config(fields),
                "route_path": _string(method.route_path),
                "document_path": _string(method.document_path),
                "method": _string(method.method.value.upper()),
                "fields": [self.field_line(f) for f in fields],
                "transients": transients,
                "steps": steps,
                "arguments": arguments,
            },
        )

    # ------------------------------------------------------------------ #
    # Imports
    # ------------------------------------------------------------------ #

    def import_groups(self, runtime_module: str) -> list[list[str]]:
        """Import lines grouped as future, standard library, third party, local."""
        imports = self.imports
        groups: list[list[str]] = [["from __future__ import annotations"]]

        if imports.typing:
            groups.append([f"from typing import {', '.join(sorted(imports.typing))}"])

        third_party = []
        if imports.pydantic:
            third_party.append(f"from pydantic import {', '.join(sorted(imports.pydantic))}")
        for module in sorted({module for module, _ in imports.host}):
            names = sorted(name for mod, name in imports.host if mod == module)
            third_party.append(f"from {module} import {', '.join(names)}")
        if third_party:
            groups.append(third_party)

        if imports.runtime:
            groups.append([f"import {runtime_module} as runtime"])

        relative = []
        if imports.schemas and not self.in_schemas:
            relative.append(f"from {'.' * (self.depth + 1)} import {SCHEMAS_MODULE}")
        relative += [f"from . import {child}" for child in imports.children]
        if relative:
            groups.append(relative)
        return groups

    def _render(self, template: str, **context) -> str:
        return self.env.get_template(template).render(**context).rstrip("\n")


def _needs_arbitrary_types(expr: TypeExpr) -> bool:
    if isinstance(expr, HostType):
        return expr.module is not None
    if isinstance(expr, (OptionalType,)):
        return _needs_arbitrary_types(expr.inner)
    if isinstance(expr, SequenceType):
        return _needs_arbitrary_types(expr.item)
    return False


def _directory(path: str) -> str:
    return path.rsplit("/", 1)[0] + "/" if "/" in path else ""


def _string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _docstring(lines: list[str], indent: int) -> str:
    """Build a triple-quoted docstring; continuation lines get *indent* spaces."""
    text = "\n".join(lines).replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    body = text.splitlines() or [""]
    if body[-1].endswith('"'):
        body[-1] = body[-1][:-1] + '\\"'
    pad = " " * indent
    if len(body) == 1:
        return f'"""{body[0]}"""'
    rest = [f"{pad}{line}" if line.strip() else "" for line in body[1:]]
    return f'"""{body[0]}\n' + "\n".join(rest) + f'\n{pad}"""'
