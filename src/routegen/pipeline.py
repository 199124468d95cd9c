"""The whole parse -> resolve -> compile -> emit pipeline in one call.

:func:`generate` works on in-memory inputs; :func:`build_from_file` adds the
file handling the CLI needs (reading the routes file, locating and loading
the OpenAPI document it names). Both raise the first
:class:`~routegen.exceptions.RoutegenError` they hit.

An error raised after the declarations parsed, but without a location of its
own, is reported at the ``path = "...";`` declaration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

from routegen.codegen import emit_package
from routegen.compiler import compile_routes
from routegen.exceptions import RoutegenError
from routegen.models import (
    ApiDocument,
    CompiledItem,
    CompiledMethod,
    CompiledModule,
    CompiledRoot,
    DeclarationRoot,
    GeneratedPackage,
    GeneratorConfig,
)
from routegen.parser import load_document, parse_declarations, parse_document, resolve_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildResult:
    """Every intermediate product of one pipeline run."""

    declarations: DeclarationRoot
    document: ApiDocument
    compiled: CompiledRoot
    package: GeneratedPackage
    document_source: str


def generate(
    routes: str,
    document: dict[str, Any],
    source: str = "<routes>",
    config: Optional[GeneratorConfig] = None,
) -> GeneratedPackage:
    """Compile routes source text against an already-loaded document.

    The ``path = "...";`` value in *routes* is parsed but not used to load
    anything.
    """
    declarations = parse_declarations(routes, source)
    try:
        compiled = compile_routes(declarations, parse_document(document))
    except RoutegenError as exc:
        _fallback_location(exc, declarations)
        raise
    return emit_package(compiled, source=source, config=config)


def build_from_file(routes_file: Path, config: Optional[GeneratorConfig] = None) -> BuildResult:
    """Run the pipeline for a routes file on disk.

    ``config.spec_override``, when set, replaces the document path the routes
    file names.
    """
    config = config or GeneratorConfig()
    if not routes_file.is_file():
        raise RoutegenError(f"Routes file not found: {routes_file}")
    try:
        text = routes_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise RoutegenError(f"Failed to read routes file {routes_file}: {exc}") from exc

    source = str(routes_file)
    declarations = parse_declarations(text, source)

    try:
        document_source = resolve_source(
            config.spec_override or declarations.spec_path,
            None if config.spec_override else routes_file,
        )
        logger.debug("Loading OpenAPI document from %s", document_source)
        document = parse_document(load_document(document_source))
        compiled = compile_routes(declarations, document)
    except RoutegenError as exc:
        _fallback_location(exc, declarations)
        raise

    package = emit_package(compiled, source=routes_file.name, config=config)
    return BuildResult(
        declarations=declarations,
        document=document,
        compiled=compiled,
        package=package,
        document_source=document_source,
    )


def iter_methods(compiled: CompiledRoot) -> Iterator[tuple[str, CompiledMethod]]:
    """Yield ``(dotted module path, method)`` for every compiled method, in order.

    Root-level methods have an empty module path.
    """
    yield from _walk(compiled.items, "")


def _walk(items: tuple[CompiledItem, ...], prefix: str) -> Iterator[tuple[str, CompiledMethod]]:
    for item in items:
        if isinstance(item, CompiledMethod):
            yield prefix, item
        elif isinstance(item, CompiledModule):
            yield from _walk(item.items, f"{prefix}.{item.name}" if prefix else item.name)


def _fallback_location(exc: RoutegenError, declarations: DeclarationRoot) -> None:
    if declarations.spec_location is not None:
        exc.with_location(declarations.spec_location)
