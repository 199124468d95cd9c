"""``routegen check`` -- validate a routes file and list what it resolves to."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from routegen.config import resolve_config
from routegen.exceptions import RoutegenError
from routegen.models import Visibility
from routegen.output import error, print_table, success
from routegen.pipeline import build_from_file, iter_methods

_HEADERS = ["Method", "Path", "Type", "Module", "Public", "Body"]


def check_command(
    routes: Path = typer.Argument(..., help="Routes declaration file."),
    spec: Optional[str] = typer.Option(
        None, "--spec", help="OpenAPI document (path, URL or '-') overriding the routes file."
    ),
) -> None:
    """Resolve every route against the OpenAPI document without writing files.

    Exits non-zero with the first error found. On success prints one row per
    route: verb, document path, generated type, module, and body strategy.
    """
    try:
        config = resolve_config(cli_spec=spec)
        result = build_from_file(routes, config)
    except RoutegenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    rows = []
    for module, method in iter_methods(result.compiled):
        body = method.extractor.strategy.value if method.extractor else "-"
        rows.append(
            [
                method.method.value.upper(),
                method.document_path,
                method.name,
                module or "-",
                "yes" if method.visibility == Visibility.PUBLIC else "no",
                body,
            ]
        )

    print_table(_HEADERS, rows, title=f"Routes in {routes.name}")
    success(f"{len(rows)} route(s) resolved against {result.document_source}")
