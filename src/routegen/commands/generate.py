"""``routegen generate`` -- compile a routes file and write the package."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from routegen.codegen import write_package
from routegen.config import resolve_config
from routegen.exceptions import RoutegenError
from routegen.output import debug, error, print_table, success, suggest
from routegen.pipeline import build_from_file


def generate_command(
    routes: Path = typer.Argument(..., help="Routes declaration file."),
    output_dir: Optional[str] = typer.Option(
        None, "--output", "-o", help="Directory to write the generated package to."
    ),
    spec: Optional[str] = typer.Option(
        None, "--spec", help="OpenAPI document (path, URL or '-') overriding the routes file."
    ),
) -> None:
    """Generate typed request classes for every declared route.

    Example::

        routegen generate api.routes -o app/generated
    """
    try:
        config = resolve_config(cli_output_dir=output_dir, cli_spec=spec)
        result = build_from_file(routes, config)
        target = Path(config.output_dir)
        written = write_package(result.package, target)
    except RoutegenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    except OSError as exc:
        error(f"Failed to write generated package: {exc}")
        raise typer.Exit(code=1) from None

    debug(f"Document loaded from {result.document_source}")
    rows = [
        [str(path), str(len(content.encode("utf-8")))]
        for path, content in zip(written, result.package.files.values())
    ]
    print_table(["File", "Bytes"], rows, title="Generated files")
    success(f"Generated {len(written)} file(s) in {target}")
    suggest(f"Import the package from {target} and register routes with .method_router(handler)")
