"""Read OpenAPI documents from a local file, an http(s) URL, or stdin.

The loader only does I/O and format detection; it returns a plain dict that
:func:`~routegen.parser.document.parse_document` validates into an
:class:`~routegen.models.ApiDocument`.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import httpx
import yaml

from routegen.exceptions import DocumentError

logger = logging.getLogger(__name__)


def load_document(source: str) -> dict[str, Any]:
    """Load a raw document from a URL, a file path, or ``-`` for stdin.

    Raises:
        DocumentError: If the source cannot be read or is not a JSON/YAML
            mapping.
    """
    if source == "-":
        content, hint = _read_stdin(), ""
    elif source.startswith(("http://", "https://")):
        content, hint = _fetch_url(source)
    else:
        content, hint = _read_file(source)

    logger.debug("Loaded %d characters from %s", len(content), source)
    return parse_content(content, hint=hint)


def resolve_source(spec_path: str, routes_file: Path | None = None) -> str:
    """Turn the ``path = "..."`` value of a routes file into a loadable source.

    URLs and ``-`` pass through. A relative file path is tried against the
    routes file's directory first and the working directory second.
    """
    if spec_path == "-" or spec_path.startswith(("http://", "https://")):
        return spec_path

    candidate = Path(spec_path)
    if candidate.is_absolute() or routes_file is None:
        return str(candidate)

    beside_routes = routes_file.parent / candidate
    if beside_routes.is_file():
        return str(beside_routes)
    return str(candidate)


def _read_stdin() -> str:
    try:
        content = sys.stdin.read()
    except OSError as exc:
        raise DocumentError(f"Failed to read from stdin: {exc}") from exc
    if not content.strip():
        raise DocumentError("No input received from stdin")
    return content


def _fetch_url(url: str) -> tuple[str, str]:
    try:
        response = httpx.get(url, timeout=30.0, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise DocumentError(
            f"HTTP {exc.response.status_code} fetching document from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise DocumentError(f"Failed to fetch document from {url}: {exc}") from exc

    content_type = response.headers.get("content-type", "")
    hint = ""
    if "json" in content_type:
        hint = "json"
    elif "yaml" in content_type or "yml" in content_type:
        hint = "yaml"
    return response.text, hint


def _read_file(path: str) -> tuple[str, str]:
    file_path = Path(path)
    if not file_path.is_file():
        raise DocumentError(f"Document not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentError(f"Failed to read document {path}: {exc}") from exc

    if not content.strip():
        raise DocumentError(f"Document is empty: {path}")

    suffix = file_path.suffix.lower()
    if suffix == ".json":
        return content, "json"
    if suffix in (".yaml", ".yml"):
        return content, "yaml"
    return content, ""


def parse_content(content: str, hint: str = "") -> dict[str, Any]:
    """Parse *content* as JSON or YAML.

    JSON is tried first unless *hint* is ``"yaml"``; valid JSON is valid YAML
    too, so the YAML fallback covers both. A ``"json"`` hint disables the
    fallback.

    Raises:
        DocumentError: If neither format parses, or the top level is not a
            mapping.
    """
    json_error: Exception | None = None

    if hint != "yaml":
        try:
            return _require_mapping(json.loads(content))
        except json.JSONDecodeError as exc:
            if hint == "json":
                raise DocumentError(f"Invalid JSON: {exc}") from exc
            json_error = exc

    try:
        return _require_mapping(yaml.safe_load(content))
    except yaml.YAMLError as exc:
        msg = "Failed to parse document as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise DocumentError(msg) from exc


def _require_mapping(result: Any) -> dict[str, Any]:
    if not isinstance(result, dict):
        got = type(result).__name__ if result is not None else "empty document"
        raise DocumentError(f"Document must be a JSON/YAML object (got {got})")
    return result
