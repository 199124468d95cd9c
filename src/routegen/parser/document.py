"""Validate a raw OpenAPI mapping into :class:`~routegen.models.ApiDocument`.

Also resolves the two kinds of ``$ref`` the route compiler follows outside
of schemas: ``#/components/parameters/*`` and ``#/components/requestBodies/*``.
Schema references are never dereferenced; they become component references
in the generated code.
"""

from __future__ import annotations

import logging
from typing import Any, Collection, Union

from pydantic import ValidationError

from routegen.exceptions import DocumentError, ResolutionError
from routegen.models import ApiDocument, Parameter, Reference, RequestBody

logger = logging.getLogger(__name__)

_PARAMETER_PREFIX = "#/components/parameters/"
_REQUEST_BODY_PREFIX = "#/components/requestBodies/"
_SCHEMA_PREFIX = "#/components/schemas/"


def validate_openapi_version(raw: dict[str, Any]) -> str:
    """Return the ``openapi`` version string of *raw*.

    Raises:
        DocumentError: For Swagger 2.x, a missing field, or a non-3.x version.
    """
    if "swagger" in raw:
        raise DocumentError(
            f"Swagger {raw['swagger']} is not supported. "
            "Only OpenAPI 3.0.x and 3.1.x are supported."
        )

    version = raw.get("openapi")
    if version is None:
        raise DocumentError("Missing 'openapi' field. Is this an OpenAPI 3.x document?")

    version_str = str(version)
    if not version_str.startswith(("3.0.", "3.1.")):
        raise DocumentError(
            f"Unsupported OpenAPI version: {version_str}. "
            "Only OpenAPI 3.0.x and 3.1.x are supported."
        )
    return version_str


def parse_document(raw: dict[str, Any]) -> ApiDocument:
    """Check the version of *raw* and validate it into an :class:`ApiDocument`.

    Raises:
        DocumentError: On an unsupported version or a structural problem
            (for instance a parameter without ``in``).
    """
    validate_openapi_version(raw)
    try:
        document = ApiDocument.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"])
        raise DocumentError(
            f"Invalid OpenAPI document at {where}: {first['msg']}"
        ) from exc

    logger.debug(
        "Document has %d path(s) and %d component schema(s)",
        len(document.paths),
        len(document.components.schemas),
    )
    return document


def resolve_parameter(
    document: ApiDocument, param: Union[Reference, Parameter]
) -> Parameter:
    """Follow a ``#/components/parameters/...`` reference, if *param* is one."""
    if isinstance(param, Parameter):
        return param
    name = _component_name(param.ref, _PARAMETER_PREFIX)
    try:
        return document.components.parameters[name]
    except KeyError:
        raise ResolutionError(f"Unresolved parameter reference {param.ref!r}") from None


def resolve_request_body(
    document: ApiDocument, body: Union[Reference, RequestBody]
) -> RequestBody:
    """Follow a ``#/components/requestBodies/...`` reference, if *body* is one."""
    if isinstance(body, RequestBody):
        return body
    name = _component_name(body.ref, _REQUEST_BODY_PREFIX)
    try:
        return document.components.request_bodies[name]
    except KeyError:
        raise ResolutionError(
            f"Unresolved request body reference {body.ref!r}"
        ) from None


def schema_ref_name(ref: str, schema_names: Collection[str]) -> str:
    """Name of the ``#/components/schemas/...`` entry *ref* points at.

    Raises:
        ResolutionError: If *ref* points elsewhere or names no entry of
            *schema_names*.
    """
    name = _component_name(ref, _SCHEMA_PREFIX)
    if name not in schema_names:
        raise ResolutionError(f"Unresolved schema reference {ref!r}")
    return name


def _component_name(ref: str, prefix: str) -> str:
    if not ref.startswith(prefix):
        raise ResolutionError(f"Unsupported reference {ref!r}; expected {prefix}<name>")
    return ref[len(prefix):]
