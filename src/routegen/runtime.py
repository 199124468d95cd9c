"""Request extraction support imported by generated route modules.

Generated route classes call the ``extract_*`` helpers from their
``from_request`` classmethod and turn any :class:`ExtractionError` into a
:class:`Rejection` tagged with the :class:`RejectionKind` of the request part
that failed. :func:`method_router` and :func:`route` wire a handler that takes
a route object into a Starlette :class:`~starlette.routing.Route`.

Example::

    from starlette.applications import Starlette

    from generated import GetPost
    from routegen.runtime import route

    async def get_post(req: GetPost):
        return {"user": req.user_id, "posts": req.post_id}

    app = Starlette(routes=[route(get_post)])
"""

from __future__ import annotations

import functools
import inspect
import json
import logging
import types
import typing
from typing import Any, Callable, Optional, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python
from starlette.datastructures import FormData
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import ClientDisconnect, Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from routegen.models import RejectionKind

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]
"""A route handler: receives the extracted route object, returns a response."""

__all__ = [
    "ExtractionError",
    "Handler",
    "Rejection",
    "RejectionKind",
    "Route",
    "choice_discriminator",
    "extract_bytes",
    "extract_form",
    "extract_json",
    "extract_multipart",
    "extract_path",
    "extract_query",
    "extract_text",
    "method_router",
    "route",
]

_STATUS_BY_KIND = {
    RejectionKind.PATH: 400,
    RejectionKind.QUERY: 400,
    RejectionKind.JSON: 422,
    RejectionKind.FORM: 422,
    RejectionKind.TEXT: 400,
    RejectionKind.BYTES: 400,
    RejectionKind.MULTIPART: 400,
    RejectionKind.OTHER: 500,
}


class ExtractionError(Exception):
    """Low-level failure of one ``extract_*`` helper.

    Args:
        status_code: HTTP status the failure should be reported with.
        detail: JSON-serializable description (a message or a list of
            validation errors).
    """

    def __init__(self, status_code: int, detail: Any):
        super().__init__(detail if isinstance(detail, str) else "validation failed")
        self.status_code = status_code
        self.detail = detail


class Rejection(Exception):
    """A request that could not be turned into a route object.

    Args:
        kind: Which part of the request failed.
        status_code: HTTP status; defaults to the usual one for *kind*.
        detail: JSON-serializable description of the failure.
    """

    def __init__(
        self,
        kind: RejectionKind,
        status_code: Optional[int] = None,
        detail: Any = None,
    ):
        self.kind = kind
        self.status_code = status_code or _STATUS_BY_KIND[kind]
        self.detail = detail
        super().__init__(f"{kind.value} rejection ({self.status_code}): {detail}")

    @classmethod
    def from_error(cls, kind: RejectionKind, error: ExtractionError) -> Rejection:
        return cls(kind, error.status_code, error.detail)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            {"rejection": self.kind.value, "detail": self.detail},
            status_code=self.status_code,
        )


# --------------------------------------------------------------------------- #
# Extraction helpers
# --------------------------------------------------------------------------- #


def extract_path(request: Request, model: type[BaseModel]) -> BaseModel:
    """Validate the matched path parameters into *model*.

    Sequence fields are split on commas (``/posts/1,2,3``).
    """
    raw: dict[str, Any] = {}
    for name, field in model.model_fields.items():
        key = field.alias or name
        if key not in request.path_params:
            continue
        value = request.path_params[key]
        if _is_sequence(field.annotation):
            value = value.split(",") if value else []
        raw[key] = value
    return _validate(model, raw, status_code=400)


def extract_query(request: Request, model: type[BaseModel]) -> BaseModel:
    """Validate the query string into *model*.

    Sequence fields collect every occurrence of their key (``?id=1&id=2``).
    """
    return _validate(model, _collect(request.query_params, model), status_code=400)


async def extract_json(request: Request, body_type: Any) -> Any:
    """Parse and validate a JSON body.

    Raises:
        ExtractionError: 415 without a JSON content type, 400 for a body
            that is not JSON, 422 when validation against *body_type* fails.
    """
    media_type = _media_type(request)
    if not (media_type == "application/json" or _is_json_suffix(media_type)):
        raise ExtractionError(415, "Expected request with `Content-Type: application/json`")

    body = await _read_body(request)
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise ExtractionError(400, f"Failed to parse the request body as JSON: {exc}") from exc
    return _validate(body_type, data, status_code=422)


async def extract_form(request: Request, body_type: Any) -> Any:
    """Parse and validate an ``application/x-www-form-urlencoded`` body."""
    if _media_type(request) != "application/x-www-form-urlencoded":
        raise ExtractionError(
            415, "Expected request with `Content-Type: application/x-www-form-urlencoded`"
        )

    form = await _read_form(request)
    model = _unwrap(body_type)
    if isinstance(model, type) and issubclass(model, BaseModel):
        data: Any = _collect(form, model)
    else:
        data = dict(form)
    return _validate(body_type, data, status_code=422)


async def extract_multipart(request: Request) -> FormData:
    """Parse a ``multipart/form-data`` body without validating its parts."""
    if _media_type(request) != "multipart/form-data":
        raise ExtractionError(415, "Expected request with `Content-Type: multipart/form-data`")
    return await _read_form(request)


async def extract_text(request: Request) -> str:
    """Read the body as UTF-8 text."""
    body = await _read_body(request)
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ExtractionError(400, f"Request body is not valid UTF-8: {exc}") from exc


async def extract_bytes(request: Request) -> bytes:
    """Read the raw body."""
    return await _read_body(request)


# --------------------------------------------------------------------------- #
# Choices
# --------------------------------------------------------------------------- #


def choice_discriminator(*variants: type[BaseModel]) -> Callable[[Any], Optional[str]]:
    """Build the pydantic discriminator of a generated ``oneOf`` type.

    *variants* are the per-alternative wrapper models, in document order,
    each with a ``TAG`` class attribute. A value is tagged by the first
    variant that accepts it in strict mode, else by the first that accepts it
    in lax mode, so ``True`` picks a boolean alternative over an earlier
    number one. ``None`` (no variant accepts the value) fails validation.
    """

    def discriminate(value: Any) -> Optional[str]:
        for variant in variants:
            if isinstance(value, variant):
                return variant.TAG
        for strict in (True, False):
            for variant in variants:
                try:
                    variant.model_validate(value, strict=strict)
                except ValidationError:
                    continue
                return variant.TAG
        return None

    return discriminate


# --------------------------------------------------------------------------- #
# Routing
# --------------------------------------------------------------------------- #


def method_router(route_cls: Any, handler: Handler) -> Route:
    """Build a Starlette route that extracts *route_cls* and calls *handler*.

    The handler may be sync or async. A :class:`~starlette.responses.Response`
    it returns is sent as is; anything else is serialized as JSON. A failed
    extraction short-circuits into the :class:`Rejection` response.
    """

    async def endpoint(request: Request) -> Response:
        try:
            extracted = await route_cls.from_request(request)
        except Rejection as rejection:
            logger.debug("%s %s rejected: %s", request.method, request.url.path, rejection)
            return rejection.to_response()

        result = handler(extracted)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Response):
            return result
        return JSONResponse(to_jsonable_python(result, by_alias=True))

    return Route(
        route_cls.DOCUMENT_PATH,
        endpoint,
        methods=[route_cls.METHOD],
        name=route_cls.__name__,
    )


def route(handler: Handler) -> Route:
    """Like :func:`method_router`, taking the route class from *handler*'s signature.

    Raises:
        TypeError: If the first parameter is not annotated with a generated
            route class.
    """
    params = list(inspect.signature(handler).parameters)
    if not params:
        raise TypeError(f"{handler.__qualname__} must take the route object as a parameter")

    hints = typing.get_type_hints(handler)
    route_cls = hints.get(params[0])
    if route_cls is None or not hasattr(route_cls, "from_request"):
        raise TypeError(
            f"The first parameter of {handler.__qualname__} must be annotated with "
            "a generated route class"
        )
    return method_router(route_cls, handler)


# --------------------------------------------------------------------------- #
# Internals
# --------------------------------------------------------------------------- #


@functools.lru_cache(maxsize=None)
def _adapter(body_type: Any) -> TypeAdapter:
    return TypeAdapter(body_type)


def _validate(target: Any, data: Any, status_code: int) -> Any:
    try:
        if isinstance(target, type) and issubclass(target, BaseModel):
            return target.model_validate(data)
        return _adapter(target).validate_python(data)
    except ValidationError as exc:
        raise ExtractionError(status_code, json.loads(exc.json(include_url=False))) from exc


def _collect(params: Any, model: type[BaseModel]) -> dict[str, Any]:
    """Pick *model*'s fields out of a multi-dict, as lists for sequence fields."""
    raw: dict[str, Any] = {}
    for name, field in model.model_fields.items():
        key = field.alias or name
        if _is_sequence(field.annotation):
            values = params.getlist(key)
            if values:
                raw[key] = values
        elif key in params:
            raw[key] = params[key]
    return raw


def _unwrap(annotation: Any) -> Any:
    """Strip ``type`` aliases and ``Optional`` down to the underlying type."""
    while True:
        if isinstance(annotation, typing.TypeAliasType):
            annotation = annotation.__value__
            continue
        if get_origin(annotation) in (Union, types.UnionType):
            args = [arg for arg in get_args(annotation) if arg is not type(None)]
            if len(args) == 1:
                annotation = args[0]
                continue
        return annotation


def _is_sequence(annotation: Any) -> bool:
    return get_origin(_unwrap(annotation)) in (list, tuple)


def _media_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";", 1)[0].strip().lower()


def _is_json_suffix(media_type: str) -> bool:
    return media_type.startswith("application/") and media_type.endswith("+json")


async def _read_body(request: Request) -> bytes:
    try:
        return await request.body()
    except ClientDisconnect as exc:
        raise ExtractionError(400, "Client disconnected before sending the body") from exc


async def _read_form(request: Request) -> FormData:
    try:
        return await request.form()
    except (MultiPartException, HTTPException) as exc:
        detail = getattr(exc, "message", None) or getattr(exc, "detail", str(exc))
        raise ExtractionError(400, f"Failed to parse the form body: {detail}") from exc
