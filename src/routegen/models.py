"""Canonical Pydantic models shared across all routegen modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into five groups:

**Declaration tree** -- produced by :mod:`routegen.parser.declarations`:
    :class:`HttpMethod`, :class:`Visibility`, :class:`PathSegment`,
    :class:`MethodPath`, :class:`MethodDecl`, :class:`ModuleDecl`, and
    :class:`DeclarationRoot`.

**OpenAPI document** -- the subset of an OpenAPI 3.x document the compiler
reads, validated from the loader's plain dict:
    :class:`Schema`, :class:`Reference`, :class:`Parameter`,
    :class:`MediaType`, :class:`RequestBody`, :class:`Operation`,
    :class:`PathItem`, :class:`Components`, and :class:`ApiDocument`.

**Type expressions and declarations** -- produced by the schema compiler:
    :data:`TypeExpr` (:class:`PrimitiveType`, :class:`SequenceType`,
    :class:`OptionalType`, :class:`LocalType`, :class:`ComponentRef`,
    :class:`HostType`) and :data:`Declaration` (:class:`RecordDecl`,
    :class:`AliasDecl`, :class:`ChoiceDecl`).

**Compiled tree** -- produced by :mod:`routegen.compiler.routes` and consumed
by the emitter:
    :class:`Extractor`, :class:`CompiledMethod`, :class:`CompiledModule`,
    and :class:`CompiledRoot`.

**Configuration and output**:
    :class:`GeneratorConfig` and :class:`GeneratedPackage`.

Trees are frozen and hold tuples, so a compiled tree cannot change between
compilation and emission. Document models keep every mapping in document
order, which is what makes generated output deterministic.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from routegen.exceptions import SourceLocation


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Declaration tree ---


class HttpMethod(str, enum.Enum):
    """HTTP methods a route can be declared for.

    All eight are representable, but the declaration parser only accepts
    the first five as verb tokens.
    """

    GET = "get"
    POST = "post"
    PUT = "put"
    DELETE = "delete"
    PATCH = "patch"
    HEAD = "head"
    OPTIONS = "options"
    TRACE = "trace"


class Visibility(str, enum.Enum):
    """Whether a generated name is exported from its module's ``__all__``."""

    PUBLIC = "public"
    PRIVATE = "private"


class PathSegment(_Frozen):
    """One ``/``-separated piece of a route path."""

    name: str
    is_parameter: bool = False
    location: Optional[SourceLocation] = None


class MethodPath(_Frozen):
    """An ordered sequence of path segments, e.g. ``/users/{id}/posts``.

    Two string encodings exist and convert losslessly into each other through
    the segment list:

    * framework style -- ``/users/:id/posts``
    * document style -- ``/users/{id}/posts`` (also what Starlette routes use)

    An empty segment list encodes as ``/`` in both styles.
    """

    segments: tuple[PathSegment, ...] = ()

    def to_route_path(self) -> str:
        """Encode the path in framework style (``/:name`` for parameters)."""
        if not self.segments:
            return "/"
        return "".join(
            f"/:{seg.name}" if seg.is_parameter else f"/{seg.name}"
            for seg in self.segments
        )

    def to_document_path(self) -> str:
        """Encode the path in document style (``/{name}`` for parameters)."""
        if not self.segments:
            return "/"
        return "".join(
            f"/{{{seg.name}}}" if seg.is_parameter else f"/{seg.name}"
            for seg in self.segments
        )

    def parameters(self) -> list[PathSegment]:
        """Return the parameter segments, in path order."""
        return [seg for seg in self.segments if seg.is_parameter]

    @classmethod
    def from_route_path(cls, path: str) -> MethodPath:
        """Decode a framework-style path.

        Raises:
            ValueError: If *path* does not start with ``/`` or has an empty
                segment.
        """
        return cls(
            segments=tuple(
                PathSegment(name=raw[1:], is_parameter=True)
                if raw.startswith(":")
                else PathSegment(name=raw)
                for raw in _split_path(path)
            )
        )

    @classmethod
    def from_document_path(cls, path: str) -> MethodPath:
        """Decode a document-style path.

        Raises:
            ValueError: If *path* does not start with ``/`` or has an empty
                segment.
        """
        return cls(
            segments=tuple(
                PathSegment(name=raw[1:-1], is_parameter=True)
                if raw.startswith("{") and raw.endswith("}")
                else PathSegment(name=raw)
                for raw in _split_path(path)
            )
        )


def _split_path(path: str) -> list[str]:
    if not path.startswith("/"):
        raise ValueError(f"Path must start with '/': {path!r}")
    if path == "/":
        return []
    parts = path[1:].split("/")
    if any(not part for part in parts):
        raise ValueError(f"Path has an empty segment: {path!r}")
    return parts


class MethodDecl(_Frozen):
    """A route declaration like ``GET /api/feed/{id} as pub GetPost;``."""

    kind: Literal["method"] = "method"
    method: HttpMethod
    path: MethodPath
    visibility: Visibility = Visibility.PRIVATE
    name: str
    location: Optional[SourceLocation] = None


class ModuleDecl(_Frozen):
    """A module like ``pub mod feed { ... }``."""

    kind: Literal["module"] = "module"
    name: str
    visibility: Visibility = Visibility.PRIVATE
    items: tuple[DeclItem, ...] = ()
    location: Optional[SourceLocation] = None


DeclItem = Annotated[Union[ModuleDecl, MethodDecl], Field(discriminator="kind")]


class DeclarationRoot(_Frozen):
    """The parsed routes file: the document path plus the item tree."""

    spec_path: str
    spec_location: Optional[SourceLocation] = None
    items: tuple[DeclItem, ...] = ()


# --- OpenAPI document ---


class SchemaType(str, enum.Enum):
    """The ``type`` keyword values the compiler understands."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class _DocumentModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


class Schema(_DocumentModel):
    """An OpenAPI *Schema Object*, or a ``$ref`` pointing at one."""

    ref: Optional[str] = Field(default=None, alias="$ref")
    title: Optional[str] = None
    type: Optional[SchemaType] = None
    properties: dict[str, Schema] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    items: Optional[Schema] = None
    one_of: list[Schema] = Field(default_factory=list, alias="oneOf")
    all_of: list[Schema] = Field(default_factory=list, alias="allOf")
    any_of: list[Schema] = Field(default_factory=list, alias="anyOf")
    description: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _first_non_null_type(cls, value: Any) -> Any:
        # OpenAPI 3.1 allows type arrays such as ["string", "null"]
        if isinstance(value, list):
            non_null = [t for t in value if t != "null"]
            return non_null[0] if non_null else None
        return value


class Reference(_DocumentModel):
    """A bare ``{"$ref": "#/components/..."}`` object."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    ref: str = Field(alias="$ref")


class Parameter(_DocumentModel):
    """An OpenAPI *Parameter Object*."""

    name: str
    location: str = Field(alias="in")
    required: bool = False
    schema_: Optional[Schema] = Field(default=None, alias="schema")
    description: Optional[str] = None


class MediaType(_DocumentModel):
    """One entry of a request body's ``content`` mapping."""

    schema_: Optional[Schema] = Field(default=None, alias="schema")


class RequestBody(_DocumentModel):
    """An OpenAPI *Request Body Object*."""

    content: dict[str, MediaType] = Field(default_factory=dict)
    required: bool = False
    description: Optional[str] = None


class Operation(_DocumentModel):
    """An OpenAPI *Operation Object* (one verb on one path)."""

    operation_id: Optional[str] = Field(default=None, alias="operationId")
    summary: Optional[str] = None
    description: Optional[str] = None
    parameters: list[Union[Reference, Parameter]] = Field(default_factory=list)
    request_body: Optional[Union[Reference, RequestBody]] = Field(
        default=None, alias="requestBody"
    )


class PathItem(_DocumentModel):
    """An OpenAPI *Path Item Object*: per-verb operations plus shared parameters."""

    parameters: list[Union[Reference, Parameter]] = Field(default_factory=list)
    get: Optional[Operation] = None
    put: Optional[Operation] = None
    post: Optional[Operation] = None
    delete: Optional[Operation] = None
    options: Optional[Operation] = None
    head: Optional[Operation] = None
    patch: Optional[Operation] = None
    trace: Optional[Operation] = None

    def operation(self, method: HttpMethod) -> Optional[Operation]:
        """Return the operation declared for *method*, or ``None``."""
        return getattr(self, method.value)


class Components(_DocumentModel):
    """Reusable definitions under ``components``."""

    schemas: dict[str, Schema] = Field(default_factory=dict)
    parameters: dict[str, Parameter] = Field(default_factory=dict)
    request_bodies: dict[str, RequestBody] = Field(
        default_factory=dict, alias="requestBodies"
    )


class ApiDocument(_DocumentModel):
    """The parts of an OpenAPI 3.x document that route compilation reads."""

    openapi: str = "3.0.0"
    info: dict[str, Any] = Field(default_factory=dict)
    paths: dict[str, PathItem] = Field(default_factory=dict)
    components: Components = Field(default_factory=Components)


# --- Type expressions ---


class PrimitiveKind(str, enum.Enum):
    """Scalar schema kinds and the Python type each one maps to."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"

    @property
    def python_type(self) -> str:
        return _PRIMITIVE_PYTHON_TYPES[self]


_PRIMITIVE_PYTHON_TYPES = {
    PrimitiveKind.STRING: "str",
    PrimitiveKind.NUMBER: "float",
    PrimitiveKind.INTEGER: "int",
    PrimitiveKind.BOOLEAN: "bool",
}


class PrimitiveType(_Frozen):
    expr: Literal["primitive"] = "primitive"
    primitive: PrimitiveKind


class SequenceType(_Frozen):
    expr: Literal["sequence"] = "sequence"
    item: TypeExpr


class OptionalType(_Frozen):
    expr: Literal["optional"] = "optional"
    inner: TypeExpr


class LocalType(_Frozen):
    """A type declared in the same generated module as its point of use."""

    expr: Literal["local"] = "local"
    name: str


class ComponentRef(_Frozen):
    """A named component in the shared ``schemas`` module.

    ``hops`` counts the parent scopes between the point of use and the
    package root that holds ``schemas``.
    """

    expr: Literal["component"] = "component"
    name: str
    hops: int = 0


class HostType(_Frozen):
    """A type supplied by the host framework rather than generated."""

    expr: Literal["host"] = "host"
    name: str
    module: Optional[str] = None


TypeExpr = Annotated[
    Union[PrimitiveType, SequenceType, OptionalType, LocalType, ComponentRef, HostType],
    Field(discriminator="expr"),
]


# --- Declarations ---


class FieldDecl(_Frozen):
    """A record field. ``source_name`` is the wire name when it differs."""

    name: str
    source_name: str
    type: TypeExpr

    @property
    def has_alias(self) -> bool:
        return self.name != self.source_name


class RecordDecl(_Frozen):
    kind: Literal["record"] = "record"
    name: str
    fields: tuple[FieldDecl, ...] = ()
    description: Optional[str] = None


class AliasDecl(_Frozen):
    kind: Literal["alias"] = "alias"
    name: str
    target: TypeExpr
    description: Optional[str] = None


class Variant(_Frozen):
    tag: str
    type: TypeExpr


class ChoiceDecl(_Frozen):
    kind: Literal["choice"] = "choice"
    name: str
    variants: tuple[Variant, ...] = ()
    description: Optional[str] = None


Declaration = Annotated[
    Union[RecordDecl, AliasDecl, ChoiceDecl], Field(discriminator="kind")
]


# --- Compiled tree ---


class ExtractionStrategy(str, enum.Enum):
    """How a request body is pulled out of the request, chosen by media type."""

    JSON = "json"
    FORM = "form"
    MULTIPART = "multipart"
    TEXT = "text"
    BYTES = "bytes"


class RejectionKind(str, enum.Enum):
    """The error variant an extraction failure is reported under."""

    PATH = "path"
    QUERY = "query"
    JSON = "json"
    FORM = "form"
    TEXT = "text"
    BYTES = "bytes"
    MULTIPART = "multipart"
    OTHER = "other"


class Extractor(_Frozen):
    """A request-body extractor bound to one compiled method."""

    body_type: TypeExpr
    binding: str = "body"
    strategy: ExtractionStrategy
    rejection: RejectionKind


class CompiledMethod(_Frozen):
    kind: Literal["method"] = "method"
    method: HttpMethod
    route_path: str
    document_path: str
    name: str
    visibility: Visibility = Visibility.PRIVATE
    path_params: tuple[FieldDecl, ...] = ()
    query_params: tuple[FieldDecl, ...] = ()
    extractor: Optional[Extractor] = None
    summary: Optional[str] = None
    description: Optional[str] = None


class CompiledModule(_Frozen):
    kind: Literal["module"] = "module"
    name: str
    visibility: Visibility = Visibility.PRIVATE
    items: tuple[CompiledItem, ...] = ()


CompiledItem = Annotated[
    Union[CompiledModule, CompiledMethod, RecordDecl, AliasDecl, ChoiceDecl],
    Field(discriminator="kind"),
]


class CompiledRoot(_Frozen):
    """The compiled tree. ``items[0]`` is always the shared ``schemas`` module."""

    spec_path: str
    items: tuple[CompiledItem, ...] = ()


# --- Configuration and output ---


class GeneratorConfig(BaseModel):
    """Project settings, read from ``./routegen.json`` and the environment.

    See :func:`routegen.config.resolve_config` for the precedence chain.
    """

    model_config = ConfigDict(extra="forbid")

    output_dir: str = Field(
        default="generated", description="Directory the generated package is written to"
    )
    spec_override: Optional[str] = Field(
        default=None,
        description="Document path or URL used instead of the routes file's `path`",
    )
    header_comment: Optional[str] = Field(
        default=None, description="Extra line placed in every generated module docstring"
    )
    runtime_module: str = Field(
        default="routegen.runtime",
        description="Module generated code imports extraction helpers from",
    )


class GeneratedPackage(BaseModel):
    """Emitter output: relative file path to Python source, in emission order."""

    files: dict[str, str] = Field(default_factory=dict)


ModuleDecl.model_rebuild()
SequenceType.model_rebuild()
OptionalType.model_rebuild()
CompiledModule.model_rebuild()
