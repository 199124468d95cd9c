"""Exception hierarchy for routegen.

All exceptions inherit from :class:`RoutegenError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`routegen.exit_codes`
and an optional :class:`SourceLocation` pointing into the routes file.
Every pipeline stage raises on its first failure and nothing downstream
catches it, so one run reports at most one error.

Subclass hierarchy::

    RoutegenError (exit 1)
    +-- DslSyntaxError      (exit 2)
    +-- CompileError        (exit 3)
    |   +-- ResolutionError (exit 4)
    |   +-- SchemaError     (exit 5)
    +-- DocumentError       (exit 6)
    +-- ConfigError         (exit 1)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from routegen.exit_codes import (
    EXIT_COMPILE_ERROR,
    EXIT_DOCUMENT_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_RESOLUTION_ERROR,
    EXIT_SCHEMA_ERROR,
    EXIT_SYNTAX_ERROR,
)


@dataclass(frozen=True)
class SourceLocation:
    """A 1-based line/column position inside a routes file."""

    source: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.source}:{self.line}:{self.column}"


class RoutegenError(Exception):
    """Base exception for all routegen errors.

    Args:
        message: Human-readable error description printed to stderr.
        location: Where in the routes file the error applies, if anywhere.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.location = location
        if exit_code is not None:
            self.exit_code = exit_code

    def with_location(self, location: SourceLocation) -> RoutegenError:
        """Attach *location* if the error does not carry one yet and return self."""
        if self.location is None:
            self.location = location
        return self

    def __str__(self) -> str:
        if self.location is None:
            return self.message
        return f"{self.location}: {self.message}"


class DslSyntaxError(RoutegenError):
    """Raised when the routing declarations are malformed.

    Named to avoid shadowing the built-in ``SyntaxError``.
    """

    exit_code = EXIT_SYNTAX_ERROR


class CompileError(RoutegenError):
    """Raised when the declarations cannot be compiled against the document."""

    exit_code = EXIT_COMPILE_ERROR


class ResolutionError(CompileError):
    """Raised when a declared path, method, or parameter is not in the document."""

    exit_code = EXIT_RESOLUTION_ERROR


class SchemaError(CompileError):
    """Raised for unsupported or incomplete schemas and malformed request bodies."""

    exit_code = EXIT_SCHEMA_ERROR


class DocumentError(RoutegenError):
    """Raised when the OpenAPI document cannot be loaded or fails validation."""

    exit_code = EXIT_DOCUMENT_ERROR


class ConfigError(RoutegenError):
    """Raised for configuration problems (invalid ``routegen.json``, bad overrides)."""

    exit_code = EXIT_GENERIC_FAILURE
