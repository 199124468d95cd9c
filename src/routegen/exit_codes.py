"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~routegen.exceptions.RoutegenError` subclass.
Build scripts can inspect the exit code to tell a typo in the routes file
apart from a route that is missing from the OpenAPI document, without
parsing stderr.

Example::

    $ routegen generate api.routes
    $ echo $?
    4   # EXIT_RESOLUTION_ERROR -- a declared route is not in the document
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_SYNTAX_ERROR = 2
"""The routing declarations could not be parsed."""

EXIT_COMPILE_ERROR = 3
"""Compilation failed for a reason other than resolution or schema shape."""

EXIT_RESOLUTION_ERROR = 4
"""A declared route, method, or parameter has no counterpart in the document."""

EXIT_SCHEMA_ERROR = 5
"""A schema in the document uses a shape the compiler does not support."""

EXIT_DOCUMENT_ERROR = 6
"""The OpenAPI document could not be loaded or validated."""
