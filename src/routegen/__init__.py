"""routegen -- typed Starlette request classes from routing declarations.

A routes file lists the endpoints an application serves and names the
OpenAPI document that describes them::

    path = "openapi.yaml";

    pub mod posts {
        GET /users/{user_id}/posts/{post_id} as pub GetPost;
    }

``routegen generate`` resolves every route against the document and writes a
Python package with one pydantic class per route. Each class knows its path
and method and can extract and validate itself from a Starlette request.

Modules:
    app: Typer application and CLI entry point.
    pipeline: Parse, compile and emit in one call.
    parser: Declaration parser and OpenAPI document loading.
    compiler: Route resolution and schema-to-type compilation.
    codegen: Python source emission and file output.
    runtime: Support code imported by generated packages.
    models: Pydantic models shared across the package.
    config: Project configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting with Rich.
"""

__version__ = "0.1.0"
