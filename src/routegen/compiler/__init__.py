"""Middle of the pipeline: route resolution and schema-to-type compilation."""

from routegen.compiler.routes import compile_routes
from routegen.compiler.schema import TypeSink, compile_param, compile_schema

__all__ = ["compile_routes", "compile_schema", "compile_param", "TypeSink"]
