"""Front end of the routegen pipeline: routes files and OpenAPI documents.

Typical usage::

    from routegen.parser import load_document, parse_declarations, parse_document

    declarations = parse_declarations(Path("api.routes").read_text(), "api.routes")
    document = parse_document(load_document(declarations.spec_path))

Sub-modules:

* :mod:`~routegen.parser.lexer` -- tokenizer for the declaration language.
* :mod:`~routegen.parser.declarations` -- recursive-descent declaration parser.
* :mod:`~routegen.parser.loader` -- I/O layer (URL, file, stdin) plus format
  detection.
* :mod:`~routegen.parser.document` -- version check, model validation and
  component ``$ref`` resolution.
"""

from routegen.parser.declarations import parse_declarations
from routegen.parser.document import parse_document, validate_openapi_version
from routegen.parser.loader import load_document, resolve_source

__all__ = [
    "parse_declarations",
    "parse_document",
    "validate_openapi_version",
    "load_document",
    "resolve_source",
]
