"""Name canonicalisation for generated Python code.

Two conversions live here:

* :func:`field_name` turns an OpenAPI property or parameter name into a
  valid pydantic field name. Names that already are valid identifiers are
  kept verbatim so that generated records mirror the document; everything
  else is snake_cased and the original wire name becomes the field alias.
* :func:`to_upper_camel` canonicalises a type name into an UpperCamelCase
  tag, used for the variants of an exclusive-choice type.
"""

from __future__ import annotations

import keyword
import re

# Matches any character that is not alphanumeric or underscore.
_INVALID_IDENT_RE = re.compile(r"[^a-zA-Z0-9_]")

# Word boundaries for UpperCamel conversion: separators, lower->upper, and
# the end of an acronym ("HTTPServer" -> "HTTP", "Server").
_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|[0-9]+")


def field_name(name: str) -> str:
    """Convert a wire name to a pydantic-safe Python field name.

    Applies the following, in order, only when *name* is not already usable:

    1. CamelCase boundaries are split with underscores and the result is
       lowercased.
    2. Hyphens, dots and any other invalid characters become underscores;
       runs of underscores collapse, and leading/trailing ones are stripped
       (pydantic treats leading-underscore names as private attributes).
    3. An empty result becomes ``"field"``; a leading digit gets an ``f_``
       prefix.
    4. Python keywords get a trailing underscore (``class`` -> ``class_``).

    Example::

        >>> field_name("req_id")
        'req_id'
        >>> field_name("X-Request-ID")
        'x_request_id'
        >>> field_name("class")
        'class_'
    """
    if name.isidentifier() and not name.startswith("_"):
        if keyword.iskeyword(name):
            return f"{name}_"
        return name

    result = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    result = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", result)
    result = result.lower()
    result = _INVALID_IDENT_RE.sub("_", result)
    result = re.sub(r"_+", "_", result).strip("_")
    if not result:
        result = "field"
    if result[0].isdigit():
        result = f"f_{result}"
    if keyword.iskeyword(result):
        result = f"{result}_"
    return result


def to_upper_camel(name: str) -> str:
    """Convert *name* to UpperCamelCase.

    Every word is capitalised with the rest lowercased, so already-camel
    names survive unchanged while acronyms are folded.

    Example::

        >>> to_upper_camel("NumberTitle")
        'NumberTitle'
        >>> to_upper_camel("string_vector")
        'StringVector'
        >>> to_upper_camel("HTTPServer")
        'HttpServer'
    """
    words = _WORD_RE.findall(name)
    return "".join(word[:1].upper() + word[1:].lower() for word in words)
