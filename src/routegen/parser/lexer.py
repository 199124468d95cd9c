"""Tokenizer for the routing declaration language.

Produces a flat list of :class:`Token` objects, each carrying the 1-based
line and column it starts at, terminated by a single ``EOF`` token. Keywords
(``path``, ``mod``, ``pub``, ``as`` and the HTTP verbs) are lexed as plain
identifiers; the parser decides what they mean from context, which lets a
path segment be called ``path`` or ``mod``.

Whitespace and line comments (``// ...`` and ``# ...``) are skipped.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from routegen.exceptions import DslSyntaxError, SourceLocation


class TokenType(enum.Enum):
    IDENT = "identifier"
    STRING = "string literal"
    LBRACE = "'{'"
    RBRACE = "'}'"
    SEMI = "';'"
    SLASH = "'/'"
    EQUALS = "'='"
    EOF = "end of input"


_PUNCTUATION = {
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    ";": TokenType.SEMI,
    "/": TokenType.SLASH,
    "=": TokenType.EQUALS,
}

_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    location: SourceLocation

    def describe(self) -> str:
        """Human-readable form used in "expected X, got Y" messages."""
        if self.type == TokenType.IDENT:
            return f"'{self.value}'"
        if self.type == TokenType.STRING:
            return f'"{self.value}"'
        return self.type.value


def tokenize(text: str, source: str = "<routes>") -> list[Token]:
    """Split *text* into tokens.

    Args:
        text: The routes file content.
        source: Name used in token locations (usually the file path).

    Returns:
        The token list, always ending with an ``EOF`` token.

    Raises:
        DslSyntaxError: On an unexpected character or an unterminated string.
    """
    tokens: list[Token] = []
    pos = 0
    line = 1
    line_start = 0
    length = len(text)

    while pos < length:
        char = text[pos]
        column = pos - line_start + 1

        if char == "\n":
            pos += 1
            line += 1
            line_start = pos
            continue
        if char.isspace():
            pos += 1
            continue

        # Line comments
        if char == "#" or text.startswith("//", pos):
            end = text.find("\n", pos)
            pos = length if end == -1 else end
            continue

        location = SourceLocation(source, line, column)

        if char in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[char], char, location))
            pos += 1
            continue

        if char == '"':
            value, pos = _read_string(text, pos + 1, location)
            tokens.append(Token(TokenType.STRING, value, location))
            continue

        if char.isalpha() or char == "_":
            end = pos + 1
            while end < length and (text[end].isalnum() or text[end] == "_"):
                end += 1
            tokens.append(Token(TokenType.IDENT, text[pos:end], location))
            pos = end
            continue

        raise DslSyntaxError(f"Unexpected character {char!r}", location)

    eof_location = SourceLocation(source, line, pos - line_start + 1)
    tokens.append(Token(TokenType.EOF, "", eof_location))
    return tokens


def _read_string(text: str, pos: int, start: SourceLocation) -> tuple[str, int]:
    """Read a double-quoted string body starting just after the opening quote."""
    chars: list[str] = []
    while pos < len(text):
        char = text[pos]
        if char == '"':
            return "".join(chars), pos + 1
        if char == "\n":
            break
        if char == "\\" and pos + 1 < len(text):
            escaped = text[pos + 1]
            chars.append(_ESCAPES.get(escaped, escaped))
            pos += 2
            continue
        chars.append(char)
        pos += 1
    raise DslSyntaxError("Unterminated string literal", start)
