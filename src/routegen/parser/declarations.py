"""Recursive-descent parser for routing declarations.

A routes file names the OpenAPI document and then declares routes, optionally
grouped into (nestable) modules::

    path = "openapi.yaml";

    pub mod feed {
        GET    /api/feed/posts         as pub GetPosts;
        DELETE /api/feed/posts/{id}    as pub DeletePost;
    }

    POST /api/account/create as pub CreateAccount;

Grammar::

    root    := "path" "=" STRING ";" item*
    item    := module | method
    module  := vis "mod" IDENT "{" item* "}"
    method  := VERB ("/" segment)* "as" vis IDENT ";"
    segment := IDENT | "{" IDENT "}"
    vis     := "pub" | <nothing>

An item that starts with ``[pub] mod`` is a module; anything else must be a
method. Once a construct has been chosen, any error inside it aborts the
parse with the location of the offending token.

Only ``GET``, ``POST``, ``PUT``, ``DELETE`` and ``PATCH`` are accepted as
verbs, even though :class:`~routegen.models.HttpMethod` also has ``HEAD``,
``OPTIONS`` and ``TRACE``.
"""

from __future__ import annotations

import logging

from routegen.exceptions import DslSyntaxError
from routegen.models import (
    DeclarationRoot,
    HttpMethod,
    MethodDecl,
    MethodPath,
    ModuleDecl,
    PathSegment,
    Visibility,
)
from routegen.parser.lexer import Token, TokenType, tokenize

logger = logging.getLogger(__name__)

_VERBS = {
    "GET": HttpMethod.GET,
    "POST": HttpMethod.POST,
    "PUT": HttpMethod.PUT,
    "DELETE": HttpMethod.DELETE,
    "PATCH": HttpMethod.PATCH,
}


def parse_declarations(text: str, source: str = "<routes>") -> DeclarationRoot:
    """Parse a routes file into a :class:`~routegen.models.DeclarationRoot`.

    Args:
        text: The routes file content.
        source: Name used in error locations (usually the file path).

    Raises:
        DslSyntaxError: On the first malformed construct.
    """
    root = Parser(tokenize(text, source)).parse_root()
    logger.debug("Parsed %d top-level item(s) from %s", len(root.items), source)
    return root


class Parser:
    """Recursive-descent parser over a token list from :func:`tokenize`."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    # ------------------------------------------------------------------ #
    # Token helpers
    # ------------------------------------------------------------------ #

    def current(self) -> Token:
        return self.tokens[min(self.pos, len(self.tokens) - 1)]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.current()
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def at_keyword(self, word: str, offset: int = 0) -> bool:
        token = self.peek(offset) if offset else self.current()
        return token.type == TokenType.IDENT and token.value == word

    def expect(self, token_type: TokenType, what: str | None = None) -> Token:
        token = self.current()
        if token.type != token_type:
            raise self.error(what or token_type.value)
        return self.advance()

    def expect_keyword(self, word: str) -> Token:
        if not self.at_keyword(word):
            raise self.error(f"'{word}'")
        return self.advance()

    def error(self, expected: str) -> DslSyntaxError:
        token = self.current()
        return DslSyntaxError(
            f"Expected {expected}, got {token.describe()}", token.location
        )

    # ------------------------------------------------------------------ #
    # Grammar
    # ------------------------------------------------------------------ #

    def parse_root(self) -> DeclarationRoot:
        spec_token = self.expect_keyword("path")
        self.expect(TokenType.EQUALS)
        spec_path = self.expect(TokenType.STRING, "the OpenAPI document path").value
        self.expect(TokenType.SEMI)

        items = []
        while self.current().type != TokenType.EOF:
            items.append(self.parse_item())

        return DeclarationRoot(
            spec_path=spec_path,
            spec_location=spec_token.location,
            items=tuple(items),
        )

    def parse_item(self) -> ModuleDecl | MethodDecl:
        if self.at_keyword("mod") or (self.at_keyword("pub") and self.at_keyword("mod", 1)):
            return self.parse_module()
        return self.parse_method()

    def parse_module(self) -> ModuleDecl:
        start = self.current().location
        visibility = self.parse_visibility()
        self.expect_keyword("mod")
        name = self.expect(TokenType.IDENT, "a module name").value
        self.expect(TokenType.LBRACE)

        items = []
        while self.current().type != TokenType.RBRACE:
            if self.current().type == TokenType.EOF:
                raise self.error("'}'")
            items.append(self.parse_item())
        self.advance()

        return ModuleDecl(
            name=name, visibility=visibility, items=tuple(items), location=start
        )

    def parse_method(self) -> MethodDecl:
        verb_token = self.current()
        method = self.parse_verb()
        path = self.parse_path()
        self.expect_keyword("as")
        visibility = self.parse_visibility()
        name = self.expect(TokenType.IDENT, "a type name").value
        self.expect(TokenType.SEMI)

        return MethodDecl(
            method=method,
            path=path,
            visibility=visibility,
            name=name,
            location=verb_token.location,
        )

    def parse_verb(self) -> HttpMethod:
        token = self.current()
        if token.type != TokenType.IDENT:
            raise self.error("a module or an HTTP method")
        if token.value not in _VERBS:
            raise DslSyntaxError(
                f"Invalid method {token.value!r}; expected one of "
                f"{', '.join(_VERBS)}",
                token.location,
            )
        self.advance()
        return _VERBS[token.value]

    def parse_path(self) -> MethodPath:
        segments = []
        while self.current().type == TokenType.SLASH:
            self.advance()
            if self.current().type == TokenType.LBRACE:
                self.advance()
                token = self.expect(TokenType.IDENT, "a path parameter name")
                self.expect(TokenType.RBRACE)
                segments.append(
                    PathSegment(name=token.value, is_parameter=True, location=token.location)
                )
            else:
                token = self.expect(TokenType.IDENT, "a path segment")
                segments.append(PathSegment(name=token.value, location=token.location))
        return MethodPath(segments=tuple(segments))

    def parse_visibility(self) -> Visibility:
        if self.at_keyword("pub"):
            self.advance()
            return Visibility.PUBLIC
        return Visibility.PRIVATE
