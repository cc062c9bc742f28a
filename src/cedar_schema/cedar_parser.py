"""Tokenizer and recursive-descent parser for the textual schema syntax.

The textual form is the compact, human-oriented rendition of a schema::

    namespace PhotoApp {
        type Address = { street: String, zip?: String };

        entity User in [UserGroup] = {
            name: String,
            age?: Long,
            home?: Address,
        };
        entity UserGroup;
        entity Photo in Album;
        entity Album;

        action viewActions;
        action view in [viewActions]
            appliesTo { principal: [User], resource: [Album, Photo] };
    }

Declarations outside any ``namespace`` block belong to the implicit empty
namespace. Keywords are contextual identifiers, so ``entity`` may still be
used as an attribute name. Names may be referenced before they are declared;
references are checked later by :mod:`cedar_schema.builder`.

Typical usage:
        from cedar_schema.cedar_parser import parse_cedar

        ast = parse_cedar(open("photo_app.cedarschema").read())
        print([ns.name for ns in ast.namespaces])

All failures raise :class:`~cedar_schema.errors.ParseError` with the offending
position, the expected alternatives and the token that was found.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import ParserConfig
from .errors import ParseError
from .names import NAMESPACE_SEPARATOR
from .schema_ast import (
    BOOLEAN,
    EXTENSION,
    EXTENSION_TYPES,
    LONG,
    NAME,
    RECORD,
    SET,
    STRING,
    ActionDecl,
    ActionRef,
    AppliesToDecl,
    AttributeDecl,
    CommonTypeDecl,
    EntityTypeDecl,
    NamespaceDecl,
    SchemaAST,
    TypeExpr,
)

logger = logging.getLogger(__name__)


class TokenType(Enum):
    IDENT = "identifier"
    STRING = "string literal"
    LBRACE = "'{'"
    RBRACE = "'}'"
    LBRACKET = "'['"
    RBRACKET = "']'"
    LANGLE = "'<'"
    RANGLE = "'>'"
    LPAREN = "'('"
    RPAREN = "')'"
    COMMA = "','"
    SEMICOLON = "';'"
    COLON = "':'"
    DOUBLE_COLON = "'::'"
    QUESTION = "'?'"
    EQUALS = "'='"
    AT = "'@'"
    DOT = "'.'"
    EOF = "end of input"


_PUNCTUATION: Dict[str, TokenType] = {
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "<": TokenType.LANGLE,
    ">": TokenType.RANGLE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
    ";": TokenType.SEMICOLON,
    ":": TokenType.COLON,
    "::": TokenType.DOUBLE_COLON,
    "?": TokenType.QUESTION,
    "=": TokenType.EQUALS,
    "@": TokenType.AT,
    ".": TokenType.DOT,
}

_TOKEN_RE = re.compile(
    r"""
    (?P<newline>\n)
    |(?P<space>[ \t\r\f\v]+)
    |(?P<comment>//[^\n]*)
    |(?P<ident>[_A-Za-z][_A-Za-z0-9]*)
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<punct>::|[{}\[\]<>(),;:?=@.])
    """,
    re.VERBOSE,
)

_ESCAPE_RE = re.compile(r"\\(?:u\{([0-9A-Fa-f]{1,6})\}|(.))", re.DOTALL)

_SIMPLE_ESCAPES: Dict[str, str] = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "0": "\0",
    "\\": "\\",
    "'": "'",
    '"': '"',
}

_PRIMITIVE_NAMES: Dict[str, str] = {
    "String": STRING,
    "Long": LONG,
    "Bool": BOOLEAN,
    "Boolean": BOOLEAN,
}

_DECLARATION_KEYWORDS = ("'entity'", "'action'", "'type'")


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    offset: int
    line: int
    column: int

    def describe(self) -> str:
        if self.type is TokenType.EOF:
            return "end of input"
        return repr(self.value)


def _decode_string(raw: str, offset: int, line: int, column: int) -> str:
    """Decode a quoted string literal token.

    Supported escapes: ``\\n``, ``\\r``, ``\\t``, ``\\0``, ``\\\\``, ``\\'``,
    ``\\"`` and ``\\u{X}`` with one to six hex digits.
    """
    body = raw[1:-1]
    parts: List[str] = []
    last = 0
    for match in _ESCAPE_RE.finditer(body):
        parts.append(body[last : match.start()])
        code, char = match.groups()
        if code is not None and int(code, 16) <= 0x10FFFF:
            parts.append(chr(int(code, 16)))
        elif char in _SIMPLE_ESCAPES:
            parts.append(_SIMPLE_ESCAPES[char])
        else:
            # +1 skips the opening quote
            raise ParseError(
                "Invalid escape sequence in string literal",
                position=offset + 1 + match.start(),
                line=line,
                column=column + 1 + match.start(),
                found=repr(match.group()),
            )
        last = match.end()
    parts.append(body[last:])
    return "".join(parts)


def tokenize(text: str) -> List[Token]:
    """Split ``text`` into tokens, dropping whitespace and ``//`` comments.

    String literal values are unescaped (see :func:`_decode_string`).

    Raises:
        ParseError: On an unexpected character, an unterminated string or an
            invalid escape sequence.
    """
    tokens: List[Token] = []
    pos = 0
    line = 1
    line_start = 0
    length = len(text)
    while pos < length:
        match = _TOKEN_RE.match(text, pos)
        column = pos - line_start + 1
        if match is None:
            char = text[pos]
            if char == '"':
                raise ParseError(
                    "Unterminated string literal",
                    position=pos,
                    line=line,
                    column=column,
                    expected=('\'"\'',),
                    found="end of line",
                )
            raise ParseError(
                "Unexpected character",
                position=pos,
                line=line,
                column=column,
                found=repr(char),
            )
        kind = match.lastgroup
        raw = match.group()
        if kind == "newline":
            line += 1
            line_start = match.end()
        elif kind == "ident":
            tokens.append(Token(TokenType.IDENT, raw, pos, line, column))
        elif kind == "string":
            value = _decode_string(raw, pos, line, column)
            tokens.append(Token(TokenType.STRING, value, pos, line, column))
        elif kind == "punct":
            tokens.append(Token(_PUNCTUATION[raw], raw, pos, line, column))
        pos = match.end()
    tokens.append(Token(TokenType.EOF, "", length, line, length - line_start + 1))
    return tokens


@dataclass
class _NamespaceBucket:
    name: str
    annotations: Dict[str, str] = field(default_factory=dict)
    entity_types: List[EntityTypeDecl] = field(default_factory=list)
    actions: List[ActionDecl] = field(default_factory=list)
    common_types: List[CommonTypeDecl] = field(default_factory=list)

    def freeze(self) -> NamespaceDecl:
        return NamespaceDecl(
            name=self.name,
            entity_types=tuple(self.entity_types),
            actions=tuple(self.actions),
            common_types=tuple(self.common_types),
            annotations=self.annotations,
        )


class CedarSchemaParser:
    """Parse textual schema source into a :class:`SchemaAST`.

    Example:
        parser = CedarSchemaParser('entity User; action view appliesTo { principal: User, resource: User };')
        ast = parser.parse()
        assert ast.namespaces[0].actions[0].name == "view"
    """

    def __init__(self, text: str, config: Optional[ParserConfig] = None) -> None:
        self.config = config or ParserConfig()
        self.tokens = tokenize(text)
        self.pos = 0

    def parse(self) -> SchemaAST:
        implicit = _NamespaceBucket(name="")
        namespaces: List[NamespaceDecl] = []
        saw_toplevel = False
        while not self._check(TokenType.EOF):
            annotations = self._parse_annotations()
            if self._check_keyword("namespace"):
                namespaces.append(self._parse_namespace(annotations))
            else:
                self._parse_declaration(
                    implicit, annotations, extra_expected=("'namespace'",)
                )
                saw_toplevel = True
        if saw_toplevel or not namespaces:
            namespaces.insert(0, implicit.freeze())
        ast = SchemaAST(namespaces=tuple(namespaces))
        logger.debug("Parsed textual schema: %s", ast.count())
        return ast

    # ---------------- Token helpers ---------------- #

    def _current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type is not TokenType.EOF:
            self.pos += 1
        return tok

    def _check(self, *types: TokenType) -> bool:
        return self._current().type in types

    def _check_keyword(self, word: str) -> bool:
        tok = self._current()
        return tok.type is TokenType.IDENT and tok.value == word

    def _match(self, token_type: TokenType) -> bool:
        if self._check(token_type):
            self._advance()
            return True
        return False

    def _error(self, message: str, expected: Tuple[str, ...] = ()) -> ParseError:
        tok = self._current()
        return ParseError(
            message,
            position=tok.offset,
            line=tok.line,
            column=tok.column,
            expected=expected,
            found=tok.describe(),
        )

    def _expect(self, *types: TokenType) -> Token:
        if not self._check(*types):
            expected = tuple(t.value for t in types)
            raise self._error(f"Expected {' or '.join(expected)}", expected)
        return self._advance()

    def _expect_keyword(self, word: str) -> Token:
        if not self._check_keyword(word):
            raise self._error(f"Expected '{word}'", (f"'{word}'",))
        return self._advance()

    def _expect_name(self) -> str:
        """Consume an identifier or string literal used as a name."""
        return self._expect(TokenType.IDENT, TokenType.STRING).value

    # ---------------- Declarations ---------------- #

    def _parse_annotations(self) -> Dict[str, str]:
        annotations: Dict[str, str] = {}
        while self._check(TokenType.AT):
            self._advance()
            key_tok = self._current()
            key = self._expect(TokenType.IDENT).value
            value = ""
            if self._match(TokenType.LPAREN):
                value = self._expect(TokenType.STRING).value
                self._expect(TokenType.RPAREN)
            if key in annotations:
                raise ParseError(
                    f"Duplicate annotation '@{key}'",
                    position=key_tok.offset,
                    line=key_tok.line,
                    column=key_tok.column,
                    found=repr(key),
                )
            annotations[key] = value
        return annotations

    def _parse_namespace(self, annotations: Dict[str, str]) -> NamespaceDecl:
        self._expect_keyword("namespace")
        bucket = _NamespaceBucket(name=self._parse_namespace_path(), annotations=annotations)
        self._expect(TokenType.LBRACE)
        while not self._check(TokenType.RBRACE):
            if self._check(TokenType.EOF):
                raise self._error(
                    "Unterminated namespace block",
                    ("'}'",) + _DECLARATION_KEYWORDS,
                )
            decl_annotations = self._parse_annotations()
            self._parse_declaration(bucket, decl_annotations, extra_expected=("'}'",))
        self._expect(TokenType.RBRACE)
        return bucket.freeze()

    def _parse_namespace_path(self) -> str:
        separators = [TokenType.DOUBLE_COLON]
        if self.config.allow_dotted_namespaces:
            separators.append(TokenType.DOT)
        segments = [self._expect(TokenType.IDENT).value]
        while self._check(*separators):
            self._advance()
            segments.append(self._expect(TokenType.IDENT).value)
        return NAMESPACE_SEPARATOR.join(segments)

    def _parse_declaration(
        self,
        bucket: _NamespaceBucket,
        annotations: Dict[str, str],
        extra_expected: Tuple[str, ...] = (),
    ) -> None:
        if self._check_keyword("entity"):
            bucket.entity_types.extend(self._parse_entity(annotations))
        elif self._check_keyword("action"):
            bucket.actions.extend(self._parse_action(annotations))
        elif self._check_keyword("type"):
            bucket.common_types.append(self._parse_common_type(annotations))
        else:
            expected = extra_expected + _DECLARATION_KEYWORDS
            raise self._error("Expected a declaration", expected)

    def _parse_entity(self, annotations: Dict[str, str]) -> List[EntityTypeDecl]:
        self._expect_keyword("entity")
        names = [self._expect(TokenType.IDENT).value]
        while self._match(TokenType.COMMA):
            names.append(self._expect(TokenType.IDENT).value)
        member_of: Tuple[str, ...] = ()
        if self._check_keyword("in"):
            self._advance()
            member_of = self._parse_type_refs()
        shape: Optional[TypeExpr] = None
        if self._match(TokenType.EQUALS):
            if not self._check(TokenType.LBRACE):
                raise self._error("Expected a record type", ("'{'",))
            shape = self._parse_record(depth=1)
        elif self._check(TokenType.LBRACE):
            shape = self._parse_record(depth=1)
        self._expect(TokenType.SEMICOLON)
        return [
            EntityTypeDecl(
                name=name,
                member_of_types=member_of,
                shape=shape,
                annotations=dict(annotations),
            )
            for name in names
        ]

    def _parse_action(self, annotations: Dict[str, str]) -> List[ActionDecl]:
        self._expect_keyword("action")
        names = [self._expect_name()]
        while self._match(TokenType.COMMA):
            names.append(self._expect_name())
        member_of: Tuple[ActionRef, ...] = ()
        if self._check_keyword("in"):
            self._advance()
            member_of = self._parse_action_refs()
        applies_to: Optional[AppliesToDecl] = None
        if self._check_keyword("appliesTo"):
            applies_to = self._parse_applies_to()
        if not self._check(TokenType.SEMICOLON):
            expected = (TokenType.SEMICOLON.value,)
            if applies_to is None:
                expected = ("'appliesTo'",) + expected
            raise self._error("Expected end of action declaration", expected)
        self._advance()
        return [
            ActionDecl(
                name=name,
                applies_to=applies_to,
                member_of=member_of,
                annotations=dict(annotations),
            )
            for name in names
        ]

    def _parse_common_type(self, annotations: Dict[str, str]) -> CommonTypeDecl:
        self._expect_keyword("type")
        name = self._expect(TokenType.IDENT).value
        self._expect(TokenType.EQUALS)
        type_expr = self._parse_type(depth=1)
        self._expect(TokenType.SEMICOLON)
        return CommonTypeDecl(name=name, type=type_expr, annotations=annotations)

    # ---------------- References ---------------- #

    def _parse_path(self) -> str:
        segments = [self._expect(TokenType.IDENT).value]
        while self._match(TokenType.DOUBLE_COLON):
            segments.append(self._expect(TokenType.IDENT).value)
        return NAMESPACE_SEPARATOR.join(segments)

    def _parse_type_refs(self) -> Tuple[str, ...]:
        if not self._match(TokenType.LBRACKET):
            return (self._parse_path(),)
        refs: List[str] = []
        while not self._check(TokenType.RBRACKET):
            refs.append(self._parse_path())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACKET)
        return tuple(refs)

    def _parse_action_refs(self) -> Tuple[ActionRef, ...]:
        if not self._match(TokenType.LBRACKET):
            return (self._parse_action_ref(),)
        refs: List[ActionRef] = []
        while not self._check(TokenType.RBRACKET):
            refs.append(self._parse_action_ref())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACKET)
        return tuple(refs)

    def _parse_action_ref(self) -> ActionRef:
        if self._check(TokenType.STRING):
            return ActionRef(id=self._advance().value)
        segments = [self._expect(TokenType.IDENT).value]
        while self._match(TokenType.DOUBLE_COLON):
            if self._check(TokenType.STRING):
                return ActionRef(
                    id=self._advance().value,
                    type=NAMESPACE_SEPARATOR.join(segments),
                )
            segments.append(self._expect(TokenType.IDENT).value)
        if len(segments) > 1:
            raise self._error(
                "Qualified action reference must end with a string id",
                ("'::'",),
            )
        return ActionRef(id=segments[0])

    def _parse_applies_to(self) -> AppliesToDecl:
        self._expect_keyword("appliesTo")
        self._expect(TokenType.LBRACE)
        type_refs: Dict[str, Tuple[str, ...]] = {}
        context: Optional[TypeExpr] = None
        seen = set()
        while not self._check(TokenType.RBRACE):
            key_tok = self._current()
            if key_tok.type is not TokenType.IDENT or key_tok.value not in (
                "principal",
                "resource",
                "context",
            ):
                raise self._error(
                    "Expected an appliesTo element",
                    ("'principal'", "'resource'", "'context'", "'}'"),
                )
            if key_tok.value in seen:
                raise self._error(f"Duplicate '{key_tok.value}' in appliesTo")
            seen.add(key_tok.value)
            self._advance()
            self._expect(TokenType.COLON)
            if key_tok.value == "context":
                if self._check(TokenType.LBRACE):
                    context = self._parse_record(depth=1)
                else:
                    context = TypeExpr(kind=NAME, name=self._parse_path())
            else:
                type_refs[key_tok.value] = self._parse_type_refs()
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE)
        return AppliesToDecl(
            principal_types=type_refs.get("principal", ()),
            resource_types=type_refs.get("resource", ()),
            context=context,
        )

    # ---------------- Types ---------------- #

    def _check_depth(self, depth: int) -> None:
        if depth > self.config.max_nesting_depth:
            raise self._error(
                f"Type nesting exceeds maximum depth ({self.config.max_nesting_depth})"
            )

    def _parse_type(self, depth: int) -> TypeExpr:
        self._check_depth(depth)
        if self._check(TokenType.LBRACE):
            return self._parse_record(depth)
        if not self._check(TokenType.IDENT):
            raise self._error("Expected a type", ("identifier", "'{'"))
        if self._check_keyword("Set") and self.tokens[self.pos + 1].type is TokenType.LANGLE:
            self._advance()
            self._advance()
            element = self._parse_type(depth + 1)
            self._expect(TokenType.RANGLE)
            return TypeExpr(kind=SET, element=element)
        path = self._parse_path()
        if path in _PRIMITIVE_NAMES:
            return TypeExpr(kind=_PRIMITIVE_NAMES[path])
        if path in EXTENSION_TYPES:
            return TypeExpr(kind=EXTENSION, name=path)
        return TypeExpr(kind=NAME, name=path)

    def _parse_record(self, depth: int) -> TypeExpr:
        self._check_depth(depth)
        self._expect(TokenType.LBRACE)
        attributes: List[Tuple[str, AttributeDecl]] = []
        while not self._check(TokenType.RBRACE):
            annotations = self._parse_annotations()
            name = self._expect_name()
            required = not self._match(TokenType.QUESTION)
            self._expect(TokenType.COLON)
            attr_type = self._parse_type(depth + 1)
            attributes.append(
                (name, AttributeDecl(type=attr_type, required=required, annotations=annotations))
            )
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE)
        return TypeExpr(kind=RECORD, attributes=tuple(attributes))


def parse_cedar(text: str, config: Optional[ParserConfig] = None) -> SchemaAST:
    """Parse textual schema source into a :class:`SchemaAST`.

    Args:
        text: Schema source in the textual syntax. ``""`` is valid and yields
            a single empty namespace.
        config: Optional :class:`ParserConfig` overriding limits.

    Raises:
        ParseError: If ``text`` is not valid textual schema syntax.

    Example:
        ast = parse_cedar("namespace Foo::Bar {}")
        assert ast.namespaces[0].name == "Foo::Bar"
    """
    return CedarSchemaParser(text, config=config).parse()
