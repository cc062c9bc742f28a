"""Error taxonomy for schema parsing and construction.

Two failure kinds reach callers:

* :class:`ParseError` - the text does not conform to the grammar of the
  chosen surface syntax (lexical or structural failure). Carries a source
  position and, where feasible, what was expected and what was found.
* :class:`SchemaError` - the text is well formed but violates schema-level
  constraints (wrong value shape for a known key, duplicate declaration,
  unresolved reference). Carries a document path and a reason.

:class:`InvalidIdentifier` is raised by :meth:`EntityTypeName.parse
<cedar_schema.names.EntityTypeName.parse>` for malformed names. Parsers
re-raise it as a :class:`SchemaError` carrying the document path.

Example:
    >>> from cedar_schema.errors import ParseError
    >>> err = ParseError("unexpected token", position=4, line=1, column=5,
    ...                  expected=("'{'",), found="';'")
    >>> err.format()
    "unexpected token (line 1, column 5; expected '{'; found ';')"
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Sequence, Tuple

_SIMPLE_KEY_RE = re.compile(r"^[_A-Za-z][_A-Za-z0-9]*$")


class CedarSchemaError(Exception):
    """Base class for all errors surfaced by this package."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def format(self) -> str:
        return self.message


class ParseError(CedarSchemaError):
    """Raised when input does not conform to the syntax being parsed.

    Attributes:
        position: 0-based character offset of the failure.
        line: 1-based line number.
        column: 1-based column number.
        expected: Descriptions of the tokens/values that would have been valid.
        found: Description of what was actually found (``None`` if unknown).
    """

    def __init__(
        self,
        message: str,
        *,
        position: int = 0,
        line: int = 1,
        column: int = 1,
        expected: Sequence[str] = (),
        found: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.position = position
        self.line = line
        self.column = column
        self.expected: Tuple[str, ...] = tuple(expected)
        self.found = found

    def format(self) -> str:
        meta = [f"line {self.line}, column {self.column}"]
        if self.expected:
            meta.append(f"expected {' or '.join(self.expected)}")
        if self.found is not None:
            meta.append(f"found {self.found}")
        return f"{self.message} ({'; '.join(meta)})"

    def __str__(self) -> str:
        return self.format()


class SchemaError(CedarSchemaError):
    """Raised when a well-formed document violates schema constraints.

    Attributes:
        path: ``$``-rooted location in structured-document terms
            (``$.PhotoApp.entityTypes.User.memberOfTypes[0]``), used for both
            surface syntaxes.
        reason: Human-readable explanation.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class DuplicateDeclaration(SchemaError):
    """A namespace, entity type, action or common type was declared twice."""


class UnresolvedReference(SchemaError):
    """A referenced entity type, common type or action is not declared."""


class InvalidIdentifier(CedarSchemaError, ValueError):
    """Raised when a string is not a valid (possibly qualified) identifier."""

    def __init__(self, value: str, reason: str = "not a valid identifier") -> None:
        super().__init__(f"{value!r}: {reason}")
        self.value = value
        self.reason = reason


def format_path(loc: Sequence[Any]) -> str:
    """Render a document location as a ``$``-rooted path.

    Example:
        >>> format_path(("PhotoApp", "entityTypes", "User", "memberOfTypes", 0))
        '$.PhotoApp.entityTypes.User.memberOfTypes[0]'
        >>> format_path(("", "actions"))
        '$[""].actions'
    """
    parts = ["$"]
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif _SIMPLE_KEY_RE.match(str(item)):
            parts.append(f".{item}")
        else:
            parts.append(f"[{json.dumps(str(item))}]")
    return "".join(parts)


__all__ = [
    "CedarSchemaError",
    "ParseError",
    "SchemaError",
    "DuplicateDeclaration",
    "UnresolvedReference",
    "InvalidIdentifier",
    "format_path",
]
