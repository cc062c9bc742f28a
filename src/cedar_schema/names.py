"""Namespace-aware identifier values.

``EntityTypeName`` is an ordered tuple of identifier segments rendered with
the ``::`` separator (``PhotoApp::User``). ``EntityUID`` pairs a type name with
an entity identifier; actions are entities of the ``Action`` type qualified to
their namespace (``PhotoApp::Action::"view"``).

Example:
    >>> from cedar_schema.names import EntityTypeName, EntityUID
    >>> name = EntityTypeName.parse("PhotoApp::User")
    >>> name.basename, name.namespace
    ('User', 'PhotoApp')
    >>> str(EntityUID(EntityTypeName.action_type("PhotoApp"), "view"))
    'PhotoApp::Action::"view"'
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Tuple

from .errors import InvalidIdentifier

NAMESPACE_SEPARATOR = "::"
ACTION_TYPE = "Action"

_IDENT_RE = re.compile(r"^[_A-Za-z][_A-Za-z0-9]*$")


def is_identifier(value: str) -> bool:
    return bool(_IDENT_RE.match(value))


def split_namespace(namespace: str) -> Tuple[str, ...]:
    """Split a namespace string into segments (``""`` yields no segments).

    Raises:
        InvalidIdentifier: If any segment is not a valid identifier.
    """
    if namespace == "":
        return ()
    segments = tuple(namespace.split(NAMESPACE_SEPARATOR))
    for segment in segments:
        if not is_identifier(segment):
            raise InvalidIdentifier(namespace, f"invalid namespace segment {segment!r}")
    return segments


@dataclass(frozen=True, order=True)
class EntityTypeName:
    """Structured, namespace-qualified entity type name.

    Equality, hashing and ordering compare the segment tuple, so
    ``EntityTypeName(("A", "B"))`` equals ``EntityTypeName.parse("A::B")``.
    """

    segments: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise InvalidIdentifier("", "entity type name must not be empty")
        for segment in self.segments:
            if not isinstance(segment, str) or not is_identifier(segment):
                raise InvalidIdentifier(
                    NAMESPACE_SEPARATOR.join(map(str, self.segments)),
                    f"invalid segment {segment!r}",
                )

    @classmethod
    def parse(cls, text: str) -> "EntityTypeName":
        """Parse ``Foo::Bar::User`` style text.

        Raises:
            InvalidIdentifier: For empty text, empty segments or segments that
                are not identifiers.
        """
        if not isinstance(text, str) or not text:
            raise InvalidIdentifier(str(text), "entity type name must not be empty")
        segments = tuple(text.split(NAMESPACE_SEPARATOR))
        for segment in segments:
            if not is_identifier(segment):
                raise InvalidIdentifier(text, f"invalid segment {segment!r}")
        return cls(segments)

    @classmethod
    def action_type(cls, namespace: str = "") -> "EntityTypeName":
        """Return the ``Action`` entity type for ``namespace``."""
        return cls(split_namespace(namespace) + (ACTION_TYPE,))

    @property
    def basename(self) -> str:
        return self.segments[-1]

    @property
    def namespace(self) -> str:
        return NAMESPACE_SEPARATOR.join(self.segments[:-1])

    @property
    def is_qualified(self) -> bool:
        return len(self.segments) > 1

    @property
    def is_action_type(self) -> bool:
        return self.basename == ACTION_TYPE

    def qualify(self, namespace: str) -> "EntityTypeName":
        """Prefix an unqualified name with ``namespace``; qualified names are returned as-is."""
        if self.is_qualified or not namespace:
            return self
        return EntityTypeName(split_namespace(namespace) + self.segments)

    def __str__(self) -> str:
        return NAMESPACE_SEPARATOR.join(self.segments)

    def __repr__(self) -> str:
        return f"EntityTypeName({str(self)!r})"


@dataclass(frozen=True, order=True)
class EntityUID:
    """Entity identifier: a type name plus an opaque string id."""

    type: EntityTypeName
    id: str

    @classmethod
    def action(cls, name: str, namespace: str = "") -> "EntityUID":
        return cls(EntityTypeName.action_type(namespace), name)

    def __str__(self) -> str:
        return f"{self.type}{NAMESPACE_SEPARATOR}{json.dumps(self.id)}"

    def __repr__(self) -> str:
        return f"EntityUID({str(self)!r})"
