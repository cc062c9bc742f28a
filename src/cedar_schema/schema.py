"""Validated, queryable schema.

:class:`Schema` is the consumer-facing entry point: it parses either surface
syntax, builds the resolved model and answers read-only queries. A ``Schema``
is immutable once constructed, so one instance can be shared across threads
without locking.

Example::

    from cedar_schema import Schema, SchemaFormat

    schema = Schema.parse(SchemaFormat.CEDAR, '''
        entity User;
        entity Album;
        action viewActions;
        action view in [viewActions]
            appliesTo { principal: [User], resource: [Album] };
    ''')
    schema.actions()        # [EntityUID('Action::"viewActions"'), EntityUID('Action::"view"')]
    schema.action_groups()  # [EntityUID('Action::"viewActions"')]
    schema.entity_type("User")

    # Convert the textual form to the structured form
    print(schema.to_json())
"""

from __future__ import annotations

import json
import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar, Union

from .builder import build_namespaces
from .cedar_parser import parse_cedar
from .config import ParserConfig
from .json_parser import parse_json
from .models import Action, AttributeType, EntityType, Namespace
from .names import EntityTypeName, EntityUID
from .schema_ast import SchemaAST

logger = logging.getLogger(__name__)

TypeNameLike = Union[EntityTypeName, str]
T = TypeVar("T")


class SchemaFormat(str, Enum):
    """Surface syntax of a schema document."""

    JSON = "json"
    CEDAR = "cedar"


def _type_name(name: TypeNameLike) -> EntityTypeName:
    if isinstance(name, EntityTypeName):
        return name
    return EntityTypeName.parse(name)


class Schema:
    """An immutable, fully validated schema.

    Instances are normally created through :meth:`parse`, :meth:`from_json`,
    :meth:`from_cedar` or :func:`build_schema`. Every query is a pure read and
    never raises for a successfully built schema (including the empty one),
    apart from :class:`~cedar_schema.errors.InvalidIdentifier` when a
    malformed type name string is passed in.
    """

    def __init__(self, namespaces: Mapping[str, Namespace]) -> None:
        self._namespaces: Dict[str, Namespace] = dict(namespaces)
        self._entity_types: Dict[EntityTypeName, EntityType] = {}
        self._actions: Dict[EntityUID, Action] = {}
        self._common_types: Dict[EntityTypeName, AttributeType] = {}
        for namespace in self._namespaces.values():
            self._entity_types.update(namespace.entity_types)
            self._actions.update(namespace.actions)
            self._common_types.update(namespace.common_types)

    # ---------------- Construction ---------------- #

    @classmethod
    def parse(
        cls,
        format: Union[SchemaFormat, str],
        text: str,
        config: Optional[ParserConfig] = None,
    ) -> "Schema":
        """Parse ``text`` in the given surface syntax and build the schema.

        Args:
            format: :class:`SchemaFormat` member or its value (``"json"`` /
                ``"cedar"``).
            text: Schema document text.
            config: Optional :class:`ParserConfig`.

        Raises:
            ParseError: If ``text`` is not valid in the chosen syntax.
            SchemaError: If the document violates schema constraints.
            ValueError: If ``format`` is not a known format.
        """
        fmt = SchemaFormat(format)
        if fmt is SchemaFormat.JSON:
            ast = parse_json(text, config=config)
        else:
            ast = parse_cedar(text, config=config)
        return build_schema(ast)

    @classmethod
    def from_json(cls, text: str, config: Optional[ParserConfig] = None) -> "Schema":
        return cls.parse(SchemaFormat.JSON, text, config=config)

    @classmethod
    def from_cedar(cls, text: str, config: Optional[ParserConfig] = None) -> "Schema":
        return cls.parse(SchemaFormat.CEDAR, text, config=config)

    # ---------------- Actions ---------------- #

    def actions(self) -> List[EntityUID]:
        """Return one UID per declared action, group actions included."""
        return list(self._actions)

    def action_groups(self) -> List[EntityUID]:
        """Return the UIDs of actions declared without an ``appliesTo`` clause."""
        return [uid for uid, action in self._actions.items() if action.is_group]

    def action(self, uid: EntityUID) -> Optional[Action]:
        return self._actions.get(uid)

    def action_ancestors(self, uid: EntityUID) -> List[EntityUID]:
        """Return every action reachable through ``memberOf`` edges from ``uid``.

        The walk is breadth-first in declaration order and keeps a visited set,
        so cyclic ``memberOf`` chains terminate. ``uid`` itself is never part
        of the result. Unknown UIDs yield an empty list.
        """
        return _walk(uid, self._action_parents)

    def actions_for(self, principal: TypeNameLike, resource: TypeNameLike) -> List[EntityUID]:
        """Return the regular actions whose ``appliesTo`` admits both types."""
        principal_type = _type_name(principal)
        resource_type = _type_name(resource)
        return [
            uid
            for uid, action in self._actions.items()
            if action.applies_to is not None
            and principal_type in action.applies_to.principal_types
            and resource_type in action.applies_to.resource_types
        ]

    def _action_parents(self, uid: EntityUID) -> Iterable[EntityUID]:
        action = self._actions.get(uid)
        return action.member_of if action is not None else ()

    # ---------------- Entity types ---------------- #

    def entity_type(self, name: TypeNameLike) -> Optional[EntityType]:
        """Look up an entity type by fully-qualified name."""
        return self._entity_types.get(_type_name(name))

    def entity_types(self) -> List[EntityTypeName]:
        return list(self._entity_types)

    def entity_type_ancestors(self, name: TypeNameLike) -> List[EntityTypeName]:
        """Return every entity type reachable through ``memberOfTypes`` from ``name``.

        Cycles are tolerated the same way as in :meth:`action_ancestors`.
        """
        return _walk(_type_name(name), self._entity_parents)

    def _entity_parents(self, name: EntityTypeName) -> Iterable[EntityTypeName]:
        entity = self._entity_types.get(name)
        return entity.member_of_types if entity is not None else ()

    def common_type(self, name: TypeNameLike) -> Optional[AttributeType]:
        """Return the resolved definition of a common type."""
        return self._common_types.get(_type_name(name))

    # ---------------- Namespaces & serialization ---------------- #

    def namespaces(self) -> List[str]:
        return list(self._namespaces)

    def namespace(self, name: str) -> Optional[Namespace]:
        return self._namespaces.get(name)

    def to_dict(self) -> Dict[str, Any]:
        """Return the schema in the structured (JSON) document form.

        Common types are emitted inlined.
        """
        return {name: namespace.to_dict() for name, namespace in self._namespaces.items()}

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        return (
            f"Schema(namespaces={len(self._namespaces)}, "
            f"entity_types={len(self._entity_types)}, actions={len(self._actions)})"
        )


def _walk(start: T, parents: Callable[[T], Iterable[T]]) -> List[T]:
    seen = {start}
    order: List[T] = []
    queue = deque(parents(start))
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        order.append(current)
        queue.extend(parents(current))
    return order


def build_schema(ast: SchemaAST) -> Schema:
    """Validate ``ast`` and build a :class:`Schema`.

    Raises:
        SchemaError: See :class:`~cedar_schema.builder.SchemaBuilder`.
    """
    schema = Schema(build_namespaces(ast))
    logger.debug("Built %r", schema)
    return schema
