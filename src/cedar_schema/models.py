"""Core data structures of a validated schema.

These immutable dataclasses are produced by :mod:`cedar_schema.builder` from a
:class:`~cedar_schema.schema_ast.SchemaAST` and served by
:class:`~cedar_schema.schema.Schema`. Unlike the AST, every name here is
resolved: entity type references are fully-qualified
:class:`~cedar_schema.names.EntityTypeName` values, action parents are
:class:`~cedar_schema.names.EntityUID` values, and common types are inlined.

Overview:
        * ``AttributeType`` describes a declared attribute type (primitive,
            ``Set``, ``Record``, entity reference or extension type).
        * ``EntityType`` carries an optional record shape and the parent
            entity types (``memberOfTypes``).
        * ``Action`` carries an optional ``appliesTo`` clause and its parent
            actions (``memberOf``). Whether an action is a *group* is derived
            from the absence of ``appliesTo`` and never stored.
        * ``Namespace`` bundles the declarations of one namespace.

Typical construction (simplified)::

        from cedar_schema.models import Action, AppliesTo
        from cedar_schema.names import EntityTypeName, EntityUID

        user = EntityTypeName.parse("User")
        group = Action(uid=EntityUID.action("allActions"))
        view = Action(
                uid=EntityUID.action("view"),
                applies_to=AppliesTo(principal_types=(user,), resource_types=(user,)),
                member_of=(group.uid,),
        )
        assert group.is_group and not view.is_group

Design notes:
        * ``to_dict`` methods emit the structured (JSON) schema form so a schema
            parsed from the textual syntax can be re-emitted as JSON.
        * Mapping fields are read-only copies in declaration order. They are
            left out of ``hash()``, so every record is hashable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .names import EntityTypeName, EntityUID
from .schema_ast import ENTITY, EXTENSION, RECORD, SET, frozen_mapping


def _freeze(record, *names: str) -> None:
    for name in names:
        object.__setattr__(record, name, frozen_mapping(getattr(record, name)))


@dataclass(frozen=True)
class Attribute:
    type: "AttributeType"
    required: bool = True
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze(self, "annotations")

    def to_dict(self) -> Dict[str, Any]:
        data = self.type.to_dict()
        data["required"] = self.required
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        return data


@dataclass(frozen=True)
class AttributeType:
    """A resolved attribute type.

    Attributes:
        kind: ``String``, ``Long``, ``Boolean``, ``Set``, ``Record``, ``Entity``
            or ``Extension``.
        entity_type: Referenced entity type (``Entity`` kind only).
        extension: Extension type name such as ``ipaddr`` (``Extension`` kind only).
        element: Element type (``Set`` kind only).
        attributes: Record attributes (``Record`` kind only).

    Example:
        >>> AttributeType(kind="Set", element=AttributeType(kind="String")).to_dict()
        {'type': 'Set', 'element': {'type': 'String'}}
    """

    kind: str
    entity_type: Optional[EntityTypeName] = None
    extension: Optional[str] = None
    element: Optional["AttributeType"] = None
    attributes: Mapping[str, Attribute] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze(self, "attributes")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.kind}
        if self.kind == SET and self.element is not None:
            data["element"] = self.element.to_dict()
        elif self.kind == RECORD:
            data["attributes"] = {
                name: attr.to_dict() for name, attr in self.attributes.items()
            }
        elif self.kind == ENTITY:
            data["name"] = str(self.entity_type)
        elif self.kind == EXTENSION:
            data["name"] = self.extension
        return data


@dataclass(frozen=True)
class EntityType:
    """A declared entity type.

    Attributes:
        name: Fully-qualified type name.
        shape: Record type of the entity's attributes, ``None`` when the
            declaration has no shape.
        member_of_types: Entity types that entities of this type may be
            members of, in declaration order.
        annotations: Declaration annotations (``@doc("...")``).
    """

    name: EntityTypeName
    shape: Optional[AttributeType] = None
    member_of_types: Tuple[EntityTypeName, ...] = ()
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze(self, "annotations")

    @property
    def attributes(self) -> Mapping[str, Attribute]:
        """Declared attributes (empty when there is no shape)."""
        if self.shape is None:
            return frozen_mapping()
        return self.shape.attributes

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.member_of_types:
            data["memberOfTypes"] = [str(name) for name in self.member_of_types]
        if self.shape is not None:
            data["shape"] = self.shape.to_dict()
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        return data


@dataclass(frozen=True)
class AppliesTo:
    principal_types: Tuple[EntityTypeName, ...] = ()
    resource_types: Tuple[EntityTypeName, ...] = ()
    context: Optional[AttributeType] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "principalTypes": [str(name) for name in self.principal_types],
            "resourceTypes": [str(name) for name in self.resource_types],
        }
        if self.context is not None:
            data["context"] = self.context.to_dict()
        return data


@dataclass(frozen=True)
class Action:
    """A declared action.

    Attributes:
        uid: ``Action`` entity UID qualified to the declaring namespace.
        applies_to: Principal/resource restriction; ``None`` for group actions.
        member_of: Parent action UIDs in declaration order. Chains may be cyclic.
        annotations: Declaration annotations.
    """

    uid: EntityUID
    applies_to: Optional[AppliesTo] = None
    member_of: Tuple[EntityUID, ...] = ()
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze(self, "annotations")

    @property
    def name(self) -> str:
        return self.uid.id

    @property
    def is_group(self) -> bool:
        """True when the action has no ``appliesTo`` clause."""
        return self.applies_to is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.member_of:
            data["memberOf"] = [
                {"id": parent.id}
                if parent.type == self.uid.type
                else {"id": parent.id, "type": str(parent.type)}
                for parent in self.member_of
            ]
        if self.applies_to is not None:
            data["appliesTo"] = self.applies_to.to_dict()
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        return data


@dataclass(frozen=True)
class Namespace:
    """All declarations of one namespace (``""`` is the default namespace)."""

    name: str
    entity_types: Mapping[EntityTypeName, EntityType] = field(default_factory=dict, hash=False)
    actions: Mapping[EntityUID, Action] = field(default_factory=dict, hash=False)
    common_types: Mapping[EntityTypeName, AttributeType] = field(
        default_factory=dict, hash=False
    )
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze(self, "entity_types", "actions", "common_types", "annotations")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "entityTypes": {
                name.basename: entity.to_dict()
                for name, entity in self.entity_types.items()
            },
            "actions": {uid.id: action.to_dict() for uid, action in self.actions.items()},
        }
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        return data
