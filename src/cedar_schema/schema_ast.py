"""Format-agnostic schema AST.

Both surface parsers (:mod:`cedar_schema.cedar_parser` and
:mod:`cedar_schema.json_parser`) decode into these records; all semantic
checks (duplicates, reference resolution, action classification) happen later
in :mod:`cedar_schema.builder` so the two syntaxes cannot diverge.

Names are kept exactly as written in the source (``"User"``,
``"PhotoApp::User"``). Declarations are kept in tuples in source order so
duplicates survive until construction reports them.

Example::

    from cedar_schema.schema_ast import ActionDecl, AppliesToDecl, NamespaceDecl, SchemaAST

    view = ActionDecl(
        name="view",
        applies_to=AppliesToDecl(principal_types=("User",), resource_types=("Photo",)),
    )
    ast = SchemaAST(namespaces=(NamespaceDecl(name="", actions=(view,)),))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")

# TypeExpr kinds
STRING = "String"
LONG = "Long"
BOOLEAN = "Boolean"
SET = "Set"
RECORD = "Record"
ENTITY = "Entity"
EXTENSION = "Extension"
NAME = "Name"  # unresolved: common type, entity type or extension type

PRIMITIVE_KINDS = (STRING, LONG, BOOLEAN)
EXTENSION_TYPES = ("ipaddr", "decimal", "datetime", "duration")


def frozen_mapping(values: Optional[Mapping[K, V]] = None) -> Mapping[K, V]:
    """Return a read-only copy of ``values``.

    Mapping fields of the frozen records are stored this way and excluded from
    ``hash()``, so records stay hashable and cannot be changed in place.
    """
    return MappingProxyType(dict(values or {}))


def _freeze_annotations(record) -> None:
    object.__setattr__(record, "annotations", frozen_mapping(record.annotations))


@dataclass(frozen=True)
class AttributeDecl:
    type: "TypeExpr"
    required: bool = True
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze_annotations(self)


@dataclass(frozen=True)
class TypeExpr:
    """A declared attribute type.

    ``element`` is set for ``Set``; ``attributes`` for ``Record``; ``name``
    for ``Entity``, ``Extension`` and ``Name`` kinds.
    """

    kind: str
    name: Optional[str] = None
    element: Optional["TypeExpr"] = None
    attributes: Tuple[Tuple[str, AttributeDecl], ...] = ()


@dataclass(frozen=True)
class EntityTypeDecl:
    name: str
    member_of_types: Tuple[str, ...] = ()
    shape: Optional[TypeExpr] = None
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze_annotations(self)


@dataclass(frozen=True)
class ActionRef:
    """Reference to a parent action; ``type`` is ``None`` for the local ``Action`` type."""

    id: str
    type: Optional[str] = None


@dataclass(frozen=True)
class AppliesToDecl:
    principal_types: Tuple[str, ...] = ()
    resource_types: Tuple[str, ...] = ()
    context: Optional[TypeExpr] = None


@dataclass(frozen=True)
class ActionDecl:
    name: str
    applies_to: Optional[AppliesToDecl] = None
    member_of: Tuple[ActionRef, ...] = ()
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze_annotations(self)


@dataclass(frozen=True)
class CommonTypeDecl:
    name: str
    type: TypeExpr
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze_annotations(self)


@dataclass(frozen=True)
class NamespaceDecl:
    name: str
    entity_types: Tuple[EntityTypeDecl, ...] = ()
    actions: Tuple[ActionDecl, ...] = ()
    common_types: Tuple[CommonTypeDecl, ...] = ()
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        _freeze_annotations(self)


@dataclass(frozen=True)
class SchemaAST:
    namespaces: Tuple[NamespaceDecl, ...] = ()

    def count(self) -> Dict[str, int]:
        """Return declaration counts (used for debug logging)."""
        return {
            "namespaces": len(self.namespaces),
            "entity_types": sum(len(ns.entity_types) for ns in self.namespaces),
            "actions": sum(len(ns.actions) for ns in self.namespaces),
            "common_types": sum(len(ns.common_types) for ns in self.namespaces),
        }
