"""Build the validated schema model from a parsed AST.

This is the single place where schema-level semantics live, so the textual
and structured parsers cannot diverge. Construction:

1. indexes every declaration, rejecting duplicate namespaces and duplicate
   entity-type, action and common-type names within a namespace;
2. resolves every reference (``memberOfTypes``, ``appliesTo``, attribute
   types, action ``memberOf``), raising
   :class:`~cedar_schema.errors.UnresolvedReference` for undeclared names;
3. inlines common types, rejecting cycles among them.

Name resolution: an unqualified name used inside namespace ``N`` resolves to
``N::name`` when declared there, otherwise to ``name`` in the default (empty)
namespace. A qualified name resolves to exactly that name. Action ``memberOf``
chains are not checked for cycles; consumers walking them must tolerate
cycles (see :meth:`cedar_schema.schema.Schema.action_ancestors`).

Example:
        from cedar_schema.builder import SchemaBuilder
        from cedar_schema.cedar_parser import parse_cedar

        namespaces = SchemaBuilder(parse_cedar("entity User;")).build()
        print(list(namespaces[""].entity_types))  # [EntityTypeName('User')]
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Set, Tuple

from .errors import (
    DuplicateDeclaration,
    InvalidIdentifier,
    SchemaError,
    UnresolvedReference,
    format_path,
)
from .models import Action, AppliesTo, Attribute, AttributeType, EntityType, Namespace
from .names import EntityTypeName, EntityUID
from .schema_ast import (
    ENTITY,
    EXTENSION,
    EXTENSION_TYPES,
    NAME,
    PRIMITIVE_KINDS,
    RECORD,
    SET,
    ActionDecl,
    CommonTypeDecl,
    EntityTypeDecl,
    NamespaceDecl,
    SchemaAST,
    TypeExpr,
)

logger = logging.getLogger(__name__)

Path = Tuple[Any, ...]


class SchemaBuilder:
    """Resolve and validate a :class:`SchemaAST`.

    ``build`` is a pure function of the AST: no I/O, and identical input
    always yields equal output.
    """

    def __init__(self, ast: SchemaAST) -> None:
        self.ast = ast
        self._entity_decls: Dict[EntityTypeName, EntityTypeDecl] = {}
        self._common_decls: Dict[EntityTypeName, Tuple[str, CommonTypeDecl]] = {}
        self._action_uids: Set[EntityUID] = set()
        self._resolved_common: Dict[EntityTypeName, AttributeType] = {}

    def build(self) -> Dict[str, Namespace]:
        """Return the resolved namespaces keyed by namespace name.

        Raises:
            DuplicateDeclaration: For repeated namespaces, declarations or
                record attributes.
            UnresolvedReference: For references to undeclared names.
            SchemaError: For other constraint violations (cyclic common types,
                non-record context types, malformed names).
        """
        self._index()
        namespaces = {ns.name: self._build_namespace(ns) for ns in self.ast.namespaces}
        logger.debug(
            "Built schema with %d namespaces, %d entity types, %d actions",
            len(namespaces),
            len(self._entity_decls),
            len(self._action_uids),
        )
        return namespaces

    # ---------------- Indexing ---------------- #

    def _index(self) -> None:
        seen_namespaces: Set[str] = set()
        for ns in self.ast.namespaces:
            path: Path = (ns.name,)
            if ns.name in seen_namespaces:
                raise DuplicateDeclaration(
                    format_path(path), f"namespace {ns.name!r} is declared more than once"
                )
            seen_namespaces.add(ns.name)
            for decl in ns.entity_types:
                name = self._qualified(decl.name, ns.name, path + ("entityTypes", decl.name))
                if name in self._entity_decls:
                    raise DuplicateDeclaration(
                        format_path(path + ("entityTypes", decl.name)),
                        f"entity type {str(name)!r} is declared more than once",
                    )
                self._entity_decls[name] = decl
            for common in ns.common_types:
                name = self._qualified(common.name, ns.name, path + ("commonTypes", common.name))
                if name in self._common_decls:
                    raise DuplicateDeclaration(
                        format_path(path + ("commonTypes", common.name)),
                        f"common type {str(name)!r} is declared more than once",
                    )
                self._common_decls[name] = (ns.name, common)
            for action in ns.actions:
                uid = self._action_uid(action.name, ns.name)
                if uid in self._action_uids:
                    raise DuplicateDeclaration(
                        format_path(path + ("actions", action.name)),
                        f"action {str(uid)} is declared more than once",
                    )
                self._action_uids.add(uid)

    # ---------------- Namespace construction ---------------- #

    def _build_namespace(self, ns: NamespaceDecl) -> Namespace:
        path: Path = (ns.name,)
        common_types = {}
        for common in ns.common_types:
            name = self._qualified(common.name, ns.name, path + ("commonTypes", common.name))
            common_types[name] = self._resolve_common(name, ())
        entity_types = {}
        for decl in ns.entity_types:
            entity = self._build_entity_type(decl, ns.name, path + ("entityTypes", decl.name))
            entity_types[entity.name] = entity
        actions = {}
        for decl in ns.actions:
            action = self._build_action(decl, ns.name, path + ("actions", decl.name))
            actions[action.uid] = action
        return Namespace(
            name=ns.name,
            entity_types=entity_types,
            actions=actions,
            common_types=common_types,
            annotations=dict(ns.annotations),
        )

    def _build_entity_type(self, decl: EntityTypeDecl, namespace: str, path: Path) -> EntityType:
        parents = tuple(
            self._resolve_entity_type(ref, namespace, path + ("memberOfTypes", index))
            for index, ref in enumerate(decl.member_of_types)
        )
        shape = None
        if decl.shape is not None:
            shape = self._resolve_type(decl.shape, namespace, path + ("shape",), ())
        return EntityType(
            name=self._qualified(decl.name, namespace, path),
            shape=shape,
            member_of_types=parents,
            annotations=dict(decl.annotations),
        )

    def _build_action(self, decl: ActionDecl, namespace: str, path: Path) -> Action:
        applies_to = None
        if decl.applies_to is not None:
            applies_path = path + ("appliesTo",)
            context = None
            if decl.applies_to.context is not None:
                context = self._resolve_type(
                    decl.applies_to.context, namespace, applies_path + ("context",), ()
                )
                if context.kind != RECORD:
                    raise SchemaError(
                        format_path(applies_path + ("context",)),
                        f"context must be a Record type, got {context.kind}",
                    )
            applies_to = AppliesTo(
                principal_types=tuple(
                    self._resolve_entity_type(ref, namespace, applies_path + ("principalTypes", i))
                    for i, ref in enumerate(decl.applies_to.principal_types)
                ),
                resource_types=tuple(
                    self._resolve_entity_type(ref, namespace, applies_path + ("resourceTypes", i))
                    for i, ref in enumerate(decl.applies_to.resource_types)
                ),
                context=context,
            )
        member_of: List[EntityUID] = []
        for index, ref in enumerate(decl.member_of):
            ref_path = path + ("memberOf", index)
            if ref.type is None:
                candidates = [EntityUID.action(ref.id, namespace)]
            else:
                type_name = self._parse_name(ref.type, ref_path + ("type",))
                candidates = [
                    EntityUID(candidate, ref.id)
                    for candidate in _candidates(type_name, namespace)
                ]
            parent = next((uid for uid in candidates if uid in self._action_uids), None)
            if parent is None:
                raise UnresolvedReference(
                    format_path(ref_path), f"undeclared action {str(candidates[0])}"
                )
            member_of.append(parent)
        return Action(
            uid=self._action_uid(decl.name, namespace),
            applies_to=applies_to,
            member_of=tuple(member_of),
            annotations=dict(decl.annotations),
        )

    # ---------------- Resolution helpers ---------------- #

    def _resolve_entity_type(self, ref: str, namespace: str, path: Path) -> EntityTypeName:
        name = self._parse_name(ref, path)
        for candidate in _candidates(name, namespace):
            if candidate in self._entity_decls:
                return candidate
        raise UnresolvedReference(format_path(path), f"undeclared entity type {ref!r}")

    def _resolve_common(
        self, name: EntityTypeName, resolving: Tuple[EntityTypeName, ...]
    ) -> AttributeType:
        if name in self._resolved_common:
            return self._resolved_common[name]
        namespace, decl = self._common_decls[name]
        path: Path = (namespace, "commonTypes", decl.name)
        if name in resolving:
            cycle = " -> ".join(str(n) for n in resolving + (name,))
            raise SchemaError(format_path(path), f"cyclic common type definition: {cycle}")
        resolved = self._resolve_type(decl.type, namespace, path, resolving + (name,))
        self._resolved_common[name] = resolved
        return resolved

    def _resolve_type(
        self,
        expr: TypeExpr,
        namespace: str,
        path: Path,
        resolving: Tuple[EntityTypeName, ...],
    ) -> AttributeType:
        if expr.kind in PRIMITIVE_KINDS:
            return AttributeType(kind=expr.kind)
        if expr.kind == SET:
            if expr.element is None:
                raise SchemaError(format_path(path), "Set type requires an element type")
            return AttributeType(
                kind=SET,
                element=self._resolve_type(expr.element, namespace, path + ("element",), resolving),
            )
        if expr.kind == RECORD:
            attributes: Dict[str, Attribute] = {}
            for attr_name, attr in expr.attributes:
                attr_path = path + ("attributes", attr_name)
                if attr_name in attributes:
                    raise DuplicateDeclaration(
                        format_path(attr_path),
                        f"attribute {attr_name!r} is declared more than once",
                    )
                attributes[attr_name] = Attribute(
                    type=self._resolve_type(attr.type, namespace, attr_path, resolving),
                    required=attr.required,
                    annotations=dict(attr.annotations),
                )
            return AttributeType(kind=RECORD, attributes=attributes)
        if expr.kind == ENTITY:
            return AttributeType(
                kind=ENTITY,
                entity_type=self._resolve_entity_type(expr.name or "", namespace, path),
            )
        if expr.kind == EXTENSION:
            return AttributeType(kind=EXTENSION, extension=expr.name)
        if expr.kind == NAME:
            return self._resolve_named_type(expr.name or "", namespace, path, resolving)
        raise SchemaError(format_path(path), f"unknown type kind {expr.kind!r}")

    def _resolve_named_type(
        self,
        ref: str,
        namespace: str,
        path: Path,
        resolving: Tuple[EntityTypeName, ...],
    ) -> AttributeType:
        name = self._parse_name(ref, path)
        for candidate in _candidates(name, namespace):
            if candidate in self._common_decls:
                return self._resolve_common(candidate, resolving)
            if candidate in self._entity_decls:
                return AttributeType(kind=ENTITY, entity_type=candidate)
        if not name.is_qualified and ref in EXTENSION_TYPES:
            return AttributeType(kind=EXTENSION, extension=ref)
        raise UnresolvedReference(format_path(path), f"undeclared type {ref!r}")

    @staticmethod
    def _parse_name(ref: str, path: Path) -> EntityTypeName:
        try:
            return EntityTypeName.parse(ref)
        except InvalidIdentifier as exc:
            raise SchemaError(format_path(path), exc.reason) from None

    def _qualified(self, name: str, namespace: str, path: Path) -> EntityTypeName:
        return self._parse_name(name, path).qualify(namespace)

    @staticmethod
    def _action_uid(name: str, namespace: str) -> EntityUID:
        return EntityUID.action(name, namespace)


def _candidates(name: EntityTypeName, namespace: str) -> List[EntityTypeName]:
    """Names an as-written reference may denote, in resolution order."""
    if name.is_qualified or not namespace:
        return [name]
    return [name.qualify(namespace), name]


def build_namespaces(ast: SchemaAST) -> Dict[str, Namespace]:
    """Resolve ``ast`` into namespaces; see :class:`SchemaBuilder`."""
    return SchemaBuilder(ast).build()
