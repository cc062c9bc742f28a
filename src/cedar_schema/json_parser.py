"""Decode the structured (JSON) schema form into the shared AST.

The structured form is an object keyed by namespace name::

    {
        "PhotoApp": {
            "commonTypes": {
                "Address": {"type": "Record", "attributes": {"zip": {"type": "String"}}}
            },
            "entityTypes": {
                "User": {
                    "shape": {
                        "type": "Record",
                        "attributes": {
                            "name": {"type": "String", "required": true},
                            "age": {"type": "Long", "required": false}
                        }
                    }
                },
                "Photo": {"memberOfTypes": ["Album"]},
                "Album": {}
            },
            "actions": {
                "viewActions": {},
                "view": {
                    "memberOf": [{"id": "viewActions"}],
                    "appliesTo": {"principalTypes": ["User"], "resourceTypes": ["Photo"]}
                }
            }
        }
    }

Decoding happens in three stages:

1. ``json.loads`` - malformed JSON (including textual-form documents fed to
   this parser) raises :class:`~cedar_schema.errors.ParseError`.
2. pydantic validation of the document shape - unknown keys or wrong value
   types raise :class:`~cedar_schema.errors.SchemaError` whose ``path`` points
   at the offending value (``$.PhotoApp.entityTypes``).
3. Conversion to :mod:`cedar_schema.schema_ast` records, validating names and
   type objects along the way.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictBool, TypeAdapter, ValidationError

from .config import ParserConfig
from .errors import (
    DuplicateDeclaration,
    InvalidIdentifier,
    ParseError,
    SchemaError,
    format_path,
)
from .names import EntityTypeName, is_identifier, split_namespace
from .schema_ast import (
    BOOLEAN,
    ENTITY,
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


class _SchemaModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TypeModel(_SchemaModel):
    """A type object (``{"type": "Set", "element": {...}}``)."""

    type: str
    element: Optional["TypeModel"] = None
    attributes: Optional[Dict[str, "TypeModel"]] = None
    name: Optional[str] = None
    required: StrictBool = True
    annotations: Dict[str, str] = Field(default_factory=dict)


class EntityTypeModel(_SchemaModel):
    shape: Optional[TypeModel] = None
    member_of_types: List[str] = Field(default_factory=list, alias="memberOfTypes")
    annotations: Dict[str, str] = Field(default_factory=dict)


class ActionRefModel(_SchemaModel):
    id: str
    type: Optional[str] = None


class AppliesToModel(_SchemaModel):
    principal_types: List[str] = Field(default_factory=list, alias="principalTypes")
    resource_types: List[str] = Field(default_factory=list, alias="resourceTypes")
    context: Optional[TypeModel] = None


class ActionModel(_SchemaModel):
    applies_to: Optional[AppliesToModel] = Field(None, alias="appliesTo")
    member_of: List[ActionRefModel] = Field(default_factory=list, alias="memberOf")
    annotations: Dict[str, str] = Field(default_factory=dict)


class NamespaceModel(_SchemaModel):
    entity_types: Dict[str, EntityTypeModel] = Field(
        default_factory=dict, alias="entityTypes"
    )
    actions: Dict[str, ActionModel] = Field(default_factory=dict)
    common_types: Dict[str, TypeModel] = Field(default_factory=dict, alias="commonTypes")
    annotations: Dict[str, str] = Field(default_factory=dict)


TypeModel.model_rebuild()

SCHEMA_DOCUMENT: TypeAdapter = TypeAdapter(Dict[str, NamespaceModel])


def document_json_schema() -> Dict[str, Any]:
    """Return the JSON Schema describing the structured document format."""
    return SCHEMA_DOCUMENT.json_schema(by_alias=True)


def _reject_duplicate_keys(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise DuplicateDeclaration("$", f"duplicate key {key!r} in JSON object")
        result[key] = value
    return result


class JsonSchemaParser:
    """Parse a structured schema document into a :class:`SchemaAST`.

    Example:
        parser = JsonSchemaParser('{"": {"actions": {"view": {}}}}')
        ast = parser.parse()
        assert ast.namespaces[0].actions[0].applies_to is None
    """

    def __init__(self, text: str, config: Optional[ParserConfig] = None) -> None:
        self.text = text
        self.config = config or ParserConfig()

    def parse(self) -> SchemaAST:
        document = self._validate_shape(self._load())
        namespaces = tuple(
            self._convert_namespace(name, model) for name, model in document.items()
        )
        ast = SchemaAST(namespaces=namespaces)
        logger.debug("Parsed structured schema: %s", ast.count())
        return ast

    # ---------------- Stage 1: JSON syntax ---------------- #

    def _load(self) -> Any:
        try:
            return json.loads(self.text, object_pairs_hook=_reject_duplicate_keys)
        except json.JSONDecodeError as exc:
            expected: Tuple[str, ...] = ()
            if exc.msg.startswith("Expecting "):
                expected = (exc.msg[len("Expecting "):],)
            found = "end of input" if exc.pos >= len(exc.doc) else repr(exc.doc[exc.pos])
            raise ParseError(
                f"Invalid JSON: {exc.msg}",
                position=exc.pos,
                line=exc.lineno,
                column=exc.colno,
                expected=expected,
                found=found,
            ) from None
        except RecursionError:
            raise ParseError("Invalid JSON: document nesting too deep") from None

    # ---------------- Stage 2: document shape ---------------- #

    def _validate_shape(self, data: Any) -> Dict[str, NamespaceModel]:
        try:
            return SCHEMA_DOCUMENT.validate_python(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            raise SchemaError(format_path(first["loc"]), first["msg"]) from None

    # ---------------- Stage 3: AST conversion ---------------- #

    def _convert_namespace(self, name: str, model: NamespaceModel) -> NamespaceDecl:
        path: Tuple[Any, ...] = (name,)
        try:
            split_namespace(name)
        except InvalidIdentifier as exc:
            raise SchemaError(format_path(path), exc.reason) from None
        common_types = tuple(
            CommonTypeDecl(
                name=self._identifier(type_name, path + ("commonTypes", type_name)),
                type=self._convert_type(
                    type_model, path + ("commonTypes", type_name), depth=1
                ),
                annotations=dict(type_model.annotations),
            )
            for type_name, type_model in model.common_types.items()
        )
        entity_types = tuple(
            self._convert_entity_type(type_name, entity, path + ("entityTypes", type_name))
            for type_name, entity in model.entity_types.items()
        )
        actions = tuple(
            self._convert_action(action_name, action, path + ("actions", action_name))
            for action_name, action in model.actions.items()
        )
        return NamespaceDecl(
            name=name,
            entity_types=entity_types,
            actions=actions,
            common_types=common_types,
            annotations=dict(model.annotations),
        )

    def _convert_entity_type(
        self, name: str, model: EntityTypeModel, path: Tuple[Any, ...]
    ) -> EntityTypeDecl:
        shape = None
        if model.shape is not None:
            if model.shape.type != RECORD:
                raise SchemaError(
                    format_path(path + ("shape", "type")),
                    f"entity shape must be a Record, got {model.shape.type!r}",
                )
            shape = self._convert_type(model.shape, path + ("shape",), depth=1)
        return EntityTypeDecl(
            name=self._identifier(name, path),
            member_of_types=self._type_names(
                model.member_of_types, path + ("memberOfTypes",)
            ),
            shape=shape,
            annotations=dict(model.annotations),
        )

    def _convert_action(
        self, name: str, model: ActionModel, path: Tuple[Any, ...]
    ) -> ActionDecl:
        applies_to = None
        if model.applies_to is not None:
            applies_path = path + ("appliesTo",)
            context = None
            if model.applies_to.context is not None:
                context = self._convert_type(
                    model.applies_to.context, applies_path + ("context",), depth=1
                )
            applies_to = AppliesToDecl(
                principal_types=self._type_names(
                    model.applies_to.principal_types, applies_path + ("principalTypes",)
                ),
                resource_types=self._type_names(
                    model.applies_to.resource_types, applies_path + ("resourceTypes",)
                ),
                context=context,
            )
        member_of = []
        for index, ref in enumerate(model.member_of):
            if ref.type is not None:
                self._type_name(ref.type, path + ("memberOf", index, "type"))
            member_of.append(ActionRef(id=ref.id, type=ref.type))
        return ActionDecl(
            name=name,
            applies_to=applies_to,
            member_of=tuple(member_of),
            annotations=dict(model.annotations),
        )

    def _convert_type(
        self, model: TypeModel, path: Tuple[Any, ...], depth: int
    ) -> TypeExpr:
        if depth > self.config.max_nesting_depth:
            raise SchemaError(
                format_path(path),
                f"type nesting exceeds maximum depth ({self.config.max_nesting_depth})",
            )
        kind = model.type
        if kind in (STRING, LONG, BOOLEAN):
            return TypeExpr(kind=kind)
        if kind == SET:
            if model.element is None:
                raise SchemaError(format_path(path), "Set type requires an 'element'")
            return TypeExpr(
                kind=SET,
                element=self._convert_type(model.element, path + ("element",), depth + 1),
            )
        if kind == RECORD:
            if model.attributes is None:
                raise SchemaError(format_path(path), "Record type requires 'attributes'")
            attributes = tuple(
                (
                    attr_name,
                    AttributeDecl(
                        type=self._convert_type(
                            attr_model, path + ("attributes", attr_name), depth + 1
                        ),
                        required=attr_model.required,
                        annotations=dict(attr_model.annotations),
                    ),
                )
                for attr_name, attr_model in model.attributes.items()
            )
            return TypeExpr(kind=RECORD, attributes=attributes)
        if kind in (ENTITY, "EntityOrCommon"):
            if model.name is None:
                raise SchemaError(format_path(path), f"{kind} type requires a 'name'")
            self._type_name(model.name, path + ("name",))
            return TypeExpr(kind=ENTITY if kind == ENTITY else NAME, name=model.name)
        if kind == EXTENSION:
            if model.name not in EXTENSION_TYPES:
                raise SchemaError(
                    format_path(path + ("name",)),
                    f"unknown extension type {model.name!r}",
                )
            return TypeExpr(kind=EXTENSION, name=model.name)
        # Anything else names a common type.
        self._type_name(kind, path + ("type",))
        return TypeExpr(kind=NAME, name=kind)

    # ---------------- Name validation ---------------- #

    @staticmethod
    def _identifier(value: str, path: Tuple[Any, ...]) -> str:
        if not is_identifier(value):
            raise SchemaError(format_path(path), f"{value!r} is not a valid identifier")
        return value

    @staticmethod
    def _type_name(value: str, path: Tuple[Any, ...]) -> str:
        try:
            EntityTypeName.parse(value)
        except InvalidIdentifier as exc:
            raise SchemaError(format_path(path), exc.reason) from None
        return value

    def _type_names(self, values: List[str], path: Tuple[Any, ...]) -> Tuple[str, ...]:
        return tuple(
            self._type_name(value, path + (index,)) for index, value in enumerate(values)
        )


def parse_json(text: str, config: Optional[ParserConfig] = None) -> SchemaAST:
    """Parse a structured (JSON) schema document into a :class:`SchemaAST`.

    Args:
        text: JSON document text. ``"{}"`` is valid and yields no namespaces.
        config: Optional :class:`ParserConfig` overriding limits.

    Raises:
        ParseError: If ``text`` is not valid JSON.
        SchemaError: If the JSON does not have the structured schema shape.
    """
    return JsonSchemaParser(text, config=config).parse()
