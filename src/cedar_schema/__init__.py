"""Cedar Schema
============

Toolkit for reading Cedar authorization schemas in either of their two
surface syntaxes (the human-readable textual form and the structured JSON
form) and answering questions about the declared entity types and actions.

Key capabilities
----------------
- Parse the textual syntax with a hand-written recursive-descent parser
  (:mod:`~cedar_schema.cedar_parser`).
- Parse the structured syntax with pydantic-validated document models
  (:mod:`~cedar_schema.json_parser`).
- Build a single validated model from either: duplicate declarations and
  unresolved references are rejected, common types are inlined.
- Query actions, action groups, entity types and their hierarchies.
- In-process TTL caching of built schemas.

Design principles
-----------------
1. **One AST, two front ends** - both parsers produce
   :class:`~cedar_schema.schema_ast.SchemaAST`; all semantics live in
   :mod:`~cedar_schema.builder`.
2. **Immutable results** - a built :class:`~cedar_schema.schema.Schema` never
   changes and is safe to share.
3. **Precise errors** - :class:`~cedar_schema.errors.ParseError` carries a
   source position, :class:`~cedar_schema.errors.SchemaError` a document path.

Minimal quick start
-------------------
>>> from cedar_schema import Schema
>>> schema = Schema.from_cedar("entity User; action readOnly; action view in [readOnly] appliesTo { principal: [User], resource: [User] };")
>>> [str(uid) for uid in schema.action_groups()]
['Action::"readOnly"']

Public surface
--------------
Only a curated subset is exported at the package level to keep the import
surface stable; advanced modules can be imported explicitly.
"""

__version__ = "0.1.0"

from .cache import get_cached_parser
from .config import ParserConfig
from .errors import (
    CedarSchemaError,
    DuplicateDeclaration,
    InvalidIdentifier,
    ParseError,
    SchemaError,
    UnresolvedReference,
)
from .models import Action, AppliesTo, Attribute, AttributeType, EntityType, Namespace
from .names import EntityTypeName, EntityUID
from .schema import Schema, SchemaFormat, build_schema

__all__ = [
    "Schema",
    "SchemaFormat",
    "build_schema",
    "get_cached_parser",
    "ParserConfig",
    "EntityTypeName",
    "EntityUID",
    "Action",
    "AppliesTo",
    "Attribute",
    "AttributeType",
    "EntityType",
    "Namespace",
    "CedarSchemaError",
    "ParseError",
    "SchemaError",
    "DuplicateDeclaration",
    "UnresolvedReference",
    "InvalidIdentifier",
]
