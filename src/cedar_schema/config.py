"""Parser configuration.

Both surface parsers accept an optional :class:`ParserConfig`. Values can be
supplied from the environment through ``CEDAR_SCHEMA_PARSER_CONFIG`` as
comma separated ``key=value`` pairs::

    CEDAR_SCHEMA_PARSER_CONFIG="max_nesting_depth=16,allow_dotted_namespaces=false"

Unknown keys are ignored. Keys starting with ``max_`` are integers; every
other key is a boolean (``true`` in any case enables it).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

PARSER_CONFIG_ENV = "CEDAR_SCHEMA_PARSER_CONFIG"


@dataclass(frozen=True)
class ParserConfig:
    """Configuration for schema parsing behavior.

    Args:
        max_nesting_depth: Maximum depth of nested ``Set``/record types (and,
            for the structured form, nested JSON values beneath a type).
            Exceeding it is reported as a parse/schema error rather than a
            ``RecursionError``.
        allow_dotted_namespaces: Accept ``namespace Foo.Bar { ... }`` in the
            textual form as a synonym for ``Foo::Bar``.
    """

    max_nesting_depth: int = 32
    allow_dotted_namespaces: bool = True

    @classmethod
    def from_string(cls, config_str: str) -> "ParserConfig":
        values = {}
        for pair in config_str.split(","):
            if "=" not in pair:
                continue
            key, value = pair.split("=", 1)
            key = key.strip()
            value = value.strip()
            if key not in cls.__dataclass_fields__:
                continue
            if key.startswith("max_"):
                values[key] = int(value)
            else:
                values[key] = value.lower() == "true"
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ParserConfig":
        """Build a configuration from ``CEDAR_SCHEMA_PARSER_CONFIG``."""
        env = os.environ if environ is None else environ
        return cls.from_string(env.get(PARSER_CONFIG_ENV, ""))

    def cache_key(self) -> str:
        return f"max_nesting_depth={self.max_nesting_depth},allow_dotted_namespaces={self.allow_dotted_namespaces}"
