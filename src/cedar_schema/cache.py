"""Caching layer for built schemas.

Provides:
    * In-memory dictionary cache with TTL and file mtime staleness checks.
    * :class:`CachedSchemaParser`, which memoizes :class:`~cedar_schema.schema.Schema`
      objects by document text, format and parser configuration.
    * Hit/miss/eviction counters for lightweight observability.

Design goals:
    1. Deterministic keys: All cache keys are md5 hashes of argument tuples.
    2. Predictable invalidation: TTL expiry OR source file change (mtime or md5).
    3. Safe sharing: cached values are immutable ``Schema`` objects, so callers
       can hold on to them after eviction.

Quick examples:

Local cache get/set::

    from cedar_schema.cache import SchemaCache
    cache = SchemaCache(default_ttl=5)
    key = cache._make_key("cedar", "entity User;")
    cache.set(key, {"parsed": True})
    assert cache.get(key)["parsed"] is True

Cached parser convenience::

    from cedar_schema.cache import get_cached_parser
    parser = get_cached_parser()
    schema = parser.parse("cedar", "entity User; action view;")
    schema is parser.parse("cedar", "entity User; action view;")  # True
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union, cast

from .config import ParserConfig
from .schema import Schema, SchemaFormat

logger = logging.getLogger(__name__)

CACHE_TTL_ENV = "CEDAR_SCHEMA_CACHE_TTL"
DEFAULT_TTL = 3600.0

_SUFFIX_FORMATS = {
    ".cedarschema": SchemaFormat.CEDAR,
    ".cedar": SchemaFormat.CEDAR,
    ".json": SchemaFormat.JSON,
}


def file_etag(content: bytes) -> str:
    """Return the md5 hex digest used to fingerprint schema file contents."""
    return hashlib.md5(content).hexdigest()


@dataclass
class CacheEntry:
    """Cache entry with TTL and source file tracking."""

    data: Any
    timestamp: float = field(default_factory=time.time)
    ttl: float = DEFAULT_TTL
    etag: str = ""
    file_mtime: float = 0.0

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return time.time() - self.timestamp > self.ttl

    def is_stale(self, file_path: Path) -> bool:
        """Check if cache is stale based on file modification time and content.

        The md5 ``etag`` (when recorded) catches rewrites that keep the mtime,
        e.g. two writes within the filesystem timestamp resolution.
        """
        if not file_path.exists():
            return True
        if file_path.stat().st_mtime != self.file_mtime:
            return True
        return bool(self.etag) and file_etag(file_path.read_bytes()) != self.etag


class SchemaCache:
    """Thread-safe in-memory cache for schema objects."""

    def __init__(self, default_ttl: float = DEFAULT_TTL):
        """Initialize cache with default TTL in seconds."""
        self.default_ttl = default_ttl
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _make_key(self, *args) -> str:
        """Create cache key from arguments."""
        key_data = str(args).encode()
        return hashlib.md5(key_data).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Retrieve a value if present and not expired.

        Args:
            key: Opaque cache key (md5 hex string).
        Returns:
            Cached value or None if absent/expired.
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired():
                del self._cache[key]
                self.misses += 1
                self.evictions += 1
                return None
            self.hits += 1
            return entry.data

    def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
        file_path: Optional[Path] = None,
        file_mtime: Optional[float] = None,
        etag: str = "",
    ) -> None:
        """Insert or replace a value in the cache.

        Args:
            key: Cache key.
            data: Arbitrary Python object (stored as-is).
            ttl: Optional time-to-live override in seconds (defaults to instance default).
            file_path: Optional source file whose mtime + md5 contribute to stale detection.
            file_mtime: Source mtime observed before ``data`` was read from it.
                Takes precedence over ``file_path``.
            etag: md5 of the content ``data`` was built from (see :func:`file_etag`).
        """
        if file_mtime is None:
            file_mtime = 0.0
            if file_path and file_path.exists():
                file_mtime = file_path.stat().st_mtime
                etag = file_etag(file_path.read_bytes())

        entry = CacheEntry(
            data=data,
            ttl=self.default_ttl if ttl is None else ttl,
            etag=etag,
            file_mtime=file_mtime,
        )
        with self._lock:
            self._cache[key] = entry

    def invalidate(self, key: str) -> None:
        """Remove specific entry from cache."""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get current cache statistics."""
        with self._lock:
            return {
                "cache_size": len(self._cache),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "default_ttl": self.default_ttl,
            }

    def check_file_staleness(self, key: str, file_path: Path) -> bool:
        """Check if cached entry is stale based on file modification."""
        with self._lock:
            entry = self._cache.get(key)
        if entry is None:
            return True
        return entry.is_stale(file_path)


def _default_ttl() -> float:
    return float(os.getenv(CACHE_TTL_ENV, str(DEFAULT_TTL)))


_schema_cache: Optional[SchemaCache] = None


def _get_default_cache() -> SchemaCache:
    """Get the process-wide cache, creating it on first use."""
    global _schema_cache
    if _schema_cache is None:
        _schema_cache = SchemaCache(default_ttl=_default_ttl())
    return _schema_cache


def format_for_path(path: Union[str, Path]) -> SchemaFormat:
    """Infer the surface syntax from a file suffix.

    Raises:
        ValueError: If the suffix is not recognised.
    """
    suffix = Path(path).suffix.lower()
    try:
        return _SUFFIX_FORMATS[suffix]
    except KeyError:
        raise ValueError(
            f"Cannot infer schema format from suffix {suffix!r}; pass format explicitly"
        ) from None


class CachedSchemaParser:
    """High-level parser wrapper that memoizes built schemas.

    Public methods provide two granularities:
        * parse: Document text to :class:`Schema`.
        * parse_file: Schema file to :class:`Schema`, re-read when the file changes.
    """

    def __init__(
        self,
        cache: Optional[SchemaCache] = None,
        parser_config: Optional[ParserConfig] = None,
    ):
        """Initialize with optional cache and parser config."""
        self.cache = cache or _get_default_cache()
        self.parser_config = parser_config or ParserConfig()

    def parse(
        self,
        format: Union[SchemaFormat, str],
        text: str,
        force_refresh: bool = False,
    ) -> Schema:
        """Parse and build a schema (cached).

        Args:
            format: Surface syntax of ``text``.
            text: Document text.
            force_refresh: Skip cache and re-parse if True.
        Returns:
            Schema: The built schema; identical input returns the same object
            while the entry is live.
        Raises:
            ParseError, SchemaError: As :meth:`Schema.parse`. Failures are not cached.
        """
        fmt = SchemaFormat(format)
        cache_key = self.cache._make_key(fmt.value, text, self.parser_config.cache_key())

        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Schema cache hit for %s document", fmt.value)
                return cast(Schema, cached)

        logger.debug("Schema cache miss for %s document", fmt.value)
        result = Schema.parse(fmt, text, config=self.parser_config)
        self.cache.set(cache_key, result)
        return result

    def parse_file(
        self,
        path: Union[str, Path],
        format: Optional[Union[SchemaFormat, str]] = None,
        force_refresh: bool = False,
    ) -> Schema:
        """Read and build a schema file (cached until the file changes).

        Args:
            path: Schema file (``.cedarschema`` or ``.json``).
            format: Explicit format; inferred from the suffix when omitted.
            force_refresh: Skip cache and re-parse if True.
        """
        path = Path(path)
        fmt = SchemaFormat(format) if format is not None else format_for_path(path)
        cache_key = self.cache._make_key(
            "file", str(path.resolve()), fmt.value, self.parser_config.cache_key()
        )

        if not force_refresh and not self.cache.check_file_staleness(cache_key, path):
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cast(Schema, cached)

        # stat before reading: a write that lands in between must leave the entry stale
        file_mtime = path.stat().st_mtime
        content = path.read_bytes()
        result = Schema.parse(fmt, content.decode("utf-8"), config=self.parser_config)
        self.cache.set(cache_key, result, file_mtime=file_mtime, etag=file_etag(content))
        return result

    def invalidate_all(self) -> None:
        """Clear all cached schemas."""
        self.cache.clear()


# Convenience function for lazy loading
@lru_cache(maxsize=4)
def get_cached_parser(parser_config_key: Optional[str] = None) -> CachedSchemaParser:
    """Get or create a cached parser instance.

    Args:
        parser_config_key: Optional ``key=value,...`` parser config string.
            Defaults to ``CEDAR_SCHEMA_PARSER_CONFIG`` from the environment.

    Returns:
        CachedSchemaParser instance
    """
    if parser_config_key is None:
        config = ParserConfig.from_env()
    else:
        config = ParserConfig.from_string(parser_config_key)
    return CachedSchemaParser(cache=_get_default_cache(), parser_config=config)
