"""Tests for schema caching functionality."""

import os
import time

import pytest

from cedar_schema.cache import (
    CacheEntry,
    CachedSchemaParser,
    SchemaCache,
    file_etag,
    format_for_path,
    get_cached_parser,
)
from cedar_schema.config import ParserConfig
from cedar_schema.errors import ParseError
from cedar_schema.names import EntityUID
from cedar_schema.schema import Schema, SchemaFormat

TEXT = "entity User; action all; action view in [all] appliesTo { principal: User, resource: User };"


def test_cache_entry_expiration():
    """Test cache entry TTL expiration."""
    entry = CacheEntry(data="test", ttl=0.1)

    assert not entry.is_expired()
    time.sleep(0.2)
    assert entry.is_expired()


def test_cache_entry_staleness(tmp_path):
    """Test cache staleness based on file modification time."""
    path = tmp_path / "schema.cedarschema"
    path.write_text("entity User;")

    entry = CacheEntry(data="test", file_mtime=path.stat().st_mtime)
    assert not entry.is_stale(path)

    later = path.stat().st_mtime + 10
    os.utime(path, (later, later))
    assert entry.is_stale(path)

    path.unlink()
    assert entry.is_stale(path)


def test_schema_cache_basic_operations():
    """Test basic cache operations."""
    cache = SchemaCache(default_ttl=1.0)

    cache.set("test_key", "test_value")
    assert cache.get("test_key") == "test_value"
    assert cache.get("nonexistent") is None

    cache.invalidate("test_key")
    assert cache.get("test_key") is None

    cache.set("test_key", "test_value")
    cache.clear()
    assert cache.get("test_key") is None


def test_schema_cache_ttl():
    """Test cache TTL functionality."""
    cache = SchemaCache(default_ttl=0.1)

    cache.set("short_ttl", "value")
    assert cache.get("short_ttl") == "value"

    time.sleep(0.2)
    assert cache.get("short_ttl") is None
    assert cache.get_cache_stats()["evictions"] == 1


def test_schema_cache_stats():
    cache = SchemaCache()
    cache.set("a", 1)
    cache.get("a")
    cache.get("a")
    cache.get("b")

    stats = cache.get_cache_stats()
    assert stats["cache_size"] == 1
    assert stats["hits"] == 2
    assert stats["misses"] == 1


def test_schema_cache_file_tracking(tmp_path):
    """Test file modification tracking."""
    cache = SchemaCache()
    path = tmp_path / "schema.json"
    path.write_text("{}")

    cache.set("file_key", "original_value", file_path=path)
    assert not cache.check_file_staleness("file_key", path)

    later = path.stat().st_mtime + 10
    os.utime(path, (later, later))
    assert cache.check_file_staleness("file_key", path)
    assert cache.check_file_staleness("missing_key", path)


def test_make_key_is_deterministic():
    cache = SchemaCache()

    assert cache._make_key("cedar", TEXT) == cache._make_key("cedar", TEXT)
    assert cache._make_key("cedar", TEXT) != cache._make_key("json", TEXT)


def test_cached_parser_returns_same_schema():
    parser = CachedSchemaParser(cache=SchemaCache())

    first = parser.parse("cedar", TEXT)
    second = parser.parse(SchemaFormat.CEDAR, TEXT)

    assert isinstance(first, Schema)
    assert first is second
    assert first.action_groups() == second.action_groups()


def test_cached_parser_force_refresh():
    parser = CachedSchemaParser(cache=SchemaCache())

    first = parser.parse("cedar", TEXT)
    refreshed = parser.parse("cedar", TEXT, force_refresh=True)

    assert refreshed is not first
    assert refreshed.to_dict() == first.to_dict()


def test_cached_parser_keys_include_config():
    cache = SchemaCache()
    default = CachedSchemaParser(cache=cache).parse("cedar", TEXT)
    limited = CachedSchemaParser(
        cache=cache, parser_config=ParserConfig(max_nesting_depth=4)
    ).parse("cedar", TEXT)

    assert default is not limited


def test_cached_parser_does_not_cache_failures():
    cache = SchemaCache()
    parser = CachedSchemaParser(cache=cache)

    for _ in range(2):
        with pytest.raises(ParseError):
            parser.parse("json", TEXT)
    assert cache.get_cache_stats()["cache_size"] == 0


def test_cached_parser_invalidate_all():
    parser = CachedSchemaParser(cache=SchemaCache())
    first = parser.parse("cedar", TEXT)

    parser.invalidate_all()

    assert parser.parse("cedar", TEXT) is not first


def test_parse_file_rereads_modified_file(tmp_path):
    parser = CachedSchemaParser(cache=SchemaCache())
    path = tmp_path / "app.cedarschema"
    path.write_text("action all;")

    first = parser.parse_file(path)
    assert parser.parse_file(path) is first
    assert len(first.actions()) == 1

    path.write_text("action all; action other;")
    later = path.stat().st_mtime + 10
    os.utime(path, (later, later))

    updated = parser.parse_file(path)
    assert updated is not first
    assert len(updated.actions()) == 2


def test_parse_file_explicit_format(tmp_path):
    path = tmp_path / "schema.txt"
    path.write_text('{"": {"actions": {"all": {}}}}')
    parser = CachedSchemaParser(cache=SchemaCache())

    schema = parser.parse_file(path, format="json")
    assert len(schema.action_groups()) == 1

    with pytest.raises(ValueError):
        parser.parse_file(path)


def test_format_for_path():
    assert format_for_path("app.cedarschema") is SchemaFormat.CEDAR
    assert format_for_path("app.cedarschema.json") is SchemaFormat.JSON
    with pytest.raises(ValueError):
        format_for_path("app.yaml")


def test_get_cached_parser():
    parser = get_cached_parser("max_nesting_depth=5")

    assert parser is get_cached_parser("max_nesting_depth=5")
    assert parser.parser_config.max_nesting_depth == 5
    assert isinstance(parser.cache, SchemaCache)


def test_explicit_zero_ttl_is_honoured():
    cache = SchemaCache(default_ttl=3600)

    cache.set("k", "v", ttl=0)
    time.sleep(0.01)

    assert cache.get("k") is None


def test_cache_entry_detects_same_mtime_rewrite(tmp_path):
    path = tmp_path / "schema.cedarschema"
    path.write_bytes(b"action all;")
    stat = path.stat()
    entry = CacheEntry(data="test", file_mtime=stat.st_mtime, etag=file_etag(b"action all;"))
    assert not entry.is_stale(path)

    path.write_bytes(b"action any;")
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns))

    assert entry.is_stale(path)


def test_parse_file_detects_same_mtime_rewrite(tmp_path):
    parser = CachedSchemaParser(cache=SchemaCache())
    path = tmp_path / "app.cedarschema"
    path.write_text("action all;")
    stat = path.stat()
    first = parser.parse_file(path)

    path.write_text("action all; action other;")
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns))

    assert len(parser.parse_file(path).actions()) == 2
    assert len(first.actions()) == 1


def test_parse_file_write_during_parse_leaves_entry_stale(tmp_path, monkeypatch):
    parser = CachedSchemaParser(cache=SchemaCache())
    path = tmp_path / "app.cedarschema"
    path.write_text("action all;")
    original_parse = Schema.parse
    writes = []

    def parse_then_rewrite(format, text, config=None):
        result = original_parse(format, text, config=config)
        if not writes:
            path.write_text("action all; action other;")
            later = path.stat().st_mtime + 10
            os.utime(path, (later, later))
            writes.append(path)
        return result

    monkeypatch.setattr(Schema, "parse", staticmethod(parse_then_rewrite))

    assert len(parser.parse_file(path).actions()) == 1
    assert len(parser.parse_file(path).actions()) == 2


def test_cached_schema_cannot_be_altered_by_callers():
    parser = CachedSchemaParser(cache=SchemaCache())
    first = parser.parse("cedar", TEXT)

    with pytest.raises(TypeError):
        first.namespace("").actions[EntityUID.action("other")] = first.action(EntityUID.action("all"))

    second = parser.parse("cedar", TEXT)
    assert second is first
    assert second.to_dict() == Schema.from_cedar(TEXT).to_dict()
