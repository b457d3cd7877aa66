"""Tests for cache key derivation, sanitization and TTL policy."""

from __future__ import annotations

import pytest

from itsm_grounding.cache.domain import CacheEntry, CacheKeyBuilder, DataSanitizer, TTLPolicy
from itsm_grounding.cache.domain.value_objects import MAX_KEY_LENGTH


class TestCacheKeyBuilder:
    def test_parameter_order_does_not_change_key(self) -> None:
        first = CacheKeyBuilder.derive_key("incidents", {"status": "Active", "top": 50})
        second = CacheKeyBuilder.derive_key("incidents", {"top": 50, "status": "Active"})
        assert first == second

    def test_key_starts_with_type(self) -> None:
        key = CacheKeyBuilder.derive_key("employees", {"term": "riley"})
        assert key.startswith("employees:")
        assert CacheKeyBuilder.type_of(key) == "employees"

    def test_no_params_key(self) -> None:
        assert CacheKeyBuilder.derive_key("categories") == "categories:"
        assert CacheKeyBuilder.derive_key("categories", {}) == "categories:"

    def test_unsafe_param_names_are_skipped(self) -> None:
        plain = CacheKeyBuilder.derive_key("searchResults", {"term": "vpn"})
        with_junk = CacheKeyBuilder.derive_key("searchResults", {"term": "vpn", "bad key!": 1})
        assert plain == with_junk

    def test_markup_characters_are_stripped_from_values(self) -> None:
        key = CacheKeyBuilder.derive_key("searchResults", {"term": "<vpn>&\"'"})
        assert "<" not in key and "&" not in key
        assert "vpn" in key

    @pytest.mark.parametrize("cache_type", ["", "user tickets", "../etc", "cache:x", None])
    def test_invalid_type_is_rejected(self, cache_type) -> None:
        with pytest.raises(ValueError):
            CacheKeyBuilder.derive_key(cache_type, {})

    def test_long_key_is_hashed_and_keeps_type(self) -> None:
        key = CacheKeyBuilder.derive_key("searchResults", {"term": "x" * 500})
        assert len(key) <= MAX_KEY_LENGTH
        assert key.startswith("searchResults:#")
        assert key == CacheKeyBuilder.derive_key("searchResults", {"term": "x" * 500})
        assert key != CacheKeyBuilder.derive_key("searchResults", {"term": "y" * 500})


class TestDataSanitizer:
    def test_strips_script_blocks_recursively(self) -> None:
        data = {"Subject": "Printer <script>alert(1)</script>jam", "items": ["<SCRIPT src=x></SCRIPT>ok"]}
        assert DataSanitizer.sanitize(data) == {"Subject": "Printer jam", "items": ["ok"]}

    def test_drops_non_identifier_keys(self) -> None:
        data = {"RecId": "1", "__proto__.polluted": True, "nested": {"ok_key": 1, "bad-key": 2}}
        assert DataSanitizer.sanitize(data) == {"RecId": "1", "nested": {"ok_key": 1}}

    def test_is_idempotent(self) -> None:
        data = {"a": "<script>x</script>text", "b": [1, 2.5, None, True]}
        once = DataSanitizer.sanitize(data)
        assert DataSanitizer.sanitize(once) == once


class TestCacheEntry:
    def test_valid_strictly_below_ttl(self) -> None:
        entry = CacheEntry(data=[1], timestamp=1000.0, ttl=1.0, key="incidents:")
        assert entry.is_valid(1000.999)
        assert not entry.is_valid(1001.0)

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "text",
            {"timestamp": 1.0, "ttl": 1.0, "key": "k"},
            {"data": 1, "timestamp": "1", "ttl": 1.0, "key": "k"},
            {"data": 1, "timestamp": 1.0, "ttl": 0, "key": "k"},
            {"data": 1, "timestamp": 1.0, "ttl": True, "key": "k"},
            {"data": 1, "timestamp": 1.0, "ttl": 1.0, "key": ""},
        ],
    )
    def test_from_stored_rejects_malformed(self, raw) -> None:
        assert CacheEntry.from_stored(raw) is None

    def test_from_stored_round_trip(self) -> None:
        entry = CacheEntry(data={"x": 1}, timestamp=5.0, ttl=30.0, key="employees:")
        assert CacheEntry.from_stored(entry.to_dict()) == entry


class TestTTLPolicy:
    def test_per_type_defaults_are_filled(self) -> None:
        policy = TTLPolicy()
        assert policy.resolve("employees") > 0
        assert "requestOfferingsComplete" in policy.type_ttls

    def test_unknown_type_uses_default(self) -> None:
        policy = TTLPolicy(default_ttl_seconds=42)
        assert policy.resolve("somethingElse") == 42

    def test_override_wins(self) -> None:
        assert TTLPolicy().resolve("employees", ttl_override=7) == 7

    @pytest.mark.parametrize("override", [0, -5, 10 ** 9])
    def test_out_of_range_ttl_falls_back_to_default(self, override) -> None:
        policy = TTLPolicy(default_ttl_seconds=300, max_ttl_seconds=3600)
        assert policy.resolve("employees", ttl_override=override) == 300

    def test_yaml_types_override_builtins(self) -> None:
        policy = TTLPolicy(type_ttls={"employees": 60})
        assert policy.resolve("employees") == 60
