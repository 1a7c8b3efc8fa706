"""
Unit tests for the OBO token cache.
"""

import hashlib

import pytest

from service_broker.app.obo.token_cache import (
    EXPIRY_SKEW_SECONDS,
    CachedToken,
    TokenCache,
    fingerprint,
)
from shared.test_helpers import FakeClock


class TestFingerprint:
    """Test cases for cache key derivation."""

    def test_fingerprint_is_sha256_of_assertion_and_resource(self):
        expected = hashlib.sha256(b"assertion|https://fo.example.com").hexdigest()
        assert fingerprint("assertion", "https://fo.example.com") == expected

    def test_fingerprint_is_deterministic(self):
        assert fingerprint("a", "r") == fingerprint("a", "r")

    def test_distinct_assertions_map_to_distinct_slots(self):
        assert fingerprint("token-before-refresh", "r") != fingerprint("token-after-refresh", "r")

    def test_distinct_resources_map_to_distinct_slots(self):
        assert fingerprint("a", "https://one") != fingerprint("a", "https://two")

    def test_fingerprint_does_not_contain_assertion(self):
        key = fingerprint("eyJhbGciOi.secret.sig", "r")
        assert "secret" not in key
        assert len(key) == 64


class TestTokenCache:
    """Test cases for TokenCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return TokenCache(clock=clock)

    def test_get_missing_entry(self, cache):
        assert cache.get("missing") is None

    def test_put_then_get(self, cache, clock):
        entry = cache.put("fp", "access", clock() + 3600)

        assert isinstance(entry, CachedToken)
        assert cache.get("fp") == entry
        assert "fp" in cache
        assert len(cache) == 1

    def test_entry_usable_until_skew_boundary(self, cache, clock):
        cache.put("fp", "access", clock() + 3600)

        clock.advance(3600 - EXPIRY_SKEW_SECONDS - 1)
        assert cache.get("fp") is not None

        clock.advance(1)
        assert cache.get("fp") is None
        # Not evicted by a miss
        assert "fp" in cache

    def test_put_overwrites_existing_entry(self, cache, clock):
        cache.put("fp", "first", clock() + 3600)
        cache.put("fp", "second", clock() + 3600)

        assert cache.get("fp").access_token == "second"
        assert len(cache) == 1

    def test_sweep_removes_only_expired_entries(self, cache, clock):
        cache.put("short", "a", clock() + 100)
        cache.put("long", "b", clock() + 3600)

        clock.advance(50)
        removed = cache.sweep()

        assert removed == 1
        assert "short" not in cache
        assert cache.get("long").access_token == "b"

    def test_sweep_on_empty_cache(self, cache):
        assert cache.sweep() == 0
