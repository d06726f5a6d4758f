"""Tests for the one-time upgrade token registry."""

import threading

import pytest

from voxrelay.tokens import TokenRegistry


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTokenRegistry:

    def test_insert_returns_unique_hex_tokens(self):
        registry = TokenRegistry()
        tokens = {registry.insert("wss://up/1") for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert len(token) == 32
            int(token, 16)

    def test_consume_is_single_use(self):
        registry = TokenRegistry()
        token = registry.insert("wss://up/1")
        assert token in registry

        entry = registry.consume(token)
        assert entry is not None
        assert entry.upstream_url == "wss://up/1"
        assert registry.consume(token) is None
        assert token not in registry

    def test_entry_keeps_sample_rate(self):
        registry = TokenRegistry()
        assert registry.consume(registry.insert("wss://up/1", sample_rate=24000)).sample_rate == 24000
        assert registry.consume(registry.insert("wss://up/2")).sample_rate is None

    def test_unknown_token(self):
        assert TokenRegistry().consume("nope") is None

    def test_expired_token_is_not_consumable(self):
        clock = FakeClock()
        registry = TokenRegistry(ttl_seconds=60, clock=clock)
        token = registry.insert("wss://up/1")
        clock.now += 60
        assert registry.consume(token) is None
        assert len(registry) == 0

    def test_fresh_token_survives_within_ttl(self):
        clock = FakeClock()
        registry = TokenRegistry(ttl_seconds=60, clock=clock)
        token = registry.insert("wss://up/1")
        clock.now += 59
        assert registry.consume(token) is not None

    def test_insert_sweeps_expired(self):
        clock = FakeClock()
        registry = TokenRegistry(ttl_seconds=10, clock=clock)
        registry.insert("wss://up/old")
        clock.now += 11
        registry.insert("wss://up/new")
        assert len(registry) == 1

    def test_sweep(self):
        clock = FakeClock()
        registry = TokenRegistry(ttl_seconds=10, clock=clock)
        registry.insert("a")
        registry.insert("b")
        clock.now += 5
        assert registry.sweep() == 0
        clock.now += 5
        assert registry.sweep() == 2

    def test_evict(self):
        registry = TokenRegistry()
        token = registry.insert("a")
        assert registry.evict(token) is True
        assert registry.evict(token) is False
        assert registry.consume(token) is None

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            TokenRegistry(ttl_seconds=0)

    def test_concurrent_consume_yields_one_winner(self):
        registry = TokenRegistry()
        token = registry.insert("wss://up/1")
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(registry.consume(token))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r is not None) == 1
