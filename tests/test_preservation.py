"""Tests for the preservation cache."""

from dataclasses import dataclass

import pytest

import notifyx
from notifyx import PreservationCache, structural_key


@dataclass
class Card:
    title: str


class Keyed:
    def __init__(self, key, label):
        self.key = key
        self.label = label


class Plain:
    def __init__(self, label, child=None):
        self.label = label
        self.child = child


class Slotted:
    __slots__ = ("label",)

    def __init__(self, label):
        self.label = label


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestKeep:
    def test_explicit_key_returns_preserved_artifact(self):
        cache = PreservationCache()
        first = Card("a")
        assert cache.keep(first, "header") is first
        assert cache.keep(Card("b"), "header") is first

    def test_hit_updates_build_count_and_access(self, clock):
        cache = PreservationCache(clock=clock)
        cache.keep(Card("a"), "k")
        clock.now = 10.0
        cache.keep(Card("a"), "k")
        cache.keep(Card("a"), "k")
        entry = cache.get("k")
        assert entry.build_count == 2
        assert entry.last_accessed == 10.0

    def test_structurally_equal_artifacts_share_a_slot(self):
        cache = PreservationCache()
        first = Card("same")
        assert cache.keep(Card("same")) is not first
        cache.cleanup()
        assert cache.keep(first) is first
        assert cache.keep(Card("same")) is first
        assert len(cache) == 1

    def test_different_content_gets_different_slots(self):
        cache = PreservationCache()
        cache.keep(Card("a"))
        cache.keep(Card("b"))
        assert len(cache) == 2

    def test_structural_key_uses_key_attribute(self):
        assert structural_key(Keyed("row-1", "x")) == structural_key(Keyed("row-1", "y"))
        assert structural_key(Keyed("row-1", "x")) != structural_key(Keyed("row-2", "x"))

    def test_structural_key_is_deterministic_and_typed(self):
        key = structural_key(Card("a"))
        assert key == structural_key(Card("a"))
        assert key.startswith("Card_")

    def test_plain_class_without_repr_shares_a_slot(self):
        cache = PreservationCache()
        first = cache.keep(Plain("x"))
        assert cache.keep(Plain("x")) is first
        assert len(cache) == 1
        assert cache.keep(Plain("y")) is not first
        assert len(cache) == 2

    def test_plain_class_signature_follows_nested_attributes(self):
        assert structural_key(Plain("x", Plain("c"))) == structural_key(Plain("x", Plain("c")))
        assert structural_key(Plain("x", Plain("c"))) != structural_key(Plain("x", Plain("d")))

    def test_slotted_class_uses_slot_values(self):
        assert structural_key(Slotted("a")) == structural_key(Slotted("a"))
        assert structural_key(Slotted("a")) != structural_key(Slotted("b"))

    def test_self_referencing_artifact_terminates(self):
        node = Plain("loop")
        node.child = node
        assert structural_key(node) == structural_key(node)


class TestKeepAll:
    def test_base_key(self):
        cache = PreservationCache()
        kept = cache.keep_all([Card("a"), Card("b")], "row")
        assert [c.title for c in kept] == ["a", "b"]
        assert "row_0" in cache
        assert "row_1" in cache

    def test_without_base_key_repeats_hit(self):
        cache = PreservationCache()
        first = cache.keep_all([Card("a"), Card("b")])
        again = cache.keep_all([Card("a"), Card("b")])
        assert all(x is y for x, y in zip(first, again))
        assert len(cache) == 2


class TestEviction:
    def test_idle_entries_evicted_first(self, clock):
        cache = PreservationCache(capacity=4, idle_seconds=300, clock=clock)
        for name in "abcd":
            cache.keep(Card(name), name)
        clock.now = 400.0
        cache.keep(Card("a"), "a")
        cache.keep(Card("b"), "b")
        cache.keep(Card("e"), "e")
        assert set(k for k in "abcde" if k in cache) == {"a", "b", "e"}

    def test_lru_half_evicted_when_nothing_idle(self, clock):
        cache = PreservationCache(capacity=4, idle_seconds=300, clock=clock)
        for i, name in enumerate("abcd"):
            clock.now = float(i)
            cache.keep(Card(name), name)
        clock.now = 10.0
        cache.keep(Card("e"), "e")
        assert set(k for k in "abcde" if k in cache) == {"c", "d", "e"}
        assert len(cache) == 3

    def test_never_exceeds_capacity(self, clock):
        cache = PreservationCache(capacity=10, clock=clock)
        for i in range(100):
            cache.keep(Card(str(i)), i)
            assert len(cache) <= 10

    def test_rejects_tiny_capacity(self):
        with pytest.raises(ValueError):
            PreservationCache(capacity=1)


class TestStatistics:
    def test_statistics(self, clock):
        cache = PreservationCache(capacity=10, clock=clock)
        assert cache.statistics()["total"] == 0
        cache.keep(Card("a"), "a")
        clock.now = 5.0
        cache.keep(Card("a"), "a")
        cache.keep(Card("b"), "b")
        stats = cache.statistics()
        assert stats["total"] == 2
        assert stats["average_build_count"] == 0.5
        assert stats["oldest_access"] == 5.0
        assert stats["utilization"] == "20.0%"


class TestDefaultCache:
    def test_module_helpers(self):
        notifyx.cleanup_preserved()
        try:
            first = notifyx.keep(Card("x"), "module-key")
            assert notifyx.keep(Card("y"), "module-key") is first
            notifyx.keep_all([Card("p")], "batch")
            assert notifyx.get_preservation_statistics()["total"] == 2
        finally:
            notifyx.cleanup_preserved()
        assert notifyx.get_preservation_statistics()["total"] == 0
