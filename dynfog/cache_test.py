"""Tests for the per-observer shadow cache."""

from shapely.geometry import box

from dynfog.cache import ShadowCache


class TestLookup:
    def test_empty(self):
        cache = ShadowCache()
        assert cache.get("a") is None
        assert cache.lookup("a", (0, 0)) is None

    def test_hit_at_same_position(self):
        cache = ShadowCache()
        region = box(0, 0, 10, 10)
        cache.put("a", region, (5.0, 5.0))
        assert cache.lookup("a", (5.0, 5.0)) is region

    def test_miss_after_move(self):
        cache = ShadowCache()
        cache.put("a", box(0, 0, 10, 10), (5.0, 5.0))
        assert cache.lookup("a", (6.0, 5.0)) is None
        # The entry itself is still there until overwritten.
        assert "a" in cache

    def test_get_returns_position(self):
        cache = ShadowCache()
        cache.put("a", box(0, 0, 1, 1), (3.0, 4.0))
        assert cache.get("a").position == (3.0, 4.0)


class TestLifecycle:
    def test_overwrite_disposes_old_entry(self):
        disposed = []
        cache = ShadowCache(dispose=lambda k, e: disposed.append((k, e)))
        old = box(0, 0, 1, 1)
        cache.put("a", old, (0, 0))
        cache.put("a", box(0, 0, 2, 2), (1, 1))
        assert len(disposed) == 1
        assert disposed[0][0] == "a"
        assert disposed[0][1].region is old
        assert len(cache) == 1

    def test_invalidate_all(self):
        disposed = []
        cache = ShadowCache()
        cache.put("a", box(0, 0, 1, 1), (0, 0))
        cache.put("b", box(0, 0, 1, 1), (0, 0))
        cache.invalidate_all(lambda k, e: disposed.append(k))
        assert sorted(disposed) == ["a", "b"]
        assert len(cache) == 0

    def test_invalidate_all_without_disposer(self):
        cache = ShadowCache()
        cache.put("a", box(0, 0, 1, 1), (0, 0))
        cache.invalidate_all()
        assert len(cache) == 0

    def test_prune_drops_missing_observers(self):
        disposed = []
        cache = ShadowCache(dispose=lambda k, e: disposed.append(k))
        for key in ("a", "b", "c"):
            cache.put(key, box(0, 0, 1, 1), (0, 0))
        cache.prune(["a", "c", "z"])
        assert "b" not in cache
        assert len(cache) == 2
        assert disposed == ["b"]
