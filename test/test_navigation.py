"""Tests for the route snapshot cache."""

import pytest

from cachelab.errors import InvalidKeyError
from cachelab.navigation import DEFAULT_CAPACITY, NavigationCacheSimulator


class TestNavigationCacheSimulator:
    def test_visit_and_get(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        nav.visit("/contact", {"name": "Taro"}, 120)
        snapshot = nav.get_snapshot("/contact")
        assert snapshot is not None
        assert snapshot.route_id == "/contact"
        assert snapshot.form_state == {"name": "Taro"}
        assert snapshot.scroll_position == 120
        assert snapshot.visited_at == clock.monotonic()
        assert nav.current_route == "/contact"

    def test_unknown_route_absent(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        assert nav.get_snapshot("/nowhere") is None

    def test_capacity_eviction(self, clock):
        nav = NavigationCacheSimulator(capacity=2, clock=clock)
        nav.visit("A", {"field": "a"}, 1)
        nav.visit("B", {"field": "b"}, 2)
        nav.visit("C", {"field": "c"}, 3)
        assert nav.get_snapshot("A") is None
        assert nav.get_snapshot("B").form_state == {"field": "b"}
        assert nav.get_snapshot("C").form_state == {"field": "c"}
        assert len(nav) == 2

    def test_access_refreshes_recency(self, clock):
        nav = NavigationCacheSimulator(capacity=2, clock=clock)
        nav.visit("A")
        nav.visit("B")
        nav.get_snapshot("A")
        nav.visit("C")
        assert nav.get_snapshot("A") is not None
        assert nav.get_snapshot("B") is None

    def test_current_route_never_evicted(self, clock):
        nav = NavigationCacheSimulator(capacity=1, clock=clock)
        nav.visit("A")
        nav.visit("B")
        assert nav.get_snapshot("A") is None
        assert nav.get_snapshot("B") is not None
        nav.visit("B", {"x": 1})
        assert [s.route_id for s in nav.snapshots()] == ["B"]

    def test_revisit_overwrites_state(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        nav.visit("/form", {"email": "old@example.com"}, 10)
        clock.advance(30)
        nav.visit("/form", {"email": "new@example.com"}, 0)
        snapshot = nav.get_snapshot("/form")
        assert snapshot.form_state == {"email": "new@example.com"}
        assert snapshot.visited_at == clock.monotonic()
        assert len(nav) == 1

    def test_no_expiry(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        nav.visit("/a", {"q": "x"})
        clock.advance(10**6)
        assert nav.get_snapshot("/a").form_state == {"q": "x"}

    def test_snapshot_isolated_from_caller_dict(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        state = {"name": "Taro"}
        nav.visit("/a", state)
        state["name"] = "changed"
        snapshot = nav.get_snapshot("/a")
        assert snapshot.form_state == {"name": "Taro"}
        with pytest.raises(TypeError):
            snapshot.form_state["name"] = "x"

    def test_invalidate(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        nav.visit("/a")
        nav.visit("/admin/users")
        nav.visit("/admin/posts")
        assert nav.invalidate(lambda r: r.startswith("/admin")) == 2
        assert nav.current_route is None
        assert nav.invalidate("/a") == 1
        assert len(nav) == 0

    def test_clear(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        nav.visit("/a")
        nav.clear()
        assert nav.get_snapshot("/a") is None
        assert nav.current_route is None

    def test_default_capacity(self):
        assert NavigationCacheSimulator().capacity == DEFAULT_CAPACITY == 20

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            NavigationCacheSimulator(capacity=0)

    def test_invalid_route_id(self, clock):
        nav = NavigationCacheSimulator(clock=clock)
        with pytest.raises(InvalidKeyError):
            nav.visit("")
