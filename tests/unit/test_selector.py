"""
Tests for round-robin selection with lazy recovery.
"""

from concurrent.futures import ThreadPoolExecutor

from fakes import FakeClock, make_backends
from keycycle.router import BackendRegistry, Selector


def make_selector(*ids, disabled=(), cooldown=60.0, clock=None):
    registry = BackendRegistry(
        make_backends(*ids, disabled=disabled), cooldown=cooldown, clock=clock or FakeClock()
    )
    return registry, Selector(registry)


class TestRoundRobin:
    """Tests for rotation order."""

    def test_current_is_stable_without_advance(self):
        """Selection is recomputed but does not move on its own."""
        _, selector = make_selector("a", "b", "c")

        assert selector.current().id == "a"
        assert selector.current().id == "a"

    def test_cycles_through_all_enabled_in_order(self):
        """Successive advances visit every enabled backend before repeating."""
        _, selector = make_selector("a", "b", "c")

        seen = []
        for _ in range(6):
            seen.append(selector.current().id)
            selector.advance()

        assert seen == ["a", "b", "c", "a", "b", "c"]

    def test_skips_disabled_backends(self):
        """Should never select disabled backends."""
        _, selector = make_selector("a", "b", "c", disabled=("b",))

        seen = []
        for _ in range(4):
            seen.append(selector.current().id)
            selector.advance()

        assert seen == ["a", "c", "a", "c"]

    def test_no_enabled_backends(self):
        """Should return None when every backend is disabled."""
        _, selector = make_selector("a", disabled=("a",))

        assert selector.current() is None

    def test_empty_registry(self):
        """Should return None for an empty pool."""
        _, selector = make_selector()

        assert selector.current() is None


class TestExclusionRotation:
    """Tests for selection around excluded backends."""

    def test_successor_follows_excluded_backend(self):
        """After excluding the current backend and advancing, its successor is chosen."""
        registry, selector = make_selector("a", "b", "c")

        registry.exclude("a")
        selector.advance()
        assert selector.current().id == "b"

        registry.exclude("b")
        selector.advance()
        assert selector.current().id == "c"

    def test_only_remaining_backend_is_reselected(self):
        """Should keep selecting the only eligible backend."""
        registry, selector = make_selector("a", "b")

        registry.exclude("b")
        selector.advance()

        assert selector.current().id == "a"

    def test_all_excluded_returns_none_until_cooldown(self):
        """Should return None until the cooldown elapses."""
        clock = FakeClock()
        registry, selector = make_selector("a", "b", cooldown=60, clock=clock)
        registry.exclude("a")
        selector.advance()
        registry.exclude("b")
        selector.advance()

        assert selector.current() is None

        clock.advance(30)
        assert selector.current() is None

        clock.advance(31)
        backend = selector.current()
        assert backend is not None
        assert registry.excluded_ids() == set()

    def test_recovery_preserves_round_robin_position(self):
        """After recovery the cursor keeps its place in the rotation."""
        clock = FakeClock()
        registry, selector = make_selector("a", "b", cooldown=60, clock=clock)
        registry.exclude("a")
        selector.advance()
        registry.exclude("b")
        selector.advance()

        clock.advance(61)

        # Two advances from the start point back at "a"
        assert selector.current().id == "a"
        selector.advance()
        assert selector.current().id == "b"


class TestConcurrency:
    """Tests for concurrent cursor updates."""

    def test_concurrent_advances_all_take_effect(self):
        """Should count every advance from concurrent threads."""
        _, selector = make_selector("a", "b", "c")

        with ThreadPoolExecutor(max_workers=8) as pool:
            for _ in range(200):
                pool.submit(selector.advance)

        assert selector.position == 200

    def test_concurrent_exclusions_keep_set_consistent(self):
        """Should keep the excluded set consistent under threads."""
        registry, _ = make_selector("a", "b", "c")

        with ThreadPoolExecutor(max_workers=8) as pool:
            for i in range(300):
                pool.submit(registry.exclude, ("a", "b")[i % 2])

        assert registry.excluded_ids() == {"a", "b"}
