"""
Unit tests for the response cache.
"""
import hashlib

from prompt_relay.core.cache import ResponseCache


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 500_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestResponseCache:
    """Test cache lookups, expiry and session clearing."""

    def setup_method(self):
        """Create a fresh cache for each test."""
        self.clock = FakeClock()
        self.cache = ResponseCache(cache_duration_seconds=3600, clock=self.clock)

    def test_compute_key_is_sha256_of_session_and_prompt(self):
        """Test key derivation."""
        expected = hashlib.sha256(b"session-1-What is covered?").hexdigest()

        assert ResponseCache.compute_key("session-1", "What is covered?") == expected

    def test_compute_key_depends_on_session(self):
        """Test the same prompt in two sessions gets two keys."""
        assert (ResponseCache.compute_key("a", "hello")
                != ResponseCache.compute_key("b", "hello"))

    def test_lookup_miss_on_empty_cache(self):
        """Test lookup of an unknown key."""
        assert self.cache.lookup("session-1", "hello") is None

    def test_lookup_after_store_returns_text(self):
        """Test a stored response is returned."""
        self.cache.store("session-1", "hello", "<div>Hi</div>")

        assert self.cache.lookup("session-1", "hello") == "<div>Hi</div>"

    def test_lookup_is_session_scoped(self):
        """Test another session does not see the entry."""
        self.cache.store("session-1", "hello", "<div>Hi</div>")

        assert self.cache.lookup("session-2", "hello") is None

    def test_store_overwrites_and_refreshes(self):
        """Test storing the same key replaces text and timestamp."""
        self.cache.store("session-1", "hello", "first")
        self.clock.advance(3000)
        self.cache.store("session-1", "hello", "second")
        self.clock.advance(3000)

        assert self.cache.lookup("session-1", "hello") == "second"
        assert len(self.cache) == 1

    def test_entry_valid_just_before_duration(self):
        """Test entry is still served just inside the duration."""
        self.cache.store("session-1", "hello", "text")
        self.clock.advance(3599.9)

        assert self.cache.lookup("session-1", "hello") == "text"

    def test_entry_expires_at_duration(self):
        """Test lookup misses once the duration has elapsed."""
        self.cache.store("session-1", "hello", "text")
        self.clock.advance(3600)

        assert self.cache.lookup("session-1", "hello") is None
        assert len(self.cache) == 0

    def test_store_sweeps_expired_entries(self):
        """Test writes purge stale entries from any session."""
        self.cache.store("session-1", "old", "text")
        self.clock.advance(4000)

        self.cache.store("session-2", "new", "text")

        assert len(self.cache) == 1
        assert self.cache.lookup("session-2", "new") == "text"

    def test_sweep_returns_removed_count(self):
        """Test explicit sweep."""
        self.cache.store("session-1", "a", "text")
        self.cache.store("session-1", "b", "text")
        self.clock.advance(3600)

        assert self.cache.sweep() == 2
        assert self.cache.sweep() == 0

    def test_clear_session_removes_only_that_session(self):
        """Test per-session invalidation."""
        self.cache.store("session-1", "a", "1a")
        self.cache.store("session-1", "b", "1b")
        self.cache.store("session-2", "a", "2a")

        removed = self.cache.clear_session("session-1")

        assert removed == 2
        assert self.cache.lookup("session-1", "a") is None
        assert self.cache.lookup("session-1", "b") is None
        assert self.cache.lookup("session-2", "a") == "2a"

    def test_clear_unknown_session(self):
        """Test clearing a session with no entries."""
        assert self.cache.clear_session("missing") == 0

    def test_stats_track_hits_and_misses(self):
        """Test hit rate accounting."""
        self.cache.store("session-1", "hello", "text")
        self.cache.lookup("session-1", "hello")
        self.cache.lookup("session-1", "other")

        stats = self.cache.stats()

        assert stats["size"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate_percent"] == 50.0
