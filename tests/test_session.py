from leettracker.services.session import VerifiedRoomCache


def test_verification_expires(clock):
    cache = VerifiedRoomCache(ttl_seconds=600, clock=clock)
    cache.mark_verified("s1", "abc123")
    assert cache.is_verified("s1", "abc123")
    assert not cache.is_verified("s2", "abc123")
    assert not cache.is_verified(None, "abc123")

    clock.advance(seconds=601)
    assert not cache.is_verified("s1", "abc123")
    assert len(cache) == 0


def test_clear_and_purge(clock):
    cache = VerifiedRoomCache(ttl_seconds=600, clock=clock)
    cache.mark_verified("s1", "abc123")
    cache.mark_verified("s1", "def456")
    cache.mark_verified("s2", "abc123")

    cache.clear("s1", "abc123")
    assert not cache.is_verified("s1", "abc123")
    assert cache.is_verified("s1", "def456")

    cache.clear("s1")
    assert not cache.is_verified("s1", "def456")

    clock.advance(seconds=700)
    assert cache.purge_expired() == 1
    assert len(cache) == 0


def test_marking_drops_abandoned_sessions(clock):
    cache = VerifiedRoomCache(ttl_seconds=600, clock=clock)
    for i in range(1000):
        cache.mark_verified(f"s{i}", "abc123")
    assert len(cache) == 1000

    clock.advance(days=30)
    cache.mark_verified("fresh", "abc123")
    assert len(cache) == 1
    assert cache.is_verified("fresh", "abc123")
