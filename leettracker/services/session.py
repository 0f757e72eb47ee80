from leettracker.services.timeutils import SYSTEM_CLOCK, Clock


class VerifiedRoomCache:
    """Rooms whose PIN a session has entered, remembered for `ttl_seconds`."""

    def __init__(self, ttl_seconds: int, clock: Clock | None = None):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or SYSTEM_CLOCK
        self._entries: dict[tuple[str, str], float] = {}

    def _now(self) -> float:
        return self.clock.now().timestamp()

    def mark_verified(self, session_id: str, code: str) -> None:
        # entries for sessions that never come back are dropped here
        self.purge_expired()
        self._entries[(session_id, code)] = self._now()

    def is_verified(self, session_id: str | None, code: str) -> bool:
        if not session_id:
            return False
        key = (session_id, code)
        ts = self._entries.get(key)
        if ts is None:
            return False
        if self._now() - ts > self.ttl_seconds:
            self._entries.pop(key, None)
            return False
        return True

    def clear(self, session_id: str, code: str | None = None) -> None:
        if code is not None:
            self._entries.pop((session_id, code), None)
            return
        for key in [k for k in self._entries if k[0] == session_id]:
            del self._entries[key]

    def purge_expired(self) -> int:
        now = self._now()
        expired = [k for k, ts in self._entries.items() if now - ts > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
