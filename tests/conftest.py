import dataclasses
from datetime import datetime, timezone

import pytest

from leettracker.core import config
from leettracker.db import repo
from leettracker.services import leetcode, rooms, sync, users
from leettracker.services.leetcode import Submission
from leettracker.services.timeutils import FixedClock

# 2024-06-15 13:00 in Los Angeles, 2024-06-16 05:00 in Tokyo
NOW = datetime(2024, 6, 15, 20, 0, tzinfo=timezone.utc)


class FakeSource:
    """Stands in for the LeetCode client; per-username canned data or errors."""

    def __init__(self):
        self.submissions: dict[str, list[Submission]] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    def set(self, username: str, submissions: list[Submission]) -> None:
        self.submissions[username] = sorted(submissions, key=lambda s: s.timestamp, reverse=True)

    def fail(self, username: str, exc: Exception) -> None:
        self.errors[username] = exc

    async def fetch_recent(self, username, limit=None, client=None):
        self.calls.append(username)
        if username in self.errors:
            raise self.errors[username]
        return list(self.submissions.get(username, []))


def make_submission(when: datetime, slug: str = "two-sum", title: str | None = None, sub_id: str | None = None):
    ts = int(when.timestamp())
    return Submission(
        id=sub_id or str(ts),
        title=title or slug.replace("-", " ").title(),
        slug=slug,
        timestamp=ts,
    )


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def test_settings(tmp_path, monkeypatch):
    patched = dataclasses.replace(
        config.settings,
        database_url=None,
        database_path=str(tmp_path / "leettracker.db"),
        timezone_default="America/Los_Angeles",
    )
    for module in (repo, rooms, sync, users):
        monkeypatch.setattr(module, "settings", patched)
    return patched


@pytest.fixture
async def db(test_settings):
    await repo.init_db()
    return test_settings


@pytest.fixture
def source(monkeypatch):
    fake = FakeSource()
    monkeypatch.setattr(leetcode, "fetch_recent", fake.fetch_recent)
    return fake
