import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from leettracker.core.config import settings
from leettracker.core.errors import UserNotFound
from leettracker.db import repo
from leettracker.services import leetcode
from leettracker.services.status import format_status, status_from_submissions, todays_submissions
from leettracker.services.timeutils import SYSTEM_CLOCK, Clock, today

log = logging.getLogger(__name__)


@dataclass
class UserOutcome:
    username: str
    success: bool
    # None when the check failed: unknown, not "not solved"
    is_done: bool | None = None
    problem_title: str | None = None
    total_submissions: int = 0
    timezone: str | None = None
    error: str | None = None


@dataclass
class SyncSummary:
    timestamp: datetime
    users_processed: int
    results: list[UserOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[UserOutcome]:
        return [r for r in self.results if not r.success]


def resolve_timezone(user: dict[str, Any], room_timezones: dict[str, str | None]) -> str:
    room_id = user.get("room_id")
    if room_id:
        return room_timezones.get(room_id) or settings.timezone_default
    return settings.timezone_default


async def sync_user(user: dict[str, Any], tz_name: str, clock: Clock | None = None) -> UserOutcome:
    username = user["leetcode_username"]
    try:
        submissions = await leetcode.fetch_recent(username)
        day = today(tz_name, clock)
        status = status_from_submissions(submissions, tz_name, clock)
        await repo.upsert_daily(
            user["id"],
            day,
            status.is_done,
            status.solve_time,
            status.problem_title,
            status.problem_slug,
            status.submission_id,
        )
        today_subs = todays_submissions(submissions, tz_name, clock)
        await repo.upsert_submissions(user["id"], day, today_subs)
    except Exception as exc:
        log.warning("Sync failed for %s: %s", username, exc)
        return UserOutcome(username=username, success=False, timezone=tz_name, error=str(exc))

    log.info("%s", format_status(username, status, tz_name))
    return UserOutcome(
        username=username,
        success=True,
        is_done=status.is_done,
        problem_title=status.problem_title,
        total_submissions=len(today_subs),
        timezone=tz_name,
    )


async def sync_all(room_id: str | None = None, clock: Clock | None = None) -> SyncSummary:
    started = (clock or SYSTEM_CLOCK).now()
    users = await repo.list_users(room_id)
    if not users:
        log.info("No users to sync (room=%s)", room_id)
        return SyncSummary(timestamp=started, users_processed=0)

    room_timezones = await repo.list_room_timezones(u.get("room_id") for u in users)
    results = await asyncio.gather(
        *(sync_user(user, resolve_timezone(user, room_timezones), clock) for user in users)
    )
    summary = SyncSummary(timestamp=started, users_processed=len(users), results=list(results))
    log.info(
        "Sync finished: room=%s users=%d failed=%d",
        room_id,
        summary.users_processed,
        len(summary.failed),
    )
    return summary


async def check_user(user_id: str, clock: Clock | None = None) -> UserOutcome:
    user = await repo.get_user(user_id)
    if not user:
        raise UserNotFound("User not found", {"user_id": user_id})
    room_timezones = await repo.list_room_timezones([user.get("room_id")])
    return await sync_user(user, resolve_timezone(user, room_timezones), clock)
