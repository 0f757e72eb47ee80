import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from leettracker.core.config import settings
from leettracker.core.errors import SourceError, UserNotFound
from leettracker.db import repo
from leettracker.services import leetcode, rooms, sync
from leettracker.services.leetcode import Submission
from leettracker.services.timeutils import Clock, date_range, to_zoned_date, today

log = logging.getLogger(__name__)


def _clean(value: str | None) -> str:
    return (value or "").strip()


def group_by_date(submissions: list[Submission], tz_name: str) -> dict[str, list[Submission]]:
    """Submissions bucketed by local date, each bucket newest first."""
    buckets: dict[str, list[Submission]] = {}
    for sub in submissions:
        buckets.setdefault(to_zoned_date(sub.timestamp, tz_name), []).append(sub)
    return buckets


async def backfill_user(
    user: dict[str, Any],
    submissions: list[Submission],
    tz_name: str,
    days: int | None = None,
    clock: Clock | None = None,
) -> int:
    """Write one daily result per date in the recent window.

    Dates without a submission are recorded as misses. Returns the number
    of solved days written.
    """
    by_date = group_by_date(submissions, tz_name)
    solved_days = 0
    for day in date_range(today(tz_name, clock), days or settings.backfill_days):
        day_subs = by_date.get(day)
        if day_subs:
            latest = day_subs[0]
            await repo.upsert_daily(
                user["id"],
                day,
                True,
                datetime.fromtimestamp(latest.timestamp, tz=timezone.utc),
                latest.title,
                latest.slug,
                latest.id,
            )
            await repo.upsert_submissions(user["id"], day, day_subs)
            solved_days += 1
        else:
            await repo.upsert_daily(user["id"], day, False, None, None, None, None)
    log.info("Backfilled %s: %d solved days", user["leetcode_username"], solved_days)
    return solved_days


@dataclass
class BackfillOutcome:
    username: str
    success: bool
    solved_days: int = 0
    timezone: str | None = None
    error: str | None = None


async def _backfill_one(user: dict[str, Any], tz_name: str, clock: Clock | None) -> BackfillOutcome:
    username = user["leetcode_username"]
    try:
        submissions = await leetcode.fetch_recent(username)
        solved_days = await backfill_user(user, submissions, tz_name, clock=clock)
    except Exception as exc:
        log.warning("Backfill failed for %s: %s", username, exc)
        return BackfillOutcome(username=username, success=False, timezone=tz_name, error=str(exc))
    return BackfillOutcome(username=username, success=True, solved_days=solved_days, timezone=tz_name)


async def backfill_all(room_id: str | None = None, clock: Clock | None = None) -> list[BackfillOutcome]:
    """Re-run the recent-window backfill for every tracked user.

    Used to recover days missed while syncing was down. Each user is fetched
    and written independently; one failure does not stop the others.
    """
    tracked = await repo.list_users(room_id)
    if not tracked:
        return []
    room_timezones = await repo.list_room_timezones(u.get("room_id") for u in tracked)
    results = await asyncio.gather(
        *(_backfill_one(user, sync.resolve_timezone(user, room_timezones), clock) for user in tracked)
    )
    log.info(
        "Backfill finished: room=%s users=%d failed=%d",
        room_id,
        len(results),
        sum(not r.success for r in results),
    )
    return list(results)


async def register_user(
    username: str,
    display_name: str,
    room_code: str | None = None,
    clock: Clock | None = None,
) -> dict[str, Any]:
    username = _clean(username)
    display_name = _clean(display_name)
    if not username or not display_name:
        raise ValueError("Username and display name are required")

    room = await rooms.get_room(room_code) if room_code else None
    tz_name = rooms.room_timezone(room)

    try:
        submissions = await leetcode.fetch_recent(username)
    except SourceError as exc:
        raise UserNotFound(
            "Could not find LeetCode user. Please check the username.",
            {"username": username},
        ) from exc

    user = await repo.create_user(username, display_name, room["id"] if room else None)
    log.info("Registered %s (%s) in room %s", username, display_name, room["code"] if room else None)

    try:
        await backfill_user(user, submissions, tz_name, clock=clock)
    except Exception as exc:
        # the next sync fills today in; older days stay empty
        log.error("Initial backfill failed for %s: %s", username, exc)
    return user


async def _find_user(username: str, room_code: str | None) -> dict[str, Any]:
    room = await rooms.get_room(room_code) if room_code else None
    user = await repo.get_user_by_username(_clean(username), room["id"] if room else None)
    if not user:
        raise UserNotFound("User not found", {"username": username, "room": room_code})
    return user


async def remove_user(username: str, room_code: str | None = None) -> None:
    user = await _find_user(username, room_code)
    await repo.delete_user(user["id"])
    log.info("Removed %s", user["leetcode_username"])


async def rename_user(username: str, display_name: str, room_code: str | None = None) -> dict[str, Any]:
    display_name = _clean(display_name)
    if not display_name:
        raise ValueError("Username and display name are required")
    user = await _find_user(username, room_code)
    await repo.update_user_fields(user["id"], display_name=display_name)
    return {**user, "display_name": display_name}
