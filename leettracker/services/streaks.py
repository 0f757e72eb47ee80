import asyncio
from dataclasses import dataclass
from typing import Any, Iterable

from leettracker.db import repo
from leettracker.services.timeutils import Clock, next_day, previous_day, today


@dataclass(frozen=True)
class Streaks:
    current: int
    longest: int


def compute_current_streak(rows: Iterable[dict[str, Any]], today_str: str) -> int:
    """Consecutive solved days ending today, or yesterday while today is pending.

    `rows` must be ordered newest first and hold no dates after `today_str`.
    """
    rows = list(rows)
    solved_today = any(r["date"] == today_str and r["did_solve"] for r in rows)
    expected = today_str if solved_today else previous_day(today_str)

    streak = 0
    for row in rows:
        if not solved_today and row["date"] == today_str:
            continue
        if row["date"] != expected:
            break
        if not row["did_solve"]:
            break
        streak += 1
        expected = previous_day(expected)
    return streak


def compute_longest_streak(rows: Iterable[dict[str, Any]]) -> int:
    """Longest run of solved days; a missing date breaks a run like a miss does.

    `rows` must be ordered oldest first.
    """
    best = 0
    run = 0
    last_date: str | None = None
    for row in rows:
        if row["did_solve"]:
            if last_date is not None and row["date"] == next_day(last_date):
                run += 1
            else:
                run = 1
            best = max(best, run)
        else:
            run = 0
        last_date = row["date"]
    return best


async def current_streak(user_id: str, tz_name: str, clock: Clock | None = None) -> int:
    today_str = today(tz_name, clock)
    rows = await repo.list_daily(user_id, end=today_str, descending=True)
    return compute_current_streak(rows, today_str)


async def longest_streak(user_id: str) -> int:
    rows = await repo.list_daily(user_id)
    return compute_longest_streak(rows)


async def get_streaks(user_id: str, tz_name: str, clock: Clock | None = None) -> Streaks:
    current, longest = await asyncio.gather(
        current_streak(user_id, tz_name, clock),
        longest_streak(user_id),
    )
    return Streaks(current=current, longest=longest)
