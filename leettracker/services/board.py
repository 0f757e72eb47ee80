import asyncio
import logging
from typing import Any

from leettracker.core.errors import StoreError
from leettracker.db import repo
from leettracker.services import rooms, streaks
from leettracker.services.timeutils import Clock, date_range, seconds_until_midnight, today

log = logging.getLogger(__name__)


async def get_today_result(user_id: str, tz_name: str, clock: Clock | None = None) -> dict[str, Any] | None:
    """Today's stored row, or None when missing or unreadable."""
    try:
        return await repo.get_daily(user_id, today(tz_name, clock))
    except StoreError as exc:
        log.warning("Could not read today's result for %s: %s", user_id, exc)
        return None


async def _user_card(user: dict[str, Any], tz_name: str, clock: Clock | None) -> dict[str, Any]:
    result = await get_today_result(user["id"], tz_name, clock)
    try:
        user_streaks = await streaks.get_streaks(user["id"], tz_name, clock)
        current, longest = user_streaks.current, user_streaks.longest
    except StoreError as exc:
        log.warning("Could not compute streaks for %s: %s", user["id"], exc)
        current, longest = 0, 0
    solved = bool(result and result["did_solve"])
    return {
        "id": user["id"],
        "username": user["leetcode_username"],
        "display_name": user["display_name"],
        "is_done": solved,
        "solved_at": result["solved_at"] if solved else None,
        "problem_title": result["problem_title"] if solved else None,
        "problem_slug": result["problem_slug"] if solved else None,
        "current_streak": current,
        "longest_streak": longest,
    }


async def room_board(code: str, clock: Clock | None = None) -> dict[str, Any]:
    room = await rooms.get_room(code)
    tz_name = rooms.room_timezone(room)
    users = await repo.list_users(room["id"])
    cards = await asyncio.gather(*(_user_card(u, tz_name, clock) for u in users))
    return {
        "room": rooms.public_view(room),
        "date": today(tz_name, clock),
        "seconds_until_midnight": seconds_until_midnight(tz_name, clock),
        "users": list(cards),
    }


async def room_history(code: str, days: int = 30, clock: Clock | None = None) -> dict[str, Any]:
    room = await rooms.get_room(code)
    tz_name = rooms.room_timezone(room)
    safe_days = max(1, min(int(days or 30), 90))
    dates = date_range(today(tz_name, clock), safe_days)
    users = await repo.list_users(room["id"])

    out = []
    for user in users:
        rows = await repo.list_daily(user["id"], start=dates[-1], end=dates[0])
        row_map = {row["date"]: row for row in rows}
        out.append(
            {
                "id": user["id"],
                "username": user["leetcode_username"],
                "display_name": user["display_name"],
                "days": [
                    {
                        "date": d,
                        "solved": bool(row_map.get(d) and row_map[d]["did_solve"]),
                        "problem_title": row_map[d]["problem_title"] if d in row_map else None,
                    }
                    for d in dates
                ],
            }
        )
    return {"room": rooms.public_view(room), "timezone": tz_name, "users": out}
