from dataclasses import dataclass
from datetime import datetime, timezone

from leettracker.services import leetcode
from leettracker.services.leetcode import Submission
from leettracker.services.timeutils import Clock, format_time, is_today, get_zone


@dataclass(frozen=True)
class DailyStatus:
    is_done: bool
    solve_time: datetime | None = None
    problem_title: str | None = None
    problem_slug: str | None = None
    submission_id: str | None = None


NOT_DONE = DailyStatus(is_done=False)


def todays_submissions(
    submissions: list[Submission],
    tz_name: str,
    clock: Clock | None = None,
) -> list[Submission]:
    get_zone(tz_name)
    return [s for s in submissions if is_today(s.timestamp, tz_name, clock)]


def status_from_submissions(
    submissions: list[Submission],
    tz_name: str,
    clock: Clock | None = None,
) -> DailyStatus:
    today_subs = todays_submissions(submissions, tz_name, clock)
    if not today_subs:
        return NOT_DONE
    # newest first, so the head is the latest solve of the day
    latest = today_subs[0]
    return DailyStatus(
        is_done=True,
        solve_time=datetime.fromtimestamp(latest.timestamp, tz=timezone.utc),
        problem_title=latest.title,
        problem_slug=latest.slug,
        submission_id=latest.id,
    )


async def evaluate(username: str, tz_name: str, clock: Clock | None = None) -> DailyStatus:
    """Whether `username` solved a problem today in `tz_name`.

    One-shot entry point that fetches on every call. The sync orchestrator
    fetches once per user and applies `status_from_submissions` and
    `todays_submissions` to that list instead.

    Source failures propagate to the caller; this never reports "not solved"
    for a profile it could not read.
    """
    submissions = await leetcode.fetch_recent(username)
    return status_from_submissions(submissions, tz_name, clock)


async def evaluate_all(username: str, tz_name: str, clock: Clock | None = None) -> list[Submission]:
    """Every submission `username` made today in `tz_name`, newest first."""
    submissions = await leetcode.fetch_recent(username)
    return todays_submissions(submissions, tz_name, clock)


def format_status(username: str, status: DailyStatus, tz_name: str) -> str:
    if not status.is_done:
        return f"{username}: not solved today"
    when = "unknown time"
    if status.solve_time is not None:
        when = format_time(status.solve_time.astimezone(get_zone(tz_name)))
    return f"{username}: solved at {when} - {status.problem_title}"
