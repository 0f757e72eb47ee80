import logging
from dataclasses import dataclass
from typing import Any

import httpx

from leettracker.core.config import settings
from leettracker.core.errors import SourceProtocolError, SourceUnavailable

log = logging.getLogger(__name__)

QUERY = """
query recentAcSubmissions($username: String!, $limit: Int!) {
  recentAcSubmissionList(username: $username, limit: $limit) {
    id
    title
    titleSlug
    timestamp
  }
}
"""

# 2100-01-01T00:00:00Z
MAX_TIMESTAMP = 4102444800

_HEADERS = {
    "Content-Type": "application/json",
    "Referer": "https://leetcode.com",
    "User-Agent": "LeetTracker",
}


@dataclass(frozen=True)
class Submission:
    id: str
    title: str
    slug: str
    timestamp: int


def _parse_submission(raw: Any) -> Submission:
    if not isinstance(raw, dict):
        raise SourceProtocolError("Submission record is not an object", {"record": raw})
    sub_id = raw.get("id")
    title = raw.get("title")
    slug = raw.get("titleSlug")
    ts = raw.get("timestamp")
    if sub_id is None or not isinstance(title, str) or not isinstance(slug, str) or not slug:
        raise SourceProtocolError("Submission record is missing fields", {"record": raw})
    try:
        timestamp = int(ts)
    except (TypeError, ValueError) as exc:
        raise SourceProtocolError("Submission timestamp is not an integer", {"record": raw}) from exc
    if not 0 <= timestamp < MAX_TIMESTAMP:
        raise SourceProtocolError("Submission timestamp is out of range", {"record": raw})
    return Submission(id=str(sub_id), title=title, slug=slug, timestamp=timestamp)


def parse_response(data: Any) -> list[Submission]:
    """Validate a GraphQL response body and return submissions newest first."""
    if not isinstance(data, dict):
        raise SourceProtocolError("Response body is not an object")
    if data.get("errors"):
        raise SourceProtocolError("GraphQL errors", {"errors": data["errors"]})
    payload = data.get("data")
    if not isinstance(payload, dict):
        raise SourceProtocolError("Response has no data object")
    records = payload.get("recentAcSubmissionList")
    if records is None:
        return []
    if not isinstance(records, list):
        raise SourceProtocolError("recentAcSubmissionList is not a list")
    submissions = [_parse_submission(r) for r in records]
    submissions.sort(key=lambda s: s.timestamp, reverse=True)
    return submissions


async def _post(client: httpx.AsyncClient, payload: dict) -> Any:
    try:
        resp = await client.post(settings.leetcode_graphql_url, json=payload, headers=_HEADERS)
        resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SourceUnavailable(
            f"LeetCode API returned {exc.response.status_code}",
            {"status_code": exc.response.status_code},
        ) from exc
    except httpx.HTTPError as exc:
        raise SourceUnavailable(f"LeetCode API request failed: {exc!r}") from exc
    try:
        return resp.json()
    except ValueError as exc:
        raise SourceProtocolError("LeetCode API returned invalid JSON") from exc


async def fetch_recent(
    username: str,
    limit: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[Submission]:
    payload = {
        "query": QUERY,
        "variables": {"username": username, "limit": limit or settings.recent_limit},
    }
    try:
        if client is not None:
            data = await _post(client, payload)
        else:
            async with httpx.AsyncClient(timeout=settings.leetcode_timeout) as own_client:
                data = await _post(own_client, payload)
        return parse_response(data)
    except (SourceUnavailable, SourceProtocolError) as exc:
        log.warning("LeetCode API error for %s: %s", username, exc)
        raise
