import json

import httpx
import pytest

from leettracker.core.errors import SourceProtocolError, SourceUnavailable
from leettracker.services.leetcode import Submission, fetch_recent, parse_response


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _body(records):
    return {"data": {"recentAcSubmissionList": records}}


async def test_fetch_recent_parses_and_orders_newest_first():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["payload"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=_body(
                [
                    {"id": "1", "title": "Two Sum", "titleSlug": "two-sum", "timestamp": "1718400000"},
                    {"id": 2, "title": "Add Two Numbers", "titleSlug": "add-two-numbers", "timestamp": 1718480000},
                ]
            ),
        )

    async with _client(handler) as client:
        subs = await fetch_recent("alice", client=client)

    assert seen["payload"]["variables"] == {"username": "alice", "limit": 20}
    assert subs == [
        Submission(id="2", title="Add Two Numbers", slug="add-two-numbers", timestamp=1718480000),
        Submission(id="1", title="Two Sum", slug="two-sum", timestamp=1718400000),
    ]


async def test_non_2xx_is_unavailable():
    async with _client(lambda request: httpx.Response(503)) as client:
        with pytest.raises(SourceUnavailable) as info:
            await fetch_recent("alice", client=client)
    assert info.value.details["status_code"] == 503


async def test_transport_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(SourceUnavailable):
            await fetch_recent("alice", client=client)


async def test_timeout_is_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(SourceUnavailable):
            await fetch_recent("alice", client=client)


async def test_invalid_json_is_protocol_error():
    async with _client(lambda request: httpx.Response(200, content=b"<html>")) as client:
        with pytest.raises(SourceProtocolError):
            await fetch_recent("alice", client=client)


async def test_graphql_errors_are_protocol_error():
    body = {"errors": [{"message": "That user does not exist."}], "data": None}
    async with _client(lambda request: httpx.Response(200, json=body)) as client:
        with pytest.raises(SourceProtocolError):
            await fetch_recent("ghost", client=client)


def test_parse_response_rejects_malformed_records():
    with pytest.raises(SourceProtocolError):
        parse_response(_body([{"id": "1", "title": "Two Sum", "timestamp": "1"}]))
    with pytest.raises(SourceProtocolError):
        parse_response(_body([{"id": "1", "title": "Two Sum", "titleSlug": "two-sum", "timestamp": "soon"}]))
    with pytest.raises(SourceProtocolError):
        parse_response(_body({"id": "1"}))
    with pytest.raises(SourceProtocolError):
        parse_response([])


def test_parse_response_null_list_is_empty():
    assert parse_response(_body(None)) == []


def test_parse_response_rejects_out_of_range_timestamps():
    for ts in ("99999999999999", -1, 4102444800):
        with pytest.raises(SourceProtocolError):
            parse_response(_body([{"id": "1", "title": "Two Sum", "titleSlug": "two-sum", "timestamp": ts}]))


async def test_fetch_recent_out_of_range_timestamp_is_protocol_error():
    body = _body([{"id": "1", "title": "Two Sum", "titleSlug": "two-sum", "timestamp": "99999999999999"}])
    async with _client(lambda request: httpx.Response(200, json=body)) as client:
        with pytest.raises(SourceProtocolError):
            await fetch_recent("alice", client=client)
