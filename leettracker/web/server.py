import logging
import secrets
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from leettracker.core.config import settings
from leettracker.core.errors import (
    DuplicateUser,
    InvalidTimezone,
    RoomNotFound,
    SourceError,
    StoreError,
    TrackerError,
    UserNotFound,
)
from leettracker.db import repo
from leettracker.services import board, rooms, sync, users
from leettracker.services.session import VerifiedRoomCache

log = logging.getLogger(__name__)

SESSION_COOKIE = "session_id"

app = FastAPI(title="LeetTracker")
session_cache = VerifiedRoomCache(settings.session_ttl_seconds)

_STATUS_CODES: dict[type[TrackerError], int] = {
    InvalidTimezone: 400,
    RoomNotFound: 404,
    UserNotFound: 404,
    DuplicateUser: 409,
    SourceError: 502,
    StoreError: 500,
}


@app.on_event("startup")
async def startup() -> None:
    await repo.init_db()


@app.on_event("shutdown")
async def shutdown() -> None:
    await repo.close_db()


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    status_code = 500
    for cls in type(exc).__mro__:
        if cls in _STATUS_CODES:
            status_code = _STATUS_CODES[cls]
            break
    if status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": exc.message}, status_code=status_code)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _session_id(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE)


def _require_access(request: Request, room: dict[str, Any]) -> None:
    if not room.get("pin"):
        return
    if not session_cache.is_verified(_session_id(request), room["code"]):
        raise HTTPException(status_code=403, detail="PIN verification required")


@app.get("/api/sync")
async def api_sync(roomId: str | None = None):
    summary = await sync.sync_all(roomId or None)
    if not summary.users_processed:
        return JSONResponse({"message": "No users to sync.", "users_processed": 0, "results": []})
    return JSONResponse(
        {
            "timestamp": summary.timestamp.isoformat(),
            "users_processed": summary.users_processed,
            "results": [asdict(r) for r in summary.results],
        }
    )


@app.get("/api/backfill")
async def api_backfill(roomId: str | None = None):
    results = await users.backfill_all(roomId or None)
    if not results:
        return JSONResponse({"message": "No users configured yet.", "users_processed": 0, "results": []})
    return JSONResponse({"users_processed": len(results), "results": [asdict(r) for r in results]})


@app.post("/api/rooms")
async def api_create_room(request: Request):
    payload = await _json_body(request)
    try:
        room = await rooms.create_room(payload.get("pin"), payload.get("timezone"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    response = JSONResponse({"success": True, "room": rooms.public_view(room)})
    if room.get("pin"):
        # the creator does not have to type the PIN they just chose
        session_id = _session_id(request) or secrets.token_urlsafe(16)
        session_cache.mark_verified(session_id, room["code"])
        response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response


@app.get("/api/rooms/{code}")
async def api_get_room(code: str):
    return JSONResponse({"success": True, "room": await rooms.room_info(code)})


@app.post("/api/rooms/{code}/verify")
async def api_verify_room(code: str, request: Request):
    room = await rooms.get_room(code)
    payload = await _json_body(request)
    valid = await rooms.verify_pin(room["code"], payload.get("pin"))
    response = JSONResponse({"success": True, "valid": valid})
    if valid:
        session_id = _session_id(request) or secrets.token_urlsafe(16)
        session_cache.mark_verified(session_id, room["code"])
        response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response


@app.patch("/api/rooms/{code}")
async def api_update_room(code: str, request: Request):
    room = await rooms.get_room(code)
    _require_access(request, room)
    payload = await _json_body(request)
    if "timezone" in payload:
        room = await rooms.update_timezone(code, payload["timezone"])
    if "pin" in payload:
        try:
            room = await rooms.update_pin(code, payload["pin"])
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"success": True, "room": rooms.public_view(room)})


@app.get("/api/rooms/{code}/board")
async def api_room_board(code: str):
    return JSONResponse(await board.room_board(code))


@app.get("/api/rooms/{code}/history")
async def api_room_history(code: str, days: int = 30):
    return JSONResponse(await board.room_history(code, days))


@app.post("/api/users")
async def api_add_user(request: Request):
    payload = await _json_body(request)
    room_code = payload.get("roomCode")
    if room_code:
        _require_access(request, await rooms.get_room(room_code))
    try:
        user = await users.register_user(
            payload.get("username", ""),
            payload.get("displayName", ""),
            room_code,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"success": True, "user": user})


@app.patch("/api/users")
async def api_rename_user(request: Request):
    payload = await _json_body(request)
    room_code = payload.get("roomCode")
    if not payload.get("username"):
        raise HTTPException(status_code=400, detail="Username and display name are required")
    if room_code:
        _require_access(request, await rooms.get_room(room_code))
    try:
        user = await users.rename_user(payload["username"], payload.get("displayName", ""), room_code)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"success": True, "user": user})


@app.delete("/api/users")
async def api_remove_user(request: Request, username: str | None = None, roomCode: str | None = None):
    if not username:
        raise HTTPException(status_code=400, detail="Username is required")
    if roomCode:
        _require_access(request, await rooms.get_room(roomCode))
    await users.remove_user(username, roomCode)
    return JSONResponse({"success": True})


@app.post("/api/users/{user_id}/check")
async def api_check_user(user_id: str):
    outcome = await sync.check_user(user_id)
    return JSONResponse(asdict(outcome))


@app.get("/healthz")
async def healthz():
    db_ok = True
    try:
        await repo.fetchone("SELECT 1")
    except StoreError:
        db_ok = False
    return JSONResponse(
        {
            "ok": db_ok,
            "db": db_ok,
            "time": datetime.now(timezone.utc).isoformat(),
        }
    )
