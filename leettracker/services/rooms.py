import hmac
import logging
import secrets
import string
from typing import Any

from leettracker.core.config import settings
from leettracker.core.errors import RoomNotFound, StoreError
from leettracker.db import repo
from leettracker.services.timeutils import get_zone

log = logging.getLogger(__name__)

CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_lowercase + string.digits
_MAX_CODE_ATTEMPTS = 10


def generate_room_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _clean_pin(pin: Any) -> str | None:
    if pin is None:
        return None
    if not isinstance(pin, str):
        raise ValueError("PIN must be a string")
    return pin.strip() or None


def room_timezone(room: dict[str, Any] | None) -> str:
    if room and room.get("timezone"):
        return room["timezone"]
    return settings.timezone_default


async def create_room(pin: Any = None, tz_name: str | None = None) -> dict[str, Any]:
    pin = _clean_pin(pin)
    tz_name = tz_name or settings.timezone_default
    get_zone(tz_name)

    code = generate_room_code()
    for _ in range(_MAX_CODE_ATTEMPTS):
        if not await repo.code_exists(code):
            break
        code = generate_room_code()
    else:
        raise StoreError("Could not allocate a unique room code")

    room = await repo.create_room(code, pin, tz_name)
    log.info("Created room %s (tz=%s, pin=%s)", code, tz_name, bool(room["pin"]))
    return room


async def get_room(code: str) -> dict[str, Any]:
    room = await repo.get_room_by_code((code or "").strip().lower())
    if not room:
        raise RoomNotFound("Room not found", {"code": code})
    return room


def public_view(room: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": room["id"],
        "code": room["code"],
        "timezone": room_timezone(room),
        "created_at": room["created_at"],
        "has_pin": bool(room.get("pin")),
    }


async def room_info(code: str) -> dict[str, Any]:
    return public_view(await get_room(code))


def pin_matches(room: dict[str, Any], candidate: Any) -> bool:
    expected = room.get("pin")
    if not expected:
        return True
    if not isinstance(candidate, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))


async def verify_pin(code: str, candidate: Any) -> bool:
    room = await get_room(code)
    valid = pin_matches(room, candidate)
    if not valid:
        log.info("PIN rejected for room %s", room["code"])
    return valid


async def update_timezone(code: str, tz_name: str) -> dict[str, Any]:
    get_zone(tz_name)
    room = await get_room(code)
    await repo.update_room_fields(room["id"], timezone=tz_name)
    return {**room, "timezone": tz_name}


async def update_pin(code: str, pin: Any) -> dict[str, Any]:
    room = await get_room(code)
    cleaned = _clean_pin(pin)
    await repo.update_room_fields(room["id"], pin=cleaned)
    return {**room, "pin": cleaned}
