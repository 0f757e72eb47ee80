import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Iterator

import aiosqlite
import asyncpg

from leettracker.core.config import settings
from leettracker.core.errors import DuplicateUser, StoreError
from leettracker.services.leetcode import Submission
from leettracker.services.timeutils import to_utc_iso

log = logging.getLogger(__name__)

_pg_pool: asyncpg.Pool | None = None
_DRIVER_ERRORS = (sqlite3.Error, asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _is_postgres() -> bool:
    return bool(settings.database_url)


async def _ensure_pg_pool() -> asyncpg.Pool:
    global _pg_pool
    if _pg_pool is None:
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is not set for Postgres connection")
        _pg_pool = await asyncpg.create_pool(settings.database_url)
    return _pg_pool


async def close_db() -> None:
    global _pg_pool
    if _pg_pool is not None:
        await _pg_pool.close()
        _pg_pool = None


def _param(index: int) -> str:
    return f"${index}" if _is_postgres() else "?"


def _params(count: int, start: int = 1) -> str:
    return ", ".join(_param(i) for i in range(start, start + count))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except _DRIVER_ERRORS as exc:
        log.error("Store error during %s: %s", action, exc)
        raise StoreError(f"{action} failed: {exc}", {"action": action}) from exc


@asynccontextmanager
async def _sqlite() -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(settings.database_path) as db:
        await db.execute("PRAGMA foreign_keys = ON")
        db.row_factory = aiosqlite.Row
        yield db


async def _execute_schema_postgres(schema_sql: str) -> None:
    pool = await _ensure_pg_pool()
    statements = [stmt.strip() for stmt in schema_sql.split(";") if stmt.strip()]
    async with pool.acquire() as conn:
        for stmt in statements:
            await conn.execute(stmt)


async def init_db() -> None:
    schema_path = Path(__file__).with_name("schema.sql")
    with schema_path.open("r", encoding="utf-8") as f:
        schema_sql = f.read()
    tz_column = f"ALTER TABLE rooms ADD COLUMN timezone TEXT NOT NULL DEFAULT '{settings.timezone_default}'"
    with _store_errors("init_db"):
        if _is_postgres():
            await _execute_schema_postgres(schema_sql)
            pool = await _ensure_pg_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT column_name FROM information_schema.columns WHERE table_name = 'rooms'"
                )
                columns = {row["column_name"] for row in rows}
                if "timezone" not in columns:
                    await conn.execute(tz_column)
        else:
            async with _sqlite() as db:
                await db.executescript(schema_sql)
                cursor = await db.execute("PRAGMA table_info(rooms)")
                columns = [row[1] for row in await cursor.fetchall()]
                await cursor.close()
                if "timezone" not in columns:
                    await db.execute(tz_column)
                await db.commit()


async def fetchone(sql: str, params: tuple[Any, ...] = ()) -> dict[str, Any] | None:
    with _store_errors("fetchone"):
        if _is_postgres():
            pool = await _ensure_pg_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(sql, *params)
                return dict(row) if row else None
        async with _sqlite() as db:
            cursor = await db.execute(sql, params)
            row = await cursor.fetchone()
            await cursor.close()
            return dict(row) if row else None


async def fetchall(sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
    with _store_errors("fetchall"):
        if _is_postgres():
            pool = await _ensure_pg_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(sql, *params)
                return [dict(row) for row in rows]
        async with _sqlite() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
            await cursor.close()
            return [dict(row) for row in rows]


async def execute(sql: str, params: tuple[Any, ...] = ()) -> None:
    with _store_errors("execute"):
        await _execute_raw(sql, params)


async def _execute_raw(sql: str, params: tuple[Any, ...]) -> None:
    if _is_postgres():
        pool = await _ensure_pg_pool()
        async with pool.acquire() as conn:
            await conn.execute(sql, *params)
    else:
        async with _sqlite() as db:
            await db.execute(sql, params)
            await db.commit()


async def executemany(sql: str, rows: list[tuple[Any, ...]]) -> None:
    if not rows:
        return
    with _store_errors("executemany"):
        if _is_postgres():
            pool = await _ensure_pg_pool()
            async with pool.acquire() as conn:
                await conn.executemany(sql, rows)
        else:
            async with _sqlite() as db:
                await db.executemany(sql, rows)
                await db.commit()


async def _update_fields(table: str, row_id: str, fields: dict[str, Any]) -> None:
    if not fields:
        return
    keys = list(fields.keys())
    set_clause = ", ".join(f"{k} = {_param(i + 1)}" for i, k in enumerate(keys))
    values = list(fields.values())
    values.append(row_id)
    sql = f"UPDATE {table} SET {set_clause} WHERE id = {_param(len(values))}"
    await execute(sql, tuple(values))


# Rooms


async def create_room(code: str, pin: str | None, tz: str) -> dict[str, Any]:
    room_id = new_id()
    await execute(
        f"INSERT INTO rooms (id, code, pin, timezone, created_at) VALUES ({_params(5)})",
        (room_id, code, pin, tz, _now_iso()),
    )
    room = await get_room(room_id)
    assert room
    return room


async def get_room(room_id: str) -> dict[str, Any] | None:
    return await fetchone(f"SELECT * FROM rooms WHERE id = {_param(1)}", (room_id,))


async def get_room_by_code(code: str) -> dict[str, Any] | None:
    return await fetchone(f"SELECT * FROM rooms WHERE code = {_param(1)}", (code,))


async def code_exists(code: str) -> bool:
    row = await fetchone(f"SELECT 1 AS hit FROM rooms WHERE code = {_param(1)}", (code,))
    return row is not None


async def update_room_fields(room_id: str, **fields: Any) -> None:
    await _update_fields("rooms", room_id, fields)


async def list_room_timezones(room_ids: Iterable[str]) -> dict[str, str | None]:
    ids = sorted({r for r in room_ids if r})
    if not ids:
        return {}
    rows = await fetchall(
        f"SELECT id, timezone FROM rooms WHERE id IN ({_params(len(ids))})",
        tuple(ids),
    )
    return {row["id"]: row["timezone"] for row in rows}


# Users


async def get_user(user_id: str) -> dict[str, Any] | None:
    return await fetchone(f"SELECT * FROM users WHERE id = {_param(1)}", (user_id,))


async def get_user_by_username(username: str, room_id: str | None) -> dict[str, Any] | None:
    if room_id is None:
        return await fetchone(
            f"SELECT * FROM users WHERE leetcode_username = {_param(1)} AND room_id IS NULL",
            (username,),
        )
    return await fetchone(
        f"SELECT * FROM users WHERE leetcode_username = {_param(1)} AND room_id = {_param(2)}",
        (username, room_id),
    )


async def list_users(room_id: str | None = None) -> list[dict[str, Any]]:
    if room_id is None:
        return await fetchall("SELECT * FROM users ORDER BY display_name")
    return await fetchall(
        f"SELECT * FROM users WHERE room_id = {_param(1)} ORDER BY display_name",
        (room_id,),
    )


async def create_user(username: str, display_name: str, room_id: str | None) -> dict[str, Any]:
    # NULL room ids never collide under UNIQUE, so check explicitly
    if await get_user_by_username(username, room_id):
        raise DuplicateUser(
            f"{username} is already being tracked",
            {"username": username, "room_id": room_id},
        )
    user_id = new_id()
    with _store_errors("create_user"):
        try:
            await _execute_raw(
                "INSERT INTO users (id, leetcode_username, display_name, room_id, created_at) "
                f"VALUES ({_params(5)})",
                (user_id, username, display_name, room_id, _now_iso()),
            )
        except (sqlite3.IntegrityError, asyncpg.UniqueViolationError) as exc:
            raise DuplicateUser(
                f"{username} is already being tracked",
                {"username": username, "room_id": room_id},
            ) from exc
    user = await get_user(user_id)
    assert user
    return user


async def update_user_fields(user_id: str, **fields: Any) -> None:
    await _update_fields("users", user_id, fields)


async def delete_user(user_id: str) -> None:
    with _store_errors("delete_user"):
        statements = [
            f"DELETE FROM submissions WHERE user_id = {_param(1)}",
            f"DELETE FROM daily_results WHERE user_id = {_param(1)}",
            f"DELETE FROM users WHERE id = {_param(1)}",
        ]
        if _is_postgres():
            pool = await _ensure_pg_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for sql in statements:
                        await conn.execute(sql, user_id)
        else:
            async with _sqlite() as db:
                for sql in statements:
                    await db.execute(sql, (user_id,))
                await db.commit()


# Daily results


def _daily_row(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    row["did_solve"] = bool(row["did_solve"])
    return row


async def get_daily(user_id: str, date: str) -> dict[str, Any] | None:
    row = await fetchone(
        f"SELECT * FROM daily_results WHERE user_id = {_param(1)} AND date = {_param(2)}",
        (user_id, date),
    )
    return _daily_row(row)


async def list_daily(
    user_id: str,
    start: str | None = None,
    end: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    clauses = [f"user_id = {_param(1)}"]
    values: list[Any] = [user_id]
    if start is not None:
        values.append(start)
        clauses.append(f"date >= {_param(len(values))}")
    if end is not None:
        values.append(end)
        clauses.append(f"date <= {_param(len(values))}")
    sql = f"SELECT * FROM daily_results WHERE {' AND '.join(clauses)} ORDER BY date {'DESC' if descending else 'ASC'}"
    if limit is not None:
        values.append(int(limit))
        sql += f" LIMIT {_param(len(values))}"
    rows = await fetchall(sql, tuple(values))
    return [_daily_row(row) for row in rows]


async def upsert_daily(
    user_id: str,
    date: str,
    solved: bool,
    solve_time: datetime | None,
    title: str | None,
    slug: str | None,
    submission_id: str | None,
) -> None:
    """Insert or update the (user, date) row.

    A negative result never replaces a recorded solve; the WHERE clause on
    the conflict branch enforces the same rule at write time.
    """
    if not solved:
        existing = await get_daily(user_id, date)
        if existing and existing["did_solve"]:
            log.debug("Keeping confirmed solve for %s on %s", user_id, date)
            return
    now = _now_iso()
    await execute(
        "INSERT INTO daily_results (user_id, date, did_solve, solved_at, problem_title, problem_slug, "
        f"submission_id, created_at, updated_at) VALUES ({_params(9)}) "
        "ON CONFLICT (user_id, date) DO UPDATE SET did_solve = excluded.did_solve, "
        "solved_at = excluded.solved_at, problem_title = excluded.problem_title, "
        "problem_slug = excluded.problem_slug, submission_id = excluded.submission_id, "
        "updated_at = excluded.updated_at "
        "WHERE daily_results.did_solve = 0 OR excluded.did_solve = 1",
        (
            user_id,
            date,
            int(bool(solved)),
            to_utc_iso(solve_time) if solved else None,
            title if solved else None,
            slug if solved else None,
            submission_id if solved else None,
            now,
            now,
        ),
    )


# Submission history


async def upsert_submissions(user_id: str, date: str, submissions: list[Submission]) -> None:
    if not submissions:
        return
    now = _now_iso()
    rows = [
        (
            user_id,
            date,
            sub.title,
            sub.slug,
            datetime.fromtimestamp(sub.timestamp, tz=timezone.utc).isoformat(),
            sub.id,
            now,
        )
        for sub in submissions
    ]
    try:
        await executemany(
            "INSERT INTO submissions (user_id, date, problem_title, problem_slug, solved_at, submission_id, created_at) "
            f"VALUES ({_params(7)}) "
            "ON CONFLICT (user_id, date, problem_slug) DO UPDATE SET problem_title = excluded.problem_title, "
            "solved_at = excluded.solved_at, submission_id = excluded.submission_id",
            rows,
        )
    except StoreError as exc:
        log.warning("Failed to save submissions for %s on %s: %s", user_id, date, exc)


async def list_submissions(user_id: str, date: str) -> list[dict[str, Any]]:
    return await fetchall(
        f"SELECT * FROM submissions WHERE user_id = {_param(1)} AND date = {_param(2)} ORDER BY solved_at DESC",
        (user_id, date),
    )
