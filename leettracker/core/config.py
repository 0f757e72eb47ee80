import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    database_path: str
    timezone_default: str
    leetcode_graphql_url: str
    leetcode_timeout: float
    recent_limit: int
    backfill_days: int
    sync_interval_minutes: int
    session_ttl_seconds: int
    host: str
    port: int
    log_level: str


_def_tz = "America/Los_Angeles"


settings = Settings(
    database_url=os.getenv("DATABASE_URL", "").strip() or None,
    database_path=os.getenv("DATABASE_PATH", "./leettracker.db"),
    timezone_default=os.getenv("DEFAULT_TIMEZONE", _def_tz),
    leetcode_graphql_url=os.getenv("LEETCODE_GRAPHQL_URL", "https://leetcode.com/graphql"),
    leetcode_timeout=float(os.getenv("LEETCODE_TIMEOUT", "10")),
    recent_limit=int(os.getenv("RECENT_LIMIT", "20")),
    backfill_days=int(os.getenv("BACKFILL_DAYS", "30")),
    sync_interval_minutes=int(os.getenv("SYNC_INTERVAL_MINUTES", "10")),
    session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "43200")),
    host=os.getenv("HOST", "0.0.0.0"),
    port=int(os.getenv("PORT", "8000")),
    log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
)
