import asyncio
import logging
import uvicorn

from leettracker.core.config import settings
from leettracker.core.logging import setup_logging
from leettracker.db import repo
from leettracker.services.scheduler import SyncScheduler
from leettracker.services.timeutils import get_zone
from leettracker.web.server import app as web_app

log = logging.getLogger(__name__)


async def run_web() -> None:
    config = uvicorn.Config(web_app, host=settings.host, port=settings.port, log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


async def main() -> None:
    setup_logging()

    # fail fast on a bad DEFAULT_TIMEZONE
    get_zone(settings.timezone_default)

    await repo.init_db()

    scheduler = SyncScheduler()
    scheduler.start()

    try:
        await run_web()
    finally:
        scheduler.shutdown()
        await repo.close_db()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
