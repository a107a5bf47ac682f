import asyncio
import logging

import uvicorn

from storefront.config import settings
from storefront.db import engine, init_db


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


async def prepare_db() -> None:
    # Инициализация БД (создание таблиц)
    await init_db()
    # коннекты привязаны к этому event loop: у uvicorn будет свой
    await engine.dispose()


def main() -> None:
    asyncio.run(prepare_db())
    logger.info("Starting storefront API on %s:%s", settings.API_HOST, settings.API_PORT)

    uvicorn.run(
        "storefront.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
