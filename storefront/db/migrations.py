# storefront/db/migrations.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .base import Base
from .session import engine


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(bind: Optional[AsyncEngine] = None) -> None:
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
