from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from storefront.config import settings


def build_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # у sqlite свой пул, параметры пула ему не передаём
        return create_async_engine(url, echo=False)

    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,   # проверять коннект перед выдачей из пула
        pool_recycle=1800,    # пересоздавать коннекты раз в 30 минут
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        expire_on_commit=False,
        class_=AsyncSession,
    )


engine = build_engine(settings.DATABASE_URL)
async_session = build_sessionmaker(engine)
