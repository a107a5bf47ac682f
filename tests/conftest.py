from __future__ import annotations

import os

# до импорта storefront: settings читаются при импорте
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./storefront-test.db")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from storefront.db import build_engine, build_sessionmaker, init_db
from storefront.db.repositories.redeem_codes import SqlRedeemCodeRepository
from storefront.redeem import (
    AdminIdentity,
    CodeDraft,
    CodeScope,
    DownloadPayload,
    InMemoryRedeemCodeRepository,
)

ADMIN_TOKEN = "test-admin-token"

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def shift(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_draft(
    code: str = "SAVE20",
    *,
    product_id: Optional[str] = None,
    usage_limit: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    is_active: bool = True,
    download_url: str = "https://cdn.example.com/files/pack.zip",
    file_name: str = "pack.zip",
) -> CodeDraft:
    scope = CodeScope.for_product(product_id) if product_id else CodeScope.master()
    return CodeDraft(
        code=code,
        payload=DownloadPayload(download_url=download_url, file_name=file_name),
        scope=scope,
        is_active=is_active,
        usage_limit=usage_limit,
        expires_at=expires_at,
        created_by="admin-1",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def admin() -> AdminIdentity:
    return AdminIdentity(admin_id="admin-1")


@pytest.fixture
def memory_repository() -> InMemoryRedeemCodeRepository:
    return InMemoryRedeemCodeRepository()


@pytest.fixture(params=["memory", "sql"])
async def repository(request, tmp_path):
    if request.param == "memory":
        yield InMemoryRedeemCodeRepository()
        return

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'redeem.db'}")
    await init_db(engine)
    try:
        yield SqlRedeemCodeRepository(build_sessionmaker(engine))
    finally:
        await engine.dispose()
