# storefront/db/__init__.py
from __future__ import annotations

from .session import engine, async_session, build_engine, build_sessionmaker
from .base import Base
from .enums import CodeKind, CodeType
from .models import RedeemCode, RedeemCodeRedemption
from .migrations import init_db, drop_db

__all__ = [
    # engine/session/base
    "engine",
    "async_session",
    "build_engine",
    "build_sessionmaker",
    "Base",
    # enums
    "CodeKind",
    "CodeType",
    # models
    "RedeemCode",
    "RedeemCodeRedemption",
    # migrations
    "init_db",
    "drop_db",
]
