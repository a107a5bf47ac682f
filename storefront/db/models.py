# storefront/db/models.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from storefront.constants import CODE_MAX_LENGTH, PRODUCT_ID_MAX_LENGTH
from .base import Base
from .enums import CodeKind


USAGE_WITHIN_LIMIT_CONSTRAINT = "ck_redeem_codes_usage_within_limit"


def _new_id() -> str:
    return str(uuid4())


class RedeemCode(Base):
    """
    Код для разблокировки скачивания.

    Либо мастер-код (is_master_code=True, product_id=NULL),
    либо код конкретного товара (is_master_code=False, product_id задан).
    """

    __tablename__ = "redeem_codes"
    __table_args__ = (
        CheckConstraint(
            "(is_master_code AND product_id IS NULL) OR (NOT is_master_code AND product_id IS NOT NULL)",
            name="ck_redeem_codes_scope",
        ),
        CheckConstraint("usage_count >= 0", name="ck_redeem_codes_usage_count"),
        CheckConstraint("usage_limit IS NULL OR usage_limit > 0", name="ck_redeem_codes_usage_limit"),
        CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name=USAGE_WITHIN_LIMIT_CONSTRAINT,
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # хранится уже в верхнем регистре, поэтому unique тут = регистронезависимая уникальность
    code: Mapped[str] = mapped_column(String(CODE_MAX_LENGTH), unique=True, index=True)
    kind: Mapped[CodeKind] = mapped_column(Enum(CodeKind), default=CodeKind.download)
    value: Mapped[Dict[str, Any]] = mapped_column(JSON)

    product_id: Mapped[Optional[str]] = mapped_column(
        String(PRODUCT_ID_MAX_LENGTH),
        nullable=True,
        index=True,
    )
    is_master_code: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_by: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class RedeemCodeRedemption(Base):
    __tablename__ = "redeem_code_redemptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    redeem_code_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("redeem_codes.id", ondelete="CASCADE"),
        index=True,
    )
    product_id: Mapped[str] = mapped_column(String(PRODUCT_ID_MAX_LENGTH))
    redeemed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
