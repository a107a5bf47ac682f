# storefront/redeem/types.py
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from storefront.db.enums import CodeKind, CodeType


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    SQLite отдаёт naive datetime: считаем, что это UTC.
    Aware-значения приводим к UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------------------------------------------------
# Payload: вариант по kind
# -------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class DownloadPayload(_Payload):
    kind: Literal["download"] = "download"
    download_url: str
    file_name: str


class DiscountPayload(_Payload):
    kind: Literal["discount"] = "discount"
    discount_percent: float


class ProductUnlockPayload(_Payload):
    kind: Literal["product_unlock"] = "product_unlock"
    product_id: str


CodePayload = Annotated[
    Union[DownloadPayload, DiscountPayload, ProductUnlockPayload],
    Field(discriminator="kind"),
]


# -------------------------------------------------------------------
# Scope: мастер-код или код конкретного товара
# -------------------------------------------------------------------


class CodeScope(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_master: bool = False
    product_id: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "CodeScope":
        if self.is_master and self.product_id is not None:
            raise ValueError("master code cannot be bound to a product")
        if not self.is_master and not self.product_id:
            raise ValueError("product code requires product_id")
        return self

    @classmethod
    def master(cls) -> "CodeScope":
        return cls(is_master=True)

    @classmethod
    def for_product(cls, product_id: str) -> "CodeScope":
        return cls(is_master=False, product_id=product_id)

    @property
    def code_type(self) -> CodeType:
        return CodeType.master if self.is_master else CodeType.product


class AdminIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    admin_id: str


# -------------------------------------------------------------------
# Запись кода и входные данные для репозитория
# -------------------------------------------------------------------


class RedeemCodeRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    payload: CodePayload
    scope: CodeScope
    is_active: bool = True
    usage_limit: Optional[int] = None
    usage_count: int = 0
    expires_at: Optional[datetime] = None
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("expires_at", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def kind(self) -> CodeKind:
        return CodeKind(self.payload.kind)

    @property
    def code_type(self) -> CodeType:
        return self.scope.code_type


class CodeDraft(BaseModel):
    """Что нужно репозиторию, чтобы создать код. usage_count всегда стартует с 0."""

    model_config = ConfigDict(frozen=True)

    code: str
    payload: CodePayload
    scope: CodeScope
    is_active: bool = True
    usage_limit: Optional[int] = Field(default=None, gt=0)
    expires_at: Optional[datetime] = None
    created_by: str

    @field_validator("expires_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class CodeChanges(BaseModel):
    """
    Частичное обновление настроек кода.
    Менять можно только то, что передано (model_fields_set);
    usage_count тут нет намеренно: его двигает только increment_usage.
    """

    model_config = ConfigDict(frozen=True)

    code: Optional[str] = None
    payload: Optional[CodePayload] = None
    scope: Optional[CodeScope] = None
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = Field(default=None, gt=0)
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class RedemptionEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    redeem_code_id: str
    product_id: str
    redeemed_at: Optional[datetime] = None

    @field_validator("redeemed_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


# -------------------------------------------------------------------
# Решение и результат редимпшена
# -------------------------------------------------------------------


class RejectionReason(str, enum.Enum):
    not_found = "not_found"
    inactive = "inactive"
    expired = "expired"
    usage_limit_reached = "usage_limit_reached"
    scope_mismatch = "scope_mismatch"


REJECTION_MESSAGES = {
    RejectionReason.not_found: "Invalid redeem code. Please check the code and try again.",
    RejectionReason.inactive: "This code is no longer active.",
    RejectionReason.expired: "This code has expired.",
    RejectionReason.usage_limit_reached: "This code has reached its usage limit.",
    RejectionReason.scope_mismatch: (
        "This code is not valid for this product. "
        "Use a master code or the correct product-specific code."
    ),
}

SUCCESS_MESSAGE = "Code redeemed successfully!"


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    reason: Optional[RejectionReason] = None

    @classmethod
    def accept(cls) -> "Decision":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: RejectionReason) -> "Decision":
        return cls(accepted=False, reason=reason)


class DownloadDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    download_url: str
    file_name: str


class RedemptionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    reason: Optional[RejectionReason] = None
    download: Optional[DownloadDescriptor] = None
    code_type: Optional[CodeType] = None

    @classmethod
    def failed(cls, reason: RejectionReason) -> "RedemptionResult":
        return cls(success=False, message=REJECTION_MESSAGES[reason], reason=reason)

    @classmethod
    def succeeded(cls, download: DownloadDescriptor, code_type: CodeType) -> "RedemptionResult":
        return cls(success=True, message=SUCCESS_MESSAGE, download=download, code_type=code_type)
