# storefront/redeem/admin.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from storefront.constants import CODE_MAX_LENGTH, PRODUCT_ID_MAX_LENGTH
from storefront.db.enums import CodeKind

from .codes import generate_code, normalize_code
from .errors import CodeValidationError, DuplicateCodeError, UsageLimitBelowCountError
from .repository import RedeemCodeRepository
from .types import (
    AdminIdentity,
    CodeChanges,
    CodeDraft,
    CodePayload,
    CodeScope,
    RedeemCodeRecord,
    RedemptionEntry,
)

logger = logging.getLogger(__name__)

_payload_adapter: TypeAdapter = TypeAdapter(CodePayload)

# какие поля value обязательны для каждого типа кода
REQUIRED_VALUE_FIELDS = {
    CodeKind.download: ("downloadUrl", "fileName"),
    CodeKind.discount: ("discountPercent",),
    CodeKind.product_unlock: ("productId",),
}

# пока выдавать можно только коды на скачивание
ISSUABLE_KINDS = {CodeKind.download}


class CodeInput(BaseModel):
    """Тело запроса на создание кода (camelCase, как у фронта)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    code: str = ""
    type: CodeKind = CodeKind.download
    value: Dict[str, Any] = Field(default_factory=dict)
    product_id: Optional[str] = None
    is_master_code: bool = False
    is_active: bool = True
    usage_limit: Optional[int] = None
    expires_at: Optional[datetime] = None


class CodeUpdateInput(BaseModel):
    """Частичное обновление: учитываются только переданные поля."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    code: Optional[str] = None
    type: Optional[CodeKind] = None
    value: Optional[Dict[str, Any]] = None
    product_id: Optional[str] = None
    is_master_code: Optional[bool] = None
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = None
    expires_at: Optional[datetime] = None


# null для этих полей при обновлении означает "не менять"
_NON_NULLABLE_UPDATE_FIELDS = ("code", "type", "value", "is_master_code", "is_active")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _build_payload(kind: CodeKind, value: Dict[str, Any]) -> Tuple[Optional[CodePayload], Dict[str, str]]:
    errors: Dict[str, str] = {}

    for key in REQUIRED_VALUE_FIELDS[kind]:
        if _is_blank(value.get(key)):
            errors[f"value.{key}"] = "is required"
    if errors:
        return None, errors

    cleaned = {k: (v.strip() if isinstance(v, str) else v) for k, v in value.items()}
    try:
        payload = _payload_adapter.validate_python({**cleaned, "kind": kind.value})
    except ValidationError as e:
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"][1:]) or "value"
            errors[f"value.{loc}"] = err["msg"]
        return None, errors

    if kind == CodeKind.discount and not (0 < payload.discount_percent <= 100):
        errors["value.discountPercent"] = "must be in (0, 100]"
        return None, errors

    return payload, errors


def _validate(data: CodeInput, *, usage_count: int = 0) -> Tuple[str, CodePayload, CodeScope]:
    """
    Проверяет всё сразу и бросает CodeValidationError со списком всех плохих полей.
    """
    errors: Dict[str, str] = {}

    code = normalize_code(data.code)
    if not code:
        errors["code"] = "Code is required"
    elif len(code) > CODE_MAX_LENGTH:
        errors["code"] = f"Code is too long (max {CODE_MAX_LENGTH})"

    product_id = (data.product_id or "").strip() or None
    if data.is_master_code and product_id is not None:
        errors["productId"] = "Master codes cannot be bound to a product"
    elif not data.is_master_code and product_id is None:
        errors["productId"] = "Either productId or isMasterCode=true is required"
    elif product_id is not None and len(product_id) > PRODUCT_ID_MAX_LENGTH:
        errors["productId"] = f"productId is too long (max {PRODUCT_ID_MAX_LENGTH})"

    if data.usage_limit is not None:
        if data.usage_limit <= 0:
            errors["usageLimit"] = "Usage limit must be a positive integer"
        elif data.usage_limit < usage_count:
            errors["usageLimit"] = f"Usage limit cannot be lower than the current usage count ({usage_count})"

    payload, payload_errors = _build_payload(data.type, data.value or {})
    errors.update(payload_errors)

    if data.type not in ISSUABLE_KINDS:
        errors["type"] = f"'{data.type.value}' codes are reserved and cannot be issued yet"

    if errors:
        raise CodeValidationError(errors)

    scope = CodeScope.master() if data.is_master_code else CodeScope.for_product(product_id)
    return code, payload, scope


def _input_from_record(record: RedeemCodeRecord) -> CodeInput:
    return CodeInput(
        code=record.code,
        type=record.kind,
        value=record.payload.model_dump(by_alias=True, exclude={"kind"}),
        product_id=record.scope.product_id,
        is_master_code=record.scope.is_master,
        is_active=record.is_active,
        usage_limit=record.usage_limit,
        expires_at=record.expires_at,
    )


class AdminCodeManager:
    """
    Управление кодами из админки. Все методы требуют AdminIdentity:
    её выдаёт слой авторизации, здесь она только фиксируется в created_by и логах.
    """

    def __init__(self, repository: RedeemCodeRepository) -> None:
        self._repository = repository

    # -------------------------------------------------------------------
    # Чтение
    # -------------------------------------------------------------------

    async def list_all(self, admin: AdminIdentity) -> List[RedeemCodeRecord]:
        return await self._repository.list_all()

    async def list_by_product(self, admin: AdminIdentity, product_id: str) -> List[RedeemCodeRecord]:
        return await self._repository.find_by_product((product_id or "").strip())

    async def list_master(self, admin: AdminIdentity) -> List[RedeemCodeRecord]:
        return await self._repository.find_master_codes()

    async def get(self, admin: AdminIdentity, code_id: str) -> Optional[RedeemCodeRecord]:
        return await self._repository.get(code_id)

    async def get_by_code(self, admin: AdminIdentity, code: str) -> Optional[RedeemCodeRecord]:
        normalized = normalize_code(code)
        if not normalized:
            return None
        return await self._repository.find_by_code(normalized)

    async def list_redemptions(self, admin: AdminIdentity, code_id: str) -> Optional[List[RedemptionEntry]]:
        if await self._repository.get(code_id) is None:
            return None
        return await self._repository.list_redemptions(code_id)

    @staticmethod
    def suggest_code(prefix: str = "") -> str:
        return generate_code(prefix=prefix)

    # -------------------------------------------------------------------
    # Изменение
    # -------------------------------------------------------------------

    async def create(self, admin: AdminIdentity, data: CodeInput) -> RedeemCodeRecord:
        code, payload, scope = _validate(data)

        draft = CodeDraft(
            code=code,
            payload=payload,
            scope=scope,
            is_active=data.is_active,
            usage_limit=data.usage_limit,
            expires_at=data.expires_at,
            created_by=admin.admin_id,
        )
        try:
            record = await self._repository.create(draft)
        except DuplicateCodeError as e:
            raise CodeValidationError({"code": f"Code '{e.code}' already exists"})

        logger.info(
            "Admin %s created redeem code %s (%s)",
            admin.admin_id,
            record.code,
            record.code_type.value,
        )
        return record

    async def update(
        self,
        admin: AdminIdentity,
        code_id: str,
        data: CodeUpdateInput,
    ) -> Optional[RedeemCodeRecord]:
        current = await self._repository.get(code_id)
        if current is None:
            return None

        patch = data.model_dump(exclude_unset=True)
        for key in _NON_NULLABLE_UPDATE_FIELDS:
            if key in patch and patch[key] is None:
                patch.pop(key)

        # проверяем итоговую запись целиком, а не только изменённые поля
        merged = _input_from_record(current).model_copy(update=patch)
        code, payload, scope = _validate(merged, usage_count=current.usage_count)

        changes = CodeChanges(
            code=code,
            payload=payload,
            scope=scope,
            is_active=merged.is_active,
            usage_limit=merged.usage_limit,
            expires_at=merged.expires_at,
        )
        try:
            updated = await self._repository.update(code_id, changes)
        except DuplicateCodeError as e:
            raise CodeValidationError({"code": f"Code '{e.code}' already exists"})
        except UsageLimitBelowCountError as e:
            # пока правили, код успели применить ещё раз
            raise CodeValidationError({"usageLimit": str(e)})

        if updated is not None:
            logger.info("Admin %s updated redeem code %s", admin.admin_id, updated.code)
        return updated

    async def delete(self, admin: AdminIdentity, code_id: str) -> bool:
        ok = await self._repository.delete(code_id)
        if ok:
            logger.info("Admin %s deleted redeem code id=%s", admin.admin_id, code_id)
        return ok
