# storefront/redeem/memory.py
from __future__ import annotations

import asyncio
import itertools
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from .codes import normalize_code
from .errors import DuplicateCodeError, UsageLimitBelowCountError
from .repository import RedeemCodeRepository
from .types import (
    CodeChanges,
    CodeDraft,
    RedeemCodeRecord,
    RedemptionEntry,
    utcnow,
)


class InMemoryRedeemCodeRepository(RedeemCodeRepository):
    """
    Хранилище в памяти процесса.

    Все изменения идут под одним asyncio.Lock, так что проверка лимита и
    инкремент в increment_usage неделимы относительно других вызовов.
    Записи иммутабельные: наружу отдаём их как есть.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._codes: Dict[str, RedeemCodeRecord] = {}
        self._ids_by_code: Dict[str, str] = {}
        self._redemptions: List[RedemptionEntry] = []
        self._redemption_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def get(self, code_id: str) -> Optional[RedeemCodeRecord]:
        return self._codes.get(code_id)

    async def find_by_code(self, code: str) -> Optional[RedeemCodeRecord]:
        code_id = self._ids_by_code.get(normalize_code(code))
        if code_id is None:
            return None
        return self._codes.get(code_id)

    async def find_by_product(self, product_id: str) -> List[RedeemCodeRecord]:
        return [c for c in self._codes.values() if c.scope.product_id == product_id]

    async def find_master_codes(self) -> List[RedeemCodeRecord]:
        return [c for c in self._codes.values() if c.scope.is_master]

    async def list_all(self) -> List[RedeemCodeRecord]:
        return list(self._codes.values())

    async def create(self, draft: CodeDraft) -> RedeemCodeRecord:
        normalized = normalize_code(draft.code)

        async with self._lock:
            if normalized in self._ids_by_code:
                raise DuplicateCodeError(normalized)

            now = self._clock()
            record = RedeemCodeRecord(
                id=str(uuid4()),
                code=normalized,
                payload=draft.payload,
                scope=draft.scope,
                is_active=draft.is_active,
                usage_limit=draft.usage_limit,
                usage_count=0,
                expires_at=draft.expires_at,
                created_by=draft.created_by,
                created_at=now,
                updated_at=now,
            )
            self._codes[record.id] = record
            self._ids_by_code[normalized] = record.id
            return record

    async def update(self, code_id: str, changes: CodeChanges) -> Optional[RedeemCodeRecord]:
        async with self._lock:
            current = self._codes.get(code_id)
            if current is None:
                return None

            data = {name: getattr(changes, name) for name in changes.model_fields_set}
            if "code" in data:
                data["code"] = normalize_code(data["code"])
                owner = self._ids_by_code.get(data["code"])
                if owner is not None and owner != code_id:
                    raise DuplicateCodeError(data["code"])

            data["updated_at"] = self._clock()
            # валидируем заново, чтобы scope/payload не собрались в невалидную запись
            updated = RedeemCodeRecord.model_validate({**current.model_dump(), **data})
            # сверяем с usage_count под локом, а не с тем, что админка прочитала раньше
            if updated.usage_limit is not None and updated.usage_limit < current.usage_count:
                raise UsageLimitBelowCountError(current.usage_count)

            if updated.code != current.code:
                del self._ids_by_code[current.code]
                self._ids_by_code[updated.code] = code_id
            self._codes[code_id] = updated
            return updated

    async def increment_usage(self, code_id: str, *, product_id: str) -> bool:
        async with self._lock:
            current = self._codes.get(code_id)
            if current is None:
                return False
            if current.usage_limit is not None and current.usage_count >= current.usage_limit:
                return False

            self._codes[code_id] = current.model_copy(update={"usage_count": current.usage_count + 1})
            self._redemptions.append(
                RedemptionEntry(
                    id=next(self._redemption_ids),
                    redeem_code_id=code_id,
                    product_id=product_id,
                    redeemed_at=self._clock(),
                )
            )
            return True

    async def delete(self, code_id: str) -> bool:
        async with self._lock:
            current = self._codes.pop(code_id, None)
            if current is None:
                return False
            self._ids_by_code.pop(current.code, None)
            self._redemptions = [r for r in self._redemptions if r.redeem_code_id != code_id]
            return True

    async def list_redemptions(self, code_id: str) -> List[RedemptionEntry]:
        return [r for r in self._redemptions if r.redeem_code_id == code_id]
