# storefront/redeem/repository.py
from __future__ import annotations

import abc
from typing import List, Optional

from .types import CodeChanges, CodeDraft, RedeemCodeRecord, RedemptionEntry


class RedeemCodeRepository(abc.ABC):
    """
    Хранилище кодов. Движок редимпшена знает только этот контракт.

    Все методы ищут код по нормализованному тексту (strip + upper).
    Ошибки хранилища поднимаются как StorageUnavailableError.
    """

    @abc.abstractmethod
    async def get(self, code_id: str) -> Optional[RedeemCodeRecord]:
        ...

    @abc.abstractmethod
    async def find_by_code(self, code: str) -> Optional[RedeemCodeRecord]:
        ...

    @abc.abstractmethod
    async def find_by_product(self, product_id: str) -> List[RedeemCodeRecord]:
        ...

    @abc.abstractmethod
    async def find_master_codes(self) -> List[RedeemCodeRecord]:
        ...

    @abc.abstractmethod
    async def list_all(self) -> List[RedeemCodeRecord]:
        ...

    @abc.abstractmethod
    async def create(self, draft: CodeDraft) -> RedeemCodeRecord:
        """Бросает DuplicateCodeError, если такой код уже есть (без учёта регистра)."""

    @abc.abstractmethod
    async def update(self, code_id: str, changes: CodeChanges) -> Optional[RedeemCodeRecord]:
        """
        None, если кода нет. usage_count не трогает.

        DuplicateCodeError: новый текст кода занят.
        UsageLimitBelowCountError: usage_limit меньше текущего usage_count
        (проверяется по актуальному значению, а не по прочитанному раньше).
        """

    @abc.abstractmethod
    async def increment_usage(self, code_id: str, *, product_id: str) -> bool:
        """
        Атомарно: +1 к usage_count, только если лимит ещё не выбран.

        Проверка лимита выполняется внутри самой операции, а не по ранее
        прочитанной записи. False: кода нет или последний слот уже занят.
        """

    @abc.abstractmethod
    async def delete(self, code_id: str) -> bool:
        ...

    @abc.abstractmethod
    async def list_redemptions(self, code_id: str) -> List[RedemptionEntry]:
        ...
