# storefront/redeem/errors.py
from __future__ import annotations

from typing import Dict


class RedeemError(Exception):
    pass


class DuplicateCodeError(RedeemError):
    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Redeem code '{code}' already exists")


class CodeValidationError(RedeemError):
    """Ошибки валидации админских данных: поле -> сообщение."""

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class StorageUnavailableError(RedeemError):
    """Хранилище недоступно. Это не отказ в редимпшене, запрос можно повторить."""


class UsageLimitBelowCountError(RedeemError):
    """Новый usage_limit меньше уже набранного usage_count."""

    def __init__(self, usage_count: int) -> None:
        self.usage_count = usage_count
        super().__init__(f"Usage limit cannot be lower than the current usage count ({usage_count})")
