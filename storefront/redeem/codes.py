# storefront/redeem/codes.py
from __future__ import annotations

import secrets

from storefront.constants import GENERATED_CODE_ALPHABET, GENERATED_CODE_LENGTH


def normalize_code(code: str) -> str:
    """
    Нормализуем код:
    - убираем пробелы по краям
    - приводим к верхнему регистру
    """
    return (code or "").strip().upper()


def generate_code(prefix: str = "", length: int = GENERATED_CODE_LENGTH) -> str:
    body = "".join(secrets.choice(GENERATED_CODE_ALPHABET) for _ in range(length))
    return normalize_code(f"{prefix}{body}")
