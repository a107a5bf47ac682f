# storefront/redeem/coordinator.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from storefront.db.enums import CodeKind

from .codes import normalize_code
from .evaluator import evaluate
from .repository import RedeemCodeRepository
from .types import (
    DownloadDescriptor,
    RedemptionResult,
    RejectionReason,
    utcnow,
)

logger = logging.getLogger(__name__)


class RedemptionCoordinator:
    """
    Применение кода к товару: поиск -> проверка -> атомарный инкремент -> ссылка на скачивание.

    Отказы возвращаются как RedemptionResult(success=False) и ничего не меняют.
    Наружу пролетает только StorageUnavailableError из репозитория.
    """

    def __init__(
        self,
        repository: RedeemCodeRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._clock = clock

    async def redeem(self, code_text: str, target_product_id: str) -> RedemptionResult:
        normalized = normalize_code(code_text)
        product_id = (target_product_id or "").strip()

        record = None
        if normalized:
            record = await self._repository.find_by_code(normalized)

        # этот путь выдаёт только скачивания; зарезервированные типы для него не существуют
        if record is not None and record.kind != CodeKind.download:
            record = None

        decision = evaluate(record, product_id, self._clock())
        if not decision.accepted:
            logger.info(
                "Redeem rejected: code=%s product=%s reason=%s",
                normalized,
                product_id,
                decision.reason.value,
            )
            return RedemptionResult.failed(decision.reason)

        # чтение выше было оптимистичным: лимит ещё раз проверяется внутри инкремента
        incremented = await self._repository.increment_usage(record.id, product_id=product_id)
        if not incremented:
            logger.warning(
                "Redeem code %s: last use was taken by a concurrent redemption (product=%s)",
                record.code,
                product_id,
            )
            return RedemptionResult.failed(RejectionReason.usage_limit_reached)

        payload = record.payload
        logger.info(
            "Redeem ok: code=%s product=%s type=%s",
            record.code,
            product_id,
            record.code_type.value,
        )
        return RedemptionResult.succeeded(
            DownloadDescriptor(download_url=payload.download_url, file_name=payload.file_name),
            code_type=record.code_type,
        )
