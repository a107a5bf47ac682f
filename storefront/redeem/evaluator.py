# storefront/redeem/evaluator.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from .types import Decision, RedeemCodeRecord, RejectionReason, as_utc


def evaluate(
    code: Optional[RedeemCodeRecord],
    target_product_id: str,
    now: datetime,
) -> Decision:
    """
    Можно ли применить код к товару прямо сейчас.

    Порядок проверок фиксированный: от него зависит, какую причину увидит
    пользователь: не найден -> неактивен -> истёк -> лимит -> не тот товар.
    Истёкший код, введённый не к тому товару, всегда даёт "expired".

    Граница срока: в момент ровно expires_at код ещё действует.
    """
    if code is None:
        return Decision.reject(RejectionReason.not_found)

    if not code.is_active:
        return Decision.reject(RejectionReason.inactive)

    if code.expires_at is not None and as_utc(now) > as_utc(code.expires_at):
        return Decision.reject(RejectionReason.expired)

    if code.usage_limit is not None and code.usage_count >= code.usage_limit:
        return Decision.reject(RejectionReason.usage_limit_reached)

    if code.scope.is_master:
        return Decision.accept()

    if code.scope.product_id == target_product_id:
        return Decision.accept()

    return Decision.reject(RejectionReason.scope_mismatch)
