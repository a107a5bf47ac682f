# storefront/redeem/__init__.py
from __future__ import annotations

from .admin import AdminCodeManager, CodeInput, CodeUpdateInput
from .codes import generate_code, normalize_code
from .coordinator import RedemptionCoordinator
from .errors import (
    CodeValidationError,
    DuplicateCodeError,
    RedeemError,
    StorageUnavailableError,
    UsageLimitBelowCountError,
)
from .evaluator import evaluate
from .memory import InMemoryRedeemCodeRepository
from .repository import RedeemCodeRepository
from .types import (
    REJECTION_MESSAGES,
    SUCCESS_MESSAGE,
    AdminIdentity,
    CodeChanges,
    CodeDraft,
    CodeScope,
    Decision,
    DiscountPayload,
    DownloadDescriptor,
    DownloadPayload,
    ProductUnlockPayload,
    RedeemCodeRecord,
    RedemptionEntry,
    RedemptionResult,
    RejectionReason,
)

__all__ = [
    # engine
    "RedemptionCoordinator",
    "AdminCodeManager",
    "evaluate",
    # storage
    "RedeemCodeRepository",
    "InMemoryRedeemCodeRepository",
    # codes
    "normalize_code",
    "generate_code",
    # errors
    "RedeemError",
    "DuplicateCodeError",
    "CodeValidationError",
    "StorageUnavailableError",
    "UsageLimitBelowCountError",
    # types
    "AdminIdentity",
    "CodeInput",
    "CodeUpdateInput",
    "CodeDraft",
    "CodeChanges",
    "CodeScope",
    "DownloadPayload",
    "DiscountPayload",
    "ProductUnlockPayload",
    "RedeemCodeRecord",
    "RedemptionEntry",
    "Decision",
    "RejectionReason",
    "DownloadDescriptor",
    "RedemptionResult",
    "REJECTION_MESSAGES",
    "SUCCESS_MESSAGE",
]
