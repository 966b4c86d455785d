"""Credit ledger exports."""

from .adjustments import ADJUSTMENT_TYPES, AdjustmentResult, AdminAdjustmentService  # noqa: F401
from .engine import (  # noqa: F401
    TransactionEngine,
    TransactionPage,
    TransactionResult,
    WalletPage,
    WalletVerification,
)
from .gift_cards import GiftCardPage, GiftCardService, RedemptionResult, generate_code, normalize_code  # noqa: F401
