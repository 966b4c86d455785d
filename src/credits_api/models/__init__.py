"""SQLAlchemy models package."""

# Import all models
from .audit import AuditActionType, AuditLogEntry, AuditTargetType  # noqa: F401
from .gift_card import GiftCard, GiftCardStatus  # noqa: F401
from .order import (  # noqa: F401
    MakerOrder,
    MakerOrderStatusEnum,
    Order,
    OrderStatusEnum,
    PaymentMethodEnum,
)
from .wallet import CreditTransaction, CreditTransactionType, CreditWallet  # noqa: F401
