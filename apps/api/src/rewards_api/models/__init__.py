"""SQLAlchemy models package."""

from .boost import (  # noqa: F401
    BoostTransaction,
    BoostTransactionTypeEnum,
    BoostWithdrawal,
    BoostWithdrawalStatusEnum,
)
from .configuration import (  # noqa: F401
    SINGLETON_ID,
    BoostSettingsRecord,
    CommissionSettingsRecord,
    LoyaltySlabConfigRecord,
)
from .merchant import Merchant  # noqa: F401
from .offer import Offer  # noqa: F401
from .payment_order import PaymentOrder, PaymentOrderStatusEnum  # noqa: F401
from .transaction import (  # noqa: F401
    TRANSACTION_CLASSES,
    CommissionTransaction,
    CreditTransaction,
    DebitTransaction,
    LedgerTransaction,
    PayoutStatusEnum,
    PayoutTransaction,
    PointsEarnedTransaction,
    PointsRedeemedTransaction,
    PurchaseTransaction,
    RefundTransaction,
    TransactionTypeEnum,
)
from .user import User, UserRoleEnum, UserStatusEnum  # noqa: F401
