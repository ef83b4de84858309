"""Typed business failures raised by the rewards engines.

Every expected rule violation (bad input, missing record, insufficient
balance, illegal state transition) is one of these.  The HTTP layer turns them
into ``{"success": false, "error": ...}`` bodies; anything else is an
unexpected store error and propagates.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for expected business-rule failures."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RewardsError):
    """Input rejected before any store mutation."""


class NotFoundError(RewardsError):
    status_code = 404


class UserNotFoundError(NotFoundError):
    pass


class MerchantNotFoundError(NotFoundError):
    pass


class OfferNotFoundError(NotFoundError):
    pass


class TransactionNotFoundError(NotFoundError):
    pass


class WithdrawalNotFoundError(NotFoundError):
    pass


class PaymentOrderNotFoundError(NotFoundError):
    pass


class InsufficientBalanceError(RewardsError):
    status_code = 422


class BelowWithdrawalThresholdError(RewardsError):
    status_code = 422


class InvalidTransitionError(RewardsError):
    """Raised when a guarded status transition is not allowed."""

    status_code = 409

    def __init__(self, entity: str, current: str, requested: str) -> None:
        super().__init__(f"Cannot transition {entity} from {current} to {requested}")
        self.entity = entity
        self.current = current
        self.requested = requested


class AlreadyReviewedError(InvalidTransitionError):
    def __init__(self, entity: str, current: str, requested: str) -> None:
        super().__init__(entity, current, requested)
        self.message = f"{entity.capitalize()} is already {current}."
        self.args = (self.message,)


class PointsAllocationError(RewardsError):
    status_code = 500


class AlreadyAllocatedError(RewardsError):
    status_code = 409


class PaymentGatewayNotConfiguredError(RewardsError):
    status_code = 503


class PaymentGatewayError(RewardsError):
    status_code = 502


class InsufficientConfigError(RewardsError):
    """Configuration cannot drive the requested computation (e.g. all shares zero)."""

    status_code = 422
