"""Explicit status machines for the records that are allowed to change after creation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Mapping, TypeVar

from rewards_api.core.errors import AlreadyReviewedError, InvalidTransitionError
from rewards_api.models.boost import BoostWithdrawalStatusEnum
from rewards_api.models.payment_order import PaymentOrderStatusEnum
from rewards_api.models.transaction import PayoutStatusEnum


S = TypeVar("S", bound=Enum)


@dataclass(frozen=True)
class StatusMachine(Generic[S]):
    """One-shot transitions out of an initial state; terminal states never move."""

    entity: str
    allowed: Mapping[S, frozenset[S]] = field(default_factory=dict)
    review_semantics: bool = False

    def can_transition(self, current: S, target: S) -> bool:
        return target in self.allowed.get(current, frozenset())

    def is_terminal(self, status: S) -> bool:
        return not self.allowed.get(status)

    def ensure(self, current: S, target: S) -> None:
        if self.can_transition(current, target):
            return
        if self.review_semantics and self.is_terminal(current):
            raise AlreadyReviewedError(self.entity, current.value, target.value)
        raise InvalidTransitionError(self.entity, current.value, target.value)


PAYMENT_ORDER_MACHINE: StatusMachine[PaymentOrderStatusEnum] = StatusMachine(
    entity="payment order",
    allowed={
        PaymentOrderStatusEnum.PENDING: frozenset(
            {PaymentOrderStatusEnum.SUCCESS, PaymentOrderStatusEnum.FAILED}
        ),
    },
)

BOOST_WITHDRAWAL_MACHINE: StatusMachine[BoostWithdrawalStatusEnum] = StatusMachine(
    entity="withdrawal",
    allowed={
        BoostWithdrawalStatusEnum.PENDING: frozenset(
            {BoostWithdrawalStatusEnum.COMPLETED, BoostWithdrawalStatusEnum.REJECTED}
        ),
    },
    review_semantics=True,
)

COMMISSION_PAYOUT_MACHINE: StatusMachine[PayoutStatusEnum] = StatusMachine(
    entity="commission",
    allowed={
        PayoutStatusEnum.PENDING: frozenset({PayoutStatusEnum.COMPLETED, PayoutStatusEnum.REJECTED}),
    },
    review_semantics=True,
)
