"""In-memory observability helper for gateway order creation + webhook reconciliation."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Literal


WebhookOutcome = Literal["processed", "duplicate", "rejected", "failed"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class OrderEventLog:
    last_created_at: datetime | None = None
    last_created_order_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


@dataclass
class WebhookEventLog:
    last_event_at: datetime | None = None
    last_event_type: str | None = None
    last_merchant_order_id: str | None = None
    last_rejection_at: datetime | None = None
    last_rejection_status: int | None = None
    last_rejection_reason: str | None = None


@dataclass
class PaymentObservabilitySnapshot:
    order_totals: Dict[str, int]
    webhook_totals: Dict[str, Dict[str, int]]
    order_events: OrderEventLog
    webhook_events: WebhookEventLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "orders": {
                "totals": self.order_totals,
                "events": {
                    "last_created_at": _iso(self.order_events.last_created_at),
                    "last_created_order_id": self.order_events.last_created_order_id,
                    "last_failure_at": _iso(self.order_events.last_failure_at),
                    "last_failure_reason": self.order_events.last_failure_reason,
                },
            },
            "webhooks": {
                "totals": self.webhook_totals,
                "events": {
                    "last_event_at": _iso(self.webhook_events.last_event_at),
                    "last_event_type": self.webhook_events.last_event_type,
                    "last_merchant_order_id": self.webhook_events.last_merchant_order_id,
                    "last_rejection_at": _iso(self.webhook_events.last_rejection_at),
                    "last_rejection_status": self.webhook_events.last_rejection_status,
                    "last_rejection_reason": self.webhook_events.last_rejection_reason,
                },
            },
        }


@dataclass
class PaymentObservabilityStore:
    _lock: Lock = field(default_factory=Lock)
    _order_totals: Counter = field(default_factory=Counter)
    _order_events: OrderEventLog = field(default_factory=OrderEventLog)
    _webhook_totals: Dict[str, Counter] = field(
        default_factory=lambda: {
            "processed": Counter(),
            "duplicate": Counter(),
            "rejected": Counter(),
            "failed": Counter(),
        }
    )
    _webhook_events: WebhookEventLog = field(default_factory=WebhookEventLog)

    def record_order_created(self, merchant_order_id: str) -> None:
        with self._lock:
            self._order_totals["created"] += 1
            self._order_events.last_created_at = _utcnow()
            self._order_events.last_created_order_id = merchant_order_id

    def record_order_failure(self, reason: str) -> None:
        with self._lock:
            self._order_totals["failed"] += 1
            self._order_events.last_failure_at = _utcnow()
            self._order_events.last_failure_reason = reason

    def record_webhook(
        self,
        event_type: str,
        outcome: WebhookOutcome,
        *,
        merchant_order_id: str | None = None,
        status_code: int = 200,
        error: str | None = None,
    ) -> None:
        with self._lock:
            self._webhook_totals[outcome][event_type or "unknown"] += 1
            now = _utcnow()
            self._webhook_events.last_event_at = now
            self._webhook_events.last_event_type = event_type
            self._webhook_events.last_merchant_order_id = merchant_order_id
            if outcome == "rejected":
                self._webhook_events.last_rejection_at = now
                self._webhook_events.last_rejection_status = status_code
                self._webhook_events.last_rejection_reason = error

    def snapshot(self) -> PaymentObservabilitySnapshot:
        with self._lock:
            order_totals = dict(self._order_totals)
            webhook_totals = {bucket: dict(counter) for bucket, counter in self._webhook_totals.items()}
            order_events = OrderEventLog(**vars(self._order_events))
            webhook_events = WebhookEventLog(**vars(self._webhook_events))
        return PaymentObservabilitySnapshot(
            order_totals=order_totals,
            webhook_totals=webhook_totals,
            order_events=order_events,
            webhook_events=webhook_events,
        )

    def reset(self) -> None:
        with self._lock:
            self._order_totals.clear()
            for counter in self._webhook_totals.values():
                counter.clear()
            self._order_events = OrderEventLog()
            self._webhook_events = WebhookEventLog()


_PAYMENT_STORE = PaymentObservabilityStore()


def get_payment_store() -> PaymentObservabilityStore:
    return _PAYMENT_STORE
