"""Payment processing services."""

from .phonepe_client import GatewayPaymentSession, PhonePeClient, compute_webhook_digest
from .payment_service import (
    PaymentOrderSession,
    PaymentOrderStatus,
    PaymentService,
    WebhookResult,
    generate_merchant_order_id,
)

__all__ = [
    "GatewayPaymentSession",
    "PaymentOrderSession",
    "PaymentOrderStatus",
    "PaymentService",
    "PhonePeClient",
    "WebhookResult",
    "compute_webhook_digest",
    "generate_merchant_order_id",
]
