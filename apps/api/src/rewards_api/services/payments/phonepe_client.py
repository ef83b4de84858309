"""Thin PhonePe REST client for payment initiation and webhook digests."""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from rewards_api.core.errors import PaymentGatewayError, PaymentGatewayNotConfiguredError
from rewards_api.core.settings import Settings, settings as default_settings


@dataclass(slots=True)
class GatewayPaymentSession:
    redirect_url: str
    gateway_order_id: str | None
    expire_at: int | None


def compute_webhook_digest(raw_body: bytes, username: str, password: str) -> str:
    """Hex SHA-256 of ``body || username || password``."""

    digest = hashlib.sha256()
    digest.update(raw_body)
    digest.update(username.encode("utf-8"))
    digest.update(password.encode("utf-8"))
    return digest.hexdigest()


def webhook_signature_matches(raw_body: bytes, header: str | None, username: str, password: str) -> bool:
    if not header:
        return False
    expected = compute_webhook_digest(raw_body, username, password)
    return hmac.compare_digest(header.strip().lower(), expected.lower())


class PhonePeClient:
    """Initiates hosted payment sessions; ``http_client`` may be injected for tests."""

    def __init__(
        self,
        *,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = config or default_settings
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return self._settings.phonepe_configured

    async def initiate_payment(
        self,
        *,
        merchant_order_id: str,
        amount_paise: int,
        redirect_url: str,
        callback_url: str | None = None,
        message: str | None = None,
    ) -> GatewayPaymentSession:
        if not self.configured:
            raise PaymentGatewayNotConfiguredError("PhonePe is not configured")

        payload = {
            "merchantId": self._settings.phonepe_client_id,
            "merchantTransactionId": merchant_order_id,
            "amount": amount_paise,
            "redirectUrl": redirect_url,
            "redirectMode": "REDIRECT",
            "callbackUrl": callback_url or redirect_url,
            "merchantUserId": "member",
            "message": message or "In-store payment",
        }
        url = f"{self._settings.phonepe_api_base_url}/v3/transaction/init"

        client = self._http_client or httpx.AsyncClient(timeout=self._settings.phonepe_timeout_seconds)
        owns_client = self._http_client is None
        try:
            response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("PhonePe request failed", merchant_order_id=merchant_order_id, error=str(exc))
            raise PaymentGatewayError(f"PhonePe request failed: {exc}") from exc
        finally:
            if owns_client:
                await client.aclose()

        if response.status_code >= 400:
            raise PaymentGatewayError(f"PhonePe API {response.status_code}: {response.text}")

        try:
            body: dict[str, Any] = response.json()
        except ValueError as exc:
            raise PaymentGatewayError("PhonePe returned a non-JSON response") from exc

        data = body.get("data") or {}
        instrument = data.get("instrumentResponse") or {}
        redirect = (instrument.get("redirectInfo") or {}).get("url") or instrument.get("intentUrl")
        if body.get("success") is False or not redirect:
            raise PaymentGatewayError(body.get("message") or "Payment init failed")

        return GatewayPaymentSession(
            redirect_url=redirect,
            gateway_order_id=data.get("orderId"),
            expire_at=data.get("expireAt"),
        )
