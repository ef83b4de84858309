"""PhonePe order creation, webhook reconciliation and order status."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_internal_api_key
from rewards_api.db.session import get_session
from rewards_api.observability.payments import get_payment_store
from rewards_api.services.payments import PaymentService, PhonePeClient


router = APIRouter(prefix="/payments", tags=["payments"])


def get_phonepe_client() -> PhonePeClient:
    return PhonePeClient()


class PaymentOrderRequest(BaseModel):
    amountPaise: int = Field(..., description="Amount to charge in paise (minimum 100)")
    userId: UUID
    merchantId: UUID
    offerId: Optional[UUID] = None
    quantity: Optional[int] = None
    redirectUrl: Optional[str] = None
    callbackUrl: Optional[str] = None
    notes: Optional[str] = None


class PaymentOrderResponse(BaseModel):
    success: bool = True
    merchantOrderId: str
    redirectUrl: str
    intentUrl: str
    orderId: Optional[str] = None
    expireAt: Optional[int] = None


@router.post(
    "/phonepe/orders",
    response_model=PaymentOrderResponse,
    dependencies=[Depends(require_internal_api_key)],
)
async def create_phonepe_order(
    payload: PaymentOrderRequest,
    db: AsyncSession = Depends(get_session),
    gateway: PhonePeClient = Depends(get_phonepe_client),
) -> PaymentOrderResponse:
    """Persist a PENDING order and return the hosted payment page URL."""

    session = await PaymentService(db, gateway=gateway).create_payment_order(
        amount_paise=payload.amountPaise,
        user_id=payload.userId,
        merchant_id=payload.merchantId,
        redirect_url=payload.redirectUrl,
        callback_url=payload.callbackUrl,
        notes=payload.notes,
        offer_id=payload.offerId,
        quantity=payload.quantity,
    )
    return PaymentOrderResponse(
        merchantOrderId=session.merchant_order_id,
        redirectUrl=session.redirect_url,
        intentUrl=session.intent_url,
        orderId=session.gateway_order_id,
        expireAt=session.expire_at,
    )


@router.post("/phonepe/webhook")
async def phonepe_webhook(request: Request, db: AsyncSession = Depends(get_session)) -> Response:
    """Gateway callback; signature is checked against the raw body."""

    raw_body = await request.body()
    signature = request.headers.get("authorization") or request.headers.get("x-verify")
    result = await PaymentService(db).handle_webhook(raw_body, signature)
    if not result.ok:
        return JSONResponse(status_code=result.status_code, content={"error": result.error})
    if result.error:
        return JSONResponse(status_code=200, content={"message": result.error})
    return Response(status_code=200)


@router.get("/phonepe/status/{merchant_order_id}")
async def phonepe_order_status(
    merchant_order_id: str,
    db: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    status = await PaymentService(db).get_payment_order_status(merchant_order_id)
    return status.as_dict()


@router.get("/observability", dependencies=[Depends(require_internal_api_key)])
async def payment_observability() -> Dict[str, Any]:
    return get_payment_store().snapshot().as_dict()
