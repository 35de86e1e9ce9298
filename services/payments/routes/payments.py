"""Payment routes"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict
import json
import logging

from shared.database.session import get_db
from shared.database.models import UserRole
from shared.auth.dependencies import get_current_user
from shared.utils.exceptions import FindMyEventError
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.payments.models.payment import (
    CreateOrderRequest,
    OrderResponse,
    PaymentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from services.payments.services.payment_service import PaymentService, serialize_payment
from services.registration.services.registration_service import serialize_ticket

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-order", response_model=OrderResponse)
@limiter.limit(RATE_LIMITS["purchase"])
async def create_order(
    request: Request,
    order_request: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """Create a UPI payment order (amount in paise)"""
    service = PaymentService()
    try:
        payment, order = await service.create_order(
            db,
            amount=order_request.amount,
            user_id=current_user["user_id"],
            currency=order_request.currency,
            organizer_upi_id=order_request.organizer_upi_id,
            registration_id=order_request.registration_id,
        )
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return OrderResponse(key_id=service.gateway.key_id or None, payment_id=str(payment.id), order=order)


@router.post("/verify", response_model=VerifyPaymentResponse)
@limiter.limit(RATE_LIMITS["purchase"])
async def verify_payment(
    request: Request,
    verification: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """
    Verify the checkout signature and confirm the registration

    A failed verification is not retried; the payment has to start over.
    """
    service = PaymentService()
    try:
        payment, ticket = await service.verify_payment(
            db,
            order_id=verification.razorpay_order_id,
            payment_id=verification.razorpay_payment_id,
            signature=verification.razorpay_signature,
        )
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    registration = await service.get_registration(db, payment)
    return VerifyPaymentResponse(
        success=True,
        message="Payment verified successfully",
        registration_id=str(payment.registration_id) if payment.registration_id else None,
        ticket=serialize_ticket(ticket, registration.team_name if registration else None) if ticket else None,
    )


@router.post("/webhook")
@limiter.limit(RATE_LIMITS["webhook"])
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Gateway notifications

    No bearer auth: the X-Razorpay-Signature header is checked against the
    raw body.
    """
    service = PaymentService()
    body = await request.body()
    signature = request.headers.get("x-razorpay-signature")

    if not service.gateway.verify_webhook(body, signature):
        logger.warning("Webhook with invalid signature rejected")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature"
        )

    try:
        event = json.loads(body)
    except ValueError:
        event = None
    if not isinstance(event, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook body")

    try:
        outcome = await service.handle_webhook(db, event)
    except FindMyEventError as e:
        # Acknowledge so the gateway does not retry a business rejection
        logger.error(f"Webhook {event.get('event')} could not be applied: {e.message}")
        return {"success": False, "status": "rejected", "detail": e.message}

    return {"success": True, "status": outcome}


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    service = PaymentService()
    payment = await service.get_payment(db, payment_id)
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    if current_user.get("role") != UserRole.ADMIN:
        registration = await service.get_registration(db, payment)
        if registration is None or str(registration.user_id) != current_user["user_id"]:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot access this payment")

    return serialize_payment(payment)
