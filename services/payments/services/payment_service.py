"""Payment orders, verification and webhooks"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from decimal import Decimal
from typing import Dict, Optional, Tuple
import logging

from app.core.config import settings
from shared.database.models import Payment, Registration, PassType, Ticket, PaymentStatus, RegistrationStatus
from shared.utils.exceptions import (
    RegistrationValidationError, PaymentVerificationError, NotFoundError, PermissionDeniedError
)
from shared.utils.identifiers import parse_uuid
from shared.utils.timeutils import utcnow, ensure_aware
from services.payments.services.razorpay_service import RazorpayService
from services.registration.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)


def serialize_payment(payment: Payment) -> Dict:
    return {
        "id": str(payment.id),
        "registration_id": str(payment.registration_id) if payment.registration_id else None,
        "gateway_order_id": payment.gateway_order_id,
        "gateway_payment_id": payment.gateway_payment_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "organizer_upi_id": payment.organizer_upi_id,
        "payment_method": payment.payment_method,
        "paid_at": ensure_aware(payment.paid_at),
        "created_at": ensure_aware(payment.created_at),
    }


class PaymentService:
    """Ties gateway payments to registrations"""

    def __init__(self, gateway: Optional[RazorpayService] = None):
        self.gateway = gateway or RazorpayService()
        self.registration_service = RegistrationService()

    async def create_order(
        self,
        db: AsyncSession,
        amount: int,
        user_id: str,
        currency: str = settings.DEFAULT_CURRENCY,
        organizer_upi_id: Optional[str] = None,
        registration_id: Optional[str] = None
    ) -> Tuple[Payment, Dict]:
        """
        Create a gateway order and its pending payment row.

        When a registration is given it must be the caller's, still
        pending, and the amount must match its ticket price.
        """
        if not amount or amount <= 0:
            raise RegistrationValidationError("Valid amount is required")

        registration = None
        if registration_id:
            registration = await self.registration_service.require_registration(db, registration_id)
            if str(registration.user_id) != str(user_id):
                raise PermissionDeniedError("This registration belongs to another user")
            if registration.status != RegistrationStatus.PENDING:
                raise RegistrationValidationError(f"Registration is already {registration.status}")

            pass_type = await db.get(PassType, registration.pass_type_id)
            expected = int((Decimal(pass_type.price or 0) * 100).to_integral_value())
            if amount != expected:
                raise RegistrationValidationError(f"Amount must be {expected} paise for this ticket")

        order = self.gateway.create_order(
            amount=amount,
            currency=currency,
            notes={
                "organizer_upi_id": organizer_upi_id,
                "registration_id": str(registration.id) if registration else None,
            },
        )

        payment = Payment(
            registration_id=registration.id if registration else None,
            gateway_order_id=order["id"],
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            organizer_upi_id=organizer_upi_id,
            payment_method="upi",
        )
        db.add(payment)
        if registration is not None:
            registration.order_id = order["id"]
        await db.commit()
        await db.refresh(payment)

        logger.info(f"Payment order {order['id']} created ({amount} {currency}, registration={registration_id})")
        return payment, order

    async def verify_payment(
        self,
        db: AsyncSession,
        order_id: Optional[str],
        payment_id: Optional[str],
        signature: Optional[str]
    ) -> Tuple[Payment, Optional[Ticket]]:
        """
        Verify a checkout signature and confirm the registration.

        A mismatched signature is final: nothing changes and the client
        has to start a new payment.
        """
        if not (order_id and payment_id and signature):
            raise RegistrationValidationError("Missing payment verification parameters")

        if not self.gateway.verify_signature(order_id, payment_id, signature):
            logger.warning(f"Payment signature mismatch for order {order_id}")
            raise PaymentVerificationError("Payment verification failed")

        payment = await self._get_by_order_id(db, order_id)
        if payment is None:
            raise NotFoundError("Payment order not found")

        ticket = await self._complete(db, payment, payment_id)
        return payment, ticket

    async def _complete(self, db: AsyncSession, payment: Payment, payment_id: str) -> Optional[Ticket]:
        """Mark the payment completed and issue the ticket (idempotent)"""
        if payment.status != PaymentStatus.COMPLETED:
            payment.status = PaymentStatus.COMPLETED
            payment.gateway_payment_id = payment_id
            payment.paid_at = utcnow()
            await db.commit()
            logger.info(f"Payment {payment.id} completed (order {payment.gateway_order_id})")

        if payment.registration_id is None:
            return None

        return await self.registration_service.confirm_registration(
            db,
            str(payment.registration_id),
            payment_reference=payment.gateway_payment_id,
            order_id=payment.gateway_order_id,
        )

    async def get_payment(self, db: AsyncSession, payment_id: str) -> Optional[Payment]:
        """Lookup by our id, the gateway payment id or the gateway order id"""
        conditions = [
            Payment.gateway_payment_id == payment_id,
            Payment.gateway_order_id == payment_id,
        ]
        try:
            conditions.append(Payment.id == parse_uuid(payment_id, "Payment"))
        except NotFoundError:
            pass
        result = await db.execute(select(Payment).where(or_(*conditions)))
        return result.scalars().first()

    async def handle_webhook(self, db: AsyncSession, event: Dict) -> str:
        """
        Apply a verified webhook event

        Returns:
            "processed" or "ignored"
        """
        event_type = event.get("event")
        entity = (((event.get("payload") or {}).get("payment") or {}).get("entity")) or {}
        order_id = entity.get("order_id")
        gateway_payment_id = entity.get("id")

        if event_type not in ("payment.captured", "payment.failed"):
            logger.info(f"Unhandled webhook event: {event_type}")
            return "ignored"

        payment = await self._get_by_order_id(db, order_id) if order_id else None
        if payment is None:
            logger.warning(f"Webhook {event_type} for unknown order {order_id}")
            return "ignored"

        if event_type == "payment.captured":
            await self._complete(db, payment, gateway_payment_id)
        elif payment.status == PaymentStatus.PENDING:
            payment.status = PaymentStatus.FAILED
            payment.gateway_payment_id = gateway_payment_id
            await db.commit()
            logger.info(f"Payment {payment.id} failed (order {order_id})")

        return "processed"

    @staticmethod
    async def _get_by_order_id(db: AsyncSession, order_id: str) -> Optional[Payment]:
        result = await db.execute(select(Payment).where(Payment.gateway_order_id == order_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_registration(db: AsyncSession, payment: Payment) -> Optional[Registration]:
        if payment.registration_id is None:
            return None
        return await db.get(Registration, payment.registration_id)
