"""Pass type inventory and event capacity"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, or_
import logging

from shared.database.models import Event, PassType
from shared.cache.redis_client import optional_lock
from shared.utils.exceptions import CapacityError

logger = logging.getLogger(__name__)


class InventoryService:
    """Capacity counters of pass types and events"""

    @staticmethod
    async def reserve_seat(
        db: AsyncSession,
        pass_type: PassType,
        event: Event
    ) -> None:
        """
        Take one seat of a pass type and of its event.

        Both counters move with conditional UPDATEs inside the caller's
        transaction, so `sold <= quantity` and
        `current_participants <= max_participants` hold even when two
        registrations race. Nothing is committed here; on CapacityError the
        caller rolls back.

        Raises:
            CapacityError: pass type sold out or event full
        """
        lock_key = f"pass:capacity:{pass_type.id}"

        async with optional_lock(lock_key, timeout=5, expire=10):
            stmt_pass = (
                update(PassType)
                .where(
                    PassType.id == pass_type.id,
                    or_(PassType.quantity.is_(None), PassType.sold < PassType.quantity)
                )
                .values(sold=PassType.sold + 1)
                .execution_options(synchronize_session=False)
            )
            result_pass = await db.execute(stmt_pass)
            if result_pass.rowcount == 0:
                logger.info(f"Pass type {pass_type.id} sold out")
                raise CapacityError(f"'{pass_type.name}' is sold out")

            stmt_event = (
                update(Event)
                .where(
                    Event.id == event.id,
                    or_(
                        Event.max_participants.is_(None),
                        Event.current_participants < Event.max_participants
                    )
                )
                .values(current_participants=Event.current_participants + 1)
                .execution_options(synchronize_session=False)
            )
            result_event = await db.execute(stmt_event)
            if result_event.rowcount == 0:
                logger.info(f"Event {event.id} reached max_participants")
                raise CapacityError("Event has reached its maximum number of participants")

    @staticmethod
    def has_capacity(pass_type: PassType, event: Event) -> bool:
        """Pre-check on loaded rows, before any write"""
        if pass_type.quantity is not None and pass_type.sold >= pass_type.quantity:
            return False
        if event.max_participants is not None and event.current_participants >= event.max_participants:
            return False
        return True
