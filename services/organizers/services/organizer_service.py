"""Organizer registry and verification workflow"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from typing import Dict, List, Optional
import logging

from shared.database.models import (
    Organizer, Profile, Event, EventStatus, VerificationStatus, UserRole
)
from shared.utils.exceptions import NotFoundError, ConflictError, RegistrationValidationError
from shared.auth.dependencies import invalidate_cached_role
from shared.utils.identifiers import parse_uuid
from shared.utils.timeutils import utcnow, ensure_aware
from services.event_management.services.event_service import EventService

logger = logging.getLogger(__name__)


def serialize_organizer(organizer: Organizer) -> Dict:
    return {
        "id": str(organizer.id),
        "user_id": str(organizer.user_id),
        "organization_name": organizer.organization_name,
        "organization_type": organizer.organization_type,
        "official_email": organizer.official_email,
        "website_url": organizer.website_url,
        "social_links": organizer.social_links,
        "upi_id": organizer.upi_id,
        "verification_status": organizer.verification_status,
        "verification_documents": organizer.verification_documents,
        "verified_at": ensure_aware(organizer.verified_at),
        "verified_by": str(organizer.verified_by) if organizer.verified_by else None,
        "rejection_reason": organizer.rejection_reason,
        "created_at": ensure_aware(organizer.created_at),
    }


class OrganizerService:
    """
    Organizer applications and their review.

    pending -> approved | rejected; both outcomes are final and only an
    admin can decide them.
    """

    async def get_organizer_by_user_id(self, db: AsyncSession, user_id: str) -> Optional[Organizer]:
        try:
            user_uuid = parse_uuid(user_id, "User")
        except NotFoundError:
            return None
        result = await db.execute(select(Organizer).where(Organizer.user_id == user_uuid))
        return result.scalar_one_or_none()

    async def apply(self, db: AsyncSession, user_id: str, data: Dict) -> Organizer:
        """
        Register the user as an organizer awaiting verification.

        The profile gets the organizer role right away so the applicant can
        prepare events; they stay pending until an admin approves.
        """
        user_uuid = parse_uuid(user_id, "User")
        profile = await db.get(Profile, user_uuid)
        if profile is None:
            raise NotFoundError("Profile not found")

        if await self.get_organizer_by_user_id(db, user_id):
            raise ConflictError("You have already applied as an organizer")

        organizer = Organizer(
            user_id=user_uuid,
            verification_status=VerificationStatus.PENDING,
            **data
        )
        db.add(organizer)
        if profile.role == UserRole.STUDENT:
            profile.role = UserRole.ORGANIZER
        await db.commit()
        await db.refresh(organizer)
        await invalidate_cached_role(user_uuid)

        logger.info(f"Organizer application {organizer.id} submitted by user {user_id}")
        return organizer

    async def list_organizers(self, db: AsyncSession, status: Optional[str] = None) -> List[Organizer]:
        stmt = select(Organizer).order_by(Organizer.created_at.desc())
        if status:
            stmt = stmt.where(Organizer.verification_status == status)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _get_pending(self, db: AsyncSession, organizer_id: str) -> Organizer:
        organizer = await db.get(Organizer, parse_uuid(organizer_id, "Organizer"))
        if organizer is None:
            raise NotFoundError("Organizer not found")
        if organizer.verification_status != VerificationStatus.PENDING:
            raise ConflictError(f"Organizer is already {organizer.verification_status}")
        return organizer

    async def approve(self, db: AsyncSession, organizer_id: str, admin_id: str) -> Organizer:
        """
        Approve an organizer.

        Events the organizer already submitted for publication go live in
        the same transaction.
        """
        organizer = await self._get_pending(db, organizer_id)

        organizer.verification_status = VerificationStatus.APPROVED
        organizer.verified_at = utcnow()
        organizer.verified_by = parse_uuid(admin_id, "User")
        organizer.rejection_reason = None

        profile = await db.get(Profile, organizer.user_id)
        if profile is not None and profile.role == UserRole.STUDENT:
            profile.role = UserRole.ORGANIZER

        stmt = (
            update(Event)
            .where(Event.organizer_id == organizer.id, Event.event_status == EventStatus.PENDING)
            .values(event_status=EventStatus.PUBLISHED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        await db.refresh(organizer)
        await invalidate_cached_role(organizer.user_id)

        if result.rowcount:
            await EventService.invalidate_catalog_cache()

        logger.info(
            f"Organizer {organizer.id} approved by {admin_id}; "
            f"{result.rowcount} pending events published"
        )
        return organizer

    async def reject(self, db: AsyncSession, organizer_id: str, admin_id: str, reason: str) -> Organizer:
        reason = (reason or "").strip()
        if not reason:
            raise RegistrationValidationError("A rejection reason is required")

        organizer = await self._get_pending(db, organizer_id)
        organizer.verification_status = VerificationStatus.REJECTED
        organizer.rejection_reason = reason
        organizer.verified_by = parse_uuid(admin_id, "User")
        await db.commit()
        await db.refresh(organizer)

        logger.info(f"Organizer {organizer.id} rejected by {admin_id}: {reason}")
        return organizer
