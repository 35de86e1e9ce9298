"""SQLAlchemy models compatible with the Supabase schema"""
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Date, ForeignKey, Numeric, Text,
    JSON, Uuid, UniqueConstraint, false, true
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from shared.database.connection import Base


class UserRole:
    STUDENT = "student"
    ORGANIZER = "organizer"
    ADMIN = "admin"
    VOLUNTEER = "volunteer"

    ALL = (STUDENT, ORGANIZER, ADMIN, VOLUNTEER)


class VerificationStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventStatus:
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    PUBLISHED = "published"
    CANCELLED = "cancelled"


class RegistrationStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class TicketStatus:
    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Profile(Base):
    __tablename__ = "profiles"
    __mapper_args__ = {"eager_defaults": True}

    # Same id as auth.users (Supabase Auth); passwords live there, not here
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    avatar_url = Column(String, nullable=True)
    role = Column(String, nullable=False, server_default=UserRole.STUDENT, default=UserRole.STUDENT)
    phone = Column(String, nullable=True)
    college = Column(String, nullable=True)
    course = Column(String, nullable=True)
    graduation_year = Column(Integer, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    interests = Column(JSON, nullable=True)
    is_verified = Column(Boolean, nullable=False, server_default=false(), default=False)
    notification_preferences = Column(JSON, nullable=True)  # {"email": bool, "whatsapp": bool, "telegram": bool}
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    organizer = relationship("Organizer", back_populates="user", uselist=False, foreign_keys="Organizer.user_id")
    registrations = relationship("Registration", back_populates="user")
    tickets = relationship("Ticket", back_populates="user", foreign_keys="Ticket.user_id")


class Organizer(Base):
    __tablename__ = "organizers"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False, unique=True)
    organization_name = Column(String, nullable=False)
    organization_type = Column(String, nullable=False, server_default="college")  # college, club, startup, company
    official_email = Column(String, nullable=True)
    website_url = Column(String, nullable=True)
    social_links = Column(JSON, nullable=True)
    upi_id = Column(String, nullable=True)
    verification_status = Column(String, nullable=False, server_default=VerificationStatus.PENDING, default=VerificationStatus.PENDING)
    verification_documents = Column(JSON, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(Uuid, ForeignKey("profiles.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    user = relationship("Profile", back_populates="organizer", foreign_keys=[user_id])
    events = relationship("Event", back_populates="organizer")


class Event(Base):
    __tablename__ = "events"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organizer_id = Column(Uuid, ForeignKey("organizers.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String, nullable=False, server_default="other")  # hackathon, workshop, seminar, fest, ideathon, other
    banner_url = Column(String, nullable=True)
    venue = Column(String, nullable=False)
    address = Column(String, nullable=True)
    city = Column(String, nullable=False, index=True)
    state = Column(String, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    max_participants = Column(Integer, nullable=True)  # NULL = unlimited
    current_participants = Column(Integer, nullable=False, server_default="0", default=0)
    is_team_event = Column(Boolean, nullable=False, server_default=false(), default=False)
    max_team_size = Column(Integer, nullable=True)
    event_status = Column(String, nullable=False, server_default=EventStatus.DRAFT, default=EventStatus.DRAFT)
    is_featured = Column(Boolean, nullable=False, server_default=false(), default=False)
    tags = Column(JSON, nullable=True)
    requirements = Column(Text, nullable=True)
    prizes = Column(Text, nullable=True)
    contact_info = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    organizer = relationship("Organizer", back_populates="events")
    ticket_types = relationship("PassType", back_populates="event", cascade="all, delete-orphan")
    registrations = relationship("Registration", back_populates="event")
    tickets = relationship("Ticket", back_populates="event")
    analytics = relationship("EventAnalytics", back_populates="event")


class PassType(Base):
    __tablename__ = "ticket_types"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False, server_default="0", default=0)
    quantity = Column(Integer, nullable=True)  # NULL = unlimited
    sold = Column(Integer, nullable=False, server_default="0", default=0)
    is_active = Column(Boolean, nullable=False, server_default=true(), default=True)
    sale_start = Column(DateTime(timezone=True), nullable=True)
    sale_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    event = relationship("Event", back_populates="ticket_types")


class Registration(Base):
    __tablename__ = "registrations"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False, index=True)
    pass_type_id = Column(Uuid, ForeignKey("ticket_types.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False, index=True)
    payment_reference = Column(String, nullable=True)  # UTR or gateway payment id
    order_id = Column(String, nullable=True)
    team_name = Column(String, nullable=True)
    team_members = Column(JSON, nullable=True)  # [{"name", "email", "college", "year"}]
    status = Column(String, nullable=False, server_default=RegistrationStatus.PENDING, default=RegistrationStatus.PENDING)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    event = relationship("Event", back_populates="registrations")
    pass_type = relationship("PassType")
    user = relationship("Profile", back_populates="registrations")
    ticket = relationship("Ticket", back_populates="registration", uselist=False)
    payments = relationship("Payment", back_populates="registration")


class Ticket(Base):
    __tablename__ = "tickets"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("registration_id", "pass_type_id", name="uq_tickets_registration_pass"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Opaque token carried by the QR; the primary key is never exposed
    ticket_token = Column(String, unique=True, index=True, nullable=False)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False, index=True)
    registration_id = Column(Uuid, ForeignKey("registrations.id"), nullable=False)
    pass_type_id = Column(Uuid, ForeignKey("ticket_types.id"), nullable=False)
    status = Column(String, nullable=False, server_default=TicketStatus.ACTIVE, default=TicketStatus.ACTIVE)
    scanned_at = Column(DateTime(timezone=True), nullable=True)
    scanned_by = Column(String, nullable=True)  # profile id or volunteer id of the scanner
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    event = relationship("Event", back_populates="tickets")
    user = relationship("Profile", back_populates="tickets", foreign_keys=[user_id])
    registration = relationship("Registration", back_populates="ticket")
    pass_type = relationship("PassType")


class Payment(Base):
    __tablename__ = "payments"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_id = Column(Uuid, ForeignKey("registrations.id"), nullable=True)
    gateway_order_id = Column(String, unique=True, nullable=False, index=True)
    gateway_payment_id = Column(String, nullable=True)
    amount = Column(Integer, nullable=False)  # paise
    currency = Column(String, nullable=False, server_default="INR")
    status = Column(String, nullable=False, server_default=PaymentStatus.PENDING, default=PaymentStatus.PENDING)
    organizer_upi_id = Column(String, nullable=True)
    payment_method = Column(String, nullable=True, server_default="upi")
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    registration = relationship("Registration", back_populates="payments")


class Notification(Base):
    __tablename__ = "notifications"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, server_default=false(), default=False)
    sent_via = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class EventAnalytics(Base):
    __tablename__ = "event_analytics"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("event_id", "date", name="uq_event_analytics_event_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False)
    date = Column(Date, nullable=False)
    views = Column(Integer, nullable=False, server_default="0", default=0)
    registrations = Column(Integer, nullable=False, server_default="0", default=0)
    revenue = Column(Numeric(12, 2), nullable=False, server_default="0", default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    event = relationship("Event", back_populates="analytics")


class VolunteerAssignment(Base):
    """Volunteer account scoped to a single event"""
    __tablename__ = "volunteer_assignments"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("event_id", "username", name="uq_volunteer_event_username"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False)
    username = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=true(), default=True)
    created_by = Column(Uuid, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    event = relationship("Event")
