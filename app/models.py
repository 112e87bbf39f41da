import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Account roles carried by the authenticated principal
ROLE_ADMIN = "ADMIN"
ROLE_CLINIC = "CLINIC"
ROLE_THERAPIST = "THERAPIST"
OWNER_TYPES = (ROLE_CLINIC, ROLE_THERAPIST)

# Support ticket lifecycle
TICKET_OPEN = "open"
TICKET_IN_PROGRESS = "in-progress"
TICKET_RESOLVED = "resolved"
TICKET_CLOSED = "closed"
TICKET_STATUSES = (TICKET_OPEN, TICKET_IN_PROGRESS, TICKET_RESOLVED, TICKET_CLOSED)

SENDER_ADMIN = "ADMIN"
SENDER_USER = "USER"

# Mirrors Stripe subscription statuses
SUBSCRIPTION_STATUSES = (
    "active",
    "canceled",
    "past_due",
    "trialing",
    "incomplete",
    "incomplete_expired",
    "unpaid",
)

PAYMENT_SUCCEEDED = "succeeded"
PAYMENT_FAILED = "failed"
PAYMENT_PENDING = "pending"


def generate_id():
    """Generate an opaque primary key"""
    return str(uuid.uuid4())


class Admin(Base):
    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=generate_id)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(String(36), primary_key=True, default=generate_id)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    private_practice_name = Column(String(255), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())


class Therapist(Base):
    __tablename__ = "therapists"

    id = Column(String(36), primary_key=True, default=generate_id)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="SET NULL"), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())


class SupportTicket(Base):
    """Support ticket owned by exactly one clinic or therapist.

    ``owner_type``/``owner_id`` is the authoritative owner reference. The
    ``clinic_id``/``therapist_id`` foreign keys are derived from it and the
    check constraint keeps the two representations consistent at the store.
    """

    __tablename__ = "support_tickets"
    __table_args__ = (
        CheckConstraint(
            "(owner_type = 'CLINIC' AND clinic_id = owner_id AND therapist_id IS NULL) OR "
            "(owner_type = 'THERAPIST' AND therapist_id = owner_id AND clinic_id IS NULL)",
            name="ck_support_tickets_single_owner",
        ),
        CheckConstraint(
            "status IN ('open', 'in-progress', 'resolved', 'closed')",
            name="ck_support_tickets_status",
        ),
        Index("ix_support_tickets_owner", "owner_type", "owner_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    owner_type = Column(String(20), nullable=False)  # CLINIC, THERAPIST
    owner_id = Column(String(36), nullable=False)
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=True)
    therapist_id = Column(
        String(36), ForeignKey("therapists.id", ondelete="CASCADE"), nullable=True
    )
    subject = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=TICKET_OPEN, index=True)
    admin_reply = Column(Text, nullable=True)
    admin_replied_at = Column(DateTime, nullable=True)
    admin_email = Column(String(255), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolution_note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    messages = relationship(
        "SupportMessage",
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SupportMessage.created_at",
    )

    @classmethod
    def for_owner(cls, owner_type: str, owner_id: str, **fields) -> "SupportTicket":
        """Build a ticket with the owner foreign keys derived from the owner reference"""
        return cls(
            owner_type=owner_type,
            owner_id=owner_id,
            clinic_id=owner_id if owner_type == ROLE_CLINIC else None,
            therapist_id=owner_id if owner_type == ROLE_THERAPIST else None,
            **fields,
        )


class SupportMessage(Base):
    __tablename__ = "support_messages"
    __table_args__ = (
        CheckConstraint("sender_type IN ('ADMIN', 'USER')", name="ck_support_messages_sender"),
        Index("ix_support_messages_unread", "support_id", "sender_type", "is_read"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    support_id = Column(
        String(36), ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_type = Column(String(10), nullable=False)  # ADMIN, USER
    sender_id = Column(String(36), nullable=False, index=True)
    sender_name = Column(String(255), nullable=False)
    sender_email = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    # [{url, key, filename, contentType, size}]
    attachments = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    ticket = relationship("SupportTicket", back_populates="messages")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True, default=generate_id)
    plan_name = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="usd", nullable=False)
    interval = Column(String(20), default="month", nullable=False)  # month, year
    stripe_price_id = Column(String(255), unique=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint(
            "(clinic_id IS NOT NULL AND therapist_id IS NULL) OR "
            "(clinic_id IS NULL AND therapist_id IS NOT NULL)",
            name="ck_subscriptions_single_owner",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    stripe_subscription_id = Column(String(255), unique=True, nullable=False, index=True)
    stripe_customer_id = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False, default="incomplete")
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(DateTime, nullable=True)
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=True)
    therapist_id = Column(
        String(36), ForeignKey("therapists.id", ondelete="CASCADE"), nullable=True
    )
    subscription_plan_id = Column(
        String(36), ForeignKey("subscription_plans.id"), nullable=True
    )
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    subscription_plan = relationship("SubscriptionPlan")
    payments = relationship("Payment", back_populates="subscription")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    subscription_id = Column(
        String(36), ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    # Idempotency key for invoice events
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=False)
    stripe_charge_id = Column(String(255), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="usd", nullable=False)
    status = Column(String(20), nullable=False, default=PAYMENT_PENDING)  # succeeded, failed, pending
    description = Column(String(500), nullable=True)
    payment_method_last4 = Column(String(4), nullable=True)
    payment_method_brand = Column(String(50), nullable=True)
    payment_type = Column(String(50), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="SET NULL"), nullable=True)
    therapist_id = Column(
        String(36), ForeignKey("therapists.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    subscription = relationship("Subscription", back_populates="payments")


class PlatformSettings(Base):
    """Singleton row holding platform-wide settings, one JSON document per section"""

    __tablename__ = "platform_settings"

    id = Column(String(36), primary_key=True, default="default")
    security = Column(JSON, nullable=False)
    system = Column(JSON, nullable=False)
    notifications = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_by = Column(String(255), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
