"""
Notification Dispatcher
Turns support and billing events into outbound email.
Business writes have already committed when these run, so every failure is
logged and swallowed, never raised to the caller.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .. import email_service
from ..domain.settings.service import SettingsService

logger = logging.getLogger(__name__)

TOPIC_SUPPORT = "support"
TOPIC_PAYMENT = "payment"


def _email_enabled(db: Session, topic: str) -> tuple[bool, str]:
    """Check the persisted notification switches for a topic, returns (enabled, platform name)"""
    service = SettingsService(db)
    notifications = service.get_notification_settings()
    platform_name = service.get_system_settings().platformName

    if not notifications.emailNotifications:
        return False, platform_name
    if topic == TOPIC_SUPPORT:
        return notifications.notifyOnSupportTicket, platform_name
    if topic == TOPIC_PAYMENT:
        return notifications.notifyOnFailedPayment, platform_name
    return True, platform_name


async def send_notification(
    db: Session,
    notification_type: str,
    topic: str,
    recipient: Optional[str],
    email_func,
    email_kwargs: dict,
) -> dict:
    """
    Send one notification email if the recipient is known and the topic is enabled

    Args:
        db: Database session used to read notification settings
        notification_type: Event name (for logging)
        topic: Settings switch that gates this event
        recipient: Destination email address
        email_func: Email function to call
        email_kwargs: Kwargs for email function, ``to`` and ``platform_name`` are added

    Returns:
        Dict with email_sent, skipped and email_error
    """
    result = {"email_sent": False, "skipped": False, "email_error": None}

    if not recipient:
        logger.debug(f"⚠️ No email address for {notification_type} notification")
        result["skipped"] = True
        return result

    try:
        enabled, platform_name = _email_enabled(db, topic)
        if not enabled:
            logger.info(f"ℹ️ {notification_type} email disabled by notification settings")
            result["skipped"] = True
            return result

        logger.info(f"📧 Sending {notification_type} email to {recipient}")
        await email_func(to=recipient, platform_name=platform_name, **email_kwargs)
        result["email_sent"] = True
        logger.info(f"✅ {notification_type} email sent successfully to {recipient}")
    except Exception as e:
        result["email_error"] = str(e)
        logger.error(f"❌ Failed to send {notification_type} email to {recipient}: {e}")

    return result


def _owner_name(owner, fallback: str) -> str:
    return (owner.full_name if owner and owner.full_name else None) or fallback


async def notify_ticket_created(db: Session, ticket, owner) -> dict:
    """Confirmation to the ticket owner"""
    return await send_notification(
        db=db,
        notification_type="ticket_created",
        topic=TOPIC_SUPPORT,
        recipient=owner.email if owner else None,
        email_func=email_service.send_ticket_created_email,
        email_kwargs={
            "user_name": _owner_name(owner, "there"),
            "ticket_id": ticket.id,
            "subject": ticket.subject,
            "message": ticket.message,
        },
    )


async def notify_admin_replied(db: Session, ticket, owner) -> dict:
    return await send_notification(
        db=db,
        notification_type="admin_reply",
        topic=TOPIC_SUPPORT,
        recipient=owner.email if owner else None,
        email_func=email_service.send_admin_reply_email,
        email_kwargs={
            "user_name": _owner_name(owner, "there"),
            "ticket_id": ticket.id,
            "subject": ticket.subject,
            "reply": ticket.admin_reply or "",
        },
    )


async def notify_ticket_resolved(db: Session, ticket, owner) -> dict:
    return await send_notification(
        db=db,
        notification_type="ticket_resolved",
        topic=TOPIC_SUPPORT,
        recipient=owner.email if owner else None,
        email_func=email_service.send_ticket_resolved_email,
        email_kwargs={
            "user_name": _owner_name(owner, "there"),
            "ticket_id": ticket.id,
            "subject": ticket.subject,
            "resolution_note": ticket.resolution_note,
        },
    )


async def notify_payment_failed(
    db: Session,
    subscriber,
    amount: Optional[float],
    currency: str,
    plan_name: Optional[str],
) -> dict:
    """Tell a subscriber their subscription payment failed"""
    return await send_notification(
        db=db,
        notification_type="payment_failed",
        topic=TOPIC_PAYMENT,
        recipient=subscriber.email if subscriber else None,
        email_func=email_service.send_payment_failed_email,
        email_kwargs={
            "user_name": _owner_name(subscriber, "there"),
            "amount": amount,
            "currency": currency,
            "plan_name": plan_name,
        },
    )
