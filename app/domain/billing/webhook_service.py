"""Stripe webhook reconciler - maps Stripe events onto Subscription and Payment rows

Stripe delivers at least once, so every handler is idempotent: payments are
keyed by payment intent id (unique), status changes are conditional updates,
and nothing ever moves a succeeded payment to another status.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import STRIPE_WEBHOOK_SECRET
from ...models import (
    PAYMENT_FAILED,
    PAYMENT_SUCCEEDED,
    ROLE_CLINIC,
    ROLE_THERAPIST,
    Payment,
    Subscription,
)
from ...services import notification_service
from ...shared.errors import InvalidSignatureError, ValidationError
from ...webhook_security import verify_stripe_signature
from ..accounts import AccountDirectory
from .repository import BillingRepository
from .stripe_gateway import StripeGateway, stripe_id, stripe_value

logger = logging.getLogger(__name__)


def from_epoch(value) -> Optional[datetime]:
    """Stripe seconds-since-epoch to a naive UTC datetime"""
    if value in (None, ""):
        return None
    return datetime.utcfromtimestamp(int(value))


def minor_to_major(amount) -> Decimal:
    """Stripe amounts are in the currency's minor unit"""
    return (Decimal(int(amount or 0)) / Decimal(100)).quantize(Decimal("0.01"))


def invoice_subscription_id(invoice: dict) -> Optional[str]:
    # Newer API versions moved this under parent.subscription_details
    return stripe_id(invoice.get("subscription")) or stripe_id(
        stripe_value(invoice, "parent", "subscription_details", "subscription")
    )


def invoice_payment_intent_id(invoice: dict) -> Optional[str]:
    payment_intent = stripe_id(invoice.get("payment_intent"))
    if payment_intent:
        return payment_intent
    payments = stripe_value(invoice, "payments", "data", default=[])
    for item in payments:
        payment_intent = stripe_id(stripe_value(item, "payment", "payment_intent"))
        if payment_intent:
            return payment_intent
    return None


def subscription_period(stripe_subscription: dict) -> tuple[Optional[datetime], Optional[datetime]]:
    # Newer API versions carry the period on each subscription item
    first_item = (stripe_value(stripe_subscription, "items", "data", default=[]) or [{}])[0]
    start = stripe_subscription.get("current_period_start") or stripe_value(first_item, "current_period_start")
    end = stripe_subscription.get("current_period_end") or stripe_value(first_item, "current_period_end")
    return from_epoch(start), from_epoch(end)


def subscription_owner(subscription: Subscription) -> tuple[Optional[str], Optional[str]]:
    if subscription.clinic_id:
        return ROLE_CLINIC, subscription.clinic_id
    if subscription.therapist_id:
        return ROLE_THERAPIST, subscription.therapist_id
    return None, None


class WebhookReconciler:
    """Service for verifying and applying Stripe webhook events"""

    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None, secret: Optional[str] = None):
        self.db = db
        self.repo = BillingRepository()
        self.accounts = AccountDirectory()
        self.gateway = gateway or StripeGateway()
        self.secret = secret if secret is not None else STRIPE_WEBHOOK_SECRET
        self.handlers = {
            "invoice.payment_succeeded": self.handle_invoice_payment_succeeded,
            "invoice.payment_failed": self.handle_invoice_payment_failed,
            "customer.subscription.created": self.handle_subscription_created,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
        }

    async def handle_webhook(self, signature_header: Optional[str], raw_body: bytes) -> dict:
        """
        Verify, parse and dispatch one delivery.

        The signature is checked over the raw bytes before the body is parsed.
        Handler failures are logged and re-raised so Stripe retries the delivery.
        """
        if not signature_header:
            logger.warning("🚫 Stripe webhook missing signature header")
            raise InvalidSignatureError("Missing stripe-signature header")

        verify_stripe_signature(raw_body, signature_header, self.secret)

        try:
            event = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Invalid webhook payload") from e
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload")

        event_id = event.get("id")
        event_type = event.get("type")
        data_object = stripe_value(event, "data", "object", default={})
        logger.info(f"📥 Stripe webhook received: id={event_id} type={event_type}")

        handler = self.handlers.get(event_type)
        if not handler:
            logger.info(f"ℹ️ Unhandled Stripe event type: {event_type}")
            return {"received": True}

        try:
            await handler(data_object)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error processing Stripe webhook {event_id} ({event_type}): {e}", exc_info=True)
            raise

        logger.info(f"✅ Stripe webhook processed: id={event_id} type={event_type}")
        return {"received": True}

    # --------------------------------------------------------------- invoices

    async def handle_invoice_payment_succeeded(self, invoice: dict) -> None:
        stripe_subscription_id = invoice_subscription_id(invoice)
        if not stripe_subscription_id:
            logger.info(f"ℹ️ Invoice {invoice.get('id')} has no subscription, skipping")
            return

        subscription = self.repo.get_subscription_by_stripe_id(self.db, stripe_subscription_id)
        if not subscription:
            logger.warning(f"⚠️ Subscription not found for Stripe ID: {stripe_subscription_id}")
            return

        payment_intent_id = invoice_payment_intent_id(invoice)
        if not payment_intent_id:
            logger.warning(f"⚠️ No payment intent on invoice {invoice.get('id')}, skipping")
            return

        self.record_invoice_payment(subscription, invoice, payment_intent_id)

    def record_invoice_payment(self, subscription: Subscription, invoice: dict, payment_intent_id: str) -> None:
        """
        Record a paid invoice against a local subscription.

        Keyed by payment intent id, so the purchase flow and later webhook
        deliveries of the same invoice converge on one succeeded row.
        """
        stripe_subscription_id = subscription.stripe_subscription_id
        paid_at = from_epoch(stripe_value(invoice, "status_transitions", "paid_at")) or datetime.utcnow()

        existing = self.repo.get_payment_by_intent(self.db, payment_intent_id)
        if existing:
            if existing.status == PAYMENT_SUCCEEDED:
                logger.info(f"ℹ️ Payment already recorded: {payment_intent_id}")
                return
            if self.repo.mark_payment_succeeded(self.db, payment_intent_id, paid_at):
                logger.info(f"✅ Payment {payment_intent_id} marked succeeded")
            return

        charge_id = stripe_id(invoice.get("charge"))
        charge = self.gateway.retrieve_charge(charge_id, payment_intent_id)

        plan = subscription.subscription_plan
        plan_name = plan.plan_name if plan else "Subscription"

        payment = Payment(
            subscription_id=subscription.id,
            stripe_subscription_id=stripe_subscription_id,
            stripe_payment_intent_id=payment_intent_id,
            stripe_charge_id=stripe_id(charge) or charge_id,
            amount=minor_to_major(invoice.get("amount_paid")),
            currency=(invoice.get("currency") or "usd").lower(),
            status=PAYMENT_SUCCEEDED,
            description=invoice.get("description") or f"{plan_name} - Payment",
            payment_method_last4=stripe_value(charge, "payment_method_details", "card", "last4", default="N/A"),
            payment_method_brand=stripe_value(charge, "payment_method_details", "card", "brand", default="N/A"),
            payment_type="subscription",
            paid_at=paid_at,
            clinic_id=subscription.clinic_id,
            therapist_id=subscription.therapist_id,
        )

        if self.repo.create_payment(self.db, payment):
            logger.info(f"✅ Payment recorded: {payment_intent_id} ({payment.amount} {payment.currency})")
            return

        # A concurrent delivery inserted the row first
        logger.info(f"ℹ️ Payment {payment_intent_id} inserted concurrently, reconciling status")
        self.repo.mark_payment_succeeded(self.db, payment_intent_id, paid_at)

    async def handle_invoice_payment_failed(self, invoice: dict) -> None:
        stripe_subscription_id = invoice_subscription_id(invoice)
        subscription = None

        if stripe_subscription_id:
            updated = self.repo.update_subscriptions_by_stripe_id(
                self.db, stripe_subscription_id, status="past_due"
            )
            logger.info(f"⚠️ {updated} subscription(s) {stripe_subscription_id} marked past_due")
            subscription = self.repo.get_subscription_by_stripe_id(self.db, stripe_subscription_id)

        payment_intent_id = invoice_payment_intent_id(invoice)
        if payment_intent_id:
            if self.repo.mark_payment_status_unless_succeeded(self.db, payment_intent_id, PAYMENT_FAILED):
                logger.info(f"❌ Payment {payment_intent_id} marked failed")

        if subscription:
            owner_type, owner_id = subscription_owner(subscription)
            subscriber = self.accounts.get_owner(self.db, owner_type, owner_id)
            plan = subscription.subscription_plan
            await notification_service.notify_payment_failed(
                self.db,
                subscriber,
                float(minor_to_major(invoice.get("amount_due"))),
                invoice.get("currency") or "usd",
                plan.plan_name if plan else None,
            )

    # ---------------------------------------------------------- subscriptions

    async def handle_subscription_created(self, stripe_subscription: dict) -> None:
        # Rows are created by the purchase flow; creating here would race it
        logger.info(f"ℹ️ Subscription created event for {stripe_subscription.get('id')}, no action")

    async def handle_subscription_updated(self, stripe_subscription: dict) -> None:
        stripe_subscription_id = stripe_subscription.get("id")
        period_start, period_end = subscription_period(stripe_subscription)

        values = {
            "status": stripe_subscription.get("status"),
            "current_period_start": period_start,
            "current_period_end": period_end,
            "cancel_at_period_end": bool(stripe_subscription.get("cancel_at_period_end")),
        }
        if stripe_subscription.get("canceled_at"):
            values["canceled_at"] = from_epoch(stripe_subscription["canceled_at"])
        values = {key: value for key, value in values.items() if value is not None}

        updated = self.repo.update_subscriptions_by_stripe_id(self.db, stripe_subscription_id, **values)
        if not updated:
            logger.warning(f"⚠️ Subscription not found for Stripe ID: {stripe_subscription_id}")
            return
        logger.info(f"🔄 Subscription {stripe_subscription_id} updated: status={values.get('status')}")

    async def handle_subscription_deleted(self, stripe_subscription: dict) -> None:
        stripe_subscription_id = stripe_subscription.get("id")
        updated = self.repo.update_subscriptions_by_stripe_id(
            self.db, stripe_subscription_id, status="canceled", canceled_at=datetime.utcnow()
        )
        if not updated:
            logger.warning(f"⚠️ Subscription not found for Stripe ID: {stripe_subscription_id}")
            return
        logger.info(f"🛑 Subscription {stripe_subscription_id} canceled")
