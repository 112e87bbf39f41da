"""Subscription service - Business logic for subscriptions and payment history"""

import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import Principal
from ...models import ROLE_CLINIC, ROLE_THERAPIST, Subscription
from ...shared.errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..accounts import AccountDirectory
from .repository import BillingRepository
from .schemas import payment_to_response, plan_to_response, subscription_to_response
from .stripe_gateway import StripeGateway
from .webhook_service import WebhookReconciler, invoice_payment_intent_id, subscription_period

logger = logging.getLogger(__name__)

CURRENT_STATUSES = ("active", "trialing")

OWNER_COLUMNS = {
    ROLE_CLINIC: "clinic_id",
    ROLE_THERAPIST: "therapist_id",
}


class SubscriptionService:
    """Service for subscription management"""

    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None):
        self.db = db
        self.repo = BillingRepository()
        self.accounts = AccountDirectory()
        self.gateway = gateway or StripeGateway()

    def owner_column(self, principal: Principal) -> str:
        column = OWNER_COLUMNS.get(principal.role)
        if not column:
            raise ForbiddenError("Only clinic and therapist accounts have subscriptions")
        return column

    def _get_current_or_404(self, principal: Principal):
        subscription = self.repo.get_current_subscription(
            self.db, self.owner_column(principal), principal.id, CURRENT_STATUSES
        )
        if not subscription:
            raise NotFoundError("No active subscription found")
        return subscription

    def list_plans(self) -> list:
        """Purchasable plans, cheapest first"""
        return [plan_to_response(plan) for plan in self.repo.list_active_plans(self.db)]

    def get_current_subscription(self, principal: Principal) -> dict:
        """Get the caller's active or trialing subscription"""
        return subscription_to_response(self._get_current_or_404(principal))

    def purchase_subscription(
        self, principal: Principal, plan_id: str, payment_method_id: Optional[str] = None
    ) -> dict:
        """
        Start a Stripe subscription for the caller and store the local row.

        The Stripe customer is created on first purchase. When the first
        invoice is already paid its payment is recorded here; the matching
        invoice webhook later finds it and does nothing.
        """
        owner_column = self.owner_column(principal)
        if self.repo.get_current_subscription(self.db, owner_column, principal.id, CURRENT_STATUSES):
            raise ConflictError("You already have an active subscription")

        plan = self.repo.get_plan(self.db, plan_id)
        if not plan or not plan.is_active:
            raise NotFoundError("Subscription plan not found")
        if not plan.stripe_price_id:
            raise ValidationError("Subscription plan does not have a Stripe price ID")

        owner = self.accounts.get_owner(self.db, principal.role, principal.id)
        if not owner:
            raise NotFoundError("Account not found")

        metadata = {"ownerType": principal.role, "ownerId": principal.id}
        if not owner.stripe_customer_id:
            owner.stripe_customer_id = self.gateway.create_customer(owner.email, owner.full_name, metadata)
            self.db.commit()
            logger.info(f"👤 Created Stripe customer {owner.stripe_customer_id} for {principal.role} {principal.id}")

        stripe_subscription = self.gateway.create_subscription(
            owner.stripe_customer_id,
            plan.stripe_price_id,
            payment_method_id,
            {**metadata, "planId": plan.id},
        )
        period_start, period_end = subscription_period(stripe_subscription)

        subscription = self.repo.create_subscription(
            self.db,
            Subscription(
                stripe_subscription_id=stripe_subscription["id"],
                stripe_customer_id=owner.stripe_customer_id,
                status=stripe_subscription.get("status") or "incomplete",
                current_period_start=period_start,
                current_period_end=period_end,
                cancel_at_period_end=bool(stripe_subscription.get("cancel_at_period_end")),
                subscription_plan_id=plan.id,
                **{owner_column: principal.id},
            ),
        )
        logger.info(
            f"🧾 {principal.role} {principal.id} subscribed to {plan.plan_name} "
            f"({subscription.stripe_subscription_id}, status={subscription.status})"
        )

        invoice = stripe_subscription.get("latest_invoice")
        if isinstance(invoice, dict) and invoice.get("status") == "paid":
            payment_intent_id = invoice_payment_intent_id(invoice)
            if payment_intent_id:
                WebhookReconciler(self.db, self.gateway).record_invoice_payment(
                    subscription, invoice, payment_intent_id
                )

        return subscription_to_response(subscription)

    def reactivate_subscription(self, principal: Principal) -> dict:
        """Withdraw a scheduled end-of-period cancellation"""
        subscription = self._get_current_or_404(principal)
        if not subscription.cancel_at_period_end:
            raise InvalidStateError("Subscription is not scheduled for cancellation")

        stripe_subscription = self.gateway.resume_subscription(subscription.stripe_subscription_id)
        subscription = self.repo.update_subscription(
            self.db,
            subscription,
            cancel_at_period_end=False,
            status=stripe_subscription.get("status") or subscription.status,
        )
        logger.info(f"▶️ {principal.role} {principal.id} reactivated {subscription.stripe_subscription_id}")
        return {
            "message": "Subscription reactivated successfully",
            "subscription": subscription_to_response(subscription),
        }

    def cancel_subscription(self, principal: Principal, cancel_immediately: bool = False) -> dict:
        """
        Cancel the caller's subscription with Stripe, then mirror it locally.

        Immediate cancellation ends access now; otherwise the subscription
        stays active until the current period ends.
        """
        subscription = self._get_current_or_404(principal)
        if subscription.cancel_at_period_end and not cancel_immediately:
            raise InvalidStateError("Subscription is already scheduled for cancellation")

        if cancel_immediately:
            self.gateway.cancel_subscription(subscription.stripe_subscription_id)
            subscription = self.repo.update_subscription(
                self.db, subscription, status="canceled", canceled_at=datetime.utcnow()
            )
            message = "Subscription canceled successfully"
        else:
            self.gateway.schedule_cancellation(subscription.stripe_subscription_id)
            subscription = self.repo.update_subscription(self.db, subscription, cancel_at_period_end=True)
            message = "Subscription will be canceled at the end of the billing period"

        logger.info(
            f"🛑 {principal.role} {principal.id} canceled subscription {subscription.stripe_subscription_id} "
            f"(immediately={cancel_immediately})"
        )
        return {"message": message, "subscription": subscription_to_response(subscription)}

    def get_payment_history(self, principal: Principal, page: int = 1, limit: int = 10) -> dict:
        """Paginated payment history for the caller"""
        total, payments = self.repo.list_payments(
            self.db, self.owner_column(principal), principal.id, (page - 1) * limit, limit
        )
        return {
            "data": [payment_to_response(payment) for payment in payments],
            "meta": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": math.ceil(total / limit) if total else 0,
            },
        }

    def get_payment_by_id(self, payment_id: str, principal: Principal) -> dict:
        payment = self.repo.get_payment(self.db, payment_id)
        if not payment:
            raise NotFoundError("Payment not found")
        if getattr(payment, self.owner_column(principal)) != principal.id:
            raise ForbiddenError("You do not have access to this payment")
        return payment_to_response(payment)
