"""Billing repository - Database operations for subscriptions and payments"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ...models import PAYMENT_SUCCEEDED, Payment, Subscription, SubscriptionPlan


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def list_active_plans(db: Session) -> list[SubscriptionPlan]:
        return (
            db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.price.asc())
            .all()
        )

    @staticmethod
    def get_plan(db: Session, plan_id: str) -> Optional[SubscriptionPlan]:
        return db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    @staticmethod
    def create_subscription(db: Session, subscription: Subscription) -> Subscription:
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription

    @staticmethod
    def get_subscription_by_stripe_id(db: Session, stripe_subscription_id: str) -> Optional[Subscription]:
        return (
            db.query(Subscription)
            .options(joinedload(Subscription.subscription_plan))
            .filter(Subscription.stripe_subscription_id == stripe_subscription_id)
            .first()
        )

    @staticmethod
    def update_subscriptions_by_stripe_id(db: Session, stripe_subscription_id: str, **values) -> int:
        """Update every subscription row carrying this Stripe id"""
        updated = (
            db.query(Subscription)
            .filter(Subscription.stripe_subscription_id == stripe_subscription_id)
            .update(values, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def get_current_subscription(
        db: Session, owner_column: str, owner_id: str, statuses: tuple
    ) -> Optional[Subscription]:
        """Most recent subscription for an owner in one of ``statuses``"""
        return (
            db.query(Subscription)
            .options(joinedload(Subscription.subscription_plan))
            .filter(getattr(Subscription, owner_column) == owner_id)
            .filter(Subscription.status.in_(statuses))
            .order_by(Subscription.created_at.desc())
            .first()
        )

    @staticmethod
    def update_subscription(db: Session, subscription: Subscription, **updates) -> Subscription:
        for key, value in updates.items():
            if hasattr(subscription, key):
                setattr(subscription, key, value)
        db.commit()
        db.refresh(subscription)
        return subscription

    @staticmethod
    def get_payment_by_intent(db: Session, payment_intent_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.stripe_payment_intent_id == payment_intent_id).first()

    @staticmethod
    def get_payment(db: Session, payment_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.id == payment_id).first()

    @staticmethod
    def create_payment(db: Session, payment: Payment) -> bool:
        """
        Insert a payment row.

        Returns False when another delivery already inserted the same
        payment intent (unique constraint), in which case nothing is written.
        """
        db.add(payment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        db.refresh(payment)
        return True

    @staticmethod
    def mark_payment_succeeded(db: Session, payment_intent_id: str, paid_at: datetime) -> int:
        """Promote a payment to succeeded unless it already is"""
        updated = (
            db.query(Payment)
            .filter(
                Payment.stripe_payment_intent_id == payment_intent_id,
                Payment.status != PAYMENT_SUCCEEDED,
            )
            .update({"status": PAYMENT_SUCCEEDED, "paid_at": paid_at}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def mark_payment_status_unless_succeeded(db: Session, payment_intent_id: str, status: str) -> int:
        """Set a payment's status without ever regressing a succeeded payment"""
        updated = (
            db.query(Payment)
            .filter(
                Payment.stripe_payment_intent_id == payment_intent_id,
                Payment.status != PAYMENT_SUCCEEDED,
            )
            .update({"status": status}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def list_payments(
        db: Session, owner_column: str, owner_id: str, offset: int, limit: int
    ) -> tuple[int, list[Payment]]:
        """An owner's payments, most recently paid first"""
        query = db.query(Payment).filter(getattr(Payment, owner_column) == owner_id)
        total = query.count()
        payments = (
            query.order_by(Payment.paid_at.desc(), Payment.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return total, payments
