"""Stripe gateway - outbound calls to the Stripe API"""

import json
import logging
from typing import Any, Optional

import stripe

from ...config import STRIPE_SECRET_KEY
from ...shared.errors import UpstreamError

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY


def stripe_value(obj: Any, *path: str, default: Any = None) -> Any:
    """
    Walk a path through Stripe payloads.

    Works for webhook JSON (plain dicts) and SDK objects alike; a missing
    key anywhere along the path yields ``default``.
    """
    current = obj
    for key in path:
        if current is None:
            return default
        if isinstance(current, dict):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
    return default if current is None else current


def as_payload(obj: Any) -> dict:
    """SDK object as the same plain-dict shape webhooks deliver"""
    if isinstance(obj, dict):
        return obj
    return json.loads(str(obj))


def stripe_id(value: Any) -> Optional[str]:
    """Id of a field that is either a bare id string or an expanded object"""
    if value is None or isinstance(value, str):
        return value
    return stripe_value(value, "id")


class StripeGateway:
    """Thin wrapper so Stripe failures surface as UpstreamError"""

    def retrieve_charge(self, charge_id: Optional[str], payment_intent_id: Optional[str]):
        """Fetch the charge behind an invoice payment, by charge id or via its payment intent"""
        try:
            if charge_id:
                return stripe.Charge.retrieve(charge_id)
            if payment_intent_id:
                intent = stripe.PaymentIntent.retrieve(payment_intent_id, expand=["latest_charge"])
                return stripe_value(intent, "latest_charge")
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe charge lookup failed (charge={charge_id}, pi={payment_intent_id}): {e}")
            raise UpstreamError("Payment processor request failed") from e
        return None

    def cancel_subscription(self, stripe_subscription_id: str):
        """Cancel immediately"""
        try:
            return stripe.Subscription.cancel(stripe_subscription_id)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe cancel failed for {stripe_subscription_id}: {e}")
            raise UpstreamError("Failed to cancel subscription with payment processor") from e

    def schedule_cancellation(self, stripe_subscription_id: str):
        """Cancel at the end of the current billing period"""
        try:
            return stripe.Subscription.modify(stripe_subscription_id, cancel_at_period_end=True)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe cancel_at_period_end failed for {stripe_subscription_id}: {e}")
            raise UpstreamError("Failed to cancel subscription with payment processor") from e

    def create_customer(self, email: str, name: Optional[str], metadata: dict) -> str:
        """Create a Stripe customer and return its id"""
        try:
            customer = stripe.Customer.create(email=email, name=name, metadata=metadata)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe customer creation failed for {email}: {e}")
            raise UpstreamError("Failed to create customer with payment processor") from e
        return customer.id

    def create_subscription(
        self, customer_id: str, price_id: str, payment_method_id: Optional[str], metadata: dict
    ) -> dict:
        """
        Start a subscription on ``price_id``.

        Without ``payment_method_id`` Stripe charges the customer's default
        payment method. The first invoice and its payment intent come back
        expanded so the initial payment can be recorded right away.
        """
        params = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "metadata": metadata,
            "expand": ["latest_invoice.payment_intent"],
        }
        if payment_method_id:
            params["default_payment_method"] = payment_method_id
        try:
            subscription = stripe.Subscription.create(**params)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe subscription creation failed for customer {customer_id}: {e}")
            raise UpstreamError("Failed to create subscription with payment processor") from e
        return as_payload(subscription)

    def resume_subscription(self, stripe_subscription_id: str) -> dict:
        """Undo a scheduled end-of-period cancellation"""
        try:
            subscription = stripe.Subscription.modify(stripe_subscription_id, cancel_at_period_end=False)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe reactivation failed for {stripe_subscription_id}: {e}")
            raise UpstreamError("Failed to reactivate subscription with payment processor") from e
        return as_payload(subscription)
