"""Billing domain - subscriptions, payments and Stripe webhooks"""

from .router import router, webhooks_router

__all__ = ["router", "webhooks_router"]
