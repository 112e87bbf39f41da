"""Billing router - subscription endpoints and the Stripe webhook receiver"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session

from ...auth import Principal, get_current_principal, require_account_holder
from ...database import get_db
from .schemas import (
    CancelSubscriptionRequest,
    CancelSubscriptionResponse,
    PaymentHistoryResponse,
    PaymentResponse,
    PlanInfo,
    PurchaseSubscriptionRequest,
    ReactivateSubscriptionResponse,
    SubscriptionResponse,
    WebhookAck,
)
from .subscription_service import SubscriptionService
from .webhook_service import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db)


def get_webhook_reconciler(db: Session = Depends(get_db)) -> WebhookReconciler:
    """Dependency injection for WebhookReconciler"""
    return WebhookReconciler(db)


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================


@router.get("/plans", response_model=list[PlanInfo])
async def list_plans(
    principal: Principal = Depends(get_current_principal),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """List purchasable subscription plans"""
    return service.list_plans()


@router.post("/purchase", response_model=SubscriptionResponse, status_code=201)
async def purchase_subscription(
    body: PurchaseSubscriptionRequest,
    principal: Principal = Depends(require_account_holder),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Subscribe to a plan"""
    return service.purchase_subscription(principal, body.subscriptionPlanId, body.paymentMethodId)


@router.get("/current", response_model=SubscriptionResponse)
async def get_current_subscription(
    principal: Principal = Depends(require_account_holder),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Get the current active subscription"""
    return service.get_current_subscription(principal)


@router.post("/cancel", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    principal: Principal = Depends(require_account_holder),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Cancel the current subscription, immediately or at period end"""
    return service.cancel_subscription(principal, body.cancelImmediately)


@router.post("/reactivate", response_model=ReactivateSubscriptionResponse)
async def reactivate_subscription(
    principal: Principal = Depends(require_account_holder),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.reactivate_subscription(principal)


# ============================================================================
# PAYMENTS
# ============================================================================


@router.get("/payments", response_model=PaymentHistoryResponse)
async def get_payment_history(
    principal: Principal = Depends(require_account_holder),
    service: SubscriptionService = Depends(get_subscription_service),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return service.get_payment_history(principal, page, limit)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    principal: Principal = Depends(require_account_holder),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.get_payment_by_id(payment_id, principal)


# ============================================================================
# WEBHOOKS
# ============================================================================


@webhooks_router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """
    Receive Stripe events.

    The raw body is read untouched so the signature can be verified over
    the exact bytes Stripe signed.
    """
    raw_body = await request.body()
    return await reconciler.handle_webhook(stripe_signature, raw_body)
