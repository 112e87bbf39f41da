"""Billing domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ...models import Payment, Subscription, SubscriptionPlan


class CancelSubscriptionRequest(BaseModel):
    """Schema for canceling the current subscription"""

    model_config = ConfigDict(extra="forbid")

    cancelImmediately: bool = False


class PurchaseSubscriptionRequest(BaseModel):
    """Schema for starting a subscription on a plan"""

    model_config = ConfigDict(extra="forbid")

    subscriptionPlanId: str = Field(..., min_length=1)
    # Stripe payment method id; the customer's default is charged when omitted
    paymentMethodId: Optional[str] = Field(None, min_length=1)


class PlanInfo(BaseModel):
    id: str
    planName: str
    price: float
    currency: str
    interval: str


class SubscriptionResponse(BaseModel):
    id: str
    stripeSubscriptionId: str
    status: str
    currentPeriodStart: Optional[datetime] = None
    currentPeriodEnd: Optional[datetime] = None
    cancelAtPeriodEnd: bool
    canceledAt: Optional[datetime] = None
    plan: Optional[PlanInfo] = None


class CancelSubscriptionResponse(BaseModel):
    message: str
    subscription: SubscriptionResponse


class ReactivateSubscriptionResponse(BaseModel):
    message: str
    subscription: SubscriptionResponse


class PaymentResponse(BaseModel):
    id: str
    subscriptionId: Optional[str] = None
    amount: float
    currency: str
    status: str
    description: Optional[str] = None
    paymentMethodLast4: Optional[str] = None
    paymentMethodBrand: Optional[str] = None
    paymentType: Optional[str] = None
    stripeChargeId: Optional[str] = None
    paidAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class PaymentHistoryResponse(BaseModel):
    data: list[PaymentResponse]
    meta: PaginationMeta


class WebhookAck(BaseModel):
    received: bool


def plan_to_response(plan: SubscriptionPlan) -> PlanInfo:
    return PlanInfo(
        id=plan.id,
        planName=plan.plan_name,
        price=float(plan.price),
        currency=plan.currency,
        interval=plan.interval,
    )


def subscription_to_response(subscription: Subscription) -> SubscriptionResponse:
    plan = subscription.subscription_plan
    return SubscriptionResponse(
        id=subscription.id,
        stripeSubscriptionId=subscription.stripe_subscription_id,
        status=subscription.status,
        currentPeriodStart=subscription.current_period_start,
        currentPeriodEnd=subscription.current_period_end,
        cancelAtPeriodEnd=bool(subscription.cancel_at_period_end),
        canceledAt=subscription.canceled_at,
        plan=plan_to_response(plan) if plan else None,
    )


def payment_to_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        subscriptionId=payment.subscription_id,
        amount=float(payment.amount),
        currency=payment.currency,
        status=payment.status,
        description=payment.description,
        paymentMethodLast4=payment.payment_method_last4,
        paymentMethodBrand=payment.payment_method_brand,
        paymentType=payment.payment_type,
        stripeChargeId=payment.stripe_charge_id,
        paidAt=payment.paid_at,
        createdAt=payment.created_at,
    )
