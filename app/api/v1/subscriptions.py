"""Subscription and tier management endpoints."""

from datetime import datetime, timedelta
from typing import Any

from fastapi import APIRouter, HTTPException, Depends, Header, Request, status
from pydantic import BaseModel

from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.dependencies import get_current_user, get_db_client, get_notification_service
from app.models.notification import NotificationType
from app.models.subscription import (
    TIER_LIMITS,
    BillingInterval,
    PaymentMethod,
    SubscriptionModel,
    SubscriptionStatus,
    SubscriptionTier,
)
from app.models.user import UserModel
from app.schemas.subscription_schema import CancelRequest, UpgradeRequest
from app.services.billing import BillingService
from app.services.notification_service import NotificationService
from app.utils.exceptions import ConflictError, MintoonsException, ValidationError
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()

BILLING_PERIODS = {
    BillingInterval.MONTH.value: timedelta(days=30),
    BillingInterval.YEAR.value: timedelta(days=365),
}


# Response Models
class SubscriptionResponse(BaseModel):
    """Response model for subscription data."""
    success: bool
    data: Any = None
    message: str = ""


def _save_and_sync(db_client, subscription: SubscriptionModel) -> None:
    """Persist the subscription and mirror tier and status onto the user."""
    SubscriptionCRUD(db_client).save_model(subscription)
    UserCRUD(db_client).update(subscription.user_id, {
        "subscription_tier": subscription.tier,
        "subscription_status": subscription.status,
    })


@router.get("/tiers", response_model=SubscriptionResponse)
async def get_subscription_tiers() -> SubscriptionResponse:
    """
    Get available subscription tiers.

    Returns:
        SubscriptionResponse with every tier's limits and prices
    """
    tiers = []
    for limits in TIER_LIMITS.values():
        tier = limits.to_dict()
        tier["yearly_price_cents"] = limits.price_cents(BillingInterval.YEAR)
        tiers.append(tier)
    return SubscriptionResponse(
        success=True,
        data={"tiers": tiers, "total": len(tiers)},
        message="Subscription tiers retrieved successfully",
    )


@router.get("/current", response_model=SubscriptionResponse)
async def get_current_subscription(
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> SubscriptionResponse:
    """Get the current user's subscription, creating a free one if needed."""
    try:
        subscription = SubscriptionCRUD(db_client).get_or_create_for_user(user.id)
        return SubscriptionResponse(
            success=True,
            data=subscription.to_public_dict(),
            message="Current subscription retrieved successfully",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error getting current subscription: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get subscription",
        )


@router.get("/usage", response_model=SubscriptionResponse)
async def get_usage(
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> SubscriptionResponse:
    """Usage counters, tier limits and what is left in each window."""
    subscription = SubscriptionCRUD(db_client).get_or_create_for_user(user.id)
    total_stories = StoryCRUD(db_client).count_by_author(user.id)
    return SubscriptionResponse(
        success=True,
        data={
            "tier": subscription.tier,
            "usage": subscription.usage.model_dump(mode="json"),
            "limits": subscription.limits.to_dict(),
            "remaining": subscription.get_remaining_limits(total_stories),
        },
        message="Usage retrieved successfully",
    )


@router.post("/upgrade", response_model=SubscriptionResponse, status_code=status.HTTP_200_OK)
async def upgrade_subscription(
    request: UpgradeRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> SubscriptionResponse:
    """
    Move to a paid tier.

    The new tier applies immediately and a fresh billing period starts.
    Stripe webhooks reconcile the record once payment settles; until one
    links a Stripe subscription, the plan ends with the period.

    Args:
        request: UpgradeRequest with the target tier and billing interval
        user: Current authenticated user
        db_client: Database client
        notifier: Notification service

    Returns:
        SubscriptionResponse with the updated subscription

    Raises:
        ValidationError: If the target is the free tier
        ConflictError: If the user already has that tier and interval
    """
    try:
        target = SubscriptionTier(request.tier).value
        interval = BillingInterval(request.billing_interval).value
        if target == SubscriptionTier.FREE.value:
            raise ValidationError("Cancel your subscription to move to the free tier")

        subscription = SubscriptionCRUD(db_client).get_or_create_for_user(user.id)
        if (
            subscription.tier == target
            and subscription.billing_interval == interval
            and subscription.is_active()
            and not subscription.cancel_at_period_end
        ):
            raise ConflictError(f"You are already on the {subscription.limits.name} plan")

        previous_tier = subscription.tier
        now = datetime.utcnow()
        subscription.change_tier(target, interval)
        subscription.start_paid_period(now, now + BILLING_PERIODS[interval])
        if request.payment_method_id:
            subscription.payment_method = PaymentMethod()
        _save_and_sync(db_client, subscription)

        notifier.notify(
            user.id,
            NotificationType.SUBSCRIPTION_UPDATE,
            "Plan updated ⭐",
            f"You're now on the {subscription.limits.name} plan.",
            data={"tier": subscription.tier, "previous_tier": previous_tier},
            action_url="/subscription",
        )

        logger.info(f"User {user.id} moved from {previous_tier} to {subscription.tier}")
        return SubscriptionResponse(
            success=True,
            data=subscription.to_public_dict(),
            message="Subscription upgraded successfully",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error upgrading subscription: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upgrade failed",
        )


@router.post("/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    request: CancelRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> SubscriptionResponse:
    """
    Cancel a paid subscription.

    By default access continues to the end of the paid period. An immediate
    cancel drops the account to the free tier straight away.
    """
    subscription = SubscriptionCRUD(db_client).get_or_create_for_user(user.id)
    if subscription.tier == SubscriptionTier.FREE.value:
        raise ValidationError("The free plan can't be canceled")
    if subscription.cancel_at_period_end and not request.immediate:
        raise ConflictError("Subscription is already set to cancel")

    subscription.cancel(immediate=request.immediate)
    if request.reason:
        subscription.notes = request.reason[:500]
    if request.immediate:
        subscription.downgrade_to_free()
    _save_and_sync(db_client, subscription)

    if request.immediate:
        message = "Your subscription was canceled and you're now on the Free plan."
    else:
        message = f"Your plan stays active until {subscription.end_date:%B %d, %Y}."
    notifier.notify(
        user.id,
        NotificationType.SUBSCRIPTION_UPDATE,
        "Subscription canceled",
        message,
        data={"tier": subscription.tier, "immediate": request.immediate},
        action_url="/subscription",
    )

    logger.info(f"User {user.id} canceled subscription (immediate={request.immediate})")
    return SubscriptionResponse(success=True, data=subscription.to_public_dict(), message=message)


@router.post("/reactivate", response_model=SubscriptionResponse)
async def reactivate_subscription(
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> SubscriptionResponse:
    """Undo a cancel that has not taken effect yet."""
    subscription = SubscriptionCRUD(db_client).get_or_create_for_user(user.id)
    if not subscription.cancel_at_period_end or subscription.status != SubscriptionStatus.ACTIVE.value:
        raise ValidationError("There is no pending cancellation to undo")

    subscription.reactivate()
    if not subscription.stripe_subscription_id:
        subscription.end_date = subscription.current_period_end
    _save_and_sync(db_client, subscription)
    return SubscriptionResponse(
        success=True,
        data=subscription.to_public_dict(),
        message="Subscription reactivated",
    )


@router.post("/webhook", response_model=SubscriptionResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> SubscriptionResponse:
    """
    Receive a signed Stripe event.

    Raises:
        PaymentWebhookError: If the signature or body is invalid
    """
    payload = await request.body()
    billing = BillingService(db_client, notifier)
    event = billing.parse_event(payload, stripe_signature)
    result = billing.handle_event(event)
    return SubscriptionResponse(success=True, data=result, message="Webhook processed")
