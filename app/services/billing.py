"""
Stripe webhook verification and subscription sync.

Only the signed webhook is handled here; checkout and the customer portal
live on the Stripe side.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime
from typing import Any, Dict, Optional

from app.config import get_settings
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.models.notification import NotificationType
from app.models.subscription import (
    BillingInterval,
    SubscriptionModel,
    SubscriptionStatus,
    SubscriptionTier,
)
from app.services.notification_service import NotificationService
from app.utils.exceptions import PaymentWebhookError
from app.utils.logger import get_logger

logger = get_logger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300

STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "canceled": SubscriptionStatus.CANCELED,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.UNPAID,
    "paused": SubscriptionStatus.PAUSED,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    now: Optional[float] = None,
) -> None:
    """
    Check a ``Stripe-Signature`` header.

    Args:
        payload: Raw request body.
        header: ``t=<unix>,v1=<hex>[,v1=...]``.
        secret: Endpoint signing secret.
        now: Current unix time, for tests.

    Raises:
        PaymentWebhookError: If the secret is unset, the header is missing or
            malformed, no signature matches, or the timestamp is stale.
    """
    if not secret:
        raise PaymentWebhookError("Webhook signing secret is not configured")
    if not header:
        raise PaymentWebhookError("Missing Stripe-Signature header")

    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not timestamp.isdigit() or not signatures:
        raise PaymentWebhookError("Malformed Stripe-Signature header")

    expected = compute_signature(payload, int(timestamp), secret)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise PaymentWebhookError("Invalid webhook signature")

    now = time.time() if now is None else now
    if abs(now - int(timestamp)) > SIGNATURE_TOLERANCE_SECONDS:
        raise PaymentWebhookError("Webhook timestamp outside tolerance")


def _from_unix(value: Any) -> Optional[datetime]:
    return datetime.utcfromtimestamp(int(value)) if value else None


class BillingService:
    """Applies Stripe subscription and invoice events to local records."""

    HANDLED_EVENTS = (
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "invoice.payment_succeeded",
        "invoice.payment_failed",
    )

    def __init__(self, db: Any, notifier: Optional[NotificationService] = None):
        self.subscriptions = SubscriptionCRUD(db)
        self.users = UserCRUD(db)
        self.notifier = notifier or NotificationService(db)

    def parse_event(self, payload: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        verify_stripe_signature(payload, signature_header, get_settings().stripe_webhook_secret)
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise PaymentWebhookError("Webhook body is not valid JSON") from e
        if not isinstance(event, dict) or "type" not in event:
            raise PaymentWebhookError("Webhook body has no event type")
        return event

    def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply one verified event.

        Returns:
            ``{"event": type, "handled": bool, "subscription_id": ...}``
        """
        event_type = event["type"]
        obj = (event.get("data") or {}).get("object") or {}
        if event_type not in self.HANDLED_EVENTS:
            logger.info(f"Ignoring Stripe event {event_type}")
            return {"event": event_type, "handled": False, "subscription_id": None}

        if event_type.startswith("customer.subscription."):
            subscription = self._apply_subscription(obj, deleted=event_type.endswith(".deleted"))
        else:
            subscription = self._apply_invoice(obj, paid=event_type == "invoice.payment_succeeded")

        logger.info(
            f"Stripe event {event_type} applied",
            extra={"extra_data": {"subscription_id": subscription.id if subscription else None}},
        )
        return {
            "event": event_type,
            "handled": subscription is not None,
            "subscription_id": subscription.id if subscription else None,
        }

    # ── Helpers ──────────────────────────────────────────────────────

    def _find_subscription(self, stripe_sub_id: Optional[str], customer_id: Optional[str],
                           metadata: Dict[str, Any]) -> Optional[SubscriptionModel]:
        if stripe_sub_id:
            found = self.subscriptions.get_by_stripe_id(stripe_sub_id)
            if found:
                return found
        user_id = metadata.get("user_id")
        if user_id and self.users.exists(user_id):
            return self.subscriptions.get_or_create_for_user(user_id)
        if customer_id:
            return self.subscriptions.get_by_stripe_customer(customer_id)
        return None

    def _sync_user(self, subscription: SubscriptionModel) -> None:
        self.users.update(subscription.user_id, {
            "subscription_tier": subscription.tier,
            "subscription_status": subscription.status,
        })

    def _notify(self, subscription: SubscriptionModel, message: str) -> None:
        self.notifier.notify(
            subscription.user_id,
            NotificationType.SUBSCRIPTION_UPDATE,
            "Subscription updated",
            message,
            data={"tier": subscription.tier, "status": subscription.status},
            action_url="/subscription",
        )

    def _apply_subscription(self, obj: Dict[str, Any], deleted: bool) -> Optional[SubscriptionModel]:
        metadata = obj.get("metadata") or {}
        subscription = self._find_subscription(obj.get("id"), obj.get("customer"), metadata)
        if subscription is None:
            logger.warning(f"No local subscription for Stripe subscription {obj.get('id')}")
            return None

        if deleted:
            subscription.cancel(immediate=True)
            subscription.downgrade_to_free()
            self.subscriptions.save_model(subscription)
            self._sync_user(subscription)
            self._notify(subscription, "Your subscription has ended. You're now on the Free plan.")
            return subscription

        subscription.stripe_subscription_id = obj.get("id")
        subscription.stripe_customer_id = obj.get("customer") or subscription.stripe_customer_id

        items = (obj.get("items") or {}).get("data") or []
        price = items[0].get("price", {}) if items else {}
        interval = (price.get("recurring") or {}).get("interval")
        tier = metadata.get("tier")
        if tier in {t.value for t in SubscriptionTier}:
            subscription.change_tier(
                tier,
                interval if interval in {i.value for i in BillingInterval} else None,
            )
        if price.get("id"):
            subscription.stripe_price_id = price["id"]
        if price.get("unit_amount") is not None:
            subscription.amount = int(price["unit_amount"])

        subscription.status = STRIPE_STATUS_MAP.get(obj.get("status"), SubscriptionStatus.INCOMPLETE).value
        subscription.cancel_at_period_end = bool(obj.get("cancel_at_period_end"))

        start = _from_unix(obj.get("current_period_start"))
        end = _from_unix(obj.get("current_period_end"))
        if start and end:
            subscription.apply_billing_period(start, end)
        subscription.trial_start = _from_unix(obj.get("trial_start"))
        subscription.trial_end = _from_unix(obj.get("trial_end"))
        subscription.end_date = subscription.current_period_end if subscription.cancel_at_period_end else None

        self.subscriptions.save_model(subscription)
        self._sync_user(subscription)
        self._notify(subscription, f"Your plan is now {str(subscription.tier).title()} ({subscription.status}).")
        return subscription

    def _apply_invoice(self, obj: Dict[str, Any], paid: bool) -> Optional[SubscriptionModel]:
        subscription = self._find_subscription(
            obj.get("subscription"), obj.get("customer"), obj.get("metadata") or {}
        )
        if subscription is None:
            logger.warning(f"No local subscription for invoice {obj.get('id')}")
            return None

        if paid:
            subscription.status = SubscriptionStatus.ACTIVE.value
            subscription.last_payment_date = (
                _from_unix((obj.get("status_transitions") or {}).get("paid_at"))
                or _from_unix(obj.get("created"))
                or datetime.utcnow()
            )
            lines = (obj.get("lines") or {}).get("data") or []
            period = lines[0].get("period", {}) if lines else {}
            start, end = _from_unix(period.get("start")), _from_unix(period.get("end"))
            if start and end:
                subscription.apply_billing_period(start, end)
            if subscription.end_date is not None and not subscription.cancel_at_period_end:
                subscription.end_date = subscription.current_period_end
            message = "Thanks! Your payment went through."
        else:
            subscription.status = SubscriptionStatus.PAST_DUE.value
            message = "We couldn't process your payment. Please update your payment method."

        self.subscriptions.save_model(subscription)
        self._sync_user(subscription)
        self._notify(subscription, message)
        return subscription
