"""
Billing Bridge

Mirrors processor (Stripe) subscription state into the subscriptions table.
Every write is an upsert keyed by stripe_subscription_id, so duplicated or
retried deliveries converge on the same row. The core never calls Stripe;
it only reads what the webhook relay and the manual sync hand over.
"""
import json
from datetime import timedelta
from typing import Any, Dict, Optional

import stripe
from loguru import logger

from database.store import AcademyStore
from .clock import Clock, from_epoch, parse_timestamp, utc_now
from .entitlement import pick_subscription
from .models import ENTITLED_STATUSES, CURRENT_STATUSES, ActiveSubscription, SubscriptionStatus

# Fallback period when a sync arrives without an expanded subscription
DEFAULT_PERIOD = timedelta(days=30)


class WebhookVerificationError(Exception):
    """Payload could not be verified or parsed"""


def verify_event(payload: bytes, signature: Optional[str], secret: Optional[str]) -> Dict[str, Any]:
    """
    Signed payload -> event dict.

    With a webhook secret the Stripe signature is checked; without one the
    payload is trusted as plain JSON (local development).
    """
    try:
        if secret:
            stripe.Webhook.construct_event(payload, signature or "", secret)
        return json.loads(payload)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise WebhookVerificationError(str(e)) from e


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _price_id(subscription: Dict[str, Any]) -> Optional[str]:
    price = _first_item(subscription).get("price") or {}
    return price.get("id")


def _period_end_ts(subscription: Dict[str, Any]) -> Optional[int]:
    """Top-level current_period_end (older API versions) or the latest item period end"""
    ts = subscription.get("current_period_end")
    if ts is not None:
        return int(ts)
    ends = [int(it["current_period_end"])
            for it in ((subscription.get("items") or {}).get("data") or [])
            if it.get("current_period_end") is not None]
    return max(ends) if ends else None


class BillingBridge:
    """Applies processor events to the subscription mirror"""

    def __init__(self, store: AcademyStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    async def apply_event(self, event: Dict[str, Any]) -> bool:
        """Returns whether the event type is one we act on"""
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(f"Stripe event {event.get('id')} {event_type}")

        if event_type == "checkout.session.completed":
            self._sync_customer(obj)
            return True

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            self._upsert_subscription(obj)
            return True

        if event_type == "customer.subscription.deleted":
            updated = self.store.set_subscription_status(obj.get("id"), SubscriptionStatus.canceled.value)
            logger.info(f"Subscription {obj.get('id')} canceled ({updated} rows)")
            return True

        return False

    async def sync_checkout_session(self, session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Manual "sync session" after checkout returns.

        session is the checkout session as retrieved by the relay, ideally with
        `subscription` and `customer` expanded.
        """
        self._sync_customer(session)

        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId") or session.get("client_reference_id")
        child_id = metadata.get("childId")
        subscription = session.get("subscription")
        if not subscription or not child_id:
            return None

        if not isinstance(subscription, dict):
            subscription = {"id": subscription, "status": SubscriptionStatus.active.value}

        period_end = from_epoch(_period_end_ts(subscription))
        if period_end is None:
            period_end = (self.clock() + DEFAULT_PERIOD).isoformat()

        row = {
            "stripe_subscription_id": subscription["id"],
            "user_id": user_id,
            "child_id": child_id,
            "status": subscription.get("status") or SubscriptionStatus.active.value,
            "current_period_end": period_end,
        }
        # Unexpanded subscription has no price; keep whatever the webhook stored
        price_id = _price_id(subscription)
        existing = self.store.get_subscription(subscription["id"])
        row["package_id"] = price_id or (existing or {}).get("package_id") or ""

        saved = self.store.upsert_subscription(row)
        logger.info(f"Synced subscription {subscription['id']} for athlete {child_id} ({row['status']})")
        return saved

    def get_active_subscription(self, athlete_id: str) -> Optional[ActiveSubscription]:
        subs = self.store.list_subscriptions(athlete_id)
        current = pick_subscription(subs, ENTITLED_STATUSES) or pick_subscription(subs, CURRENT_STATUSES)
        if current is None:
            return None
        return ActiveSubscription(
            plan_id=current.get("package_id") or "",
            status=SubscriptionStatus(current["status"]),
            current_period_end=parse_timestamp(current.get("current_period_end")),
        )

    def _sync_customer(self, session: Dict[str, Any]) -> None:
        user_id = session.get("client_reference_id") or (session.get("metadata") or {}).get("userId")
        customer = session.get("customer")
        customer_id = customer.get("id") if isinstance(customer, dict) else customer
        if user_id and customer_id:
            if not self.store.set_stripe_customer_id(user_id, customer_id):
                logger.warning(f"No profile {user_id} for Stripe customer {customer_id}")

    def _upsert_subscription(self, subscription: Dict[str, Any]) -> None:
        metadata = subscription.get("metadata") or {}
        child_id = metadata.get("childId")
        user_id = metadata.get("userId")

        if not (child_id and user_id):
            existing = self.store.get_subscription(subscription.get("id"))
            if existing is None:
                logger.warning(f"Subscription {subscription.get('id')} without childId/userId metadata, skipped")
                return
            child_id = existing["child_id"]
            user_id = existing["user_id"]

        row = {
            "stripe_subscription_id": subscription["id"],
            "user_id": user_id,
            "child_id": child_id,
            "package_id": _price_id(subscription),
            "status": subscription.get("status"),
            "current_period_end": from_epoch(_period_end_ts(subscription)),
        }
        self.store.upsert_subscription(row)
        logger.info(f"Subscription {subscription['id']} -> {row['status']} ({row['package_id']})")
