"""
Stripe gateway for subscription changes
"""
import stripe
from typing import Optional, Dict, Any, Tuple
import logging

from config import settings
from models.subscription import BillingInterval, Plan
from services.exceptions import ProcessorError

logger = logging.getLogger(__name__)

# Initialize Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY
stripe.api_version = settings.STRIPE_API_VERSION


def _message(error: "stripe.StripeError") -> str:
    return getattr(error, "user_message", None) or str(error) or "Failed to update subscription in Stripe"


class StripeService:
    """
    Thin wrapper over the Stripe SDK. Every call is a single unit of work:
    a Stripe failure is raised as ProcessorError with Stripe's message and
    is never retried here.
    """

    def __init__(self, price_ids: Optional[Dict[Plan, Dict[BillingInterval, str]]] = None):
        self.price_ids = price_ids if price_ids is not None else settings.get_price_ids()

    def price_id_for(self, plan: str, interval: str) -> Optional[str]:
        """Price id for a plan/interval pair, or None when it is not sold."""
        return self.price_ids.get(plan, {}).get(interval) or None

    def plan_for_price(self, price_id: Optional[str]) -> Optional[Tuple[Plan, BillingInterval]]:
        if not price_id:
            return None
        for plan, intervals in self.price_ids.items():
            for interval, pid in intervals.items():
                if pid == price_id:
                    return Plan(plan), BillingInterval(interval)
        return None

    def _call(self, operation: str, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe error during {operation}: {str(e)}")
            raise ProcessorError(_message(e), code=getattr(e, "code", None)) from e

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._call("retrieve_subscription", stripe.Subscription.retrieve, subscription_id)

    def update_subscription(self, subscription_id: str, **params) -> Dict[str, Any]:
        logger.info(f"Updating Stripe subscription {subscription_id}: {sorted(params)}")
        return self._call("update_subscription", stripe.Subscription.modify, subscription_id, **params)

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        logger.info(f"Cancelling Stripe subscription {subscription_id} immediately")
        return self._call("cancel_subscription", stripe.Subscription.cancel, subscription_id)

    def retrieve_schedule(self, schedule_id: str) -> Dict[str, Any]:
        return self._call("retrieve_schedule", stripe.SubscriptionSchedule.retrieve, schedule_id)

    def create_schedule_from_subscription(self, subscription_id: str) -> Dict[str, Any]:
        logger.info(f"Creating subscription schedule from {subscription_id}")
        return self._call(
            "create_schedule",
            stripe.SubscriptionSchedule.create,
            from_subscription=subscription_id,
        )

    def update_schedule(self, schedule_id: str, **params) -> Dict[str, Any]:
        logger.info(f"Updating subscription schedule {schedule_id}: {sorted(params)}")
        return self._call("update_schedule", stripe.SubscriptionSchedule.modify, schedule_id, **params)

    def release_schedule(self, schedule_id: str) -> Dict[str, Any]:
        logger.info(f"Releasing subscription schedule {schedule_id}")
        return self._call("release_schedule", stripe.SubscriptionSchedule.release, schedule_id)
