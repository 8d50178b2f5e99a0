"""
Subscription change orchestrator.

Issues plan changes, cancellations and reactivations against Stripe. The
local subscription row is never written here: Stripe's webhooks update it
later, and the echoed state lets the caller refresh its cache meanwhile.

Upgrades apply at once with an immediately invoiced proration. Downgrades
are deferred with a two-phase subscription schedule: the current price until
current_period_end, then the target price from current_period_end on.
"""
from typing import Any, Dict, Optional
import logging

from config.plan_config import DEFAULT_POLICY, EntitlementPolicy
from models.subscription import (
    BillingInterval,
    Plan,
    PlanChangeAction,
    PlanChangeKind,
    PlanChangeRequest,
    PlanChangeResult,
    PlanSelection,
    ScheduledPlanChange,
    SubscriptionState,
    SubscriptionStatus,
)
from services.account_service import AccountService
from services.exceptions import (
    EntitlementError,
    PlanChangeValidationError,
    SubscriptionNotFoundError,
)
from services.plan_change import classify_plan_change, classify_unlisted_price_change
from services.stripe_service import StripeService

logger = logging.getLogger(__name__)

# Schedules in these states no longer drive the subscription
FINISHED_SCHEDULE_STATUSES = {"released", "canceled", "completed"}


def _first_item(subscription: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else None


def _period_bounds(subscription: Dict[str, Any]):
    # Newer API versions moved the period onto the subscription item
    item = _first_item(subscription) or {}
    start = subscription.get("current_period_start") or item.get("current_period_start")
    end = subscription.get("current_period_end") or item.get("current_period_end")
    return start, end


def _is_terminal(subscription: Dict[str, Any]) -> bool:
    # canceled and incomplete_expired both end the subscription for good
    return SubscriptionStatus.normalize(subscription.get("status")) == SubscriptionStatus.CANCELLED


def _schedule_id(subscription: Dict[str, Any]) -> Optional[str]:
    schedule = subscription.get("schedule")
    if isinstance(schedule, dict):
        return schedule.get("id")
    return schedule or None


class SubscriptionOrchestrator:
    def __init__(
        self,
        stripe_service: StripeService,
        account_service: Optional[AccountService] = None,
        policy: EntitlementPolicy = DEFAULT_POLICY,
    ):
        self.stripe = stripe_service
        self.accounts = account_service
        self.policy = policy

    async def apply_plan_change(self, request: PlanChangeRequest) -> PlanChangeResult:
        """
        Run one action and report the outcome. Validation problems are caught
        before Stripe is called; Stripe failures come back with Stripe's own
        message. Neither is retried.
        """
        try:
            action = self._parse_action(request.action)
            target = self._validate_target(request) if action == PlanChangeAction.UPDATE_PLAN else None
            subscription_id = await self._resolve_subscription_id(request)

            if action == PlanChangeAction.UPDATE_PLAN:
                return self._update_plan(subscription_id, target)
            if action == PlanChangeAction.CANCEL:
                return self._cancel(subscription_id, request.cancel_at_period_end)
            if action == PlanChangeAction.REACTIVATE:
                return self._reactivate(subscription_id)
            return self._update_status(subscription_id)

        except EntitlementError as e:
            logger.error(f"Plan change {request.action} failed ({e.error_type}): {e.message}")
            return PlanChangeResult(ok=False, error=e.message, error_type=e.error_type)

    # ------------------------------------------------------------------
    # Validation

    def _parse_action(self, action: str) -> PlanChangeAction:
        try:
            return PlanChangeAction(action)
        except ValueError:
            raise PlanChangeValidationError(f"Unknown action: {action}", code="unknown_action")

    def _validate_target(self, request: PlanChangeRequest) -> PlanSelection:
        invalid = PlanChangeValidationError(
            f"Invalid plan type ({request.plan_type}) or billing interval ({request.billing_interval})",
            code="invalid_plan",
        )
        try:
            target = PlanSelection(plan=Plan(request.plan_type), interval=BillingInterval(request.billing_interval))
        except ValueError:
            raise invalid
        if not self.stripe.price_id_for(target.plan, target.interval):
            raise invalid
        return target

    async def _resolve_subscription_id(self, request: PlanChangeRequest) -> str:
        if request.stripe_subscription_id:
            return request.stripe_subscription_id
        if request.user_id and self.accounts is not None:
            subscription_id = await self.accounts.get_stripe_subscription_id(request.user_id)
            if subscription_id:
                return subscription_id
            raise SubscriptionNotFoundError("No Stripe subscription found for this user", code="subscription_not_found")
        raise SubscriptionNotFoundError("Stripe subscription ID is required", code="subscription_required")

    # ------------------------------------------------------------------
    # Result helpers

    def _state(self, subscription: Dict[str, Any], scheduled_change: Optional[ScheduledPlanChange] = None, **overrides) -> SubscriptionState:
        item = _first_item(subscription) or {}
        price_id = (item.get("price") or {}).get("id")
        selection = self.stripe.plan_for_price(price_id)
        _, period_end = _period_bounds(subscription)
        state = {
            "id": subscription.get("id"),
            "status": subscription.get("status"),
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
            "current_period_end": period_end,
            "plan": price_id,
            "plan_type": selection[0] if selection else None,
            "billing_interval": selection[1] if selection else None,
            "scheduled_change": scheduled_change,
        }
        state.update(overrides)
        return SubscriptionState(**state)

    def _classify(self, price: Dict[str, Any], target: PlanSelection, target_price_id: str) -> PlanChangeKind:
        if price.get("id") == target_price_id:
            return PlanChangeKind.NOOP

        known = self.stripe.plan_for_price(price.get("id"))
        if known is None:
            # Legacy or custom price: rank it by what Stripe actually charges
            interval = BillingInterval.from_recurring((price.get("recurring") or {}).get("interval"))
            return classify_unlisted_price_change(price.get("unit_amount"), interval, target, self.policy)

        kind = classify_plan_change(PlanSelection(plan=known[0], interval=known[1]), target, self.policy)
        # A different price is never left in place
        return PlanChangeKind.UPGRADE if kind == PlanChangeKind.NOOP else kind

    def _active_schedule(self, subscription: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Read the schedule attached to the subscription, if it is still live."""
        schedule_id = _schedule_id(subscription)
        if not schedule_id:
            return None
        schedule = self.stripe.retrieve_schedule(schedule_id)
        if schedule.get("status") in FINISHED_SCHEDULE_STATUSES:
            return None
        return schedule

    @staticmethod
    def _ensure_not_cancelled(subscription: Dict[str, Any]):
        if _is_terminal(subscription):
            raise PlanChangeValidationError("Subscription is already cancelled", code="subscription_cancelled")

    # ------------------------------------------------------------------
    # Actions

    def _update_plan(self, subscription_id: str, target: PlanSelection) -> PlanChangeResult:
        subscription = self.stripe.retrieve_subscription(subscription_id)
        self._ensure_not_cancelled(subscription)

        item = _first_item(subscription)
        if not item or not item.get("id"):
            raise PlanChangeValidationError("Could not find subscription item", code="subscription_item_missing")

        # A pending cancellation would otherwise swallow the plan change
        if subscription.get("cancel_at_period_end"):
            self._clear_pending_cancellation(subscription_id, subscription)
            subscription = self.stripe.retrieve_subscription(subscription_id)

        current_price = (_first_item(subscription) or {}).get("price") or {}
        new_price_id = self.stripe.price_id_for(target.plan, target.interval)
        kind = self._classify(current_price, target, new_price_id)
        logger.info(f"Plan change for {subscription_id}: {current_price.get('id')} -> {new_price_id} ({kind.value})")

        if kind == PlanChangeKind.DOWNGRADE:
            return self._schedule_downgrade(subscription_id, subscription, target, new_price_id)

        schedule = self._active_schedule(subscription)
        if schedule:
            # Drop a scheduled downgrade: the target supersedes it
            self.stripe.release_schedule(schedule["id"])

        if kind == PlanChangeKind.NOOP:
            if schedule:
                subscription = self.stripe.retrieve_subscription(subscription_id)
            return PlanChangeResult(
                ok=True,
                change=kind,
                new_state=self._state(subscription),
                message="Subscription already on the requested plan",
            )

        updated = self.stripe.update_subscription(
            subscription_id,
            items=[{"id": item["id"], "price": new_price_id}],
            proration_behavior="always_invoice",
        )
        return PlanChangeResult(
            ok=True,
            change=kind,
            new_state=self._state(updated),
            message="Upgrade applied immediately",
        )

    def _clear_pending_cancellation(self, subscription_id: str, subscription: Dict[str, Any]):
        schedule = self._active_schedule(subscription)
        if schedule and schedule.get("end_behavior") == "cancel":
            self.stripe.release_schedule(schedule["id"])
        else:
            self.stripe.update_subscription(subscription_id, cancel_at_period_end=False)

    def _schedule_downgrade(
        self,
        subscription_id: str,
        subscription: Dict[str, Any],
        target: PlanSelection,
        new_price_id: str,
    ) -> PlanChangeResult:
        current_price_id = _first_item(subscription)["price"]["id"]
        period_start, period_end = _period_bounds(subscription)

        # Reuse the live schedule so a retried or revised downgrade replaces phase 2
        schedule = self._active_schedule(subscription)
        if schedule is None:
            schedule = self.stripe.create_schedule_from_subscription(subscription_id)

        self.stripe.update_schedule(
            schedule["id"],
            end_behavior="release",
            phases=[
                {
                    "items": [{"price": current_price_id, "quantity": 1}],
                    "start_date": period_start,
                    "end_date": period_end,
                },
                {
                    "items": [{"price": new_price_id, "quantity": 1}],
                    "start_date": period_end,
                },
            ],
        )

        scheduled = ScheduledPlanChange(
            new_plan=new_price_id,
            effective_date=period_end,
            target_plan=target.plan,
            target_interval=target.interval,
        )
        return PlanChangeResult(
            ok=True,
            change=PlanChangeKind.DOWNGRADE,
            new_state=self._state(subscription, scheduled_change=scheduled, cancel_at_period_end=False),
            message="Downgrade scheduled for end of billing period",
        )

    def _cancel(self, subscription_id: str, at_period_end: bool) -> PlanChangeResult:
        subscription = self.stripe.retrieve_subscription(subscription_id)
        if _is_terminal(subscription):
            return PlanChangeResult(ok=True, new_state=self._state(subscription), message="Subscription already cancelled")

        schedule = self._active_schedule(subscription)
        if schedule:
            # Pending plan changes must not outlive the cancellation
            self.stripe.release_schedule(schedule["id"])

        if at_period_end:
            result = self.stripe.update_subscription(subscription_id, cancel_at_period_end=True)
            message = "Subscription will cancel at the end of the billing period"
        else:
            result = self.stripe.cancel_subscription(subscription_id)
            message = "Subscription cancelled"
        return PlanChangeResult(ok=True, new_state=self._state(result), message=message)

    def _reactivate(self, subscription_id: str) -> PlanChangeResult:
        subscription = self.stripe.retrieve_subscription(subscription_id)
        self._ensure_not_cancelled(subscription)

        schedule = self._active_schedule(subscription)
        if schedule and schedule.get("end_behavior") == "cancel":
            self.stripe.update_schedule(schedule["id"], end_behavior="release")
            result = self.stripe.retrieve_subscription(subscription_id)
            return PlanChangeResult(ok=True, new_state=self._state(result, cancel_at_period_end=False), message="Subscription reactivated")

        result = self.stripe.update_subscription(subscription_id, cancel_at_period_end=False)
        return PlanChangeResult(ok=True, new_state=self._state(result), message="Subscription reactivated")

    def _update_status(self, subscription_id: str) -> PlanChangeResult:
        subscription = self.stripe.retrieve_subscription(subscription_id)
        return PlanChangeResult(ok=True, new_state=self._state(subscription))
