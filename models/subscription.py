"""
Subscription models for the entitlement engine
"""
from pydantic import BaseModel, field_validator
from typing import Optional, Any
from datetime import datetime, timedelta, timezone
from enum import Enum


class Plan(str, Enum):
    STARTER = "starter"
    PRO = "pro"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def from_recurring(cls, interval: Optional[str]) -> Optional["BillingInterval"]:
        """Map a processor recurring interval ("month"/"year") to a billing interval."""
        return {"month": cls.MONTHLY, "year": cls.YEARLY}.get(interval)


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"

    @classmethod
    def normalize(cls, value: Any) -> "SubscriptionStatus":
        """
        Fold raw status strings (ours or the processor's) into the four known
        states. Anything unrecognised is treated as cancelled.
        """
        if isinstance(value, cls):
            return value
        return _STATUS_ALIASES.get(str(value).lower() if value else "", cls.CANCELLED)


_STATUS_ALIASES = {
    "trial": SubscriptionStatus.TRIAL,
    "trialing": SubscriptionStatus.TRIAL,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "cancelled": SubscriptionStatus.CANCELLED,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}

# Raw statuses of subscription rows that still define a live billing cycle
BILLING_CYCLE_STATUSES = ["active", "trialing", "past_due"]


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps without an offset are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PlanChangeAction(str, Enum):
    UPDATE_PLAN = "update_plan"
    CANCEL = "cancel"
    REACTIVATE = "reactivate"
    UPDATE_STATUS = "update_status"


class PlanChangeKind(str, Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    NOOP = "noop"


class PlanSelection(BaseModel):
    plan: Plan
    interval: BillingInterval


class SubscriptionRecord(BaseModel):
    """
    Read-only projection of a `subscriptions` row. The row is owned by the
    payment processor's webhooks; `synced_at` tells how fresh it is.
    """
    id: Optional[str] = None
    user_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.CANCELLED
    interval: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    created_at: Optional[datetime] = None
    synced_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        return SubscriptionStatus.normalize(value)

    @field_validator("current_period_start", "current_period_end", "created_at", "synced_at")
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @classmethod
    def from_row(cls, row: dict) -> "SubscriptionRecord":
        data = dict(row)
        data.setdefault("synced_at", row.get("updated_at"))
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return cls.model_validate(data)

    def is_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        if self.synced_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - self.synced_at > max_age


class ScheduledPlanChange(BaseModel):
    new_plan: str  # processor price id
    effective_date: Optional[int] = None  # unix timestamp, equals current_period_end
    target_plan: Optional[Plan] = None
    target_interval: Optional[BillingInterval] = None


class SubscriptionState(BaseModel):
    """What the processor reports after a plan change, echoed back to the caller."""
    id: str
    status: Optional[str] = None
    cancel_at_period_end: bool = False
    current_period_end: Optional[int] = None
    plan: Optional[str] = None
    plan_type: Optional[Plan] = None
    billing_interval: Optional[BillingInterval] = None
    scheduled_change: Optional[ScheduledPlanChange] = None


class PlanChangeRequest(BaseModel):
    action: str
    user_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    plan_type: Optional[str] = None
    billing_interval: Optional[str] = None
    cancel_at_period_end: bool = False


class PlanChangeResult(BaseModel):
    ok: bool
    new_state: Optional[SubscriptionState] = None
    change: Optional[PlanChangeKind] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None  # "validation" | "processor"
