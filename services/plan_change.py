"""
Upgrade / downgrade classification for plan changes
"""
from typing import Optional

from config.plan_config import DEFAULT_POLICY, EntitlementPolicy
from models.subscription import BillingInterval, PlanChangeKind, PlanSelection


def classify_plan_change(
    current: PlanSelection,
    target: PlanSelection,
    policy: EntitlementPolicy = DEFAULT_POLICY,
) -> PlanChangeKind:
    """
    Upgrade: higher tier, or same tier at a higher recurring price.
    Downgrade: lower tier, or same tier moving from yearly to monthly billing.
    Anything else leaves the subscription as it is.
    """
    if current == target:
        return PlanChangeKind.NOOP

    current_tier = policy.tier_of(current.plan)
    target_tier = policy.tier_of(target.plan)
    if target_tier > current_tier:
        return PlanChangeKind.UPGRADE
    if target_tier < current_tier:
        return PlanChangeKind.DOWNGRADE

    if current.interval == BillingInterval.YEARLY and target.interval == BillingInterval.MONTHLY:
        return PlanChangeKind.DOWNGRADE
    if policy.amount_of(target.plan, target.interval) > policy.amount_of(current.plan, current.interval):
        return PlanChangeKind.UPGRADE
    return PlanChangeKind.NOOP


def classify_unlisted_price_change(
    current_amount: Optional[int],
    current_interval: Optional[BillingInterval],
    target: PlanSelection,
    policy: EntitlementPolicy = DEFAULT_POLICY,
) -> PlanChangeKind:
    """
    Classify a move away from a price that is not in the price table, using
    the live recurring amount. The target price always differs from the
    current one, so the result is never a no-op: a change that is not
    cheaper is applied at once.
    """
    if current_interval == BillingInterval.YEARLY and target.interval == BillingInterval.MONTHLY:
        return PlanChangeKind.DOWNGRADE
    if current_amount is not None and policy.amount_of(target.plan, target.interval) < current_amount:
        return PlanChangeKind.DOWNGRADE
    return PlanChangeKind.UPGRADE
