"""
Plan-based feature access for an account.

Everything here is pure: inputs are the account projection and the policy,
there is no I/O, and the result can be cached for the duration of a request.
"""
from typing import List

from config.plan_config import DEFAULT_POLICY, EntitlementPolicy
from models.access import AccessLevel, AccessResult, DenialReason, UpgradeHint
from models.account import Account
from models.subscription import Plan, SubscriptionStatus

ACTIVE_STATUSES = frozenset({SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE})


def is_active_subscription(status) -> bool:
    return SubscriptionStatus.normalize(status) in ACTIVE_STATUSES


def resolve_feature_access(account: Account, feature, policy: EntitlementPolicy = DEFAULT_POLICY) -> AccessResult:
    # Superadmin and lifetime access are checked before the subscription status
    if account.bypasses_subscription:
        return AccessResult(
            allowed=True,
            level=AccessLevel.FULL,
            plan=policy.top_plan(),
            subscription_synced_at=account.subscription_synced_at,
        )

    if not is_active_subscription(account.subscription_status):
        return AccessResult(
            allowed=False,
            level=AccessLevel.NONE,
            plan=account.selected_plan,
            reason=DenialReason.SUBSCRIPTION_INACTIVE,
            subscription_synced_at=account.subscription_synced_at,
        )

    level = policy.get_feature_access(account.selected_plan, feature)
    return AccessResult(
        allowed=level != AccessLevel.NONE,
        level=level,
        plan=account.selected_plan,
        reason=DenialReason.FEATURE_NOT_IN_PLAN if level == AccessLevel.NONE else None,
        subscription_synced_at=account.subscription_synced_at,
    )


def needs_upgrade(plan: Plan, feature, policy: EntitlementPolicy = DEFAULT_POLICY) -> UpgradeHint:
    """Whether the feature is missing on `plan` but offered by a higher tier."""
    required = policy.next_plan_above(plan)
    while required is not None and policy.get_feature_access(required, feature) == AccessLevel.NONE:
        required = policy.next_plan_above(required)

    needed = policy.get_feature_access(plan, feature) == AccessLevel.NONE and required is not None
    return UpgradeHint(needed=needed, current_plan=plan, required_plan=required if needed else None)


def upgrade_features(account: Account, policy: EntitlementPolicy = DEFAULT_POLICY) -> List:
    """Features the account would gain by moving to the top plan."""
    if account.bypasses_subscription:
        return []
    top = policy.top_plan()
    if account.selected_plan == top:
        return []
    current = set(policy.available_features(account.selected_plan))
    return [f for f in policy.available_features(top) if f not in current]
