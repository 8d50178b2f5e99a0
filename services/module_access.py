"""
Module permission combinator.

A module is reachable when three independent gates agree: the subscription
(status and plan feature), the business-size rule for specific modules, and
the acting profile's permission map. There are two escape valves at
different levels: an account superadmin skips everything, a profile admin
only skips the permission map.
"""
import logging
from typing import Optional

from config.plan_config import (
    BUSINESS_GATED_MODULES,
    DEFAULT_POLICY,
    ELIGIBLE_BUSINESS_SIZES,
    EntitlementPolicy,
)
from models.access import AccessLevel, DenialReason, ModuleAccessResult, ModuleAction
from models.account import Account, PermissionLevel, Profile
from services.access_resolver import is_active_subscription, resolve_feature_access

logger = logging.getLogger(__name__)


def _deny(account: Account, module: str, reason: DenialReason, upgrade_required: bool = False, required_plan=None) -> ModuleAccessResult:
    logger.info(f"Module access denied: account={account.id} module={module} reason={reason.value}")
    return ModuleAccessResult(
        allowed=False,
        reason=reason,
        upgrade_required=upgrade_required,
        required_plan=required_plan,
    )


def can_access_module(
    account: Account,
    profile: Optional[Profile],
    module: str,
    required_permission: PermissionLevel = PermissionLevel.VIEW_ONLY,
    policy: EntitlementPolicy = DEFAULT_POLICY,
) -> ModuleAccessResult:
    """
    Evaluate the gates in order and stop at the first denial. The order is
    part of the contract: reasons reported to callers depend on it.
    """
    if account.is_superadmin:
        return ModuleAccessResult(allowed=True)

    if not account.has_lifetime_access and not is_active_subscription(account.subscription_status):
        return _deny(account, module, DenialReason.SUBSCRIPTION_INACTIVE, upgrade_required=True)

    feature = policy.feature_for_module(module)
    if feature is not None:
        access = resolve_feature_access(account, feature, policy)
        if access.level == AccessLevel.NONE:
            return _deny(
                account,
                module,
                DenialReason.FEATURE_NOT_IN_PLAN,
                upgrade_required=True,
                required_plan=policy.next_plan_above(account.selected_plan),
            )

    # Independent of plan: an unknown business size fails closed
    if module in BUSINESS_GATED_MODULES and account.business_size not in ELIGIBLE_BUSINESS_SIZES:
        return _deny(account, module, DenialReason.BUSINESS_USERS_ONLY)

    if profile is None:
        return _deny(account, module, DenialReason.NO_ACTIVE_PROFILE)

    if profile.is_admin:
        return ModuleAccessResult(allowed=True)

    granted = profile.permission_for(module)
    if granted == PermissionLevel.NO_ACCESS:
        return _deny(account, module, DenialReason.PROFILE_NO_ACCESS)

    if PermissionLevel(required_permission) == PermissionLevel.FULL_ACCESS and granted != PermissionLevel.FULL_ACCESS:
        return _deny(account, module, DenialReason.INSUFFICIENT_PERMISSION)

    return ModuleAccessResult(allowed=True)


def required_permission_for(action: ModuleAction) -> PermissionLevel:
    """Viewing needs view_only; any write needs full_access."""
    if ModuleAction(action) == ModuleAction.VIEW:
        return PermissionLevel.VIEW_ONLY
    return PermissionLevel.FULL_ACCESS


def can_perform_action(
    account: Account,
    profile: Optional[Profile],
    module: str,
    action: ModuleAction,
    policy: EntitlementPolicy = DEFAULT_POLICY,
) -> ModuleAccessResult:
    return can_access_module(account, profile, module, required_permission_for(action), policy)
