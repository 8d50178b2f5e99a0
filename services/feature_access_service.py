"""
Feature access service: the single entry point request handlers use to ask
whether an account may use a feature, a module, or more of a quota.
"""
from typing import List, Optional
from datetime import timedelta
import logging
from supabase import Client

from config import settings
from config.plan_config import DEFAULT_POLICY, EntitlementPolicy
from models.access import (
    AccessLevel,
    AccessResult,
    ModuleAccessResult,
    ModuleAction,
    ProfileCapacity,
    QuotaResult,
    UpgradeHint,
)
from models.account import Account, PermissionLevel
from services.access_resolver import needs_upgrade, resolve_feature_access, upgrade_features
from services.account_service import AccountService
from services.module_access import can_access_module, required_permission_for
from services.quota_service import (
    CLIENTS_PER_MONTH,
    INVOICES_PER_MONTH,
    PEPPOL_INVOICES_PER_MONTH,
    QUOTES_PER_MONTH,
    QuotaTracker,
)

logger = logging.getLogger(__name__)


class FeatureAccessService:
    def __init__(
        self,
        supabase_client: Optional[Client] = None,
        policy: EntitlementPolicy = DEFAULT_POLICY,
        account_service: Optional[AccountService] = None,
        quota_tracker: Optional[QuotaTracker] = None,
        stale_after: timedelta = settings.SUBSCRIPTION_STALE_AFTER,
    ):
        if account_service is None and supabase_client is None:
            raise ValueError("Either supabase_client or account_service is required")
        self.policy = policy
        self.accounts = account_service or AccountService(supabase_client)
        self.quotas = quota_tracker or QuotaTracker(self.accounts, policy)
        self.stale_after = stale_after

    async def get_account(self, account_id: str) -> Account:
        account = await self.accounts.get_account(account_id)
        # Webhooks lag behind Stripe; decisions still use the cached row
        if account.subscription_synced_at is not None and account.is_stale(self.stale_after):
            logger.warning(f"Subscription data for {account_id} last synced at {account.subscription_synced_at.isoformat()}")
        return account

    # Feature checks

    async def check_feature_access(self, account_id: str, feature) -> AccessResult:
        account = await self.get_account(account_id)
        result = resolve_feature_access(account, feature, self.policy)
        if not result.allowed:
            logger.info(f"Feature access denied: account={account_id} feature={feature} reason={result.reason.value}")
        return result

    async def can_access_feature(self, account_id: str, feature) -> bool:
        result = await self.check_feature_access(account_id, feature)
        return result.allowed

    async def has_full_feature_access(self, account_id: str, feature) -> bool:
        result = await self.check_feature_access(account_id, feature)
        return result.level == AccessLevel.FULL

    # Module checks

    async def can_access_module(
        self,
        account_id: str,
        module: str,
        required_permission: PermissionLevel = PermissionLevel.VIEW_ONLY,
    ) -> ModuleAccessResult:
        account = await self.get_account(account_id)
        profile = None
        if not account.is_superadmin:
            profile = await self.accounts.get_active_profile(account_id)
        return can_access_module(account, profile, module, required_permission, self.policy)

    async def can_perform_action(self, account_id: str, module: str, action: ModuleAction) -> ModuleAccessResult:
        return await self.can_access_module(account_id, module, required_permission_for(action))

    # Quota checks

    async def check_quota(self, account_id: str, quota_key: str) -> QuotaResult:
        account = await self.get_account(account_id)
        return await self.quotas.check_quota(account, quota_key)

    async def can_create_quote(self, account_id: str) -> QuotaResult:
        return await self.check_quota(account_id, QUOTES_PER_MONTH)

    async def can_create_invoice(self, account_id: str) -> QuotaResult:
        return await self.check_quota(account_id, INVOICES_PER_MONTH)

    async def can_create_client(self, account_id: str) -> QuotaResult:
        return await self.check_quota(account_id, CLIENTS_PER_MONTH)

    async def can_send_peppol_invoice(self, account_id: str) -> QuotaResult:
        return await self.check_quota(account_id, PEPPOL_INVOICES_PER_MONTH)

    async def can_create_profile(self, account_id: str) -> ProfileCapacity:
        account = await self.get_account(account_id)
        return await self.quotas.can_create_profile(account)

    # Feature lists

    async def get_available_features(self, account_id: str) -> List:
        account = await self.get_account(account_id)
        return self.policy.available_features(account.selected_plan)

    async def get_unavailable_features(self, account_id: str) -> List:
        account = await self.get_account(account_id)
        return self.policy.unavailable_features(account.selected_plan)

    async def get_upgrade_features(self, account_id: str) -> List:
        account = await self.get_account(account_id)
        return upgrade_features(account, self.policy)

    async def needs_upgrade(self, account_id: str, feature) -> UpgradeHint:
        account = await self.get_account(account_id)
        return needs_upgrade(account.selected_plan, feature, self.policy)
