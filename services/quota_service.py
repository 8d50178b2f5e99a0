"""
Quota checks anchored to the account's billing cycle.

Usage is never stored as a counter: each check counts the rows created
since the cycle started. The count and the caller's subsequent insert are
not in one transaction, so two concurrent requests can both pass and the
limit can be overrun by one. Quotas are therefore soft limits.
"""
from typing import Callable, Dict, NamedTuple, Optional, Tuple
from datetime import datetime, timezone
import logging

from config.plan_config import DEFAULT_POLICY, UNLIMITED, EntitlementPolicy
from models.access import DenialReason, ProfileCapacity, QuotaResult
from models.account import Account
from services.account_service import AccountService

logger = logging.getLogger(__name__)


class UsageSource(NamedTuple):
    table: str
    timestamp_column: str
    filters: Dict[str, object] = {}


QUOTES_PER_MONTH = "quotesPerMonth"
INVOICES_PER_MONTH = "invoicesPerMonth"
CLIENTS_PER_MONTH = "clientsPerMonth"
PEPPOL_INVOICES_PER_MONTH = "peppolInvoicesPerMonth"
MAX_PROFILES = "maxProfiles"

# Rows that count against each cycle quota; a quota sums all of its sources
USAGE_SOURCES: Dict[str, Tuple[UsageSource, ...]] = {
    QUOTES_PER_MONTH: (UsageSource("quotes", "created_at"),),
    INVOICES_PER_MONTH: (UsageSource("invoices", "created_at"),),
    CLIENTS_PER_MONTH: (UsageSource("clients", "created_at"),),
    PEPPOL_INVOICES_PER_MONTH: (
        UsageSource("invoices", "peppol_sent_at", {"peppol_enabled": True}),
        UsageSource("expense_invoices", "peppol_received_at", {"peppol_enabled": True, "source": "peppol"}),
    ),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def quota_limit_for(account: Account, quota_key: str, policy: EntitlementPolicy = DEFAULT_POLICY) -> int:
    if account.bypasses_subscription:
        return UNLIMITED
    return policy.get_quota(account.selected_plan, quota_key)


def evaluate_quota(
    account: Account,
    quota_key: str,
    usage: Optional[int],
    policy: EntitlementPolicy = DEFAULT_POLICY,
) -> QuotaResult:
    """
    Compare usage against the plan limit. `usage=None` means the count could
    not be read, which denies unless the quota is unlimited anyway.
    """
    limit = quota_limit_for(account, quota_key, policy)
    if limit == UNLIMITED:
        return QuotaResult(within_limit=True, limit=UNLIMITED, usage=usage, unlimited=True)

    if usage is None:
        return QuotaResult(
            within_limit=False,
            limit=limit,
            remaining=0,
            reason=DenialReason.USAGE_UNAVAILABLE,
        )

    # At the limit already means no capacity left
    within_limit = usage < limit
    return QuotaResult(
        within_limit=within_limit,
        limit=limit,
        usage=usage,
        remaining=max(0, limit - usage),
        reason=None if within_limit else DenialReason.QUOTA_EXCEEDED,
    )


class QuotaTracker:
    def __init__(
        self,
        account_service: AccountService,
        policy: EntitlementPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.accounts = account_service
        self.policy = policy
        self.clock = clock

    async def get_billing_cycle_start(self, account_id: str) -> datetime:
        """
        Start of the processor-tracked period when there is one and it is not
        in the future; otherwise the first instant of the calendar month.
        """
        now = self.clock()
        try:
            subscription = await self.accounts.get_current_subscription(account_id)
        except Exception as e:
            logger.warning(f"Error getting billing cycle for {account_id}, using calendar month: {str(e)}")
            return start_of_month(now)

        if subscription is None or subscription.current_period_start is None:
            return start_of_month(now)
        if subscription.current_period_start > now:
            logger.warning(f"Billing period for {account_id} starts in the future, using calendar month")
            return start_of_month(now)
        return subscription.current_period_start

    async def get_usage(self, account_id: str, quota_key: str, since: datetime) -> Optional[int]:
        """Rows counted in [since, now). None when the quota has no source or a count failed."""
        sources = USAGE_SOURCES.get(quota_key)
        if not sources:
            logger.error(f"No usage source configured for quota {quota_key}")
            return None

        until = self.clock()
        total = 0
        try:
            for source in sources:
                total += self.accounts.count_rows(
                    source.table,
                    {"user_id": account_id, **source.filters},
                    timestamp_column=source.timestamp_column,
                    since=since,
                    until=until,
                )
        except Exception as e:
            logger.error(f"Error counting {quota_key} usage for {account_id}: {str(e)}")
            return None
        return total

    async def check_quota(self, account: Account, quota_key: str) -> QuotaResult:
        # Skip the count entirely when the answer cannot depend on it
        if quota_limit_for(account, quota_key, self.policy) == UNLIMITED:
            return evaluate_quota(account, quota_key, None, self.policy)

        if quota_key == MAX_PROFILES:
            usage = self.count_profiles(account.id)
        else:
            cycle_start = await self.get_billing_cycle_start(account.id)
            usage = await self.get_usage(account.id, quota_key, cycle_start)
        result = evaluate_quota(account, quota_key, usage, self.policy)
        if not result.within_limit:
            logger.info(f"Quota denied: account={account.id} quota={quota_key} reason={result.reason.value} usage={usage} limit={result.limit}")
        return result

    def count_profiles(self, account_id: str) -> Optional[int]:
        """Profiles are capped in total, not per cycle. None when the count failed."""
        try:
            return self.accounts.count_rows("user_profiles", {"user_id": account_id})
        except Exception as e:
            logger.error(f"Error counting profiles for {account_id}: {str(e)}")
            return None

    async def can_create_profile(self, account: Account) -> ProfileCapacity:
        limit = quota_limit_for(account, MAX_PROFILES, self.policy)
        current = self.count_profiles(account.id)
        if current is None:
            return ProfileCapacity(can_create=False, current=0, max=max(limit, 0), remaining=0)

        if limit == UNLIMITED:
            return ProfileCapacity(can_create=True, current=current, max=UNLIMITED, remaining=UNLIMITED)
        return ProfileCapacity(
            can_create=current < limit,
            current=current,
            max=limit,
            remaining=max(0, limit - current),
        )
