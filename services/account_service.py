"""
Account service: reads the rows the entitlement engine decides on
"""
from typing import Optional, Dict, Any
from datetime import datetime
import logging
from supabase import Client

from config.decorators import retry_on_transient_error
from models.account import Account, Profile
from models.subscription import BILLING_CYCLE_STATUSES, SubscriptionRecord

logger = logging.getLogger(__name__)

ACCOUNT_COLUMNS = "id, selected_plan, subscription_status, business_size, role, has_lifetime_access, updated_at"


class AccountService:
    """
    Lookups fail towards the most restrictive answer: a row that cannot be
    read becomes a cancelled starter account, a missing profile, or no
    subscription. Nothing here ever grants access because a read failed.
    """

    def __init__(self, supabase_client: Client):
        self.supabase = supabase_client

    @retry_on_transient_error
    def _select_first(self, table: str, columns: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        query = self.supabase.table(table).select(columns)
        for column, value in filters.items():
            query = query.eq(column, value)
        response = query.limit(1).execute()
        return response.data[0] if response.data else None

    async def get_account(self, account_id: str) -> Account:
        try:
            row = self._select_first("users", ACCOUNT_COLUMNS, {"id": account_id})
        except Exception as e:
            logger.error(f"Error getting account {account_id}, using restricted fallback: {str(e)}")
            return Account.restricted(account_id)

        if not row:
            logger.warning(f"Account {account_id} not found, using restricted fallback")
            return Account.restricted(account_id)

        return Account(
            id=str(row.get("id") or account_id),
            role=row.get("role"),
            has_lifetime_access=row.get("has_lifetime_access"),
            selected_plan=row.get("selected_plan"),
            subscription_status=row.get("subscription_status"),
            business_size=row.get("business_size"),
            subscription_synced_at=row.get("updated_at"),
        )

    async def get_active_profile(self, account_id: str) -> Optional[Profile]:
        try:
            row = self._select_first("user_profiles", "*", {"user_id": account_id, "is_active": True})
        except Exception as e:
            logger.error(f"Error getting active profile for {account_id}: {str(e)}")
            return None
        return Profile.model_validate(row) if row else None

    async def get_stripe_subscription_id(self, account_id: str) -> Optional[str]:
        try:
            row = self._select_first("users", "stripe_subscription_id", {"id": account_id})
        except Exception as e:
            logger.error(f"Error getting subscription reference for {account_id}: {str(e)}")
            return None
        return row.get("stripe_subscription_id") if row else None

    @retry_on_transient_error
    def _latest_billing_subscription(self, account_id: str) -> Optional[Dict[str, Any]]:
        response = self.supabase.table("subscriptions").select(
            "id, user_id, stripe_subscription_id, status, interval, current_period_start, current_period_end, created_at, updated_at"
        ).eq("user_id", account_id).in_(
            "status", BILLING_CYCLE_STATUSES
        ).order("created_at", desc=True).limit(1).execute()
        return response.data[0] if response.data else None

    async def get_current_subscription(self, account_id: str) -> Optional[SubscriptionRecord]:
        """Most recent subscription row that still defines a billing cycle. Errors propagate."""
        row = self._latest_billing_subscription(account_id)
        return SubscriptionRecord.from_row(row) if row else None

    @retry_on_transient_error
    def count_rows(
        self,
        table: str,
        filters: Dict[str, Any],
        timestamp_column: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        """Exact row count. Errors propagate so callers can decide how to fail."""
        query = self.supabase.table(table).select("id", count="exact")
        for column, value in filters.items():
            query = query.eq(column, value)
        if timestamp_column and since is not None:
            query = query.gte(timestamp_column, since.isoformat())
        if timestamp_column and until is not None:
            query = query.lt(timestamp_column, until.isoformat())
        response = query.execute()
        return response.count or 0
