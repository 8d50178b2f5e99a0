"""
Account and profile models for the entitlement engine
"""
from pydantic import BaseModel, field_validator
from typing import Optional, Dict
from datetime import datetime, timedelta, timezone
from enum import Enum

from models.subscription import Plan, SubscriptionStatus, ensure_utc


class AccountRole(str, Enum):
    NORMAL = "normal"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class PermissionLevel(str, Enum):
    NO_ACCESS = "no_access"
    VIEW_ONLY = "view_only"
    FULL_ACCESS = "full_access"


class Account(BaseModel):
    """
    Billing tenant as the engine sees it: the `users` row fields that drive
    entitlement decisions. Unknown values collapse to the most restrictive one.
    """
    id: str
    role: AccountRole = AccountRole.NORMAL
    has_lifetime_access: bool = False
    selected_plan: Plan = Plan.STARTER
    subscription_status: SubscriptionStatus = SubscriptionStatus.CANCELLED
    business_size: Optional[str] = None
    subscription_synced_at: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def _known_role(cls, value):
        try:
            return AccountRole(value)
        except ValueError:
            return AccountRole.NORMAL

    @field_validator("selected_plan", mode="before")
    @classmethod
    def _known_plan(cls, value):
        try:
            return Plan(value)
        except ValueError:
            return Plan.STARTER

    @field_validator("subscription_status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        return SubscriptionStatus.normalize(value)

    @field_validator("has_lifetime_access", mode="before")
    @classmethod
    def _strict_flag(cls, value):
        # Only an explicit true grants lifetime access
        return value is True

    @field_validator("subscription_synced_at")
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @classmethod
    def restricted(cls, account_id: str) -> "Account":
        """Fallback used when the account row cannot be read."""
        return cls(id=account_id)

    @property
    def is_superadmin(self) -> bool:
        return self.role == AccountRole.SUPERADMIN

    @property
    def bypasses_subscription(self) -> bool:
        return self.is_superadmin or self.has_lifetime_access

    def is_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        if self.subscription_synced_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - self.subscription_synced_at > max_age


class Profile(BaseModel):
    """An operator acting on behalf of an account."""
    id: Optional[str] = None
    user_id: Optional[str] = None
    name: Optional[str] = None
    role: str = "viewer"
    permissions: Dict[str, PermissionLevel] = {}
    is_active: bool = True

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _as_str(cls, value):
        return str(value) if value is not None else None

    @field_validator("role", mode="before")
    @classmethod
    def _default_role(cls, value):
        return value or "viewer"

    @field_validator("permissions", mode="before")
    @classmethod
    def _known_levels(cls, value):
        if not isinstance(value, dict):
            return {}
        levels = {}
        for module, level in value.items():
            try:
                levels[module] = PermissionLevel(level)
            except ValueError:
                levels[module] = PermissionLevel.NO_ACCESS
        return levels

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def permission_for(self, module: str) -> PermissionLevel:
        return self.permissions.get(module, PermissionLevel.NO_ACCESS)
