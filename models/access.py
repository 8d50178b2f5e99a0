"""
Access decision models returned by the entitlement engine
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum

from models.subscription import Plan


class Feature(str, Enum):
    # Core
    QUOTES = "quotes"
    INVOICES = "invoices"
    CLIENTS = "clients"
    TEMPLATES = "templates"

    # Advanced
    LEAD_GENERATION = "leadGeneration"
    AUTOMATIC_REMINDERS = "automaticReminders"
    MULTI_USER = "multiUser"
    ADVANCED_ANALYTICS = "advancedAnalytics"
    AI_FEATURES = "aiFeatures"
    SIGNATURE_PREDICTIONS = "signaturePredictions"
    PRICE_OPTIMIZATION = "priceOptimization"
    PEPPOL = "peppol"
    CREDIT_INSURANCE = "creditInsurance"
    RECOVERY = "recovery"

    # Support
    EMAIL_SUPPORT = "emailSupport"
    PRIORITY_SUPPORT = "prioritySupport"


class AccessLevel(str, Enum):
    FULL = "full"
    LIMITED = "limited"
    NONE = "none"


class ModuleAction(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


class DenialReason(str, Enum):
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    FEATURE_NOT_IN_PLAN = "feature_not_in_plan"
    BUSINESS_USERS_ONLY = "business_users_only"
    NO_ACTIVE_PROFILE = "no_active_profile"
    PROFILE_NO_ACCESS = "profile_no_access"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    QUOTA_EXCEEDED = "quota_exceeded"
    USAGE_UNAVAILABLE = "usage_unavailable"


class AccessResult(BaseModel):
    allowed: bool
    level: AccessLevel
    plan: Optional[Plan] = None
    reason: Optional[DenialReason] = None
    subscription_synced_at: Optional[datetime] = None


class ModuleAccessResult(BaseModel):
    allowed: bool
    reason: Optional[DenialReason] = None
    upgrade_required: bool = False
    required_plan: Optional[Plan] = None


class QuotaResult(BaseModel):
    within_limit: bool
    limit: int
    usage: Optional[int] = None  # None when the count was not needed or could not be read
    remaining: Optional[int] = None
    unlimited: bool = False
    reason: Optional[DenialReason] = None


class ProfileCapacity(BaseModel):
    can_create: bool
    current: int
    max: int
    remaining: int


class UpgradeHint(BaseModel):
    needed: bool
    current_plan: Plan
    required_plan: Optional[Plan] = None
