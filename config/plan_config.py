# config/plan_config.py

from types import MappingProxyType
from typing import Dict, Any, List, Mapping, Optional

from models.access import AccessLevel, Feature
from models.subscription import BillingInterval, Plan

UNLIMITED = -1

FULL = AccessLevel.FULL
LIMITED = AccessLevel.LIMITED
NONE = AccessLevel.NONE

PLAN_FEATURES: Dict[Plan, Dict[Feature, AccessLevel]] = {
    Plan.STARTER: {
        Feature.QUOTES: FULL,
        Feature.INVOICES: FULL,
        Feature.CLIENTS: LIMITED, # Up to 30 new clients per cycle
        Feature.TEMPLATES: FULL,
        Feature.PEPPOL: LIMITED, # Up to 50 e-invoices per cycle, sent + received
        Feature.LEAD_GENERATION: LIMITED,
        Feature.AUTOMATIC_REMINDERS: NONE,
        Feature.MULTI_USER: NONE,
        Feature.ADVANCED_ANALYTICS: LIMITED,
        Feature.AI_FEATURES: FULL,
        Feature.SIGNATURE_PREDICTIONS: NONE,
        Feature.PRICE_OPTIMIZATION: NONE,
        Feature.CREDIT_INSURANCE: FULL,
        Feature.RECOVERY: FULL,
        Feature.EMAIL_SUPPORT: FULL,
        Feature.PRIORITY_SUPPORT: NONE,
    },
    Plan.PRO: {feature: FULL for feature in Feature},
}

QUOTAS: Dict[Plan, Dict[str, int]] = {
    Plan.STARTER: {
        "quotesPerMonth": UNLIMITED,
        "invoicesPerMonth": UNLIMITED,
        "clientsPerMonth": 30,
        "peppolInvoicesPerMonth": 50,
        "maxProfiles": 1,
    },
    Plan.PRO: {
        "quotesPerMonth": UNLIMITED,
        "invoicesPerMonth": UNLIMITED,
        "clientsPerMonth": UNLIMITED,
        "peppolInvoicesPerMonth": UNLIMITED,
        "maxProfiles": 10,
    },
}

# Modules mapped to None are always reachable as far as the plan is concerned
MODULE_FEATURE_MAP: Dict[str, Optional[Feature]] = {
    "dashboard": None,
    "analytics": Feature.ADVANCED_ANALYTICS,
    "peppolAccessPoint": Feature.PEPPOL,
    "leadsManagement": Feature.LEAD_GENERATION,
    "quoteCreation": Feature.QUOTES,
    "quotesManagement": Feature.QUOTES,
    "quotesFollowUp": Feature.AUTOMATIC_REMINDERS,
    "invoicesFollowUp": Feature.AUTOMATIC_REMINDERS,
    "clientInvoices": Feature.INVOICES,
    "supplierInvoices": Feature.INVOICES,
    "clientManagement": Feature.CLIENTS,
    "creditInsurance": Feature.CREDIT_INSURANCE,
    "recovery": Feature.RECOVERY,
}

PLAN_HIERARCHY: Dict[Plan, int] = {
    Plan.STARTER: 1,
    Plan.PRO: 2,
}

# Reference recurring amounts in cents, used to rank same-tier interval changes
PLAN_AMOUNTS: Dict[Plan, Dict[BillingInterval, int]] = {
    Plan.STARTER: {BillingInterval.MONTHLY: 2999, BillingInterval.YEARLY: 29988},
    Plan.PRO: {BillingInterval.MONTHLY: 4999, BillingInterval.YEARLY: 49992},
}

# Cross-border e-invoicing is reserved for registered businesses
PEPPOL_ACCESS_POINT_MODULE = "peppolAccessPoint"
BUSINESS_GATED_MODULES = frozenset({PEPPOL_ACCESS_POINT_MODULE})
ELIGIBLE_BUSINESS_SIZES = frozenset({"small", "medium", "large"})


def _freeze(table: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType({
        key: _freeze(value) if isinstance(value, Mapping) else value
        for key, value in table.items()
    })


class EntitlementPolicy:
    """
    Immutable bundle of the plan/feature matrix, the quota table and the
    module map. Built once at startup and shared by every request; tests
    build their own instead of patching module globals.
    """

    def __init__(
        self,
        plan_features: Mapping[Plan, Mapping[Feature, AccessLevel]] = PLAN_FEATURES,
        quotas: Mapping[Plan, Mapping[str, int]] = QUOTAS,
        module_features: Mapping[str, Optional[Feature]] = MODULE_FEATURE_MAP,
        plan_hierarchy: Mapping[Plan, int] = PLAN_HIERARCHY,
        plan_amounts: Mapping[Plan, Mapping[BillingInterval, int]] = PLAN_AMOUNTS,
        fallback_plan: Plan = Plan.STARTER,
    ):
        self._plan_features = _freeze(plan_features)
        self._quotas = _freeze(quotas)
        self._module_features = _freeze(module_features)
        self._plan_hierarchy = _freeze(plan_hierarchy)
        self._plan_amounts = _freeze(plan_amounts)
        self._fallback_plan = fallback_plan

    def __setattr__(self, name, value):
        if hasattr(self, "_fallback_plan"):
            raise AttributeError("EntitlementPolicy is immutable")
        super().__setattr__(name, value)

    @property
    def fallback_plan(self) -> Plan:
        return self._fallback_plan

    def _plan_row(self, table: Mapping[Any, Mapping], plan) -> Mapping:
        return table.get(plan) or table.get(self._fallback_plan) or {}

    def get_feature_access(self, plan, feature) -> AccessLevel:
        """Total over (plan, feature): anything unmapped resolves to none."""
        return self._plan_row(self._plan_features, plan).get(feature, AccessLevel.NONE)

    def get_quota(self, plan, quota_key: str) -> int:
        """Unknown quota keys resolve to 0, never to unlimited."""
        return self._plan_row(self._quotas, plan).get(quota_key, 0)

    def is_unlimited(self, plan, quota_key: str) -> bool:
        return self.get_quota(plan, quota_key) == UNLIMITED

    def feature_for_module(self, module: str) -> Optional[Feature]:
        return self._module_features.get(module)

    def available_features(self, plan) -> List[Feature]:
        return [f for f, level in self._plan_row(self._plan_features, plan).items() if level != AccessLevel.NONE]

    def unavailable_features(self, plan) -> List[Feature]:
        return [f for f, level in self._plan_row(self._plan_features, plan).items() if level == AccessLevel.NONE]

    def tier_of(self, plan) -> int:
        return self._plan_hierarchy.get(plan, 0)

    def top_plan(self) -> Plan:
        return max(self._plan_hierarchy, key=self._plan_hierarchy.get)

    def next_plan_above(self, plan) -> Optional[Plan]:
        current = self.tier_of(plan)
        higher = [p for p, tier in self._plan_hierarchy.items() if tier > current]
        return min(higher, key=self._plan_hierarchy.get) if higher else None

    def amount_of(self, plan, interval) -> int:
        return self._plan_amounts.get(plan, {}).get(interval, 0)


DEFAULT_POLICY = EntitlementPolicy()


def get_policy() -> EntitlementPolicy:
    """Policy used by request handlers."""
    return DEFAULT_POLICY
