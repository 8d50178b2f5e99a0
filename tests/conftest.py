"""
Test configuration for pytest
"""
import copy
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

from models.access import Feature  # noqa: E402
from models.subscription import BillingInterval, Plan  # noqa: E402
from services.exceptions import ProcessorError  # noqa: E402
from services.stripe_service import StripeService  # noqa: E402

NOW = datetime(2026, 3, 20, 12, 0, tzinfo=timezone.utc)

PRICE_IDS = {
    Plan.STARTER: {BillingInterval.MONTHLY: "price_starter_m", BillingInterval.YEARLY: "price_starter_y"},
    Plan.PRO: {BillingInterval.MONTHLY: "price_pro_m", BillingInterval.YEARLY: "price_pro_y"},
}

PRICE_OBJECTS = {
    "price_starter_m": {"id": "price_starter_m", "unit_amount": 2999, "recurring": {"interval": "month"}},
    "price_starter_y": {"id": "price_starter_y", "unit_amount": 29988, "recurring": {"interval": "year"}},
    "price_pro_m": {"id": "price_pro_m", "unit_amount": 4999, "recurring": {"interval": "month"}},
    "price_pro_y": {"id": "price_pro_y", "unit_amount": 49992, "recurring": {"interval": "year"}},
    # Grandfathered prices that are no longer in the price table
    "price_legacy_m": {"id": "price_legacy_m", "unit_amount": 1999, "recurring": {"interval": "month"}},
    "price_legacy_y": {"id": "price_legacy_y", "unit_amount": 59988, "recurring": {"interval": "year"}},
}

PERIOD_START = 1772323200  # 2026-03-01T00:00:00Z
PERIOD_END = 1775001600  # 2026-04-01T00:00:00Z


def _as_datetime(value):
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Supports the subset of the postgrest builder the engine uses."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.filters = []
        self.count_mode = None
        self.order_by = None
        self.limit_to = None

    def select(self, columns="*", count=None):
        self.count_mode = count
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and _as_datetime(row[column]) >= _as_datetime(value))
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and _as_datetime(row[column]) < _as_datetime(value))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_to = n
        return self

    def execute(self):
        self.db.queries.append(self.table)
        if self.table in self.db.failures:
            raise self.db.failures[self.table]
        rows = [row for row in self.db.tables.get(self.table, []) if all(f(row) for f in self.filters)]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda row: str(row.get(column) or ""), reverse=desc)
        count = len(rows) if self.count_mode == "exact" else None
        if self.limit_to is not None:
            rows = rows[: self.limit_to]
        return FakeResponse([dict(row) for row in rows], count)


class FakeSupabase:
    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables = tables or {}
        self.failures: Dict[str, Exception] = {}
        self.queries: List[str] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def insert_row(self, table: str, **row):
        self.tables.setdefault(table, []).append(row)


class FakeStripeService(StripeService):
    """In-memory stand-in for the Stripe gateway that records every call."""

    def __init__(self):
        super().__init__(price_ids=PRICE_IDS)
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.schedules: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, str] = {}

    def add_subscription(
        self,
        subscription_id="sub_123",
        price_id="price_starter_m",
        status="active",
        cancel_at_period_end=False,
        schedule=None,
    ):
        self.subscriptions[subscription_id] = {
            "id": subscription_id,
            "status": status,
            "cancel_at_period_end": cancel_at_period_end,
            "current_period_start": PERIOD_START,
            "current_period_end": PERIOD_END,
            "schedule": schedule,
            "items": {"data": [{"id": "si_1", "price": dict(PRICE_OBJECTS[price_id])}]},
        }
        return self.subscriptions[subscription_id]

    def add_schedule(self, subscription_id, end_behavior="release", status="active", phases=None):
        schedule_id = f"sub_sched_{len(self.schedules) + 1}"
        self.schedules[schedule_id] = {
            "id": schedule_id,
            "subscription": subscription_id,
            "status": status,
            "end_behavior": end_behavior,
            "phases": phases or [],
        }
        self.subscriptions[subscription_id]["schedule"] = schedule_id
        return self.schedules[schedule_id]

    def _record(self, operation, *args, **kwargs):
        self.calls.append((operation, args, kwargs))
        if operation in self.fail_on:
            raise ProcessorError(self.fail_on[operation])

    def mutations(self):
        return [call for call in self.calls if not call[0].startswith("retrieve")]

    def retrieve_subscription(self, subscription_id):
        self._record("retrieve_subscription", subscription_id)
        if subscription_id not in self.subscriptions:
            raise ProcessorError(f"No such subscription: '{subscription_id}'")
        return copy.deepcopy(self.subscriptions[subscription_id])

    def update_subscription(self, subscription_id, **params):
        self._record("update_subscription", subscription_id, **params)
        subscription = self.subscriptions[subscription_id]
        if "items" in params:
            subscription["items"]["data"][0]["price"] = dict(PRICE_OBJECTS[params["items"][0]["price"]])
        if "cancel_at_period_end" in params:
            subscription["cancel_at_period_end"] = params["cancel_at_period_end"]
        return copy.deepcopy(subscription)

    def cancel_subscription(self, subscription_id):
        self._record("cancel_subscription", subscription_id)
        subscription = self.subscriptions[subscription_id]
        subscription["status"] = "canceled"
        return copy.deepcopy(subscription)

    def retrieve_schedule(self, schedule_id):
        self._record("retrieve_schedule", schedule_id)
        return copy.deepcopy(self.schedules[schedule_id])

    def create_schedule_from_subscription(self, subscription_id):
        self._record("create_schedule_from_subscription", subscription_id)
        subscription = self.subscriptions[subscription_id]
        phase = {
            "items": [{"price": subscription["items"]["data"][0]["price"]["id"], "quantity": 1}],
            "start_date": PERIOD_START,
            "end_date": PERIOD_END,
        }
        return copy.deepcopy(self.add_schedule(subscription_id, phases=[phase]))

    def update_schedule(self, schedule_id, **params):
        self._record("update_schedule", schedule_id, **params)
        self.schedules[schedule_id].update(copy.deepcopy(params))
        return copy.deepcopy(self.schedules[schedule_id])

    def release_schedule(self, schedule_id):
        self._record("release_schedule", schedule_id)
        schedule = self.schedules[schedule_id]
        schedule["status"] = "released"
        self.subscriptions[schedule["subscription"]]["schedule"] = None
        return copy.deepcopy(schedule)


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def fake_stripe():
    return FakeStripeService()


@pytest.fixture
def all_features():
    return list(Feature)
