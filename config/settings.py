# config/settings.py

import os
from datetime import timedelta
from typing import Dict

from dotenv import load_dotenv

from models.subscription import BillingInterval, Plan

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
# Period fields still live on the subscription object in this API version
STRIPE_API_VERSION = os.getenv("STRIPE_API_VERSION", "2024-12-18.acacia")

SUBSCRIPTION_STALE_AFTER = timedelta(seconds=int(os.getenv("SUBSCRIPTION_STALE_AFTER_SECONDS", "900")))

LOG_FILE = os.getenv("LOG_FILE")


def get_price_ids() -> Dict[Plan, Dict[BillingInterval, str]]:
    """Processor price ids per plan and interval. Empty strings mean "not sold"."""
    return {
        Plan.STARTER: {
            BillingInterval.MONTHLY: os.getenv("STRIPE_STARTER_MONTHLY_PRICE_ID", ""),
            BillingInterval.YEARLY: os.getenv("STRIPE_STARTER_YEARLY_PRICE_ID", ""),
        },
        Plan.PRO: {
            BillingInterval.MONTHLY: os.getenv("STRIPE_PRO_MONTHLY_PRICE_ID", ""),
            BillingInterval.YEARLY: os.getenv("STRIPE_PRO_YEARLY_PRICE_ID", ""),
        },
    }
