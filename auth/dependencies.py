"""
Request dependencies: authentication and engine wiring
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .middleware import get_auth_middleware
from config.plan_config import get_policy
from models.account import AccountRole
from services.account_service import AccountService
from services.feature_access_service import FeatureAccessService
from services.stripe_service import StripeService
from services.subscription_orchestrator import SubscriptionOrchestrator

security = HTTPBearer()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """
    Get current authenticated user
    """
    auth_middleware = get_auth_middleware()
    return await auth_middleware.verify_token(credentials)


async def require_superadmin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != AccountRole.SUPERADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin access required"
        )
    return current_user


def get_feature_access_service() -> FeatureAccessService:
    return FeatureAccessService(get_auth_middleware().supabase, policy=get_policy())


def get_subscription_orchestrator() -> SubscriptionOrchestrator:
    return SubscriptionOrchestrator(
        StripeService(),
        account_service=AccountService(get_auth_middleware().supabase),
        policy=get_policy(),
    )
