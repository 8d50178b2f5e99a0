"""
Admin subscription routes: plan changes, cancellation and reactivation
"""
from fastapi import APIRouter, HTTPException, status, Depends
import logging

from auth.dependencies import get_subscription_orchestrator, require_superadmin
from models.subscription import PlanChangeRequest, PlanChangeResult
from services.subscription_orchestrator import SubscriptionOrchestrator

router = APIRouter(prefix="/admin/subscriptions", tags=["Subscriptions"])
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "processor": status.HTTP_502_BAD_GATEWAY,
}


@router.post("", response_model=PlanChangeResult)
async def apply_plan_change(
    request: PlanChangeRequest,
    current_user: dict = Depends(require_superadmin),
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    """
    Apply a plan change, cancellation, reactivation or status refresh in Stripe
    """
    result = await orchestrator.apply_plan_change(request)

    if not result.ok:
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR),
            detail={"error": result.error, "error_type": result.error_type}
        )

    logger.info(f"Subscription {request.action} applied by {current_user['id']}: {result.change.value if result.change else 'n/a'}")
    return result
