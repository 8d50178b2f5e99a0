"""
Access routes: feature, module and quota checks for the current user
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List
import logging

from auth.dependencies import get_current_user, get_feature_access_service
from models.access import AccessResult, Feature, ModuleAccessResult, ModuleAction, ProfileCapacity, QuotaResult
from models.account import PermissionLevel
from services.feature_access_service import FeatureAccessService

router = APIRouter(prefix="/access", tags=["Access"])
logger = logging.getLogger(__name__)

CAN_CREATE_ALIASES = {
    "quotes": "can_create_quote",
    "invoices": "can_create_invoice",
    "clients": "can_create_client",
    "peppol": "can_send_peppol_invoice",
}


@router.get("/features/{feature}", response_model=AccessResult)
async def check_feature(
    feature: Feature,
    current_user: dict = Depends(get_current_user),
    service: FeatureAccessService = Depends(get_feature_access_service),
):
    """
    Plan-based access to a single feature
    """
    return await service.check_feature_access(current_user["id"], feature)


@router.get("/modules/{module}", response_model=ModuleAccessResult)
async def check_module(
    module: str,
    permission: PermissionLevel = Query(default=PermissionLevel.VIEW_ONLY),
    current_user: dict = Depends(get_current_user),
    service: FeatureAccessService = Depends(get_feature_access_service),
):
    """
    Combined subscription and profile permission check for a module
    """
    if permission == PermissionLevel.NO_ACCESS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="permission must be view_only or full_access"
        )
    return await service.can_access_module(current_user["id"], module, permission)


@router.get("/modules/{module}/actions/{action}", response_model=ModuleAccessResult)
async def check_module_action(
    module: str,
    action: ModuleAction,
    current_user: dict = Depends(get_current_user),
    service: FeatureAccessService = Depends(get_feature_access_service),
):
    return await service.can_perform_action(current_user["id"], module, action)


@router.get("/quotas/{quota_key}", response_model=QuotaResult)
async def check_quota(
    quota_key: str,
    current_user: dict = Depends(get_current_user),
    service: FeatureAccessService = Depends(get_feature_access_service),
):
    return await service.check_quota(current_user["id"], quota_key)


@router.get("/can-create/{resource}", response_model=QuotaResult)
async def can_create(
    resource: str,
    current_user: dict = Depends(get_current_user),
    service: FeatureAccessService = Depends(get_feature_access_service),
):
    """
    Quota shortcut for quotes, invoices, clients and peppol e-invoices
    """
    method_name = CAN_CREATE_ALIASES.get(resource)
    if not method_name:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown resource: {resource}"
        )
    return await getattr(service, method_name)(current_user["id"])


@router.get("/profiles/capacity", response_model=ProfileCapacity)
async def profile_capacity(
    current_user: dict = Depends(get_current_user),
    service: FeatureAccessService = Depends(get_feature_access_service),
):
    return await service.can_create_profile(current_user["id"])


@router.get("/upgrade-features", response_model=List[Feature])
async def get_upgrade_features(
    current_user: dict = Depends(get_current_user),
    service: FeatureAccessService = Depends(get_feature_access_service),
):
    """
    Features the current plan lacks and the top plan offers
    """
    return await service.get_upgrade_features(current_user["id"])
