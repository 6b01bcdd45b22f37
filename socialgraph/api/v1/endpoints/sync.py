from fastapi import APIRouter, Depends, Query
from typing import Optional

from socialgraph.api.deps import get_current_account, get_sync_service
from socialgraph.schemas.account import Account
from socialgraph.schemas.sync import SyncContactsRequest, SyncHistory, SyncPlatform, SyncResponse
from socialgraph.services.sync import SocialSyncService

router = APIRouter()


@router.post("/contacts", response_model=SyncResponse)
async def sync_contacts(
    payload: SyncContactsRequest,
    current_user: Account = Depends(get_current_account),
    service: SocialSyncService = Depends(get_sync_service),
):
    """Sync contacts from one platform and auto-connect registered users"""
    return await service.sync(current_user.email, payload)


@router.post("/initialize", response_model=SyncResponse)
async def initialize_sync(
    current_user: Account = Depends(get_current_account),
    service: SocialSyncService = Depends(get_sync_service),
):
    return await service.initialize(current_user.email)


@router.get("/test", response_model=SyncResponse)
async def test_sync(
    platform: SyncPlatform = Query(SyncPlatform.FACEBOOK),
    contact_count: Optional[int] = Query(None, ge=1, le=5000),
    current_user: Account = Depends(get_current_account),
    service: SocialSyncService = Depends(get_sync_service),
):
    """Run a sync against the platform's mock contacts"""
    return await service.test_sync(current_user.email, platform, contact_count)


@router.get("/history", response_model=SyncHistory)
async def sync_history(
    platform: Optional[SyncPlatform] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: Account = Depends(get_current_account),
    service: SocialSyncService = Depends(get_sync_service),
):
    return await service.get_sync_history(current_user.email, limit, platform)
