from fastapi import APIRouter, Depends, Query
from typing import Optional

from socialgraph.api.deps import get_bulk_service, get_current_account, get_relationship_service
from socialgraph.schemas.account import Account
from socialgraph.schemas.relationship import (
    BulkOperationResult, BulkRequestIds, BulkSendRequest, FriendRequestCreate,
    FriendRequestResult, FriendsPage, RequestActionResult, RequestsPage,
)
from socialgraph.services.bulk import BulkRelationshipService
from socialgraph.services.relationship import RelationshipService

router = APIRouter()


@router.get("", response_model=FriendsPage)
async def list_friends(
    cursor: Optional[str] = Query(None, description="Opaque cursor from the previous page"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of friends to return"),
    search: Optional[str] = Query(None, min_length=1, description="Match friend email or name"),
    current_user: Account = Depends(get_current_account),
    service: RelationshipService = Depends(get_relationship_service),
):
    """List accepted friends, newest first"""
    return await service.list_friends(current_user.email, cursor, limit, search)


@router.post("/request", response_model=FriendRequestResult)
async def send_friend_request(
    request_data: FriendRequestCreate,
    current_user: Account = Depends(get_current_account),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Send a friend request to another account"""
    return await service.send_request(current_user.email, request_data.target_email, request_data.message)


@router.get("/requests/received", response_model=RequestsPage)
async def list_received_requests(
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    current_user: Account = Depends(get_current_account),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Pending requests waiting for the caller"""
    return await service.list_requests(current_user.email, cursor, limit)


@router.post("/requests/{request_id}/accept", response_model=RequestActionResult)
async def accept_friend_request(
    request_id: str,
    current_user: Account = Depends(get_current_account),
    service: RelationshipService = Depends(get_relationship_service),
):
    return await service.accept_request(current_user.email, request_id)


@router.post("/requests/{request_id}/reject", response_model=RequestActionResult)
async def reject_friend_request(
    request_id: str,
    current_user: Account = Depends(get_current_account),
    service: RelationshipService = Depends(get_relationship_service),
):
    return await service.reject_request(current_user.email, request_id)


@router.post("/block/{friend_email}")
async def block_friend(
    friend_email: str,
    current_user: Account = Depends(get_current_account),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Block an existing friend"""
    status = await service.block_friend(current_user.email, friend_email)
    return {"success": True, "message": "Friend blocked", "status": status.value}


@router.post("/bulk/send-requests", response_model=BulkOperationResult)
async def bulk_send_requests(
    payload: BulkSendRequest,
    current_user: Account = Depends(get_current_account),
    service: BulkRelationshipService = Depends(get_bulk_service),
):
    return await service.bulk_send_requests(current_user.email, [str(e) for e in payload.emails], payload.message)


@router.post("/bulk/accept-requests", response_model=BulkOperationResult)
async def bulk_accept_requests(
    payload: BulkRequestIds,
    current_user: Account = Depends(get_current_account),
    service: BulkRelationshipService = Depends(get_bulk_service),
):
    return await service.bulk_accept(current_user.email, payload.request_ids)


@router.post("/bulk/reject-requests", response_model=BulkOperationResult)
async def bulk_reject_requests(
    payload: BulkRequestIds,
    current_user: Account = Depends(get_current_account),
    service: BulkRelationshipService = Depends(get_bulk_service),
):
    return await service.bulk_reject(current_user.email, payload.request_ids)
