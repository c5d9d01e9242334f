# neighbourhood_chat/api/groups.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from neighbourhood_chat.api.dependencies import (
    get_current_principal,
    get_group_interactor,
    get_message_interactor,
)
from neighbourhood_chat.domain.entities import Principal
from neighbourhood_chat.infrastructure import schemas
from neighbourhood_chat.interactors.group_interactor import GroupInteractor
from neighbourhood_chat.interactors.message_interactor import MessageInteractor

router = APIRouter()


@router.get("/groups", response_model=List[schemas.GroupSummary])
async def list_groups(
    principal: Principal = Depends(get_current_principal),
    group_interactor: GroupInteractor = Depends(get_group_interactor),
):
    return await group_interactor.list_groups(principal)


@router.post(
    "/groups", response_model=schemas.GroupSummary, status_code=status.HTTP_201_CREATED
)
async def create_group(
    request: schemas.CreateGroupRequest,
    principal: Principal = Depends(get_current_principal),
    group_interactor: GroupInteractor = Depends(get_group_interactor),
):
    return await group_interactor.create_group(principal, request)


@router.get("/groups/{group_id}/messages")
async def get_group_messages(
    group_id: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    before: Optional[datetime] = Query(None),
    principal: Principal = Depends(get_current_principal),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
):
    return await message_interactor.get_group_messages(
        group_id, principal, limit=limit, offset=offset, before=before
    )


@router.post("/groups/{group_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_group_message(
    group_id: str,
    request: schemas.SendMessageRequest,
    principal: Principal = Depends(get_current_principal),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
):
    return await message_interactor.send_group_message(group_id, principal, request)


@router.post("/groups/{group_id}/join", response_model=schemas.StatusMessage)
async def join_group(
    group_id: str,
    principal: Principal = Depends(get_current_principal),
    group_interactor: GroupInteractor = Depends(get_group_interactor),
):
    return await group_interactor.join_group(group_id, principal)


@router.post("/groups/{group_id}/leave", response_model=schemas.StatusMessage)
async def leave_group(
    group_id: str,
    principal: Principal = Depends(get_current_principal),
    group_interactor: GroupInteractor = Depends(get_group_interactor),
):
    return await group_interactor.leave_group(group_id, principal)


@router.get("/groups/{group_id}/members", response_model=List[schemas.GroupMemberOut])
async def get_group_members(
    group_id: str,
    principal: Principal = Depends(get_current_principal),
    group_interactor: GroupInteractor = Depends(get_group_interactor),
):
    return await group_interactor.get_members(group_id, principal)
