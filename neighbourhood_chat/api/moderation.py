# neighbourhood_chat/api/moderation.py
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Query

from neighbourhood_chat.api.dependencies import get_admin_principal, get_moderation_interactor
from neighbourhood_chat.domain.entities import Principal
from neighbourhood_chat.infrastructure import schemas
from neighbourhood_chat.interactors.moderation_interactor import (
    SORT_FIELDS,
    ModerationInteractor,
)

router = APIRouter()


@router.get("/flagged", response_model=schemas.FlaggedContentPage)
async def get_flagged_content(
    content_type: Literal["all", "notice", "report", "message"] = Query(
        "all", alias="contentType"
    ),
    sort_by: Literal[SORT_FIELDS] = Query("flaggedAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(get_admin_principal),
    moderation_interactor: ModerationInteractor = Depends(get_moderation_interactor),
):
    return await moderation_interactor.get_flagged_content(
        content_type, sort_by, sort_order, page, limit
    )


@router.post("/{content_type}/{content_id}/{action}", response_model=schemas.ModerationResult)
async def moderate_content(
    content_type: str,
    content_id: str,
    action: str,
    body: Optional[schemas.ModerationActionRequest] = Body(None),
    admin: Principal = Depends(get_admin_principal),
    moderation_interactor: ModerationInteractor = Depends(get_moderation_interactor),
):
    return await moderation_interactor.moderate(
        content_type, content_id, action, admin, reason=body.reason if body else None
    )
