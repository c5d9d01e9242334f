# neighbourhood_chat/api/messages.py
from fastapi import APIRouter, Depends

from neighbourhood_chat.api.dependencies import (
    get_current_principal,
    get_message_interactor,
    get_reaction_interactor,
)
from neighbourhood_chat.domain.entities import Principal
from neighbourhood_chat.infrastructure import schemas
from neighbourhood_chat.interactors.message_interactor import MessageInteractor
from neighbourhood_chat.interactors.reaction_interactor import ReactionInteractor

router = APIRouter()


@router.post("/messages/{message_id}/react", response_model=schemas.ReactionResult)
async def react_to_message(
    message_id: str,
    reaction: schemas.ReactionRequest,
    principal: Principal = Depends(get_current_principal),
    reaction_interactor: ReactionInteractor = Depends(get_reaction_interactor),
):
    return await reaction_interactor.toggle(message_id, reaction.reaction_type, principal)


@router.post("/messages/{message_id}/report", response_model=schemas.ReportResult)
async def report_message(
    message_id: str,
    report: schemas.ReportMessageRequest,
    principal: Principal = Depends(get_current_principal),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
):
    return await message_interactor.report_message(message_id, principal, report)
