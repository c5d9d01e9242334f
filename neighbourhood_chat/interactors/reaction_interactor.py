# neighbourhood_chat/interactors/reaction_interactor.py
import logging
from typing import Any

from neighbourhood_chat.domain.entities import Principal
from neighbourhood_chat.domain.identifiers import is_valid_id, utcnow
from neighbourhood_chat.domain.projection import project_reactions
from neighbourhood_chat.domain.reactions import ReactionInvariantError, toggle_reaction
from neighbourhood_chat.gateways.group_gateway import GroupGateway
from neighbourhood_chat.gateways.message_gateway import MessageGateway
from neighbourhood_chat.infrastructure.errors import (
    ChatError,
    ErrorCategory,
    ErrorKind,
    ErrorSeverity,
    access_denied_error,
    invalid_id_error,
    not_found_error,
)
from neighbourhood_chat.interactors.conflicts import apply_with_reload

logger = logging.getLogger("neighbourhood_chat.reactions")


class ReactionInteractor:
    def __init__(self, message_gateway: MessageGateway, group_gateway: GroupGateway):
        self.message_gateway = message_gateway
        self.group_gateway = group_gateway

    async def toggle(
        self, message_id: str, reaction_type: str, principal: Principal
    ) -> dict[str, Any]:
        if not is_valid_id(message_id):
            raise invalid_id_error("INVALID_MESSAGE_ID", f"Invalid message id {message_id!r}")

        message = await self.message_gateway.get_message(message_id)
        if message is None:
            raise not_found_error("MESSAGE_NOT_FOUND", f"Message {message_id} not found")

        # Private chats live outside this service; their reactions are refused.
        member_group = None
        if message.chat_type == "group":
            member_group = await self.group_gateway.get_group_for_member(
                message.chat_id, principal.user_id
            )
        if member_group is None:
            raise access_denied_error(
                "MESSAGE_ACCESS_DENIED",
                "Not authorized to react to this message",
                userId=principal.user_id,
                messageId=message_id,
            )

        async def apply():
            try:
                reactions = toggle_reaction(
                    message.reactions, reaction_type, principal.user_id, utcnow()
                )
            except ReactionInvariantError as e:
                raise ChatError(
                    f"Stored reactions of {message_id} are inconsistent: {e}",
                    code="INTERNAL_ERROR",
                    category=ErrorCategory.BUSINESS_LOGIC,
                    severity=ErrorSeverity.CRITICAL,
                    kind=ErrorKind.INTERNAL,
                    status_code=500,
                    cause=e,
                ) from e
            return await self.message_gateway.save_reactions(message, reactions)

        await apply_with_reload(
            apply, lambda: self.message_gateway.reload(message), "toggleReaction"
        )
        logger.debug(f"{principal.user_id} toggled {reaction_type} on {message_id}")
        return {"messageId": message_id, "reactions": project_reactions(message.reactions)}
