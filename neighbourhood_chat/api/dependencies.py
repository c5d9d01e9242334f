# neighbourhood_chat/api/dependencies.py
from typing import AsyncGenerator

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from neighbourhood_chat.config import AppConfig
from neighbourhood_chat.domain.entities import Principal
from neighbourhood_chat.gateways.audit_gateway import AuditGateway
from neighbourhood_chat.gateways.group_gateway import GroupGateway
from neighbourhood_chat.gateways.message_gateway import MessageGateway
from neighbourhood_chat.gateways.moderation_gateway import ModerationGateway
from neighbourhood_chat.gateways.notification_gateway import NotificationGateway
from neighbourhood_chat.gateways.user_gateway import UserGateway
from neighbourhood_chat.infrastructure.db_wrapper import QuerySettings
from neighbourhood_chat.infrastructure.errors import ChatError, ErrorCategory
from neighbourhood_chat.infrastructure.event_dispatcher import EventDispatcher
from neighbourhood_chat.infrastructure.locks import KeyedLocks
from neighbourhood_chat.infrastructure.security import SecurityService
from neighbourhood_chat.infrastructure.uow import UnitOfWork
from neighbourhood_chat.interactors.group_interactor import GroupInteractor
from neighbourhood_chat.interactors.message_interactor import MessageInteractor
from neighbourhood_chat.interactors.moderation_interactor import ModerationInteractor
from neighbourhood_chat.interactors.notification_interactor import NotificationInteractor
from neighbourhood_chat.interactors.reaction_interactor import ReactionInteractor

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_security_service(request: Request) -> SecurityService:
    return request.app.state.security_service


def get_event_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.event_dispatcher


def get_group_locks(request: Request) -> KeyedLocks:
    return request.app.state.group_locks


def get_query_settings(config: AppConfig = Depends(get_config)) -> QuerySettings:
    return QuerySettings.from_config(config)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_uow(session: AsyncSession = Depends(get_session)) -> UnitOfWork:
    return UnitOfWork(session)


async def get_user_gateway(
    session: AsyncSession = Depends(get_session),
    uow: UnitOfWork = Depends(get_uow),
    settings: QuerySettings = Depends(get_query_settings),
):
    return UserGateway(session, uow, settings)


async def get_group_gateway(
    session: AsyncSession = Depends(get_session),
    uow: UnitOfWork = Depends(get_uow),
    settings: QuerySettings = Depends(get_query_settings),
):
    return GroupGateway(session, uow, settings)


async def get_message_gateway(
    session: AsyncSession = Depends(get_session),
    uow: UnitOfWork = Depends(get_uow),
    settings: QuerySettings = Depends(get_query_settings),
):
    return MessageGateway(session, uow, settings)


async def get_notification_gateway(
    session: AsyncSession = Depends(get_session),
    uow: UnitOfWork = Depends(get_uow),
    settings: QuerySettings = Depends(get_query_settings),
):
    return NotificationGateway(session, uow, settings)


async def get_moderation_gateway(
    session: AsyncSession = Depends(get_session),
    uow: UnitOfWork = Depends(get_uow),
    settings: QuerySettings = Depends(get_query_settings),
):
    return ModerationGateway(session, uow, settings)


async def get_audit_gateway(
    session: AsyncSession = Depends(get_session),
    uow: UnitOfWork = Depends(get_uow),
    settings: QuerySettings = Depends(get_query_settings),
):
    return AuditGateway(session, uow, settings)


async def get_notification_interactor(
    notification_gateway: NotificationGateway = Depends(get_notification_gateway),
    event_dispatcher: EventDispatcher = Depends(get_event_dispatcher),
):
    return NotificationInteractor(notification_gateway, event_dispatcher)


async def get_message_interactor(
    config: AppConfig = Depends(get_config),
    group_gateway: GroupGateway = Depends(get_group_gateway),
    message_gateway: MessageGateway = Depends(get_message_gateway),
    user_gateway: UserGateway = Depends(get_user_gateway),
    notification_interactor: NotificationInteractor = Depends(get_notification_interactor),
    event_dispatcher: EventDispatcher = Depends(get_event_dispatcher),
    group_locks: KeyedLocks = Depends(get_group_locks),
):
    return MessageInteractor(
        config,
        group_gateway,
        message_gateway,
        user_gateway,
        notification_interactor,
        event_dispatcher,
        group_locks,
    )


async def get_group_interactor(
    config: AppConfig = Depends(get_config),
    group_gateway: GroupGateway = Depends(get_group_gateway),
    message_gateway: MessageGateway = Depends(get_message_gateway),
    user_gateway: UserGateway = Depends(get_user_gateway),
):
    return GroupInteractor(config, group_gateway, message_gateway, user_gateway)


async def get_reaction_interactor(
    message_gateway: MessageGateway = Depends(get_message_gateway),
    group_gateway: GroupGateway = Depends(get_group_gateway),
):
    return ReactionInteractor(message_gateway, group_gateway)


async def get_moderation_interactor(
    moderation_gateway: ModerationGateway = Depends(get_moderation_gateway),
    message_gateway: MessageGateway = Depends(get_message_gateway),
    user_gateway: UserGateway = Depends(get_user_gateway),
    audit_gateway: AuditGateway = Depends(get_audit_gateway),
):
    return ModerationInteractor(moderation_gateway, message_gateway, user_gateway, audit_gateway)


def _authentication_error(code: str, message: str) -> ChatError:
    return ChatError(message, code=code, category=ErrorCategory.AUTHENTICATION)


async def get_current_principal(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    security_service: SecurityService = Depends(get_security_service),
    user_gateway: UserGateway = Depends(get_user_gateway),
) -> Principal:
    if not token:
        raise _authentication_error("AUTHENTICATION_REQUIRED", "Missing bearer token")

    user_id = security_service.decode_access_token(token)
    if user_id is None:
        raise _authentication_error("INVALID_TOKEN", "Could not validate credentials")

    user = await user_gateway.get_user(user_id)
    if user is None:
        raise _authentication_error("INVALID_TOKEN", "Token subject does not exist")
    if not user.is_active:
        raise _authentication_error("INACTIVE_USER", "Inactive user")

    principal = Principal(user_id=user.id, role=user.role or "user")
    request.state.principal = principal
    return principal


async def get_admin_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    if not principal.is_admin:
        raise ChatError(
            "Administrator privileges are required",
            code="ADMIN_REQUIRED",
            category=ErrorCategory.AUTHORIZATION,
        )
    return principal
