# neighbourhood_chat/gateways/user_gateway.py
from sqlalchemy import select

from neighbourhood_chat.gateways.base import LOOKUP_RETRY, USER_LOOKUP_RETRY, SqlGateway
from neighbourhood_chat.gateways.interfaces import IUserGateway
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.data_mappers import UserMapper
from neighbourhood_chat.infrastructure.uow import UoWModel


class UserGateway(SqlGateway, IUserGateway):
    def __init__(self, session, uow, settings=None):
        super().__init__(session, uow, settings)
        uow.mappers[models.User] = UserMapper(session)

    async def get_user(self, user_id: str) -> UoWModel | None:
        stmt = select(models.User).filter(models.User.id == user_id)
        user = await self._read(
            lambda: self.session.scalar(stmt),
            "getUserDetails",
            timeout=5.0,
            retry=USER_LOOKUP_RETRY,
            userId=user_id,
        )
        return UoWModel(user, self.uow) if user else None

    async def get_users(self, user_ids: list[str]) -> dict[str, models.User]:
        if not user_ids:
            return {}
        stmt = select(models.User).filter(models.User.id.in_(set(user_ids)))

        async def load():
            result = await self.session.execute(stmt)
            return result.scalars().all()

        users = await self._read(load, "getUsers", timeout=5.0, retry=LOOKUP_RETRY)
        return {user.id: user for user in users}
