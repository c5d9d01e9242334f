# neighbourhood_chat/infrastructure/uow.py
from typing import Any, Dict, Type

from sqlalchemy.ext.asyncio import AsyncSession

from neighbourhood_chat.infrastructure.data_mappers import DataMapper


class UoWModel:
    def __init__(self, model: Any, uow: "UnitOfWork"):
        self.__dict__["_model"] = model
        self.__dict__["_uow"] = uow

    def __getattr__(self, key):
        return getattr(self._model, key)

    def __setattr__(self, key, value):
        setattr(self._model, key, value)
        # new models are inserted on commit, nothing to mark
        if id(self._model) not in self._uow.new:
            self._uow.register_dirty(self._model)

    @property
    def model(self) -> Any:
        return self._model


class UnitOfWork:
    """Collects inserts, updates and deletes and writes them in one transaction.

    ``commit`` runs every registered change through its model's mapper and
    then commits the session. On failure the session is rolled back and the
    pending registrations are discarded, so a retried operation registers
    its changes again from scratch.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.dirty: Dict[int, Any] = {}
        self.new: Dict[int, Any] = {}
        self.deleted: Dict[int, Any] = {}
        self.mappers: Dict[Type, DataMapper] = {}

    def register_dirty(self, model: Any) -> None:
        if isinstance(model, UoWModel):
            model = model._model
        model_id = id(model)
        if model_id not in self.new:
            self.dirty[model_id] = model

    def register_deleted(self, model: Any) -> None:
        if isinstance(model, UoWModel):
            model = model._model
        model_id = id(model)
        if model_id in self.new:
            self.new.pop(model_id)
            return
        self.dirty.pop(model_id, None)
        self.deleted[model_id] = model

    def register_new(self, model: Any) -> UoWModel:
        if isinstance(model, UoWModel):
            model = model._model
        self.new[id(model)] = model
        return UoWModel(model, self)

    def clear(self) -> None:
        self.new.clear()
        self.dirty.clear()
        self.deleted.clear()

    async def flush(self) -> None:
        for model in list(self.new.values()):
            await self.mappers[type(model)].insert(model)
        for model in list(self.dirty.values()):
            await self.mappers[type(model)].update(model)
        for model in list(self.deleted.values()):
            await self.mappers[type(model)].delete(model)
        self.clear()

    async def commit(self) -> None:
        try:
            await self.flush()
            await self.session.commit()
        except Exception:
            self.clear()
            await self.session.rollback()
            raise

    async def rollback(self) -> None:
        self.clear()
        await self.session.rollback()
