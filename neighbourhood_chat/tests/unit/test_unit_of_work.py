# neighbourhood_chat/tests/unit/test_unit_of_work.py

from unittest.mock import AsyncMock

import pytest

from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.data_mappers import MessageMapper
from neighbourhood_chat.infrastructure.uow import UnitOfWork, UoWModel


@pytest.fixture
def mock_session():
    """
    Provides a mocked AsyncSession for testing.
    """
    return AsyncMock()


@pytest.fixture
def uow(mock_session):
    """
    Initializes the UnitOfWork with a mocked MessageMapper.
    """
    uow = UnitOfWork(mock_session)
    message_mapper = MessageMapper(mock_session)
    message_mapper.insert = AsyncMock()
    message_mapper.update = AsyncMock()
    message_mapper.delete = AsyncMock()
    uow.mappers[models.Message] = message_mapper
    return uow


def message(**fields):
    return models.Message(chat_id="g1", sender_id="u1", sender_name="Test User", content="hi", **fields)


async def test_register_new_model(uow):
    msg = message()
    wrapped = uow.register_new(msg)

    assert id(msg) in uow.new
    assert isinstance(wrapped, UoWModel)
    assert wrapped.model is msg


async def test_modify_new_model_does_not_register_dirty(uow):
    wrapped = uow.register_new(message())

    wrapped.status = "sent"

    assert uow.dirty == {}


async def test_modify_loaded_model_registers_dirty(uow):
    msg = message()
    wrapped = UoWModel(msg, uow)

    wrapped.reactions = [{"type": "heart", "users": ["u1"], "count": 1}]

    assert uow.dirty == {id(msg): msg}
    assert msg.reactions[0]["type"] == "heart"


async def test_delete_of_new_model_cancels_insert(uow):
    msg = message()
    uow.register_new(msg)

    uow.register_deleted(msg)

    assert uow.new == {}
    assert uow.deleted == {}


async def test_commit_runs_mappers_then_commits(uow, mock_session):
    new, dirty, gone = message(), message(), message()
    uow.register_new(new)
    uow.register_dirty(dirty)
    uow.register_deleted(gone)

    await uow.commit()

    mapper = uow.mappers[models.Message]
    mapper.insert.assert_awaited_once_with(new)
    mapper.update.assert_awaited_once_with(dirty)
    mapper.delete.assert_awaited_once_with(gone)
    mock_session.commit.assert_awaited_once()
    assert uow.new == uow.dirty == uow.deleted == {}


async def test_failed_commit_rolls_back_and_forgets(uow, mock_session):
    uow.mappers[models.Message].insert.side_effect = RuntimeError("constraint")
    uow.register_new(message())

    with pytest.raises(RuntimeError):
        await uow.commit()

    mock_session.rollback.assert_awaited_once()
    mock_session.commit.assert_not_awaited()
    assert uow.new == {}
