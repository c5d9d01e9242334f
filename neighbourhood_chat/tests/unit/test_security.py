# neighbourhood_chat/tests/unit/test_security.py
import datetime

import jwt
import pytest

from neighbourhood_chat.config import AppConfig
from neighbourhood_chat.infrastructure.security import SecurityService


@pytest.fixture
def config():
    return AppConfig(SECRET_KEY="test_secret", ALGORITHM="HS256")


@pytest.fixture
def security_service(config):
    return SecurityService(config)


def test_token_round_trip(security_service):
    token, expire = security_service.create_access_token({"sub": "64b7f0c2a1b2c3d4e5f60718"})

    assert security_service.decode_access_token(token) == "64b7f0c2a1b2c3d4e5f60718"
    assert expire > datetime.datetime.now(datetime.timezone.utc)


def test_tokens_are_unique(security_service):
    first, _ = security_service.create_access_token({"sub": "u1"})
    second, _ = security_service.create_access_token({"sub": "u1"})

    assert first != second


def test_expired_token(security_service):
    token, _ = security_service.create_access_token(
        {"sub": "u1"}, expires_delta=datetime.timedelta(seconds=-1)
    )

    assert security_service.decode_access_token(token) is None


def test_token_signed_with_other_secret(security_service):
    token = jwt.encode({"sub": "u1"}, "someone_else", algorithm="HS256")

    assert security_service.decode_access_token(token) is None


def test_token_without_subject(security_service, config):
    token = jwt.encode({"role": "admin"}, config.SECRET_KEY, algorithm="HS256")

    assert security_service.decode_access_token(token) is None
