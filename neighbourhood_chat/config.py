# neighbourhood_chat/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    PROJECT_NAME: str = "Neighbourhood Chat API"
    PROJECT_VERSION: str = "1.0.0"
    PROJECT_DESCRIPTION: str = "Group messaging, reactions and moderation for neighbourhoods"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REALTIME_REDIS_RELAY: bool = True

    # Timeouts are seconds, thresholds are milliseconds
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    DB_QUERY_TIMEOUT: float = 10.0
    DB_WRITE_TIMEOUT: float = 10.0
    DB_SLOW_QUERY_MS: int = 1000
    SLOW_SEND_MS: int = 3000
    SLOW_FETCH_MS: int = 2000
    SLOW_GROUPS_MS: int = 3000
    SLOW_MEMBERS_MS: int = 1000
    SLOW_CREATE_GROUP_MS: int = 2000

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"
