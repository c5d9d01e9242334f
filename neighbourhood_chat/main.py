# neighbourhood_chat/main.py
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import create_async_engine

from neighbourhood_chat.api import groups, messages, moderation, realtime
from neighbourhood_chat.config import AppConfig
from neighbourhood_chat.infrastructure.database import create_database
from neighbourhood_chat.infrastructure.errors import (
    ChatError,
    ErrorCategory,
    build_error_response,
)
from neighbourhood_chat.infrastructure.event_dispatcher import EventDispatcher
from neighbourhood_chat.infrastructure.event_handlers import EventHandlers
from neighbourhood_chat.infrastructure.locks import KeyedLocks
from neighbourhood_chat.infrastructure.realtime_hub import RealtimeHub
from neighbourhood_chat.infrastructure.redis_client import RedisClient
from neighbourhood_chat.infrastructure.security import SecurityService


def _request_context(request: Request) -> dict:
    principal = getattr(request.state, "principal", None)
    return {
        "userId": principal.user_id if principal else None,
        "groupId": request.path_params.get("group_id"),
        "method": request.method,
        "path": request.url.path,
    }


class Application:
    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = self.setup_logger()
        engine = create_async_engine(config.DATABASE_URL, echo=False)
        self.database = create_database(engine)
        self.redis_client = RedisClient(config.REDIS_HOST, config.REDIS_PORT, self.logger)
        self.realtime_hub = RealtimeHub(
            self.redis_client,
            logging.getLogger("neighbourhood_chat.realtime"),
            relay=config.REALTIME_REDIS_RELAY,
        )
        self.group_locks = KeyedLocks()
        self.event_dispatcher = EventDispatcher()
        self.security_service = SecurityService(config)
        self.event_handlers = EventHandlers(self.realtime_hub)

        self.event_dispatcher.register("NewMessage", self.event_handlers.publish_new_message)
        self.event_dispatcher.register("MessageSent", self.event_handlers.publish_message_sent)
        self.event_dispatcher.register(
            "NotificationUpdated", self.event_handlers.publish_notification_update
        )

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        await self.database.connect()
        if self.config.REALTIME_REDIS_RELAY:
            await self.redis_client.connect()
        await self.realtime_hub.start()
        yield
        await self.realtime_hub.stop()
        await self.redis_client.disconnect()
        await self.database.disconnect()

    def setup_logger(self):
        logger = logging.getLogger("neighbourhood_chat")
        logger.setLevel(self.config.LOG_LEVEL.upper())

        if not logger.handlers:
            c_handler = logging.StreamHandler(sys.stdout)
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
            c_handler.setFormatter(formatter)
            logger.addHandler(c_handler)

        return logger

    def create_app(self) -> FastAPI:
        config = self.config
        app = FastAPI(
            title=config.PROJECT_NAME,
            version=config.PROJECT_VERSION,
            description=config.PROJECT_DESCRIPTION,
            openapi_url=f"{config.API_PREFIX}/openapi.json",
            lifespan=self.lifespan,
        )

        app.state.config = config
        app.state.security_service = self.security_service
        app.state.event_dispatcher = self.event_dispatcher
        app.state.database = self.database
        app.state.redis_client = self.redis_client
        app.state.realtime_hub = self.realtime_hub
        app.state.group_locks = self.group_locks
        app.state.logger = self.logger

        app.include_router(groups.router, prefix=f"{config.API_PREFIX}/chat", tags=["groups"])
        app.include_router(
            messages.router, prefix=f"{config.API_PREFIX}/chat", tags=["messages"]
        )
        app.include_router(
            realtime.router, prefix=f"{config.API_PREFIX}/chat", tags=["realtime"]
        )
        app.include_router(
            moderation.router,
            prefix=f"{config.API_PREFIX}/moderation",
            tags=["moderation"],
        )

        @app.middleware("http")
        async def request_timeout(request: Request, call_next):
            try:
                return await asyncio.wait_for(
                    call_next(request), timeout=config.REQUEST_TIMEOUT_SECONDS
                )
            except asyncio.TimeoutError:
                error = ChatError(
                    f"Request exceeded {config.REQUEST_TIMEOUT_SECONDS}s",
                    code="REQUEST_TIMEOUT",
                    category=ErrorCategory.CONNECTION,
                    status_code=503,
                )
                status_code, body = build_error_response(
                    error, _request_context(request), "Request", debug=config.is_development
                )
                return JSONResponse(status_code=status_code, content=body)

        @app.exception_handler(ChatError)
        async def chat_error_handler(request: Request, exc: ChatError):
            status_code, body = build_error_response(
                exc,
                _request_context(request),
                f"{request.method} {request.url.path}",
                debug=config.is_development,
            )
            return JSONResponse(status_code=status_code, content=body)

        @app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            error = ChatError(
                "Request validation failed",
                code="VALIDATION_ERROR",
                category=ErrorCategory.VALIDATION,
                validation_errors=[
                    {
                        "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
                        "message": err.get("msg", ""),
                        "type": err.get("type", ""),
                    }
                    for err in exc.errors()
                ],
                status_code=400,
            )
            status_code, body = build_error_response(
                error,
                _request_context(request),
                f"{request.method} {request.url.path}",
                debug=config.is_development,
            )
            return JSONResponse(status_code=status_code, content=body)

        @app.exception_handler(Exception)
        async def global_exception_handler(request: Request, exc: Exception):
            status_code, body = build_error_response(
                exc,
                _request_context(request),
                f"{request.method} {request.url.path}",
                debug=config.is_development,
            )
            return JSONResponse(status_code=status_code, content=body)

        return app


def create():
    config = AppConfig()
    application = Application(config)
    app = application.create_app()
    application.logger.info("Application created and configured")

    return app


app = create()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
