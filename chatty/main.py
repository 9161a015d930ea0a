"""
FastAPI application factory.

Wires the MongoDB lifecycle, the realtime bus, the live dispatcher and the
routers, and maps chat errors to JSON responses.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatty.config import Config
from chatty.config.logging_config import setup_logging
from chatty.database.connection import close_mongo_connection, connect_to_mongo, ensure_indexes
from chatty.exceptions import (
    AuthRejected,
    ChatError,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)
from chatty.routers.chat import router as chat_router
from chatty.routers.messages import router as messages_router
from chatty.routers.presence import router as presence_router
from chatty.routers.users import router as users_router
from chatty.services.live_dispatcher import LiveEventDispatcher
from chatty.utils.realtime_bus import USER_CHANNEL_PREFIX, close_bus, get_bus
from chatty.utils.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    ValidationError: 400,
    AuthRejected: 401,
    NotFoundError: 404,
    StoreUnavailable: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(Config.LOG_LEVEL)
    db = await connect_to_mongo()
    await ensure_indexes(db)

    manager: ConnectionManager = app.state.manager
    manager.bus = await get_bus(Config.REDIS_URL)
    subscription = await manager.bus.subscribe(f"{USER_CHANNEL_PREFIX}*", manager.on_bus_message)
    listener = asyncio.create_task(subscription.run())
    logger.info("Chat server started")
    try:
        yield
    finally:
        listener.cancel()
        await subscription.cancel()
        await close_bus()
        await close_mongo_connection()
        logger.info("Chat server stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Chatty", version="0.1.0", lifespan=lifespan)

    manager = ConnectionManager()
    app.state.manager = manager
    app.state.dispatcher = LiveEventDispatcher(manager)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[Config.CLIENT_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        status = next((code for cls, code in STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
        if status == 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            return JSONResponse(status_code=500, content={"message": "Server error"})
        return JSONResponse(status_code=status, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        )

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "connections": app.state.manager.stats()}

    app.include_router(messages_router)
    app.include_router(users_router)
    app.include_router(presence_router)
    app.include_router(chat_router)

    return app


app = create_app()
