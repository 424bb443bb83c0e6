"""FastAPI application factory."""
from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from diamonds.api.routes import VERSION, router
from diamonds.api.websocket import ws_router
from diamonds.core.config import get_settings
from diamonds.managers.connection_manager import connection_manager
from diamonds.managers.room_manager import room_manager

logger = logging.getLogger(__name__)


async def _forget_connections(room_id: str) -> None:
    connection_manager.drop_room(room_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    room_manager.start_sweeper(_forget_connections)
    logger.info("King of Diamonds server started")
    yield
    await room_manager.stop_sweeper()
    room_manager.clear()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="King of Diamonds",
        description="Multiplayer guess-80%-of-the-average elimination game",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    room_manager.set_broadcast(connection_manager.broadcast)

    # Routers
    app.include_router(router)
    app.include_router(ws_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)
