from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..common.config import Settings, get_settings
from ..common.db import dispose_engine, get_engine
from ..jobs.confirmation import ConfirmationPoller, PollerConfig
from .container import Container, build_container
from .domain.errors import AnchorError
from .endpoints import (
    confirm_router,
    health_router,
    readings_router,
    stats_router,
    uploads_router,
    users_router,
)
from .mqtt import MessageHandler, MQTTReceiver
from .persistence import ensure_schema

logger = logging.getLogger(__name__)


def _start_background(app: FastAPI, container: Container) -> None:
    settings = container.settings

    if settings.mqtt_enabled:
        receiver = MQTTReceiver(
            MessageHandler(container.readings, settings.source_tz),
            topics=settings.mqtt_topics,
            broker_host=settings.mqtt_host,
            broker_port=settings.mqtt_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
        )
        receiver.start()
        app.state.mqtt_receiver = receiver
    else:
        logger.info("[APP] MQTT ingestion disabled")

    if settings.poller_enabled:
        poller = ConfirmationPoller(
            PollerConfig.from_settings(settings), container.uploads, container.confirmation
        )
        poller.start()
        app.state.poller = poller
    else:
        logger.info("[APP] Confirmation poller disabled")


def _stop_background(app: FastAPI) -> None:
    poller = getattr(app.state, "poller", None)
    if poller is not None:
        poller.stop()
    receiver = getattr(app.state, "mqtt_receiver", None)
    if receiver is not None:
        receiver.stop()


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    owns_container = container is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.container is None:
            cfg = settings or get_settings()
            engine = get_engine(cfg)
            ensure_schema(engine)
            app.state.container = build_container(cfg, engine)
        _start_background(app, app.state.container)
        try:
            yield
        finally:
            _stop_background(app)
            if owns_container:
                app.state.container.close()
                dispose_engine()

    app = FastAPI(title="Telemetry Anchor Service", version="0.1.0", lifespan=lifespan)
    app.state.container = container
    app.state.mqtt_receiver = None
    app.state.poller = None

    @app.exception_handler(AnchorError)
    async def anchor_error_handler(request: Request, exc: AnchorError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_detail())

    app.include_router(health_router)
    app.include_router(uploads_router)
    app.include_router(confirm_router)
    app.include_router(stats_router)
    app.include_router(readings_router)
    app.include_router(users_router)
    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
