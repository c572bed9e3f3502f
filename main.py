"""FastAPI application factory and main entry point.

Run with ``uvicorn main:create_app --factory`` or ``python main.py``.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

import logging_config
from api import router as api_router
from config import Settings
from db import Database
from messaging.consumer import CommandConsumer
from messaging.dispatcher import CommandDispatcher
from services.store_storage import StoreStorage
from services.stores_service import StoreService


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application and wire every component once.

    Args:
        settings: Explicit settings; loaded from the environment if omitted

    Returns:
        FastAPI app whose lifespan connects the database and starts the consumer
    """
    if settings is None:
        settings = Settings()
    settings.validate_for_environment()

    # Setup logging
    logging_config.setup_logging(settings.LOG_LEVEL, settings.APP_ENV)

    database = Database(settings)
    storage = StoreStorage(database, settings)
    service = StoreService(storage)
    dispatcher = CommandDispatcher(service, settings)
    consumer = CommandConsumer(dispatcher, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan context manager for startup and shutdown events.
        """
        # Startup
        await database.connect_with_retry()
        await database.init_db()
        if settings.CONSUMER_ENABLED:
            await consumer.start()
        yield
        # Shutdown
        if settings.CONSUMER_ENABLED:
            await consumer.stop()
        await database.close()

    app = FastAPI(
        title="Store Versioning Service",
        description="Consumes store commands and keeps a full version history per store",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.service = service
    app.state.dispatcher = dispatcher
    app.state.consumer = consumer

    # Include API router
    app.include_router(api_router.api_router, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Store Versioning Service",
            "version": "0.1.0",
        }

    return app


if __name__ == "__main__":
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000)
