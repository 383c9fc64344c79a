# shelter/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from shelter.api.v1.router import api_router
from shelter.core.config import get_settings
from shelter.core.logging import configure_logging
from shelter.core.store import InventoryStore

logger = logging.getLogger(__name__)


def create_app(store: Optional[InventoryStore] = None) -> FastAPI:
    """
    Build the application. A store passed in is used as-is and left open on
    shutdown; otherwise one is built from settings for the app's lifetime.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        owns_store = getattr(app.state, "store", None) is None
        if owns_store:
            app.state.store = InventoryStore.from_settings(settings)
            await app.state.store.start()
            logger.info(f"Inventory store opened ({settings.app_env})")
        try:
            yield
        finally:
            if owns_store:
                await app.state.store.close()
                app.state.store = None
                logger.info("Inventory store closed")

    app = FastAPI(
        title="Shelter Bed Board Backend",
        lifespan=lifespan,
    )
    if store is not None:
        app.state.store = store

    @app.get("/health", tags=["health"])
    async def root_health() -> dict:
        """
        Global health check endpoint.
        """
        return {"status": "ok"}

    # Mount versioned API router
    app.include_router(api_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()
