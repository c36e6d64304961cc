"""ListingWatch: new classified-ad listing tracker with Telegram alerts.

FastAPI application entry point. Serves the status and scan-trigger API.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI

from listingwatch.api.routes import router
from listingwatch.config import AppConfig, load_config
from listingwatch.pipeline.cycle import build_components

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def create_app(config: Optional[AppConfig] = None, components: Optional[tuple] = None,
               dry_run: Optional[bool] = None) -> FastAPI:
    """Build the app. Config and components are loaded at startup unless given."""
    if dry_run is None:
        dry_run = os.environ.get("LISTINGWATCH_DRY_RUN") == "1"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_config = config or load_config()
        store, strategy, notifier = components or build_components(app_config, dry_run=dry_run)
        app.state.config = app_config
        app.state.store = store
        app.state.strategy = strategy
        app.state.notifier = notifier
        app.state.dry_run = dry_run
        logging.getLogger(__name__).info(
            "Watching %d topics", len(app_config.enabled_projects),
        )
        yield

    app = FastAPI(
        title="ListingWatch",
        description="Tracks classified-ad searches and alerts on new listings",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()
