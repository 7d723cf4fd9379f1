"""Bike Shop Bling Sync - Main Entry Point."""

import os

from bikeshop_sync.config.settings import settings
from bikeshop_sync.server.app import create_app

# Create FastAPI application
app = create_app()

if __name__ == "__main__":
    import uvicorn

    reload = os.getenv("RELOAD", "false").lower() == "true"

    uvicorn.run(
        "bikeshop_sync.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=60,
        timeout_keep_alive=5,
        access_log=False,  # Structured logging instead of uvicorn access log
    )
