import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config import Settings, get_settings
from create_tables import create_tables
from logging_config import configure_logging
from modules.bookings.controllers.booking_controller import router as booking_router
from modules.contracts.controllers.asset_controller import router as asset_router
from modules.contracts.controllers.contract_controller import router as contract_router
from modules.contracts.controllers.signing_controller import router as signing_router
from modules.contracts.job import start_cleanup_job
from modules.notifications.controllers.notification_controller import router as notification_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    settings = app.state.settings
    configure_logging(settings)
    logger.info(f"Starting {settings.app_name} ({settings.environment})")
    create_tables()
    scheduler = start_cleanup_job()
    yield
    # --- Shutdown logic ---
    scheduler.shutdown(wait=False)
    logger.info("Application stopped")


def create_app(settings: Settings = None, run_lifespan: bool = True) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Electronic contract signature workflow for event vendors and planners",
        version="1.0.0",
        lifespan=lifespan if run_lifespan else None,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
        max_age=86400,
    )

    # Routers
    app.include_router(contract_router, prefix="/contracts", tags=["contracts"])
    app.include_router(signing_router, prefix="/contracts", tags=["signing"])
    app.include_router(booking_router, prefix="/bookings", tags=["bookings"])
    app.include_router(notification_router, prefix="/notifications", tags=["notifications"])
    app.include_router(asset_router, prefix="/assets", tags=["assets"])

    if settings.storage_backend == "local":
        os.makedirs(settings.upload_dir, exist_ok=True)
        app.mount("/files", StaticFiles(directory=settings.upload_dir), name="files")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
