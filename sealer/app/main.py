import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

import uvicorn
from fastapi import FastAPI

from sealer.app.api.routes import router as seal_router
from sealer.app.config import Settings, get_settings
from sealer.app.services.sealing import SealingService

logger = logging.getLogger("sealer.main")


def get_app_version() -> str:
    """
    Resolve the package version.

    Falls back to the configured document version when running from source.
    """
    try:
        return version("evidence-sealer")
    except PackageNotFoundError:
        return get_settings().app_version


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "sealer_startup",
        extra={
            "service": "sealer",
            "version": app.version,
            "evidence_overflow": app.state.settings.evidence_overflow,
        },
    )
    try:
        yield
    finally:
        logger.info("sealer_shutdown")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory for the sealing service.

    Configuration is loaded once and is immutable for the lifetime of
    the app. Invalid configuration fails here, before serving.
    """
    if settings is None:
        try:
            settings = get_settings()
        except Exception:
            logger.exception("invalid_sealer_configuration")
            raise

    configure_logging(settings)

    app = FastAPI(
        title="Evidence Sealer",
        description="Sealed forensic PDF generation for hashed evidence",
        version=get_app_version(),
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.sealing_service = SealingService.from_settings(settings)

    app.include_router(seal_router)

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Liveness probe",
    )
    async def health_check():
        """Runtime is alive. Does not build a document."""
        return {
            "status": "ok",
            "service": "sealer",
            "version": app.version,
            "runtime": f"python {sys.version.split()[0]}",
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run(
        "sealer.app.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=app.state.settings.log_level.lower(),
    )
