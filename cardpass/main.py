"""
cardpass API application.

Run with: uvicorn cardpass.main:app
"""
import logging
import os
import sys

from fastapi import FastAPI

from cardpass import __version__
from cardpass.core.config import get_settings, validate_config
from cardpass.exception_handlers import register_exception_handlers
from cardpass.routers import wallet_pass

# Configure logging for production visibility
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger("cardpass")


def create_app() -> FastAPI:
    settings = get_settings()
    validate_config(settings)

    app = FastAPI(title="cardpass", version=__version__)
    register_exception_handlers(app)
    app.include_router(wallet_pass.router)

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "service": "cardpass", "version": __version__}

    logger.info(f"Starting cardpass {__version__}")
    return app


app = create_app()
