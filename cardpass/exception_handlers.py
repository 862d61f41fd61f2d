"""
Exception handlers for the wallet pass API.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.

"Not configured" is expected and actionable by an operator, so it is logged
as a warning. Credential, signing and packaging failures mean corrupted
secrets or a defect, so they are logged as errors with the traceback.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from cardpass.core.env import is_local_env
from cardpass.services.wallet_pass_errors import (
    AssetError,
    AssetFetchError,
    CredentialError,
    DescriptorError,
    PackagingError,
    PassConfigurationError,
    SigningError,
    WalletPassError,
)

logger = logging.getLogger("cardpass")


def _error_body(exc: WalletPassError, code: str, message: str) -> dict:
    # "code" names the failing stage (credential, signing, packaging)
    body = {"error": code, "code": exc.code, "message": message}
    if is_local_env():
        body["detail"] = str(exc)
    return body


async def not_configured_handler(request: Request, exc: PassConfigurationError):
    logger.warning(f"Wallet pass requested but not configured: {exc}")
    return JSONResponse(
        status_code=501,
        content={
            "error": exc.code,
            "message": "Apple Wallet pass signing is not configured on this environment.",
            "missing": exc.missing_keys,
        },
    )


async def descriptor_error_handler(request: Request, exc: DescriptorError):
    return JSONResponse(
        status_code=422,
        content={"error": exc.code, "message": str(exc)},
    )


async def asset_fetch_error_handler(request: Request, exc: AssetFetchError):
    logger.warning(f"Card image fetch failed: {exc}")
    return JSONResponse(
        status_code=502,
        content={"error": exc.code, "message": "A card image could not be retrieved."},
    )


async def pass_failure_handler(request: Request, exc: WalletPassError):
    """Credential, asset, signing and packaging failures"""
    logger.error(f"Failed to create Apple Wallet pass ({exc.code}): {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=_error_body(exc, "PASS_SIGNING_FAILED", "Failed to generate Apple Wallet pass"),
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=exc)
    if is_local_env():
        error_response = {"detail": f"Internal server error: {exc}"}
    else:
        error_response = {"detail": "Internal server error"}
    return JSONResponse(status_code=500, content=error_response)


def register_exception_handlers(app):
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(PassConfigurationError, not_configured_handler)
    app.add_exception_handler(DescriptorError, descriptor_error_handler)
    app.add_exception_handler(AssetFetchError, asset_fetch_error_handler)
    for exc_class in (CredentialError, AssetError, SigningError, PackagingError):
        app.add_exception_handler(exc_class, pass_failure_handler)
    app.add_exception_handler(Exception, global_exception_handler)
