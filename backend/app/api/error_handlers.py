"""Global exception handlers for messaging errors."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import MessagingError, UnavailableError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(MessagingError)
    async def messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
        if isinstance(exc, UnavailableError):
            logger.warning("Collaborator unavailable on %s: %s", request.url.path, exc.reason)
        else:
            logger.info(
                "Rejected %s %s with %s: %s",
                request.method,
                request.url.path,
                exc.kind.value,
                exc.reason,
            )
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())
