import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..core.exceptions import ServiceError


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Maps storage service transport failures to a generic 500 response."""
    logging.error(
        f"Storage service error on {request.method} {request.url.path}: {exc}",
        extra={
            "operation": "service_error",
            "method": request.method,
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc)},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
