"""Exception types shared by services, and the handlers that turn them into HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class InsuraTaskError(Exception):
    """Base class for domain errors."""


class TemplateNotFoundError(InsuraTaskError):
    def __init__(self, template_id: int):
        super().__init__(f"Template with id {template_id} not found")
        self.template_id = template_id


class InvalidTemplateError(InsuraTaskError):
    pass


class CalendarNotConfiguredError(InsuraTaskError):
    pass


class GoogleCalendarError(InsuraTaskError):
    pass


class AttachmentError(InsuraTaskError):
    pass


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error"},
    )


async def domain_exception_handler(request: Request, exc: InsuraTaskError):
    if isinstance(exc, TemplateNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, GoogleCalendarError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InsuraTaskError, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
