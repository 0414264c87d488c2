"""
Error taxonomy for the service layer and its HTTP mapping.

Services raise these; routers never translate them by hand.  The handlers
registered by ``register_exception_handlers`` turn every error into a JSON
body, so callers never see a stack trace.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_body(self) -> dict:
        return {"detail": self.detail}


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier) -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.identifier = identifier


class ValidationFailed(ServiceError):
    """Input that passed schema validation but refers to something invalid."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def to_body(self) -> dict:
        # Same shape FastAPI uses for request validation errors.
        return {
            "detail": [
                {"loc": ["body", self.field], "msg": self.detail, "type": "value_error"}
            ]
        }


class Unauthenticated(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(detail)


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, detail: str = "Not allowed to modify this article") -> None:
        super().__init__(detail)


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
