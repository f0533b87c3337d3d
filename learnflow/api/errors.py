"""
API error handling.

Maps the LearnFlow exception hierarchy onto HTTP responses with the
standard response envelope. Server-side failures are also recorded as
``system_error`` telemetry so they show up on the dashboards.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from learnflow.common.exceptions import (
    AuthorizationError,
    BaseError,
    NotFoundError,
    ProgressComputationError,
    ValidationError,
)
from learnflow.common.logger import app_logger
from learnflow.telemetry.events import SystemErrorEvent

logger = app_logger.getChild("api.errors")


class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success", **extra: Any) -> Dict[str, Any]:
        response = {
            "status": "success",
            "message": message,
            "data": data
        }
        response.update(extra)
        return response

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an error response.

        Args:
            message: Error message
            details: Optional error details
            code: Optional error code

        Returns:
            Response dictionary
        """
        response = {
            "status": "error",
            "message": message
        }

        if details:
            response["details"] = details

        if code:
            response["code"] = code

        return response


_STATUS_BY_ERROR = (
    (AuthorizationError, status.HTTP_403_FORBIDDEN, "forbidden"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error"),
    (ProgressComputationError, status.HTTP_500_INTERNAL_SERVER_ERROR, "progress_computation_error"),
)


async def _record_system_error(request: Request, status_code: int, message: str, error: BaseException) -> None:
    container = getattr(request.app.state, "container", None)
    if container is None:
        return
    container.monitor.record_error(error, endpoint=request.url.path, status=status_code)
    await container.store.record(SystemErrorEvent(
        timestamp=container.store.now().isoformat(),
        endpoint=request.url.path,
        status=status_code,
        message=message,
    ))


async def learnflow_exception_handler(request: Request, exc: BaseError) -> JSONResponse:
    status_code, code = status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"
    for error_type, mapped_status, mapped_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code, code = mapped_status, mapped_code
            break

    details = exc.errors if isinstance(exc, ValidationError) else None
    if status_code >= 500:
        logger.error(f"Request failed: {exc.message}", extra={"data": {"path": request.url.path}})
        await _record_system_error(request, status_code, exc.message, exc)
    else:
        logger.warning(f"Request rejected: {exc.message}",
                       extra={"data": {"path": request.url.path, "status": status_code}})

    return JSONResponse(status_code=status_code, content=APIResponse.error(exc.message, details, code))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": error.get("loc", []),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse.error("Validation error", error_details, "validation_error")
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    await _record_system_error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=APIResponse.error("Internal server error", code="internal_error")
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseError, learnflow_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
