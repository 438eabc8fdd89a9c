from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import traceback
from .logger import logger


class FitAppError(Exception):
    """Base exception for the fit simulator backend"""
    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Any = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.extra = extra or {}
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        body.update(self.extra)
        return body


class Unauthenticated(FitAppError):
    """Missing, invalid or expired bearer credential"""
    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message, "UNAUTHENTICATED", 401)


class Forbidden(FitAppError):
    """Ownership mismatch on input paths or on job access"""
    def __init__(self, message: str = "Access denied", details: Any = None):
        super().__init__(message, "FORBIDDEN", 403, details)


class InvalidInput(FitAppError):
    """Malformed body, missing fields or failed pre-validation"""
    def __init__(self, message: str = "Invalid input", details: Any = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_INPUT", 400, details, extra)


class NotFound(FitAppError):
    """Unknown job id, job without a result, or unknown owner"""
    def __init__(self, message: str = "Job not found"):
        super().__init__(message, "NOT_FOUND", 404)


class GenerationFailed(FitAppError):
    """Raised when the generation backend exhausted its retries"""
    def __init__(self, details: Any = None, duration_ms: Optional[int] = None):
        extra = {"duration_ms": duration_ms} if duration_ms is not None else None
        super().__init__("Image generation failed", "GENERATION_FAILED", 500, details, extra)


class StorageFailed(FitAppError):
    """Raised when an object storage write, verify or sign fails"""
    def __init__(self, message: str = "Storage operation failed", details: Any = None, duration_ms: Optional[int] = None):
        extra = {"duration_ms": duration_ms} if duration_ms is not None else None
        super().__init__(message, "STORAGE_FAILED", 500, details, extra)


class InternalError(FitAppError):
    def __init__(self, message: str = "Internal server error", duration_ms: Optional[int] = None):
        extra = {"duration_ms": duration_ms} if duration_ms is not None else None
        super().__init__(message, "INTERNAL_ERROR", 500, None, extra)


async def fitapp_exception_handler(request: Request, exc: FitAppError):
    """Handle custom application exceptions"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Body/params validation failures are reported as 400, not 422"""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        extra={"request_path": request.url.path, "validation_errors": errors},
    )
    return JSONResponse(status_code=400, content=InvalidInput("Invalid request body", errors).to_body())


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail, "code": "HTTP_ERROR"},
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(status_code=500, content=InternalError().to_body())
