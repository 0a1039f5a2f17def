"""
Uniform JSON envelope used by every endpoint:

    {"success": bool, "message": str, "content": Any, "code": Optional[str]}

Handlers return `success_response(...)` and raise `APIError` for expected
failures; the exception handlers registered in `main.py` render everything
else (HTTPException, validation errors, unexpected exceptions) in the same shape.
"""
import logging
import math
from typing import Any, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Expected failure with an HTTP status and a machine-readable code"""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None, content: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.content = content


def envelope(success: bool, message: str, content: Any = None, code: Optional[str] = None) -> dict:
    return {
        "success": success,
        "message": message,
        "content": content,
        "code": code,
    }


def success_response(message: str, content: Any = None, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope(True, message, content)))


def created_response(message: str, content: Any = None) -> JSONResponse:
    return success_response(message, content, status_code=status.HTTP_201_CREATED)


def error_response(status_code: int, message: str, code: Optional[str] = None, content: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope(False, message, content, code)))


def pagination_info(page: int, limit: int, total_count: int) -> dict:
    total_pages = math.ceil(total_count / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total_count,
        "limit": limit,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def paginate(query, page: int, limit: int):
    """Apply offset/limit to a query; returns (items, pagination dict)"""
    total_count = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, pagination_info(page, limit, total_count)


# ============================================================================
# Exception handlers
# ============================================================================

async def api_error_handler(request: Request, exc: APIError):
    return error_response(exc.status_code, exc.message, exc.code, exc.content)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", [])), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", "VALIDATION_ERROR", {"errors": errors})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server Error", "INTERNAL_SERVER_ERROR")
