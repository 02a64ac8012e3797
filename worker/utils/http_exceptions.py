"""
HTTP exception helpers for FastAPI.
"""
from typing import NoReturn

from fastapi import HTTPException
from starlette.status import HTTP_503_SERVICE_UNAVAILABLE


def raise_service_unavailable(detail: str) -> NoReturn:
    """Raises an HTTP 503 Service Unavailable exception."""
    raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
