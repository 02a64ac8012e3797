"""
/api/v1 routes aggregation for Worker service.
"""
from fastapi import APIRouter

from .history import router as history_router
from .invoke import router as invoke_router
from .status import router as status_router
from .terminate import router as terminate_router

router = APIRouter(prefix="/v1")
router.include_router(invoke_router)
router.include_router(status_router)
router.include_router(history_router)
router.include_router(terminate_router)
