"""
/status endpoint.
"""
from fastapi import APIRouter

from worker.fastapis.deps import SessionDep
from worker.models import StatusResponse

router = APIRouter(prefix="/status", tags=["Status"])


@router.get("", response_model=StatusResponse)
async def get_status(session: SessionDep) -> StatusResponse:
    snapshot = await session.status()
    return StatusResponse(**snapshot.model_dump())
