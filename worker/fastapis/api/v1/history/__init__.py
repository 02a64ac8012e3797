"""
/history endpoint.
"""
from typing import Annotated

from fastapi import APIRouter, Query

from worker.fastapis.deps import SessionDep
from worker.models import HistoryResponse

router = APIRouter(prefix="/history", tags=["History"])


@router.get("", response_model=HistoryResponse)
async def get_history(
        session: SessionDep,
        lines: Annotated[int, Query(ge=0, description="Number of trailing entries; 0 for the whole log")] = 0,
) -> HistoryResponse:
    return HistoryResponse(history=await session.history(lines))
