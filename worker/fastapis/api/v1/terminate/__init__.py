"""
/terminate endpoint.
"""
from fastapi import APIRouter

from worker.fastapis.deps import SessionDep
from worker.models import TerminateRequest, TerminateResponse

router = APIRouter(prefix="/terminate", tags=["Terminate"])


@router.post("", response_model=TerminateResponse)
async def terminate(request: TerminateRequest, session: SessionDep) -> TerminateResponse:
    message = session.schedule_termination(request.reason)
    return TerminateResponse(success=True, message=message)
