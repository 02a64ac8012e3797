"""
/invoke endpoint.
"""
from fastapi import APIRouter
from loguru import logger as l

from worker.fastapis.deps import ActiveSessionDep
from worker.models import InvokeRequest, InvokeResponse

router = APIRouter(prefix="/invoke", tags=["Invoke"])


@router.post("", response_model=InvokeResponse)
async def invoke(request: InvokeRequest, session: ActiveSessionDep) -> InvokeResponse:
    l.info(f"Invocation {request.invocation_id or '(no id)'}: {request.text}")
    outcome = await session.invoke(request.text)
    return InvokeResponse(
        invocation_id=request.invocation_id,
        result=outcome.result,
        success=outcome.success,
        error=outcome.error,
    )
