"""
Worker FastAPI dependencies.
"""
from typing import Annotated

from fastapi import Depends, Request

from worker.models import WorkerSession
from worker.utils.http_exceptions import raise_service_unavailable


def get_session(request: Request) -> WorkerSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise_service_unavailable("Worker session is not initialized")
    return session


def get_active_session(session: Annotated[WorkerSession, Depends(get_session)]) -> WorkerSession:
    """Like get_session, but refuses work once termination has been scheduled."""
    if session.terminating:
        raise_service_unavailable("Worker is shutting down")
    return session


SessionDep = Annotated[WorkerSession, Depends(get_session)]
ActiveSessionDep = Annotated[WorkerSession, Depends(get_active_session)]
