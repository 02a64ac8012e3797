"""
Request and response bodies of the worker RPC surface.
"""
from pydantic import Field

from .base import ModelBase
from .session import SessionState


class InvokeRequest(ModelBase):
    text: str
    """Message forwarded to the LLM."""
    invocation_id: str = ""
    """Caller-chosen id, echoed back in the response."""


class InvokeResponse(ModelBase):
    invocation_id: str
    result: str = ""
    """Raw LLM response, or the rendered command report in autonomous mode."""
    success: bool
    error: str = ""


class StatusResponse(ModelBase):
    name: str
    state: SessionState
    last_invocation_time: str | None = None
    """ISO-8601 UTC timestamp of the last successful invocation."""
    invocation_count: int = Field(ge=0)


class HistoryResponse(ModelBase):
    history: list[str]


class TerminateRequest(ModelBase):
    reason: str = ""


class TerminateResponse(ModelBase):
    success: bool
    message: str
