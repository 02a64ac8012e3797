"""
Worker models aggregation.
"""
from .base import LenientModelBase, ModelBase
from .exceptions import CommandExecutionError, UpstreamCallFailedError, WorkerError
from .commands import (
    Command,
    CommandBatch,
    DataFormat,
    Section,
    StatusLevel,
    TaskStatus,
    parse_command_batch,
)
from .results import (
    CommandResult,
    EmptyResult,
    ErrorResult,
    FileInfo,
    FileListResult,
    SearchMatch,
    SearchResult,
    SuccessResult,
    ValueResult,
    render_report,
    render_result,
)
from .executor import CommandExecutor
from .llm import AnthropicClient, history_to_messages
from .session import InvocationOutcome, SessionState, StatusSnapshot, WorkerSession
from .rpc import (
    HistoryResponse,
    InvokeRequest,
    InvokeResponse,
    StatusResponse,
    TerminateRequest,
    TerminateResponse,
)
