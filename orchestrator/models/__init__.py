"""
Orchestrator models package.

Domain objects for the worker fleet: container runtime access, port
allocation, the worker registry, the worker RPC client and the
Orchestrator that composes them.
"""
from .base import ModelBase, WireModelBase
from .field_types import (
    Str128,
    Str256,
    NonNegativeInt,
)
from .exceptions import (
    OrchestratorError,
    InvalidNameError,
    AlreadyExistsError,
    NotFoundError,
    NotConnectedError,
    MissingCredentialsError,
    PortsExhaustedError,
    ContainerRuntimeError,
    RuntimeUnavailableError,
    ContainerCreateFailedError,
    ContainerStopFailedError,
    ContainerRemoveFailedError,
    ContainerInspectFailedError,
    RpcError,
    RpcUnreachableError,
    RpcCallFailedError,
    WorkerInvocationError,
)
from .port_allocator import PortAllocator, validate_name
from .container_runtime import ContainerInfo, ContainerRuntime
from .worker import (
    WorkerClient,
    WorkerHistory,
    WorkerInvokeResult,
    WorkerStatusInfo,
    WorkerTerminateResult,
)
from .registry import WorkerRecord, WorkerRegistry
from .orchestrator import BatchOutcome, BatchReport, Orchestrator
