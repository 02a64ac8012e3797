"""
Custom exceptions for the orchestrator models layer.

These exceptions are framework-agnostic; the CLI layer catches them and
renders their message.
"""


class OrchestratorError(Exception):
    """Base exception for registry and validation failures."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidNameError(OrchestratorError):
    """Raised when a worker name does not match the naming rule."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid worker name {name!r}. Names must be 1-32 characters, "
            "alphanumeric with hyphens/underscores only"
        )


class AlreadyExistsError(OrchestratorError):
    """Raised when a worker name is already registered."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Worker {name} already exists")


class NotFoundError(OrchestratorError):
    """Raised when a worker name is not registered."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Worker {name} not found")


class NotConnectedError(OrchestratorError):
    """Raised when a registered worker has no live RPC client."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Worker {name} is not connected")


class PortsExhaustedError(OrchestratorError):
    """Raised when the port allocator has no port left to hand out."""
    def __init__(self, next_port: int):
        self.next_port = next_port
        super().__init__(f"No free worker port left (next would be {next_port})")


class MissingCredentialsError(OrchestratorError):
    """Raised when no upstream LLM credential is configured for new workers."""
    def __init__(self, message: str = "ANTHROPIC_API_KEY (or ANTHROPIC_API_KEY_FILE) is not set"):
        super().__init__(message)


class ContainerRuntimeError(Exception):
    """Base exception for container runtime failures."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class RuntimeUnavailableError(ContainerRuntimeError):
    """Raised when no container runtime socket answers."""
    def __init__(self, message: str = "No container runtime (Podman or Docker) is available"):
        super().__init__(message)


class ContainerCreateFailedError(ContainerRuntimeError):
    """Raised when a container cannot be created or started."""


class ContainerStopFailedError(ContainerRuntimeError):
    """Raised when a container cannot be stopped."""


class ContainerRemoveFailedError(ContainerRuntimeError):
    """Raised when a container cannot be removed."""


class ContainerInspectFailedError(ContainerRuntimeError):
    """Raised when a container cannot be listed or inspected."""


class RpcError(Exception):
    """Base exception for worker RPC failures."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class RpcUnreachableError(RpcError):
    """Raised when a worker RPC endpoint does not answer."""
    def __init__(self, address: str, reason: str = ""):
        self.address = address
        detail = f": {reason}" if reason else ""
        super().__init__(f"Worker at {address} is unreachable{detail}")


class RpcCallFailedError(RpcError):
    """Raised when an RPC call fails in transport or returns a non-2xx answer."""


class WorkerInvocationError(RpcError):
    """Raised when a worker answers an invocation with success=false."""
    def __init__(self, name: str, error: str):
        self.name = name
        self.error = error
        super().__init__(f"Tell failed: {error}")
