"""
Shared fakes for the llm-fleet test suite.

FakeRuntime stands in for a container daemon, FakeWorkerClient for a
worker's RPC endpoint, and FakeLLM for the upstream model, so tests can
focus on orchestration and session behavior.
"""
import asyncio

import pytest

from orchestrator.models import (
    ContainerCreateFailedError,
    ContainerInfo,
    ContainerRemoveFailedError,
    ContainerStopFailedError,
    Orchestrator,
    RpcCallFailedError,
    RpcUnreachableError,
    WorkerInvokeResult,
    WorkerRegistry,
    WorkerStatusInfo,
    WorkerTerminateResult,
)
from worker.models import UpstreamCallFailedError

STARTING_PORT = 50100


# ---------------------------------------------------------------------------
# Container runtime
# ---------------------------------------------------------------------------

class FakeRuntime:
    """In-memory container daemon. Failure sets hold container names (with prefix)."""

    def __init__(self):
        self.containers: dict[str, dict] = {}
        self.fail_create: set[str] = set()
        self.fail_start: set[str] = set()
        self.fail_stop: set[str] = set()
        self.fail_remove: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def add_container(self, name: str, state: str = "running", env: dict[str, str] | None = None) -> str:
        container_id = f"id-{name}"
        self.containers[container_id] = {"name": name, "state": state, "env": dict(env or {})}
        return container_id

    def _name(self, container_id: str) -> str:
        return self.containers[container_id]["name"]

    async def list_containers(self, name_prefix: str) -> list[ContainerInfo]:
        return [
            ContainerInfo(id=cid, name=data["name"], state=data["state"])
            for cid, data in self.containers.items()
            if data["name"].startswith(name_prefix)
        ]

    async def inspect(self, container_id: str) -> ContainerInfo:
        data = self.containers[container_id]
        return ContainerInfo(id=container_id, name=data["name"], state=data["state"], env=data["env"])

    async def create(self, name: str, image: str, env_vars: dict[str, str], port: int) -> str:
        self.calls.append(("create", name))
        await asyncio.sleep(0)
        if name in self.fail_create:
            raise ContainerCreateFailedError(f"Failed to create container {name}: boom")
        return self.add_container(name, state="created", env=env_vars)

    async def start(self, container_id: str) -> None:
        self.calls.append(("start", container_id))
        if self._name(container_id) in self.fail_start:
            raise ContainerCreateFailedError(f"Failed to start container {container_id}: boom")
        self.containers[container_id]["state"] = "running"

    async def stop(self, container_id: str, timeout: int = 10) -> None:
        self.calls.append(("stop", container_id))
        if self._name(container_id) in self.fail_stop:
            raise ContainerStopFailedError(f"Failed to stop container {container_id}: boom")
        self.containers[container_id]["state"] = "exited"

    async def remove(self, container_id: str, force: bool = True) -> None:
        self.calls.append(("remove", container_id))
        if self._name(container_id) in self.fail_remove:
            raise ContainerRemoveFailedError(f"Failed to remove container {container_id}: boom")
        del self.containers[container_id]

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Worker RPC
# ---------------------------------------------------------------------------

class FakeWorkerClient:

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.closed = False
        self.invocations: list[str] = []
        self.terminated_with: str | None = None
        self.reply = WorkerInvokeResult(invocation_id="x", result="ok", success=True)
        self.history = ["Orchestrator: hi", "w: hello"]
        self.fail_status = False
        self.fail_terminate = False

    async def invoke(self, text: str) -> WorkerInvokeResult:
        self.invocations.append(text)
        return self.reply

    async def get_status(self, timeout: float | None = None) -> WorkerStatusInfo:
        if self.fail_status:
            raise RpcCallFailedError("status failed")
        return WorkerStatusInfo(name=f"port-{self.port}", state="idle", invocation_count=len(self.invocations))

    async def get_history(self, lines: int = 0) -> list[str]:
        return self.history[-lines:] if lines else list(self.history)

    async def terminate(self, reason: str) -> WorkerTerminateResult:
        if self.fail_terminate:
            raise RpcCallFailedError("terminate failed")
        self.terminated_with = reason
        return WorkerTerminateResult(success=True, message="bye")

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Callable used as Orchestrator(connect_client=...); ports in `unreachable` fail to connect."""

    def __init__(self):
        self.unreachable: set[int] = set()
        self.clients: dict[int, FakeWorkerClient] = {}

    async def __call__(self, host: str, port: int) -> FakeWorkerClient:
        if port in self.unreachable:
            raise RpcUnreachableError(f"{host}:{port}", "connection refused")
        client = FakeWorkerClient(host, port)
        self.clients[port] = client
        return client


@pytest.fixture()
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture()
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture()
def make_orchestrator(runtime, connector):
    """Factory building an Orchestrator over the fakes without touching a real daemon."""

    def _make(api_key: str | None = "test-key", starting_port: int = STARTING_PORT) -> Orchestrator:
        return Orchestrator(
            runtime,
            WorkerRegistry(starting_port),
            ready_delay=0,
            api_key=api_key,
            connect_client=connector,
        )

    return _make


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------

class FakeLLM:
    """Returns queued responses in order; an exception in the queue is raised instead."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, list[str], str | None]] = []

    async def send_message(self, message: str, history: list[str], system_prompt: str | None = None) -> str:
        self.calls.append((message, list(history), system_prompt))
        response = self.responses.pop(0) if self.responses else f"echo: {message}"
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def upstream_failure() -> UpstreamCallFailedError:
    return UpstreamCallFailedError("LLM API error (529): overloaded")
