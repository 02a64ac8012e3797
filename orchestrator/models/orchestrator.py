"""
Orchestrator: spawns, tracks and talks to the worker fleet.

The orchestrator composes the container runtime (lifecycle), the worker
registry (naming and ports) and one WorkerClient per worker
(communication). The container runtime is the only source of truth
across restarts: open() rebuilds the registry with a discovery pass.

Registry mutations happen under the registry lock; container calls and
RPC calls run outside it so operations on different workers overlap.
"""
import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger as l

from orchestrator import meta_config

from .base import ModelBase
from .container_runtime import ContainerInfo, ContainerRuntime
from .exceptions import (
    ContainerRemoveFailedError,
    ContainerRuntimeError,
    InvalidNameError,
    MissingCredentialsError,
    NotConnectedError,
    NotFoundError,
    PortsExhaustedError,
    RpcError,
    RpcUnreachableError,
    WorkerInvocationError,
)
from .port_allocator import validate_name
from .registry import WorkerRecord, WorkerRegistry
from .worker import WorkerClient, WorkerStatusInfo

ClientConnector = Callable[[str, int], Awaitable[WorkerClient]]

BANISH_REASON = "Orchestrator's command"


class BatchOutcome(ModelBase):
    """Result of one item in a batch operation."""
    name: str
    success: bool
    error: str | None = None


class BatchReport(ModelBase):
    """Per-item outcomes of a batch create/remove, in input order."""
    operation: str
    outcomes: list[BatchOutcome]

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def summary(self) -> str:
        return f"{self.succeeded}/{self.total}"


class Orchestrator:
    """Controller for the worker fleet. Build it with `await Orchestrator.open()`."""

    def __init__(
            self,
            runtime: ContainerRuntime,
            registry: WorkerRegistry,
            *,
            image: str = meta_config.WORKER_IMAGE_NAME,
            name_prefix: str = meta_config.CONTAINER_NAME_PREFIX,
            worker_host: str = meta_config.WORKER_HOST,
            default_port: int = meta_config.DEFAULT_WORKER_PORT,
            ready_delay: float = meta_config.CONTAINER_READY_DELAY,
            api_key: str | None = None,
            connect_client: ClientConnector | None = None,
    ):
        self.runtime = runtime
        self.registry = registry
        self.image = image
        self.name_prefix = name_prefix
        self.worker_host = worker_host
        self.default_port = default_port
        self.ready_delay = ready_delay
        self._api_key = api_key
        self._connect_client: ClientConnector = connect_client or WorkerClient.connect

    @classmethod
    async def open(
            cls,
            runtime: ContainerRuntime | None = None,
            starting_port: int = meta_config.STARTING_PORT,
            **kwargs: Any,
    ) -> "Orchestrator":
        """Connects to the container runtime and rebuilds the registry from it."""
        if runtime is None:
            runtime = await ContainerRuntime.connect()
        if "api_key" not in kwargs:
            kwargs["api_key"] = meta_config.get_api_key()
        orchestrator = cls(runtime, WorkerRegistry(starting_port), **kwargs)
        try:
            await orchestrator.discover()
        except BaseException:
            await orchestrator.close()
            raise
        return orchestrator

    async def close(self) -> None:
        """Closes every RPC client and the runtime connection. Containers keep running."""
        async with self.registry.lock:
            records = list(self.registry.snapshot().values())
        await asyncio.gather(*(record.close() for record in records), return_exceptions=True)
        await self.runtime.close()

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def container_name(self, name: str) -> str:
        return f"{self.name_prefix}{name}"

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _port_from_env(self, info: ContainerInfo) -> int:
        raw = info.env.get("RPC_PORT")
        if raw is None:
            return self.default_port
        try:
            port = int(raw)
        except ValueError:
            l.warning(f"Container {info.name} declares invalid RPC_PORT={raw!r}, assuming {self.default_port}")
            return self.default_port
        if not 0 < port <= 65535:
            return self.default_port
        return port

    async def _discover_one(self, container: ContainerInfo) -> WorkerRecord:
        name = container.name.removeprefix(self.name_prefix)
        try:
            details = await self.runtime.inspect(container.id)
            port = self._port_from_env(details)
        except ContainerRuntimeError as e:
            l.warning(f"Could not inspect {container.name}, assuming port {self.default_port}: {e}")
            port = self.default_port

        client = None
        if container.running:
            try:
                client = await self._connect_client(self.worker_host, port)
            except RpcError as e:
                l.warning(f"Worker {name} is running but unreachable on port {port}: {e}")
        return WorkerRecord(name=name, container_id=container.id, port=port, client=client)

    async def discover(self) -> None:
        """
        One-shot reconciliation pass: registers every container carrying the
        worker name prefix and advances the port counter past their ports.

        Running-but-unreachable workers are registered without a client and
        are not retried; list() leaves them out and remove() still cleans
        them up.
        """
        containers = await self.runtime.list_containers(self.name_prefix)
        records = await asyncio.gather(*(self._discover_one(c) for c in containers))

        async with self.registry.lock:
            for record in records:
                self.registry.observe_port(record.port)
                if record.name in self.registry:
                    l.warning(f"Duplicate container for worker {record.name}, ignoring {record.container_id[:12]}")
                    await record.close()
                    continue
                self.registry.insert(record)
                l.info(f"Discovered worker: {record.name} (port: {record.port})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _worker_env(self, name: str, port: int, autonomous: bool) -> dict[str, str]:
        if not self._api_key:
            raise MissingCredentialsError()
        return {
            "WORKER_NAME": name,
            "RPC_PORT": str(port),
            "ANTHROPIC_API_KEY": self._api_key,
            "WORKER_AUTONOMOUS": "true" if autonomous else "false",
            "REQUESTER_LABEL": meta_config.REQUESTER_LABEL,
        }

    async def create(self, name: str, autonomous: bool = True) -> None:
        """
        Creates and starts a worker container, then connects to it.

        If the container starts but the RPC connect fails, the worker is
        registered without a client (so it can be removed) and
        RpcUnreachableError is raised.
        """
        if not validate_name(name):
            raise InvalidNameError(name)

        async with self.registry.lock:
            self.registry.reserve(name)
            try:
                port = self.registry.allocate_port()
            except PortsExhaustedError:
                self.registry.release(name)
                raise

        container_name = self.container_name(name)
        container_id = None
        try:
            env = self._worker_env(name, port, autonomous)
            l.info(f"Creating worker {name} on port {port}")
            container_id = await self.runtime.create(container_name, self.image, env, port)
            await self.runtime.start(container_id)
        except BaseException as e:
            l.error(f"Failed to create worker {name}: {e}")
            if container_id is not None:
                try:
                    await self.runtime.remove(container_id, force=True)
                except ContainerRuntimeError as ex:
                    l.error(f"Rollback (container): {ex}")
            async with self.registry.lock:
                self.registry.release(name)
            raise

        await asyncio.sleep(self.ready_delay)

        record = WorkerRecord(name=name, container_id=container_id, port=port)
        try:
            record.client = await self._connect_client(self.worker_host, port)
        except RpcError as e:
            l.error(f"Worker {name} started but is unreachable on port {port}: {e}")
            async with self.registry.lock:
                self.registry.insert(record)
            if isinstance(e, RpcUnreachableError):
                raise
            raise RpcUnreachableError(f"{self.worker_host}:{port}", e.message) from e

        async with self.registry.lock:
            self.registry.insert(record)
        l.success(f"Worker {name} created successfully")

    async def remove(self, name: str) -> None:
        """
        Graceful-then-forceful removal: RPC terminate (ignored on failure),
        stop (logged on failure), force remove (raised on failure).

        The registry entry is dropped first, whatever happens downstream.
        """
        async with self.registry.lock:
            record = self.registry.pop(name)
        if record is None:
            raise NotFoundError(name)

        try:
            if record.client is not None:
                try:
                    await record.client.terminate(BANISH_REASON)
                except RpcError as e:
                    l.debug(f"Terminate RPC to {name} failed (ignored): {e}")

            try:
                await self.runtime.stop(record.container_id)
            except ContainerRuntimeError as e:
                l.warning(f"Failed to stop container for {name} gracefully: {e}")

            try:
                await self.runtime.remove(record.container_id, force=True)
            except ContainerRemoveFailedError as e:
                l.error(f"Failed to remove container for {name}: {e}")
                raise
        finally:
            await record.close()

        l.info(f"Worker {name} has been removed")

    async def create_many(self, names: list[str], autonomous: bool = True) -> BatchReport:
        return await self._batch("create", names, lambda name: self.create(name, autonomous=autonomous))

    async def remove_many(self, names: list[str]) -> BatchReport:
        return await self._batch("remove", names, self.remove)

    @staticmethod
    async def _batch(
            operation: str,
            names: list[str],
            action: Callable[[str], Awaitable[None]],
    ) -> BatchReport:
        """Runs action concurrently per name; one item's failure never affects another."""
        results = await asyncio.gather(*(action(name) for name in names), return_exceptions=True)
        outcomes: list[BatchOutcome] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                message = getattr(result, "message", None) or str(result) or type(result).__name__
                l.error(f"Failed to {operation} worker {name}: {message}")
                outcomes.append(BatchOutcome(name=name, success=False, error=message))
            else:
                outcomes.append(BatchOutcome(name=name, success=True))
        return BatchReport(operation=operation, outcomes=outcomes)

    # ------------------------------------------------------------------
    # Communication
    # ------------------------------------------------------------------

    async def list_workers(self) -> list[str]:
        """Names of workers with a live RPC client."""
        async with self.registry.lock:
            return sorted(name for name, record in self.registry.snapshot().items() if record.connected)

    async def registered_names(self) -> list[str]:
        """Names of every registered worker, reachable or not."""
        async with self.registry.lock:
            return sorted(self.registry.snapshot())

    async def _connected_client(self, name: str) -> WorkerClient:
        async with self.registry.lock:
            record = self.registry.get(name)
            if record is None:
                raise NotFoundError(name)
            if record.client is None:
                raise NotConnectedError(name)
            return record.client

    async def invoke(self, name: str, text: str) -> str:
        """Forwards text to a worker and returns its reply."""
        client = await self._connected_client(name)
        reply = await client.invoke(text)
        if not reply.success:
            raise WorkerInvocationError(name, reply.error)
        return reply.result

    async def history(self, name: str, lines: int = 0) -> list[str]:
        client = await self._connected_client(name)
        return await client.get_history(lines)

    async def status_all(self) -> dict[str, WorkerStatusInfo]:
        """Status of every connected worker; failing workers are logged and left out."""
        async with self.registry.lock:
            clients = {
                name: record.client
                for name, record in self.registry.snapshot().items()
                if record.client is not None
            }

        names = sorted(clients)
        results = await asyncio.gather(*(clients[name].get_status() for name in names), return_exceptions=True)

        statuses: dict[str, WorkerStatusInfo] = {}
        for name, result in zip(names, results):
            if isinstance(result, RpcError):
                l.warning(f"Failed to get status for {name}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                statuses[name] = result
        return statuses

    async def history_many(self, names: list[str], lines: int = 0) -> dict[str, list[str]]:
        """Fan-out history; workers that fail are logged and left out."""
        results = await asyncio.gather(*(self.history(name, lines) for name in names), return_exceptions=True)
        histories: dict[str, list[str]] = {}
        for name, result in zip(names, results):
            if isinstance(result, (RpcError, NotFoundError, NotConnectedError)):
                l.warning(f"Failed to get chat history for {name}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                histories[name] = result
        return histories
