"""
WorkerRegistry: the orchestrator's authoritative map of live workers.

One asyncio.Lock guards the record map, the set of names reserved by
in-flight creations, and the port allocator. Every method except
snapshot() and get() mutates shared state and must be called while
holding `registry.lock`.
"""
import asyncio
from dataclasses import dataclass

from loguru import logger as l

from .exceptions import AlreadyExistsError
from .port_allocator import PortAllocator
from .worker import WorkerClient


@dataclass
class WorkerRecord:
    """A registered worker. The record owns its RPC client."""
    name: str
    container_id: str
    port: int
    client: WorkerClient | None = None

    @property
    def connected(self) -> bool:
        return self.client is not None

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()


class WorkerRegistry:

    def __init__(self, starting_port: int):
        self.lock = asyncio.Lock()
        self.ports = PortAllocator(starting_port)
        self._records: dict[str, WorkerRecord] = {}
        self._reserved: set[str] = set()

    def __contains__(self, name: str) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def get(self, name: str) -> WorkerRecord | None:
        return self._records.get(name)

    def snapshot(self) -> dict[str, WorkerRecord]:
        """Shallow copy of the record map, safe to iterate while the lock is released."""
        return self._records.copy()

    def reserve(self, name: str) -> None:
        """Claims a name for an in-flight creation; raises AlreadyExistsError if taken."""
        if name in self._records or name in self._reserved:
            raise AlreadyExistsError(name)
        self._reserved.add(name)

    def release(self, name: str) -> None:
        self._reserved.discard(name)

    def insert(self, record: WorkerRecord) -> None:
        """Registers a record, replacing a reservation for the same name."""
        if record.name in self._records:
            raise AlreadyExistsError(record.name)
        self._reserved.discard(record.name)
        self._records[record.name] = record
        l.debug(f"Registered worker {record.name} (port {record.port}, connected={record.connected})")

    def pop(self, name: str) -> WorkerRecord | None:
        return self._records.pop(name, None)

    def allocate_port(self) -> int:
        return self.ports.allocate()

    def observe_port(self, port: int) -> None:
        self.ports.observe(port)
