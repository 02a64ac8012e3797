"""
Port allocation and worker name validation.
"""
from loguru import logger as l

from .exceptions import PortsExhaustedError


MAX_NAME_LENGTH = 32
MAX_PORT = 65535


def validate_name(name: str) -> bool:
    """True iff name is 1-32 characters of alphanumerics, '-' or '_'."""
    if not name or len(name) > MAX_NAME_LENGTH:
        return False
    return all(c.isalnum() or c in "-_" for c in name)


class PortAllocator:
    """
    Hands out monotonically increasing port numbers.

    Not synchronized on its own: callers hold the registry lock around
    allocate() and observe().
    """

    def __init__(self, starting_port: int):
        if not 0 < starting_port <= MAX_PORT:
            raise ValueError(f"Starting port {starting_port} is out of range")
        self._next_port = starting_port

    @property
    def next_port(self) -> int:
        return self._next_port

    def allocate(self) -> int:
        """Returns the next free port and advances the counter."""
        port = self._next_port
        if port > MAX_PORT:
            raise PortsExhaustedError(port)
        self._next_port = port + 1
        return port

    def observe(self, port: int) -> None:
        """Advances the counter past a port already in use by an existing container."""
        if port >= self._next_port:
            l.debug(f"Advancing next port past observed port {port}")
            self._next_port = port + 1
