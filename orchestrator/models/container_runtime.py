"""
ContainerRuntime: a thin client over a local Docker- or Podman-compatible daemon.

Only the calls the orchestrator needs are exposed. Every failure is
mapped to a typed ContainerRuntimeError; there is no retry beyond the
socket fallback chain in connect().
"""
import asyncio
import os as sync_os
from typing import Any

import aiohttp
from aiodocker.containers import DockerContainer
from aiodocker.docker import Docker
from aiodocker.exceptions import DockerError
from loguru import logger as l

from orchestrator import meta_config

from .base import ModelBase
from .exceptions import (
    ContainerCreateFailedError,
    ContainerInspectFailedError,
    ContainerRemoveFailedError,
    ContainerStopFailedError,
    RuntimeUnavailableError,
)
from .field_types import Str128, Str256

_CONNECT_ERRORS = (DockerError, aiohttp.ClientError, OSError, ValueError, asyncio.TimeoutError)


class ContainerInfo(ModelBase):
    """Snapshot of a container as reported by the runtime."""
    id: Str128
    name: Str256
    """Container name without the leading '/'."""
    state: str
    """Runtime state, e.g. 'running', 'exited', 'created'."""
    env: dict[str, str] = {}
    """Declared environment (empty for list_containers() results, which do not carry it)."""
    labels: dict[str, str] = {}

    @property
    def running(self) -> bool:
        return self.state == "running"


def parse_env(env: list[str] | None) -> dict[str, str]:
    """Turns Docker's ['KEY=value', ...] into a dict."""
    result: dict[str, str] = {}
    for item in env or []:
        key, sep, value = item.partition("=")
        if sep:
            result[key] = value
    return result


def _field(container: DockerContainer, key: str, default: Any = None) -> Any:
    try:
        value = container[key]
    except KeyError:
        return default
    return default if value is None else value


class ContainerRuntime:
    """Wraps an aiodocker client bound to one daemon socket."""

    def __init__(self, docker: Docker, description: str = "container runtime"):
        self._docker = docker
        self.description = description

    @staticmethod
    def _candidate_sockets() -> list[tuple[str | None, str]]:
        """Socket URLs to try, in order. None means the library's local default."""
        candidates: list[tuple[str | None, str]] = []
        runtime_dir = sync_os.environ.get("XDG_RUNTIME_DIR")
        if runtime_dir:
            candidates.append((f"unix://{runtime_dir}/podman/podman.sock", "Podman (rootless)"))
        candidates.append(("unix:///run/podman/podman.sock", "Podman (system)"))
        candidates.append((None, "Docker"))
        return candidates

    @classmethod
    async def connect(cls) -> "ContainerRuntime":
        """Returns a runtime bound to the first socket that answers a version request."""
        errors: list[str] = []
        for url, description in cls._candidate_sockets():
            docker = None
            try:
                docker = Docker(url=url)
                await docker.version()
            except _CONNECT_ERRORS as e:
                l.info(f"{description} socket not responding: {e}")
                errors.append(f"{description}: {e}")
                if docker is not None:
                    await docker.close()
                continue
            l.info(f"Connected to {description}")
            return cls(docker, description)

        raise RuntimeUnavailableError(
            "Failed to connect to any container runtime (Podman or Docker). "
            "Please install and start either Podman or Docker "
            "(for rootless Podman: systemctl --user start podman.socket). "
            f"Tried: {'; '.join(errors)}"
        )

    async def close(self) -> None:
        await self._docker.close()

    async def list_containers(self, name_prefix: str) -> list[ContainerInfo]:
        """Lists all containers (running or not) whose name starts with name_prefix."""
        try:
            containers = await self._docker.containers.list(all=True, filters={"name": [name_prefix]})
        except DockerError as e:
            raise ContainerInspectFailedError(f"Failed to list containers: {e.message}") from e

        infos: list[ContainerInfo] = []
        for container in containers:
            # The daemon's name filter is a substring match; keep prefix matches only.
            names = [n.lstrip("/") for n in _field(container, "Names", [])]
            name = next((n for n in names if n.startswith(name_prefix)), None)
            if name is None:
                continue
            infos.append(ContainerInfo(
                id=container.id,
                name=name,
                state=_field(container, "State", "unknown"),
                labels=_field(container, "Labels", {}),
            ))
        return infos

    async def inspect(self, container_id: str) -> ContainerInfo:
        """Returns full container details, including declared environment."""
        try:
            data = await self._docker.containers.container(container_id).show()
        except DockerError as e:
            raise ContainerInspectFailedError(f"Failed to inspect container {container_id}: {e.message}") from e

        config = data.get("Config") or {}
        state = data.get("State") or {}
        return ContainerInfo(
            id=data.get("Id", container_id),
            name=(data.get("Name") or "").lstrip("/"),
            state=state.get("Status", "unknown"),
            env=parse_env(config.get("Env")),
            labels=config.get("Labels") or {},
        )

    async def create(self, name: str, image: str, env_vars: dict[str, str], port: int) -> str:
        """Creates (but does not start) a container and returns its id."""
        container_config = {
            'Image': image,
            'Env': [f"{key}={value}" for key, value in env_vars.items()],
            'ExposedPorts': {f"{port}/tcp": {}},
            'HostConfig': {
                # Host networking: the worker listens on 127.0.0.1:<port> directly.
                'NetworkMode': meta_config.NETWORK_MODE,
            },
            'Labels': {'managed-by': meta_config.MANAGED_BY_LABEL},
        }
        try:
            container = await self._docker.containers.create(config=container_config, name=name)
        except DockerError as e:
            raise ContainerCreateFailedError(f"Failed to create container {name}: {e.message}") from e
        l.debug(f"Created container {name} ({container.id[:12]})")
        return container.id

    async def start(self, container_id: str) -> None:
        try:
            await self._docker.containers.container(container_id).start()
        except DockerError as e:
            raise ContainerCreateFailedError(f"Failed to start container {container_id}: {e.message}") from e

    async def stop(self, container_id: str, timeout: int = meta_config.CONTAINER_STOP_TIMEOUT) -> None:
        try:
            await self._docker.containers.container(container_id).stop(t=timeout)
        except DockerError as e:
            raise ContainerStopFailedError(f"Failed to stop container {container_id}: {e.message}") from e

    async def remove(self, container_id: str, force: bool = True) -> None:
        try:
            await self._docker.containers.container(container_id).delete(force=force)
        except DockerError as e:
            raise ContainerRemoveFailedError(f"Failed to remove container {container_id}: {e.message}") from e
