"""
WorkerClient: the orchestrator side of the worker RPC protocol.

Each worker container serves four operations over HTTP+JSON on
http://<host>:<port>/api/v1 (invoke, status, history, terminate). A
WorkerClient owns one aiohttp session bound to that address.
"""
import asyncio
import uuid
from typing import Any

import aiohttp
import orjson
from loguru import logger as l
from pydantic import ValidationError

from orchestrator import meta_config

from .base import WireModelBase
from .exceptions import RpcCallFailedError, RpcUnreachableError
from .field_types import NonNegativeInt


class WorkerInvokeResult(WireModelBase):
    """Answer to an Invoke call."""
    invocation_id: str = ""
    result: str = ""
    success: bool
    error: str = ""


class WorkerStatusInfo(WireModelBase):
    """Answer to a GetStatus call."""
    name: str
    state: str
    """Lifecycle state: idle, busy or error."""
    last_invocation_time: str | None = None
    """ISO-8601 UTC timestamp of the last successful invocation."""
    invocation_count: NonNegativeInt = 0


class WorkerHistory(WireModelBase):
    """Answer to a GetHistory call."""
    history: list[str]


class WorkerTerminateResult(WireModelBase):
    """Answer to a Terminate call."""
    success: bool
    message: str = ""


class WorkerClient:
    """RPC client for one worker."""
    API_PREFIX = "/api/v1"

    def __init__(
            self,
            host: str,
            port: int,
            session: aiohttp.ClientSession,
            call_timeout: float = meta_config.RPC_CALL_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self._session = session
        self._call_timeout = aiohttp.ClientTimeout(total=call_timeout)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def base_url(self) -> str:
        return f"http://{self.address}{self.API_PREFIX}"

    @property
    def closed(self) -> bool:
        return self._session.closed

    @classmethod
    async def connect(
            cls,
            host: str,
            port: int,
            connect_timeout: float = meta_config.RPC_CONNECT_TIMEOUT,
            call_timeout: float = meta_config.RPC_CALL_TIMEOUT,
    ) -> "WorkerClient":
        """Opens a client and checks the worker status; raises RpcUnreachableError if it does not answer."""
        session = aiohttp.ClientSession(trust_env=False)
        client = cls(host, port, session, call_timeout=call_timeout)
        try:
            await client.get_status(timeout=connect_timeout)
        except RpcCallFailedError as e:
            await client.close()
            raise RpcUnreachableError(client.address, e.message) from e
        l.debug(f"Connected to worker at {client.address}")
        return client

    async def close(self) -> None:
        if not self._session.closed:
            await self._session.close()

    async def _request(
            self,
            method: str,
            path: str,
            *,
            json: dict[str, Any] | None = None,
            params: dict[str, Any] | None = None,
            timeout: float | None = None,
    ) -> Any:
        client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout is not None else self._call_timeout
        try:
            async with self._session.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                timeout=client_timeout,
            ) as response:
                text = await response.text()
                if response.status != 200:
                    raise RpcCallFailedError(
                        f"Worker at {self.address} returned {response.status} for {path}: {self._error_detail(text)}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RpcCallFailedError(f"RPC {method} {path} to {self.address} failed: {type(e).__name__}: {e}") from e

        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise RpcCallFailedError(f"Worker at {self.address} returned invalid JSON for {path}") from e

    @staticmethod
    def _error_detail(text: str) -> str:
        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError:
            return text
        if isinstance(data, dict) and "detail" in data:
            return str(data["detail"])
        return text

    def _parse(self, model: type[WireModelBase], data: Any, path: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RpcCallFailedError(f"Worker at {self.address} returned a malformed answer for {path}: {e}") from e

    async def invoke(self, text: str) -> WorkerInvokeResult:
        """Sends text to the worker and waits for its (possibly command-processed) reply."""
        invocation_id = uuid.uuid4().hex
        l.debug(f"Invoking worker at {self.address} ({invocation_id})")
        data = await self._request("POST", "/invoke", json={"text": text, "invocation_id": invocation_id})
        return self._parse(WorkerInvokeResult, data, "/invoke")

    async def get_status(self, timeout: float | None = None) -> WorkerStatusInfo:
        data = await self._request("GET", "/status", timeout=timeout)
        return self._parse(WorkerStatusInfo, data, "/status")

    async def get_history(self, lines: int = 0) -> list[str]:
        """Last `lines` chat-log entries; 0 means the whole log."""
        data = await self._request("GET", "/history", params={"lines": lines})
        return self._parse(WorkerHistory, data, "/history").history

    async def terminate(self, reason: str) -> WorkerTerminateResult:
        data = await self._request("POST", "/terminate", json={"reason": reason})
        return self._parse(WorkerTerminateResult, data, "/terminate")
