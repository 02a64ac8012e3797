"""Tests for orchestrator.models.worker: the WorkerClient side of the RPC protocol."""

from unittest.mock import patch

import aiohttp
import orjson
import pytest

from orchestrator.models import RpcCallFailedError, RpcUnreachableError, WorkerClient


class FakeResponse:
    def __init__(self, status: int, body):
        self.status = status
        self._text = body if isinstance(body, str) else orjson.dumps(body).decode()

    async def text(self) -> str:
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeSession:
    """Replays queued (status, body) answers; an exception in the queue is raised on request()."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.requests: list[dict] = []
        self.closed = False

    def request(self, method, url, *, json=None, params=None, timeout=None):
        self.requests.append({"method": method, "url": url, "json": json, "params": params, "timeout": timeout})
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return FakeResponse(*answer)

    async def close(self):
        self.closed = True


def _client(*answers) -> tuple[WorkerClient, FakeSession]:
    session = FakeSession(*answers)
    return WorkerClient("127.0.0.1", 50100, session, call_timeout=30), session


class TestWorkerClient:
    @pytest.mark.asyncio
    async def test_invoke_sends_text_and_fresh_invocation_id(self):
        client, session = _client(
            (200, {"invocation_id": "abc", "result": "done", "success": True, "error": ""}),
            (200, {"invocation_id": "def", "result": "again", "success": True, "error": ""}),
        )

        first = await client.invoke("hello")
        await client.invoke("hello")

        assert first.result == "done"
        assert session.requests[0]["method"] == "POST"
        assert session.requests[0]["url"] == "http://127.0.0.1:50100/api/v1/invoke"
        assert session.requests[0]["json"]["text"] == "hello"
        ids = [request["json"]["invocation_id"] for request in session.requests]
        assert ids[0] and ids[0] != ids[1]

    @pytest.mark.asyncio
    async def test_status_ignores_unknown_fields(self):
        client, _ = _client((200, {"name": "alpha", "state": "busy", "invocation_count": 2, "extra": 1}))
        status = await client.get_status()
        assert (status.name, status.state, status.invocation_count) == ("alpha", "busy", 2)

    @pytest.mark.asyncio
    async def test_history_passes_lines(self):
        client, session = _client((200, {"history": ["Orchestrator: hi", "alpha: hello"]}))
        assert await client.get_history(2) == ["Orchestrator: hi", "alpha: hello"]
        assert session.requests[0]["params"] == {"lines": 2}

    @pytest.mark.asyncio
    async def test_terminate(self):
        client, session = _client((200, {"success": True, "message": "Shutting down... (bye)"}))
        result = await client.terminate("bye")
        assert result.success
        assert session.requests[0]["json"] == {"reason": "bye"}

    @pytest.mark.asyncio
    async def test_non_200_raises_with_detail(self):
        client, _ = _client((503, {"detail": "Worker is shutting down"}))
        with pytest.raises(RpcCallFailedError) as exc_info:
            await client.invoke("hello")
        assert "Worker is shutting down" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        client, _ = _client(aiohttp.ClientConnectionError("refused"))
        with pytest.raises(RpcCallFailedError):
            await client.get_status()

    @pytest.mark.asyncio
    async def test_malformed_answer_raises(self):
        client, _ = _client((200, {"unexpected": True}))
        with pytest.raises(RpcCallFailedError):
            await client.get_history()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        client, _ = _client((200, "not json"))
        with pytest.raises(RpcCallFailedError):
            await client.get_status()

    @pytest.mark.asyncio
    async def test_connect_checks_status(self):
        session = FakeSession((200, {"name": "alpha", "state": "idle"}))
        with patch("orchestrator.models.worker.aiohttp.ClientSession", return_value=session):
            client = await WorkerClient.connect("127.0.0.1", 50100, connect_timeout=1)
        assert client.address == "127.0.0.1:50100"
        assert session.requests[0]["url"].endswith("/api/v1/status")
        assert not session.closed

    @pytest.mark.asyncio
    async def test_connect_failure_closes_session(self):
        session = FakeSession(aiohttp.ClientConnectionError("refused"))
        with patch("orchestrator.models.worker.aiohttp.ClientSession", return_value=session):
            with pytest.raises(RpcUnreachableError) as exc_info:
                await WorkerClient.connect("127.0.0.1", 50100, connect_timeout=1)
        assert session.closed
        assert "127.0.0.1:50100" in exc_info.value.message
