"""Tests for worker.models.session: state machine, bounded chat log and termination."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from worker.models import CommandExecutor, SessionState, WorkerSession

from conftest import FakeLLM


def _session(llm, **kwargs) -> WorkerSession:
    kwargs.setdefault("system_prompt", "be useful")
    return WorkerSession("alpha", llm, **kwargs)


class TestInvoke:
    @pytest.mark.asyncio
    async def test_successful_turn(self):
        llm = FakeLLM("hello there")
        session = _session(llm, autonomous=False)

        outcome = await session.invoke("hi")

        assert outcome.success
        assert outcome.result == "hello there"
        assert await session.history() == ["Orchestrator: hi", "alpha: hello there"]
        status = await session.status()
        assert status.state == SessionState.IDLE
        assert status.invocation_count == 1
        assert status.last_invocation_time is not None

    @pytest.mark.asyncio
    async def test_history_is_sent_with_each_call(self):
        llm = FakeLLM("one", "two")
        session = _session(llm, autonomous=False)

        await session.invoke("first")
        await session.invoke("second")

        assert llm.calls[1][1] == ["Orchestrator: first", "alpha: one"]

    @pytest.mark.asyncio
    async def test_system_prompt_only_in_autonomous_mode(self):
        llm = FakeLLM("a", "b")
        await _session(llm, autonomous=True).invoke("x")
        await _session(llm, autonomous=False).invoke("x")
        assert [call[2] for call in llm.calls] == ["be useful", None]

    @pytest.mark.asyncio
    async def test_upstream_failure_sets_error_and_keeps_log(self, upstream_failure):
        llm = FakeLLM("fine", upstream_failure, "recovered")
        session = _session(llm, autonomous=False)
        await session.invoke("one")

        outcome = await session.invoke("two")

        assert not outcome.success
        assert outcome.error == upstream_failure.message
        assert (await session.status()).state == SessionState.ERROR
        assert await session.history() == ["Orchestrator: one", "alpha: fine"]

        await session.invoke("three")
        status = await session.status()
        assert status.state == SessionState.IDLE
        assert status.invocation_count == 2

    @pytest.mark.asyncio
    async def test_log_is_capped_in_whole_turns(self):
        session = _session(FakeLLM(), autonomous=False)

        for turn in range(60):
            await session.invoke(f"msg {turn}")
            assert len(await session.history()) == min(2 * (turn + 1), 100)

        history = await session.history()
        assert history[0] == "Orchestrator: msg 10"
        assert history[1] == "alpha: echo: msg 10"
        assert all(line.startswith("Orchestrator: ") for line in history[::2])

    @pytest.mark.asyncio
    async def test_history_slicing(self):
        session = _session(FakeLLM(), autonomous=False)
        for turn in range(3):
            await session.invoke(f"msg {turn}")

        assert len(await session.history(0)) == 6
        assert await session.history(2) == ["Orchestrator: msg 2", "alpha: echo: msg 2"]
        assert len(await session.history(500)) == 6
        with pytest.raises(ValueError):
            await session.history(-1)


class TestAutonomous:
    @pytest.mark.asyncio
    async def test_command_batch_is_executed_and_raw_response_logged(self, tmp_path):
        target = tmp_path / "out.txt"
        response = orjson.dumps({"commands": [{"cmd": "Write", "path": str(target), "content": "data"}]}).decode()
        session = _session(FakeLLM(response), autonomous=True)

        outcome = await session.invoke("write it")

        assert outcome.result == f"✓ Successfully wrote to {target}"
        assert target.read_text() == "data"
        assert (await session.history())[1] == f"alpha: {response}"

    @pytest.mark.asyncio
    async def test_plain_prose_is_returned_verbatim(self, tmp_path):
        executor = CommandExecutor()
        executor.run = MagicMock(side_effect=AssertionError("must not run"))
        prose = "I would rather just talk about it."
        session = _session(FakeLLM(prose), autonomous=True, executor=executor)

        outcome = await session.invoke("hello")

        assert outcome.result == prose
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_chat_only_worker_never_runs_commands(self, tmp_path):
        target = tmp_path / "out.txt"
        response = orjson.dumps({"commands": [{"cmd": "Write", "path": str(target), "content": "x"}]}).decode()
        session = _session(FakeLLM(response), autonomous=False)

        outcome = await session.invoke("write it")

        assert outcome.result == response
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_memory_persists_across_invocations(self):
        remember = orjson.dumps({"commands": [{"cmd": "Remember", "key": "k", "value": "v"}]}).decode()
        recall = orjson.dumps({"commands": [{"cmd": "Recall", "key": "k"}]}).decode()
        session = _session(FakeLLM(remember, recall), autonomous=True)

        await session.invoke("remember")
        outcome = await session.invoke("recall")

        assert outcome.result == "✓ v"


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_busy_is_observable_and_invocations_serialize(self):
        release = asyncio.Event()
        order: list[str] = []

        class BlockingLLM:
            async def send_message(self, message, history, system_prompt=None):
                order.append(f"start {message}")
                if message == "first":
                    await release.wait()
                order.append(f"end {message}")
                return message

        session = _session(BlockingLLM(), autonomous=False)
        first = asyncio.create_task(session.invoke("first"))
        second = asyncio.create_task(session.invoke("second"))
        await asyncio.sleep(0.01)

        assert (await session.status()).state == SessionState.BUSY
        assert await session.history() == []
        release.set()
        await asyncio.gather(first, second)

        assert order == ["start first", "end first", "start second", "end second"]
        assert await session.history() == [
            "Orchestrator: first", "alpha: first",
            "Orchestrator: second", "alpha: second",
        ]


class TestTermination:
    @pytest.mark.asyncio
    async def test_termination_calls_exit_hook_after_delay(self):
        exit_hook = MagicMock()
        session = _session(FakeLLM(), terminate_delay=0, exit_hook=exit_hook)

        message = session.schedule_termination("done")
        assert "done" in message
        assert session.terminating
        session.schedule_termination("again")

        await asyncio.sleep(0.01)
        exit_hook.assert_called_once_with()

    def test_rejects_odd_cap(self):
        with pytest.raises(ValueError):
            _session(FakeLLM(), max_entries=99)


class TestUnexpectedFailures:
    @pytest.mark.asyncio
    async def test_executor_crash_moves_to_error_and_keeps_log(self):
        executor = CommandExecutor()
        executor.run = AsyncMock(side_effect=RuntimeError("boom"))
        batch = orjson.dumps({"commands": [{"cmd": "Think", "reasoning": "x"}]}).decode()
        session = _session(FakeLLM(batch, "plain"), autonomous=True, executor=executor)

        outcome = await session.invoke("go")

        assert not outcome.success
        assert outcome.error == "RuntimeError: boom"
        status = await session.status()
        assert status.state == SessionState.ERROR
        assert status.invocation_count == 0
        assert await session.history() == []

        assert (await session.invoke("again")).success
        assert (await session.status()).state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_cancelled_invocation_does_not_stay_busy(self):
        class HangingLLM:
            async def send_message(self, message, history, system_prompt=None):
                await asyncio.Event().wait()

        session = _session(HangingLLM(), autonomous=False)
        task = asyncio.create_task(session.invoke("hi"))
        await asyncio.sleep(0.01)
        assert (await session.status()).state == SessionState.BUSY

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert (await session.status()).state == SessionState.ERROR

    @pytest.mark.asyncio
    async def test_non_string_keys_from_parse_render_in_report(self):
        response = orjson.dumps({"commands": [{"cmd": "Parse", "content": "true: yes\n", "format": "yaml"}]}).decode()
        session = _session(FakeLLM(response), autonomous=True)

        outcome = await session.invoke("go")

        assert outcome.success
        assert outcome.result == '✓ {\n  "true": true\n}'
        assert (await session.status()).state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_empty_batch_is_returned_as_text(self):
        session = _session(FakeLLM('{"commands": []}'), autonomous=True)
        outcome = await session.invoke("anything to do?")
        assert outcome.result == '{"commands": []}'
