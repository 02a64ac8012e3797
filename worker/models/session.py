"""
WorkerSession: the conversational state of one worker process.

State machine:
    idle --invoke--> busy --success--> idle
                          --failure--> error --invoke--> busy ...

Invocations are serialized by `_invoke_lock`, so two invokes never
interleave. Every read or write of state happens under the short-held
`_state_lock`, so status() and history() always see a whole snapshot and
can observe `busy` while an invocation waits on the LLM.
"""
import asyncio
import os
import signal
from collections.abc import Callable
from datetime import datetime, timezone
from enum import StrEnum

from loguru import logger as l

from worker import meta_config

from .base import ModelBase
from .commands import parse_command_batch
from .exceptions import UpstreamCallFailedError
from .executor import CommandExecutor
from .llm import AnthropicClient


class SessionState(StrEnum):
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"


class InvocationOutcome(ModelBase):
    result: str = ""
    success: bool
    error: str = ""


class StatusSnapshot(ModelBase):
    name: str
    state: SessionState
    last_invocation_time: str | None
    invocation_count: int


def _terminate_process() -> None:
    os.kill(os.getpid(), signal.SIGTERM)


class WorkerSession:

    def __init__(
            self,
            name: str,
            llm: AnthropicClient,
            *,
            autonomous: bool = True,
            system_prompt: str | None = None,
            executor: CommandExecutor | None = None,
            max_entries: int = meta_config.CHAT_LOG_MAX_ENTRIES,
            requester_label: str = meta_config.REQUESTER_LABEL,
            terminate_delay: float = meta_config.TERMINATE_GRACE_DELAY,
            exit_hook: Callable[[], None] = _terminate_process,
    ):
        if max_entries < 2 or max_entries % 2:
            raise ValueError("max_entries must be a positive even number")
        self.name = name
        self.llm = llm
        self.autonomous = autonomous
        self.system_prompt = system_prompt
        self.executor = executor or CommandExecutor()
        self.max_entries = max_entries
        self.requester_label = requester_label
        self.terminate_delay = terminate_delay
        self._exit_hook = exit_hook

        self.state = SessionState.IDLE
        self.invocation_count = 0
        self.last_invocation_time: str | None = None
        self.chat_log: list[str] = []

        self._invoke_lock = asyncio.Lock()
        self._state_lock = asyncio.Lock()
        self._termination_task: asyncio.Task | None = None

    @property
    def terminating(self) -> bool:
        return self._termination_task is not None

    def _trim(self) -> None:
        """Drops whole turns from the front until the log fits."""
        while len(self.chat_log) > self.max_entries:
            del self.chat_log[:2]

    async def invoke(self, text: str) -> InvocationOutcome:
        async with self._invoke_lock:
            async with self._state_lock:
                self.state = SessionState.BUSY
                history = list(self.chat_log)

            system_prompt = self.system_prompt if self.autonomous else None
            try:
                response = await self.llm.send_message(text, history, system_prompt)
                result = response
                if self.autonomous:
                    batch = parse_command_batch(response)
                    if batch is not None and batch.commands:
                        l.info(f"Executing {len(batch.commands)} commands")
                        result = await self.executor.run(batch)
            except UpstreamCallFailedError as e:
                l.error(f"Invocation failed: {e.message}")
                async with self._state_lock:
                    self.state = SessionState.ERROR
                return InvocationOutcome(success=False, error=e.message)
            except Exception as e:
                l.exception("Invocation failed unexpectedly")
                async with self._state_lock:
                    self.state = SessionState.ERROR
                return InvocationOutcome(success=False, error=f"{type(e).__name__}: {e}")
            except asyncio.CancelledError:
                self.state = SessionState.ERROR
                raise

            async with self._state_lock:
                self.chat_log.append(f"{self.requester_label}: {text}")
                self.chat_log.append(f"{self.name}: {response}")
                self._trim()
                self.invocation_count += 1
                self.last_invocation_time = datetime.now(timezone.utc).isoformat()
                self.state = SessionState.IDLE
            return InvocationOutcome(result=result, success=True)

    async def status(self) -> StatusSnapshot:
        async with self._state_lock:
            return StatusSnapshot(
                name=self.name,
                state=self.state,
                last_invocation_time=self.last_invocation_time,
                invocation_count=self.invocation_count,
            )

    async def history(self, lines: int = 0) -> list[str]:
        """Last `lines` entries, or the whole log when lines is 0."""
        if lines < 0:
            raise ValueError("lines must be non-negative")
        async with self._state_lock:
            if lines == 0:
                return list(self.chat_log)
            return self.chat_log[-lines:]

    def schedule_termination(self, reason: str) -> str:
        """Schedules process exit after the grace delay and returns the acknowledgement."""
        l.info(f"Worker being terminated: {reason}")
        if self._termination_task is None:
            self._termination_task = asyncio.create_task(self._terminate_later())
        return f"Shutting down... ({reason})"

    async def _terminate_later(self) -> None:
        await asyncio.sleep(self.terminate_delay)
        l.info("Exiting")
        self._exit_hook()
