"""
CommandExecutor: runs a command batch against the live filesystem, processes and network.

Commands run strictly in order. A failing command yields an ErrorResult
and the batch carries on; nothing a single command does can abort the
batch. Scratch memory (Remember/Recall, plans) lives on the executor and
persists across batches for the lifetime of the worker process.
"""
import asyncio
import os as sync_os
import re
import tomllib
import uuid
from collections.abc import Awaitable, Callable
from typing import Any
from xml.etree import ElementTree

import aiofiles
import aiohttp
import orjson
import yaml
from aiofiles import os as async_os
from loguru import logger as l

from worker import meta_config
from worker.utils.aiohttp_client_session_mixin import AioHttpClientSessionClassVarMixin
from worker.utils.subprocess import CommandFailedError, decode_output, run_cmd

from .commands import (
    Command,
    CommandBatch,
    DataFormat,
    DeleteCommand,
    EditCommand,
    ExecCommand,
    ListCommand,
    ParseCommand,
    PlanCommand,
    ReadCommand,
    RecallCommand,
    RememberCommand,
    ReportCommand,
    SearchCommand,
    StatusCommand,
    StatusLevel,
    TaskStatus,
    ThinkCommand,
    UpdatePlanCommand,
    WebFetchCommand,
    WriteCommand,
)
from .exceptions import CommandExecutionError
from .results import (
    CommandResult,
    EmptyResult,
    ErrorResult,
    FileInfo,
    FileListResult,
    SearchMatch,
    SearchResult,
    SuccessResult,
    ValueResult,
    render_report,
    render_result,
)


def xml_to_dict(element: ElementTree.Element) -> Any:
    """Element -> nested dicts: attributes as '@name', children by tag (lists when repeated), text as '#text'."""
    children = list(element)
    text = (element.text or "").strip()
    if not children and not element.attrib:
        return text

    node: dict[str, Any] = {f"@{key}": value for key, value in element.attrib.items()}
    for child in children:
        value = xml_to_dict(child)
        if child.tag in node:
            if not isinstance(node[child.tag], list):
                node[child.tag] = [node[child.tag]]
            node[child.tag].append(value)
        else:
            node[child.tag] = value
    if text:
        node["#text"] = text
    return node


class CommandExecutor(AioHttpClientSessionClassVarMixin):

    def __init__(
            self,
            exec_timeout: float = meta_config.EXEC_TIMEOUT,
            fetch_timeout: float = meta_config.FETCH_TIMEOUT,
            fetch_max_chars: int = meta_config.FETCH_MAX_CHARS,
    ):
        self.exec_timeout = exec_timeout
        self.fetch_timeout = fetch_timeout
        self.fetch_max_chars = fetch_max_chars
        self.memory: dict[str, str] = {}
        self.plans: dict[str, dict[str, TaskStatus]] = {}
        """plan_id -> {task_id -> status}; task ids are "1", "2", ... in plan order."""
        self.plan_tasks: dict[str, list[str]] = {}

        self._handlers: dict[type, Callable[[Any], Awaitable[CommandResult]]] = {
            ReadCommand: self._read,
            WriteCommand: self._write,
            EditCommand: self._edit,
            DeleteCommand: self._delete,
            ExecCommand: self._exec,
            ListCommand: self._list,
            SearchCommand: self._search,
            ThinkCommand: self._think,
            PlanCommand: self._plan,
            UpdatePlanCommand: self._update_plan,
            RememberCommand: self._remember,
            RecallCommand: self._recall,
            WebFetchCommand: self._web_fetch,
            ParseCommand: self._parse,
            StatusCommand: self._status,
            ReportCommand: self._report,
        }

    async def execute(self, command: Command) -> CommandResult:
        """Runs one command. Never raises for command-level failures."""
        handler = self._handlers[type(command)]
        l.debug(f"Executing {command.cmd}: {command.summary()}")
        try:
            return await handler(command)
        except CommandExecutionError as e:
            return ErrorResult(text=e.message)
        except OSError as e:
            return ErrorResult(text=f"{command.cmd} failed: {e}")
        except Exception as e:
            l.exception(f"Unexpected failure in {command.cmd}")
            return ErrorResult(text=f"{command.cmd} failed: {type(e).__name__}: {e}")

    async def execute_batch(self, batch: CommandBatch) -> list[tuple[Command, CommandResult]]:
        results = []
        for command in batch.commands:
            results.append((command, await self.execute(command)))
        return results

    async def run(self, batch: CommandBatch) -> str:
        """Executes the batch and renders every outcome into one report."""
        outcomes = await self.execute_batch(batch)
        return render_report([self._render(command, result) for command, result in outcomes])

    @staticmethod
    def _render(command: Command, result: CommandResult) -> str:
        """Renders one outcome; a result that cannot be rendered becomes an error line for that command only."""
        try:
            return render_result(result, command.summary())
        except (TypeError, ValueError) as e:
            l.warning(f"Could not render {command.cmd} result: {e}")
            return render_result(ErrorResult(text=f"{command.cmd} result could not be rendered: {e}"), command.summary())

    # --- File operations ---

    async def _read(self, command: ReadCommand) -> CommandResult:
        try:
            async with aiofiles.open(command.path, 'r', encoding='utf-8') as f:
                return SuccessResult(text=await f.read())
        except (OSError, UnicodeDecodeError) as e:
            raise CommandExecutionError(f"Failed to read {command.path}: {e}") from e

    async def _write(self, command: WriteCommand) -> CommandResult:
        try:
            async with aiofiles.open(command.path, 'w', encoding='utf-8') as f:
                await f.write(command.content)
        except OSError as e:
            raise CommandExecutionError(f"Failed to write to {command.path}: {e}") from e
        return SuccessResult(text=f"Successfully wrote to {command.path}")

    async def _edit(self, command: EditCommand) -> CommandResult:
        try:
            async with aiofiles.open(command.path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise CommandExecutionError(f"Failed to read {command.path}: {e}") from e

        count = content.count(command.pattern) if command.pattern else 0
        if count == 0:
            raise CommandExecutionError(f"Pattern not found in {command.path}")

        try:
            async with aiofiles.open(command.path, 'w', encoding='utf-8') as f:
                await f.write(content.replace(command.pattern, command.replacement))
        except OSError as e:
            raise CommandExecutionError(f"Failed to write to {command.path}: {e}") from e
        return SuccessResult(text=f"Successfully edited {command.path} ({count} replacement{'s' if count != 1 else ''})")

    async def _delete(self, command: DeleteCommand) -> CommandResult:
        try:
            await async_os.remove(command.path)
        except OSError as e:
            raise CommandExecutionError(f"Failed to delete {command.path}: {e}") from e
        return SuccessResult(text=f"Successfully deleted {command.path}")

    # --- System operations ---

    async def _exec(self, command: ExecCommand) -> CommandResult:
        try:
            stdout, _ = await run_cmd([command.command, *command.args], timeout=self.exec_timeout)
        except CommandFailedError as e:
            raise CommandExecutionError(f"Command failed (exit {e.returncode}): {e.stderr.strip()}") from e
        except TimeoutError as e:
            raise CommandExecutionError(str(e)) from e
        except OSError as e:
            raise CommandExecutionError(f"Failed to execute command: {e}") from e
        return SuccessResult(text=decode_output(stdout).rstrip("\n"))

    async def _list(self, command: ListCommand) -> CommandResult:
        try:
            names = sorted(await async_os.listdir(command.path))
        except OSError as e:
            raise CommandExecutionError(f"Failed to list directory {command.path}: {e}") from e

        entries: list[FileInfo] = []
        for name in names:
            if command.pattern and command.pattern not in name:
                continue
            full_path = sync_os.path.join(command.path, name)
            try:
                stat = await async_os.stat(full_path)
                is_dir = await async_os.path.isdir(full_path)
            except OSError:
                continue
            entries.append(FileInfo(path=full_path, is_dir=is_dir, size=0 if is_dir else stat.st_size))
        return FileListResult(entries=entries)

    async def _search(self, command: SearchCommand) -> CommandResult:
        try:
            regex = re.compile(command.pattern)
        except re.error as e:
            raise CommandExecutionError(f"Invalid search pattern {command.pattern!r}: {e}") from e

        root = command.path or "."
        suffix = None
        if command.file_type:
            suffix = command.file_type if command.file_type.startswith(".") else f".{command.file_type}"

        if await async_os.path.isfile(root):
            files = [root]
        elif await async_os.path.isdir(root):
            files = await self._walk_files(root)
        else:
            raise CommandExecutionError(f"Search path does not exist: {root}")

        matches: list[SearchMatch] = []
        for file_path in files:
            if suffix and not file_path.endswith(suffix):
                continue
            try:
                async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
                    line_number = 0
                    async for line in f:
                        line_number += 1
                        if regex.search(line):
                            matches.append(SearchMatch(file=file_path, line=line_number, content=line.strip()))
            except (OSError, UnicodeDecodeError):
                continue
        return SearchResult(matches=matches)

    @staticmethod
    async def _walk_files(root: str) -> list[str]:
        """Regular files below root in sorted order; hidden directories and symlinked directories are skipped."""
        files: list[str] = []
        pending = [root]
        while pending:
            directory = pending.pop()
            try:
                names = sorted(await async_os.listdir(directory))
            except OSError:
                continue
            subdirs = []
            for name in names:
                full_path = sync_os.path.join(directory, name)
                if await async_os.path.islink(full_path):
                    if await async_os.path.isfile(full_path):
                        files.append(full_path)
                    continue
                if await async_os.path.isdir(full_path):
                    if not name.startswith("."):
                        subdirs.append(full_path)
                elif await async_os.path.isfile(full_path):
                    files.append(full_path)
            pending.extend(reversed(subdirs))
        return files

    # --- Planning & context ---

    async def _think(self, command: ThinkCommand) -> CommandResult:
        l.info(f"Thinking: {command.reasoning}")
        return EmptyResult()

    async def _plan(self, command: PlanCommand) -> CommandResult:
        plan_id = uuid.uuid4().hex[:8]
        self.plan_tasks[plan_id] = list(command.tasks)
        self.plans[plan_id] = {str(index): TaskStatus.PENDING for index in range(1, len(command.tasks) + 1)}
        l.info(f"Created plan {plan_id} with {len(command.tasks)} tasks")
        lines = [f"Created plan {plan_id}"]
        lines.extend(f"  {index}. {task}" for index, task in enumerate(command.tasks, start=1))
        return SuccessResult(text="\n".join(lines))

    async def _update_plan(self, command: UpdatePlanCommand) -> CommandResult:
        tasks = self.plans.get(command.plan_id)
        if tasks is None:
            raise CommandExecutionError(f"Unknown plan: {command.plan_id}")
        if command.task_id not in tasks:
            raise CommandExecutionError(f"Unknown task {command.task_id} in plan {command.plan_id}")
        tasks[command.task_id] = command.status
        l.info(f"Updated plan {command.plan_id} task {command.task_id} to {command.status}")
        title = self.plan_tasks[command.plan_id][int(command.task_id) - 1]
        return SuccessResult(text=f"Task {command.task_id} ({title}) is now {command.status}")

    async def _remember(self, command: RememberCommand) -> CommandResult:
        self.memory[command.key] = command.value
        return SuccessResult(text=f"Remembered: {command.key}")

    async def _recall(self, command: RecallCommand) -> CommandResult:
        if command.key not in self.memory:
            raise CommandExecutionError(f"No memory found for key: {command.key}")
        return SuccessResult(text=self.memory[command.key])

    # --- External resources ---

    async def _web_fetch(self, command: WebFetchCommand) -> CommandResult:
        regex = None
        if command.extract:
            try:
                regex = re.compile(command.extract)
            except re.error as e:
                raise CommandExecutionError(f"Invalid extract pattern {command.extract!r}: {e}") from e

        try:
            async with self.http_session.get(
                command.url,
                timeout=aiohttp.ClientTimeout(total=self.fetch_timeout),
            ) as response:
                text = await response.text(errors='replace')
                if response.status >= 400:
                    raise CommandExecutionError(f"Failed to fetch {command.url}: HTTP {response.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CommandExecutionError(f"Failed to fetch {command.url}: {type(e).__name__}: {e}") from e

        if regex is not None:
            text = "\n".join(line for line in text.splitlines() if regex.search(line))
            if not text:
                return SuccessResult(text=f"Fetched {command.url}: no lines matched {command.extract!r}")
        if len(text) > self.fetch_max_chars:
            text = f"{text[:self.fetch_max_chars]}\n…truncated {len(text) - self.fetch_max_chars} characters"
        return SuccessResult(text=text)

    async def _parse(self, command: ParseCommand) -> CommandResult:
        try:
            match command.format:
                case DataFormat.JSON:
                    value = orjson.loads(command.content)
                case DataFormat.YAML:
                    value = yaml.safe_load(command.content)
                case DataFormat.TOML:
                    value = tomllib.loads(command.content)
                case DataFormat.XML:
                    root = ElementTree.fromstring(command.content)
                    value = {root.tag: xml_to_dict(root)}
        except (orjson.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError, ElementTree.ParseError) as e:
            raise CommandExecutionError(f"Failed to parse {command.format.upper()}: {e}") from e
        return ValueResult(value=value)

    # --- Reporting ---

    async def _status(self, command: StatusCommand) -> CommandResult:
        match command.level:
            case StatusLevel.INFO:
                l.info(command.message)
            case StatusLevel.WARNING:
                l.warning(command.message)
            case StatusLevel.ERROR:
                l.error(command.message)
            case StatusLevel.SUCCESS:
                l.success(command.message)
        return EmptyResult()

    async def _report(self, command: ReportCommand) -> CommandResult:
        parts = [f"# {command.title}\n"]
        for section in command.sections:
            parts.append(f"## {section.title}\n\n{section.content}\n")
        report = "\n".join(parts).rstrip("\n")
        l.info(f"Report generated: {command.title}")
        return SuccessResult(text=report)
