"""
Command batch model.

An LLM response in autonomous mode is a JSON object
`{"commands": [{"cmd": "Write", ...}, ...]}`. Each command is one member
of a closed union discriminated by its `cmd` tag.
"""
import re
from enum import StrEnum
from typing import Annotated, Literal, TypeAlias

from loguru import logger as l
from pydantic import Field, ValidationError

from .base import LenientModelBase


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class DataFormat(StrEnum):
    JSON = "json"
    YAML = "yaml"
    TOML = "toml"
    XML = "xml"


class StatusLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class Section(LenientModelBase):
    title: str
    content: str


class CommandBase(LenientModelBase):

    def summary(self) -> str:
        """Short human-readable description used when a command yields no output."""
        return self.cmd


# --- File operations ---

class ReadCommand(CommandBase):
    cmd: Literal["Read"] = "Read"
    path: str

    def summary(self) -> str:
        return f"Read {self.path}"


class WriteCommand(CommandBase):
    cmd: Literal["Write"] = "Write"
    path: str
    content: str

    def summary(self) -> str:
        return f"Write {self.path}"


class EditCommand(CommandBase):
    cmd: Literal["Edit"] = "Edit"
    path: str
    pattern: str
    """Literal text to replace; every occurrence is replaced."""
    replacement: str

    def summary(self) -> str:
        return f"Edit {self.path}"


class DeleteCommand(CommandBase):
    cmd: Literal["Delete"] = "Delete"
    path: str

    def summary(self) -> str:
        return f"Delete {self.path}"


# --- System operations ---

class ExecCommand(CommandBase):
    cmd: Literal["Exec"] = "Exec"
    command: str
    args: list[str] = []

    def summary(self) -> str:
        return " ".join([self.command, *self.args])


class ListCommand(CommandBase):
    cmd: Literal["List"] = "List"
    path: str
    pattern: str | None = None
    """Substring filter on entry names."""

    def summary(self) -> str:
        return f"List {self.path}"


class SearchCommand(CommandBase):
    cmd: Literal["Search"] = "Search"
    pattern: str
    """Regular expression matched against each line."""
    path: str | None = None
    file_type: str | None = None
    """File extension filter, with or without the leading dot."""

    def summary(self) -> str:
        return f"Search {self.pattern!r} in {self.path or '.'}"


# --- Planning & context ---

class ThinkCommand(CommandBase):
    cmd: Literal["Think"] = "Think"
    reasoning: str

    def summary(self) -> str:
        return "Thought recorded"


class PlanCommand(CommandBase):
    cmd: Literal["Plan"] = "Plan"
    tasks: list[str]


class UpdatePlanCommand(CommandBase):
    cmd: Literal["UpdatePlan"] = "UpdatePlan"
    plan_id: str
    task_id: str
    status: TaskStatus

    def summary(self) -> str:
        return f"Task {self.task_id} of plan {self.plan_id} is now {self.status}"


class RememberCommand(CommandBase):
    cmd: Literal["Remember"] = "Remember"
    key: str
    value: str


class RecallCommand(CommandBase):
    cmd: Literal["Recall"] = "Recall"
    key: str


# --- External resources ---

class WebFetchCommand(CommandBase):
    cmd: Literal["WebFetch"] = "WebFetch"
    url: str
    extract: str | None = None
    """Regular expression; only matching lines of the body are kept."""

    def summary(self) -> str:
        return f"Fetch {self.url}"


class ParseCommand(CommandBase):
    cmd: Literal["Parse"] = "Parse"
    content: str
    format: DataFormat


# --- Reporting ---

class StatusCommand(CommandBase):
    cmd: Literal["Status"] = "Status"
    message: str
    level: StatusLevel = StatusLevel.INFO

    def summary(self) -> str:
        return f"[{self.level}] {self.message}"


class ReportCommand(CommandBase):
    cmd: Literal["Report"] = "Report"
    title: str
    sections: list[Section] = []


Command: TypeAlias = Annotated[
    ReadCommand
    | WriteCommand
    | EditCommand
    | DeleteCommand
    | ExecCommand
    | ListCommand
    | SearchCommand
    | ThinkCommand
    | PlanCommand
    | UpdatePlanCommand
    | RememberCommand
    | RecallCommand
    | WebFetchCommand
    | ParseCommand
    | StatusCommand
    | ReportCommand,
    Field(discriminator="cmd"),
]


class CommandBatch(LenientModelBase):
    """Ordered commands derived from one LLM response."""
    commands: list[Command]


_CODE_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n(?P<body>.*?)\n?```$", re.DOTALL)


def parse_command_batch(text: str) -> CommandBatch | None:
    """
    Parses an LLM response as a command batch.

    Accepts the bare JSON object or the object wrapped in one Markdown code
    fence. Returns None for anything else; callers treat that response as
    plain text.
    """
    candidate = text.strip()
    if match := _CODE_FENCE_RE.match(candidate):
        candidate = match.group("body").strip()
    if not candidate.startswith("{"):
        return None
    try:
        return CommandBatch.model_validate_json(candidate)
    except ValidationError as e:
        l.debug(f"Response is not a command batch: {e.error_count()} validation error(s)")
        return None
