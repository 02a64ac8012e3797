"""
Command results and their rendering into the report returned by Invoke.
"""
from typing import Any, Literal

import orjson

from worker import meta_config

from .base import ModelBase

SUCCESS_MARK = "✓"
ERROR_MARK = "✗"


class FileInfo(ModelBase):
    path: str
    is_dir: bool
    size: int


class SearchMatch(ModelBase):
    file: str
    line: int
    """1-based line number."""
    content: str


class SuccessResult(ModelBase):
    kind: Literal["success"] = "success"
    text: str


class ErrorResult(ModelBase):
    kind: Literal["error"] = "error"
    text: str


class FileListResult(ModelBase):
    kind: Literal["file_list"] = "file_list"
    entries: list[FileInfo]


class SearchResult(ModelBase):
    kind: Literal["search"] = "search"
    matches: list[SearchMatch]


class ValueResult(ModelBase):
    kind: Literal["value"] = "value"
    value: Any


class EmptyResult(ModelBase):
    kind: Literal["empty"] = "empty"


CommandResult = SuccessResult | ErrorResult | FileListResult | SearchResult | ValueResult | EmptyResult


def _capped(lines: list[str], limit: int) -> list[str]:
    if len(lines) <= limit:
        return lines
    return [*lines[:limit], f"…and {len(lines) - limit} more"]


def render_result(
        result: CommandResult,
        summary: str,
        limit: int = meta_config.RESULT_DISPLAY_LIMIT,
) -> str:
    """
    Renders one command outcome.

    `summary` describes the command and is used for results that carry no
    text of their own.
    """
    match result:
        case SuccessResult(text=text):
            return f"{SUCCESS_MARK} {text}" if text else f"{SUCCESS_MARK} {summary}"
        case ErrorResult(text=text):
            return f"{ERROR_MARK} {text}"
        case FileListResult(entries=entries):
            rows = [
                f"  {entry.path}/" if entry.is_dir else f"  {entry.path} ({entry.size} bytes)"
                for entry in entries
            ]
            return "\n".join([f"{SUCCESS_MARK} {summary}: {len(entries)} entries", *_capped(rows, limit)])
        case SearchResult(matches=matches):
            rows = [f"  {match.file}:{match.line}: {match.content}" for match in matches]
            return "\n".join([f"{SUCCESS_MARK} {summary}: {len(matches)} matches", *_capped(rows, limit)])
        case ValueResult(value=value):
            pretty = orjson.dumps(value, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS, default=str).decode()
            return f"{SUCCESS_MARK} {pretty}"
        case EmptyResult():
            return f"{SUCCESS_MARK} {summary}"
    raise TypeError(f"Unknown command result: {result!r}")


def render_report(rendered: list[str]) -> str:
    return "\n".join(rendered)
