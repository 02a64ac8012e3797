"""
fleet: command line front-end for the Orchestrator.

Every command opens an Orchestrator (which runs discovery), performs one
operation and prints the outcome. Failures are reported in the output;
the exit code stays 0 unless click rejects the arguments.
"""
import asyncio
import functools
import sys
from datetime import datetime
from typing import Any

import click
from loguru import logger as l

from orchestrator import meta_config
from orchestrator.models import (
    BatchReport,
    ContainerRuntimeError,
    Orchestrator,
    OrchestratorError,
    RpcError,
)

STATUS_BOX_MIN_WIDTH = 45

_HANDLED_ERRORS = (OrchestratorError, ContainerRuntimeError, RpcError)


def async_cmd(func):
    """Runs an async click command via asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def configure_logging(verbose: bool = False) -> None:
    l.remove()
    l.add(sys.stderr, level="DEBUG" if verbose else meta_config.LOG_LEVEL)


async def _open_orchestrator() -> Orchestrator | None:
    try:
        return await Orchestrator.open()
    except _HANDLED_ERRORS as e:
        click.echo(f"❌ {e.message}")
        return None


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------

def print_summary(report: BatchReport, verb: str) -> None:
    if report.total > 1:
        click.echo(f"\n📊 Summary: {report.summary} workers {verb} successfully")


def format_timestamp(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return value


def render_status_box(name: str, state: str, last_invocation_time: str | None) -> list[str]:
    header = f" Worker: {name} "
    width = max(STATUS_BOX_MIN_WIDTH, len(header) + 4)
    inner = width - 4
    pad = inner - len(header)
    left = pad // 2 if pad > 0 else 0
    right = pad - left if pad > 0 else 0

    lines = [f"┌─{'─' * left}{header}{'─' * right}─┐"]
    lines.append(f"│ {f'State: {state}':<{inner}} │")
    short_time = format_timestamp(last_invocation_time)
    if short_time:
        lines.append(f"│ {f'Last Message: {short_time}':<{inner}} │")
    lines.append(f"└{'─' * (width - 2)}┘")
    return lines


def style_chat_line(line: str) -> str:
    """Bold speaker label; blue for the orchestrator, green for workers."""
    speaker, sep, message = line.partition(":")
    if not sep:
        return line
    if speaker == meta_config.REQUESTER_LABEL:
        return click.style(speaker, fg="blue", bold=True) + sep + message
    return click.style(speaker, fg="green", bold=True) + sep + message


def echo_history(history: list[str]) -> None:
    for entry in history:
        for part in entry.splitlines() or [""]:
            click.echo(style_chat_line(part))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr")
def cli(verbose: bool) -> None:
    """Spawn, inspect and talk to a fleet of LLM worker containers."""
    configure_logging(verbose)


@cli.command("create")
@click.argument("names", nargs=-1)
@click.option("--no-system-prompt", is_flag=True, help="Plain chat workers: replies are never run as commands")
@async_cmd
async def create_cmd(names: tuple[str, ...], no_system_prompt: bool) -> None:
    """Create and start worker containers."""
    if not names:
        click.echo("❌ No worker names provided")
        return
    orchestrator = await _open_orchestrator()
    if orchestrator is None:
        return
    async with orchestrator:
        for name in names:
            click.echo(f"🌟 Creating worker {name}...")
        report = await orchestrator.create_many(list(names), autonomous=not no_system_prompt)
        for outcome in report.outcomes:
            if outcome.success:
                click.echo(f"✨ Worker {outcome.name} is ready")
            else:
                click.echo(f"💀 Failed to create {outcome.name}: {outcome.error}")
        print_summary(report, "created")


@cli.command("list")
@async_cmd
async def list_cmd() -> None:
    """List connected workers."""
    orchestrator = await _open_orchestrator()
    if orchestrator is None:
        return
    async with orchestrator:
        names = await orchestrator.list_workers()
    if not names:
        click.echo("No workers found.")
        return
    for name in names:
        click.echo(f"🤖 {name}")


@cli.command("rm")
@click.argument("names", nargs=-1)
@click.option("--all", "-a", "remove_all", is_flag=True, help="Remove every worker")
@async_cmd
async def rm_cmd(names: tuple[str, ...], remove_all: bool) -> None:
    """Stop and remove worker containers."""
    if not names and not remove_all:
        click.echo("❌ No worker names provided (use --all for all)")
        return
    orchestrator = await _open_orchestrator()
    if orchestrator is None:
        return
    async with orchestrator:
        if remove_all:
            targets = await orchestrator.registered_names()
            if not targets:
                click.echo("📭 No workers to remove")
                return
            click.echo(f"🗑️  Removing all {len(targets)} workers...")
        else:
            targets = list(names)
        for name in targets:
            click.echo(f"💀 Removing worker {name}...")
        report = await orchestrator.remove_many(targets)
        for outcome in report.outcomes:
            if outcome.success:
                click.echo(f"⚰️  Worker {outcome.name} has been removed")
            else:
                click.echo(f"⚠️  Failed to remove {outcome.name}: {outcome.error}")
        print_summary(report, "removed")


@cli.command("tell")
@click.argument("name")
@click.argument("text", nargs=-1, required=True)
@async_cmd
async def tell_cmd(name: str, text: tuple[str, ...]) -> None:
    """Send a message to one worker and print its reply."""
    orchestrator = await _open_orchestrator()
    if orchestrator is None:
        return
    async with orchestrator:
        try:
            reply = await orchestrator.invoke(name, " ".join(text))
        except _HANDLED_ERRORS as e:
            click.echo(f"❌ {e.message}")
            return
    click.echo(reply)


@cli.command("ps")
@click.option("--lines", "-l", default=4, show_default=True, type=click.IntRange(min=0),
              help="Recent chat history lines per worker")
@async_cmd
async def ps_cmd(lines: int) -> None:
    """Show status and recent history of every connected worker."""
    orchestrator = await _open_orchestrator()
    if orchestrator is None:
        return
    async with orchestrator:
        statuses = await orchestrator.status_all()
        if not statuses:
            click.echo("No workers found.")
            return
        histories = await orchestrator.history_many(list(statuses), lines)

    for index, (name, status) in enumerate(statuses.items()):
        if index:
            click.echo()
        for row in render_status_box(name, status.state, status.last_invocation_time):
            click.echo(row)
        history = histories.get(name)
        if history is None:
            click.echo("\nCould not retrieve chat history")
        elif history:
            click.echo("\nRecent Chat History:")
            echo_history(history)


@cli.command("show")
@click.argument("name")
@click.option("--lines", "-l", default=0, show_default=True, type=click.IntRange(min=0),
              help="Number of history lines (0 for all)")
@async_cmd
async def show_cmd(name: str, lines: int) -> None:
    """Print one worker's chat history."""
    orchestrator = await _open_orchestrator()
    if orchestrator is None:
        return
    async with orchestrator:
        try:
            history = await orchestrator.history(name, lines)
        except _HANDLED_ERRORS as e:
            click.echo(f"❌ {e.message}")
            return
    if not history:
        click.echo(f"Worker {name} has no chat history yet.")
        return
    echo_history(history)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
