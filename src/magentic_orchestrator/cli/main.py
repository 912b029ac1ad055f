#!/usr/bin/env python3
"""
Magentic Orchestrator CLI

Command-line interface for planning and executing tasks across agents:
- magentic run <task>: Plan and execute a task (Ctrl-C aborts cooperatively)
- magentic plan <task>: Show the plan without executing it
- magentic chat [message]: Talk to a single agent
- magentic history / show <id>: Browse stored executions
- magentic config: Configuration and API keys
- magentic serve: Start the HTTP/WebSocket server
"""

import asyncio
import logging
import signal
from pathlib import Path

import keyring.errors
import typer
from rich.console import Console
from rich.prompt import Prompt

from .. import __version__
from ..core.models import AgentKind, FileAttachment, RunResult
from ..core.orchestrator import Orchestrator
from ..settings.storage import SettingsStorage
from ..state.session_store import ExecutionSessionStore
from .output import OutputManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

app = typer.Typer(
    name="magentic",
    help="Magentic Orchestrator - plan and execute tasks across LLM agents",
    add_completion=False,
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management", no_args_is_help=True)
app.add_typer(config_app, name="config")

console = Console()
output = OutputManager(console)


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _load_files(paths: list[Path] | None) -> list[FileAttachment]:
    files = []
    for path in paths or []:
        try:
            files.append(FileAttachment.from_path(path))
        except OSError as e:
            output.print_error(f"Cannot read {path}: {e}")
            raise typer.Exit(1)
    return files


def _build_orchestrator(storage: SettingsStorage) -> Orchestrator:
    settings = storage.load()
    _configure_logging(settings.log_level)
    try:
        return Orchestrator.from_settings(settings, storage)
    except ValueError as e:
        output.print_error(str(e))
        output.print("[dim]Set an API key with: magentic config set-key <provider>[/dim]")
        raise typer.Exit(1)


def _parse_agent(name: str) -> AgentKind:
    try:
        return AgentKind(name.lower())
    except ValueError:
        valid = ", ".join(a.value for a in AgentKind)
        output.print_error(f"Unknown agent '{name}'. Choose one of: {valid}")
        raise typer.Exit(1)


@app.command()
def run(
    task: str = typer.Argument(..., help="Task description"),
    file: list[Path] | None = typer.Option(None, "--file", "-f", help="Attach a file (repeatable)"),
    plan_only: bool = typer.Option(False, "--plan-only", help="Only create and show the plan"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tool calls"),
):
    """
    Plan and execute a task.

    Press Ctrl-C once to abort after the current checkpoint.

    Examples:
        magentic run "Summarize the attached report" --file report.pdf
        magentic run "Compare Q1 and Q2 sales" --plan-only
    """
    output.verbose = verbose
    files = _load_files(file)
    orchestrator = _build_orchestrator(SettingsStorage())

    output.print_header(f"Magentic Orchestrator v{__version__}", task)

    if plan_only:
        asyncio.run(_show_plan(orchestrator, task, files))
        return

    result = asyncio.run(_run_task(orchestrator, task, files))
    if result.failed:
        raise typer.Exit(1)
    if result.aborted:
        raise typer.Exit(130)


@app.command()
def plan(
    task: str = typer.Argument(..., help="Task description"),
    file: list[Path] | None = typer.Option(None, "--file", "-f", help="Attach a file (repeatable)"),
):
    """Create and show a plan without executing it."""
    files = _load_files(file)
    orchestrator = _build_orchestrator(SettingsStorage())
    asyncio.run(_show_plan(orchestrator, task, files))


async def _show_plan(orchestrator: Orchestrator, task: str, files: list[FileAttachment]) -> None:
    async with orchestrator:
        with output.spinner("Planning..."):
            plan = await orchestrator.create_plan(task, files)
    output.plan_table(plan)


async def _run_task(
    orchestrator: Orchestrator,
    task: str,
    files: list[FileAttachment],
) -> RunResult:
    """Execute a task, turning Ctrl-C into a cooperative abort."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _request_abort, orchestrator)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        # Signal handlers are unavailable on Windows event loops
        handler_installed = False

    unsubscribe = orchestrator.subscribe(output.handle_event)
    try:
        async with orchestrator:
            result = await orchestrator.run_task(task, files)
    finally:
        unsubscribe()
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    style = "red" if result.failed else "yellow" if result.aborted else "green"
    output.panel(result.result or "(no output)", title="Result", border_style=style)
    output.print(f"[dim]Execution: {result.session_id}[/dim]")
    return result


def _request_abort(orchestrator: Orchestrator) -> None:
    output.print_warning("Abort requested, stopping at the next checkpoint...")
    orchestrator.abort()


@app.command()
def chat(
    message: str | None = typer.Argument(None, help="Message (omit for interactive mode)"),
    agent: str = typer.Option("claude", "--agent", "-a", help="Agent to talk to"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tool calls"),
):
    """
    Talk to a single agent directly, without planning.

    Without a message an interactive session starts; use /clear to reset
    the conversation and /exit to quit.
    """
    output.verbose = verbose
    kind = _parse_agent(agent)
    orchestrator = _build_orchestrator(SettingsStorage())
    asyncio.run(_run_chat(orchestrator, kind, message))


async def _run_chat(orchestrator: Orchestrator, agent: AgentKind, message: str | None) -> None:
    unsubscribe = orchestrator.subscribe(output.handle_event)
    try:
        async with orchestrator:
            if message is not None:
                await _chat_once(orchestrator, agent, message)
                return

            output.print(f"[dim]Chatting with {agent.value}. /clear resets, /exit quits.[/dim]")
            while True:
                text = Prompt.ask("[bold cyan]you[/bold cyan]").strip()
                if not text:
                    continue
                if text in ("/exit", "/quit"):
                    break
                if text == "/clear":
                    orchestrator.clear_history()
                    output.print_info("Conversation cleared")
                    continue
                await _chat_once(orchestrator, agent, text)
    finally:
        unsubscribe()


async def _chat_once(orchestrator: Orchestrator, agent: AgentKind, message: str) -> None:
    try:
        with output.spinner(f"{agent.value} is thinking..."):
            reply = await orchestrator.chat(message, agent=agent)
    except Exception as e:
        logger.debug("Chat failed", exc_info=True)
        output.print_error(str(e))
        return
    output.panel(reply, title=agent.value, border_style="green")


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of executions to list"),
):
    """List stored executions, newest first."""
    storage = SettingsStorage()
    store = ExecutionSessionStore(storage.executions_dir(storage.load()))
    executions = store.list()
    if not executions:
        output.print_info("No executions recorded yet")
        return
    output.executions_table(executions[:limit])


@app.command()
def show(
    execution_id: str = typer.Argument(..., help="Execution id"),
):
    """Show one stored execution with its steps and tool calls."""
    storage = SettingsStorage()
    store = ExecutionSessionStore(storage.executions_dir(storage.load()))
    try:
        session = store.load(execution_id)
    except ValueError as e:
        output.print_error(str(e))
        raise typer.Exit(1)
    if session is None:
        output.print_error(f"Execution not found: {execution_id}")
        raise typer.Exit(1)
    output.session_detail(session)


@config_app.command("show")
def config_show():
    """Show the current configuration."""
    storage = SettingsStorage()
    settings = storage.load()

    config = {
        "Config file": storage.config_file,
        "Executions": storage.executions_dir(settings),
        "Default agent": settings.default_agent,
        "Max tool iterations": settings.max_tool_iterations,
        "Max tool output chars": settings.max_tool_output_chars,
        "Max delegation depth": settings.max_delegation_depth,
        "Rate-limit retries": settings.rate_limit_retries,
    }
    for agent in settings.agents:
        provider = agent.get_provider()
        if provider == "ollama":
            key = "n/a"
        else:
            key = "set" if storage.has_api_key(provider) else "(not set)"
        state = "enabled" if agent.enabled else "disabled"
        config[f"Agent {agent.name}"] = (
            f"{state}, {provider}, {agent.model or '(default model)'}, key {key}"
        )
    for server in settings.mcp_servers:
        config[f"MCP {server.name}"] = " ".join([server.command, *server.args])

    output.config_display(config)


@config_app.command("set-key")
def config_set_key(
    provider: str = typer.Argument(..., help="Provider name (claude, gemini, openai)"),
    api_key: str = typer.Option(..., "--key", prompt=True, hide_input=True, help="API key"),
):
    """Store an API key in the system keyring."""
    storage = SettingsStorage()
    try:
        storage.set_api_key(provider, api_key)
    except keyring.errors.KeyringError as e:
        output.print_error(f"Keyring unavailable: {e}")
        raise typer.Exit(1)
    output.print_success(f"API key set for: {provider}")


@config_app.command("delete-key")
def config_delete_key(
    provider: str = typer.Argument(..., help="Provider name"),
):
    """Remove an API key from the system keyring."""
    SettingsStorage().delete_api_key(provider)
    output.print_success(f"API key removed for: {provider}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8765, "--port", "-p", help="Port"),
):
    """Start the HTTP and WebSocket server."""
    from ..server.app import run_server

    _configure_logging(SettingsStorage().load().log_level)
    output.print_info(f"Serving on http://{host}:{port}")
    run_server(host=host, port=port)


@app.command()
def version():
    """Show version information."""
    output.print(f"Magentic Orchestrator v{__version__}")


def main():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
