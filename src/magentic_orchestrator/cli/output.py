"""
Rich Terminal Output for the Magentic Orchestrator CLI

Plans, execution history and live run events rendered with Rich tables,
panels and styled text.
"""

from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..core.events import EventType, ExecutionEvent
from ..core.models import ExecutionSession, Plan


class OutputManager:
    """
    Manages rich terminal output for the CLI.

    Provides consistent styling for:
    - Plan and step tables
    - Execution history listings
    - Live run events
    """

    # Status icons
    ICONS = {
        "executing": "[yellow]>[/yellow]",
        "completed": "[green]v[/green]",
        "error": "[red]x[/red]",
        "aborted": "[yellow]![/yellow]",
    }

    def __init__(self, console: Console | None = None, verbose: bool = False):
        """
        Initialize the output manager.

        Args:
            console: Rich Console instance (creates one if not provided)
            verbose: Also show tool calls
        """
        self.console = console or Console()
        self.verbose = verbose

    # ==================== Basic Output ====================

    def print(self, message: str = "", style: str | None = None) -> None:
        self.console.print(message, style=style)

    def print_header(self, title: str, subtitle: str | None = None) -> None:
        self.console.print()
        self.console.print(f"[bold blue]{title}[/bold blue]")
        if subtitle:
            self.console.print(f"[dim]{subtitle}[/dim]")
        self.console.print()

    def print_success(self, message: str) -> None:
        self.console.print(f"[green]v[/green] {message}")

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]x[/red] {message}")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def print_info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def panel(self, content: str, title: str | None = None, border_style: str = "blue") -> None:
        self.console.print(Panel(escape(content), title=title, border_style=border_style))

    @contextmanager
    def spinner(self, message: str = "Working..."):
        """Display a spinner during an operation."""
        with self.console.status(message) as status:
            yield status

    # ==================== Plans ====================

    def plan_table(self, plan: Plan) -> None:
        """
        Display a plan as a table.

        Args:
            plan: Plan to display
        """
        table = Table(title=f"Plan: {escape(plan.goal)}")
        table.add_column("#", style="dim", width=4)
        table.add_column("Agent", style="cyan", width=10)
        table.add_column("Description", style="white")
        table.add_column("Files", style="dim")

        for step in plan.steps:
            agent = step.agent.value
            if step.model:
                agent += f"\n[dim]{escape(step.model)}[/dim]"
            table.add_row(
                str(step.step),
                agent,
                escape(step.description),
                escape(", ".join(step.required_files or [])),
            )

        self.console.print(table)
        self.console.print(f"[dim]Estimated complexity: {plan.estimated_complexity.value}[/dim]")

    # ==================== History ====================

    def executions_table(self, executions: list[dict[str, Any]]) -> None:
        """
        Display stored execution summaries.

        Args:
            executions: Summaries as returned by ExecutionSessionStore.list()
        """
        table = Table(title="Executions")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Created", style="dim")
        table.add_column("Steps", justify="right")
        table.add_column("Outcome", width=12)
        table.add_column("Task", style="white")

        for summary in executions:
            outcome = summary.get("outcome") or "running"
            icon = self.ICONS.get(outcome, "")
            task = summary.get("task", "")
            if len(task) > 60:
                task = task[:57] + "..."
            table.add_row(
                summary.get("id", ""),
                summary.get("createdAt", ""),
                f"{summary.get('stepCount', 0)}/{summary.get('plannedSteps', 0)}",
                f"{icon} {outcome}",
                escape(task),
            )

        self.console.print(table)

    def session_detail(self, session: ExecutionSession) -> None:
        """Display one execution session with its steps and tool calls."""
        outcome = session.outcome.value if session.outcome else "running"
        self.print_header(
            f"Execution {session.id}",
            f"Created {session.created_at} | Updated {session.updated_at} | {outcome}",
        )
        self.panel(session.task, title="Task")

        if session.plan:
            self.plan_table(session.plan)

        for execution in session.step_executions:
            icon = self.ICONS.get(execution.status.value, "")
            self.console.print(
                f"\n{icon} [bold]Step {execution.step_number}[/bold] "
                f"({execution.agent.value}): {escape(execution.description)}"
            )
            for record in execution.tool_calls:
                marker = "[red]error[/red]" if record.is_error else "[green]ok[/green]"
                self.console.print(f"    [dim]> {escape(record.name)}[/dim] {marker}")
            if execution.error:
                self.print_error(escape(execution.error))
            elif execution.response:
                self.panel(execution.response, border_style="green")

    # ==================== Run Events ====================

    def handle_event(self, event: ExecutionEvent) -> None:
        """
        Render an orchestrator event.

        Args:
            event: Event emitted during a run
        """
        data = event.data

        if event.type is EventType.PLAN_CREATED:
            steps = data.get("plan", {}).get("steps", [])
            self.print_info(f"Plan created with {len(steps)} step(s)")

        elif event.type is EventType.STEP_STARTED:
            step = data.get("step", {})
            self.print(
                f"  [cyan]>[/cyan] Step {step.get('step')} ({step.get('agent')}): "
                f"{escape(step.get('description', ''))}"
            )

        elif event.type is EventType.STEP_COMPLETED:
            step = data.get("step", {})
            status = data.get("stepExecution", {}).get("status")
            if status == "error":
                self.print(f"  [red]x[/red] Step {step.get('step')} failed")
            else:
                self.print(f"  [green]v[/green] Step {step.get('step')} completed")

        elif event.type is EventType.TOOL_CALL:
            if self.verbose:
                call = data.get("toolCall", {})
                marker = " [red](error)[/red]" if call.get("isError") else ""
                self.print(f"    [dim]> Tool: {escape(call.get('name', ''))}[/dim]{marker}")

        elif event.type is EventType.RATE_LIMIT_WAIT:
            self.print_warning(
                f"Rate limited, waiting {data.get('seconds')}s "
                f"(attempt {data.get('attempt')}/{data.get('max_retries')})"
            )

        elif event.type is EventType.EXECUTION_ABORTED:
            self.print_warning("Execution aborted")

        elif event.type is EventType.EXECUTION_ERROR:
            self.print_error(escape(str(data.get("error", "Execution failed"))))

        elif event.type is EventType.EXECUTION_COMPLETED:
            self.print_success("Execution completed")

    # ==================== Configuration Display ====================

    def config_display(self, config: dict[str, Any]) -> None:
        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="white")
        for key, value in config.items():
            table.add_row(key, escape(str(value)))
        self.console.print(table)
