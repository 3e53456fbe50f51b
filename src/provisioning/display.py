"""Rich-based terminal display for provisioning runs.

Uses a module-level :class:`~rich.console.Console` singleton for
consistent output. Display functions are standalone and stateless.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.provisioning.context import ProvisionContext
from src.provisioning.models import ProvisionOutcome, StepState
from src.shared.constants import VERSION

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()

_STATE_STYLES: dict[StepState, str] = {
    StepState.DONE: "[green]DONE[/green]",
    StepState.SKIPPED: "[dim]SKIPPED[/dim]",
    StepState.WARNING: "[yellow]WARNING[/yellow]",
    StepState.FAILED: "[bold red]FAILED[/bold red]",
}


def get_console() -> Console:
    return _console


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_provision_header(context: ProvisionContext) -> None:
    """Print a panel identifying the project being provisioned."""
    header = Text()
    header.append("Orbit Provisioner", style="bold white")
    header.append(f" v{VERSION}\n", style="dim")
    header.append("Project: ", style="bold")
    header.append(f"{context.slug}\n", style="cyan")
    header.append("Path: ", style="bold")
    header.append(f"{context.project_path}\n", style="green")
    header.append("URL: ", style="bold")
    header.append(context.app_url, style="blue")
    source = context.template or context.clone_url
    if source:
        header.append("\nSource: ", style="bold")
        header.append(source, style="magenta")

    _console.print(
        Panel(
            header,
            title="[bold]Provisioning[/bold]",
            border_style="blue",
            expand=False,
        )
    )


def print_step_table(outcome: ProvisionOutcome) -> None:
    """Print a table with how each pipeline step ended."""
    table = Table(title="Steps", show_header=True, header_style="bold magenta")
    table.add_column("Step", style="cyan", min_width=22)
    table.add_column("Status", justify="center", min_width=10)
    table.add_column("Detail", overflow="fold")

    for record in outcome.steps:
        table.add_row(
            record.name.replace("_", " "),
            _STATE_STYLES.get(record.state, record.state.value),
            record.detail or "—",
        )
    _console.print(table)


def print_outcome(outcome: ProvisionOutcome) -> None:
    """Print the final status panel."""
    body = Text()
    body.append("Status: ", style="bold")
    body.append(outcome.status.value, style="green" if outcome.succeeded else "red")
    body.append("\nTransitions: ", style="bold")
    body.append(" → ".join(outcome.transitions))
    version = _get(outcome.data, "version")
    if version:
        body.append("\nPHP: ", style="bold")
        body.append(str(version))
    repo = _get(outcome.data, "github_repo")
    if repo:
        body.append("\nRepository: ", style="bold")
        body.append(str(repo))
    if outcome.error:
        body.append("\nError: ", style="bold")
        body.append(outcome.error, style="red")

    _console.print(
        Panel(
            body,
            title="[bold]Result[/bold]",
            border_style="green" if outcome.succeeded else "red",
            expand=False,
        )
    )


def print_error(message: str) -> None:
    _console.print(Panel(Text(message, style="red"), title="[bold red]Error[/bold red]", expand=False))


def _get(data: dict[str, Any], key: str) -> Any:
    return data.get(key) if isinstance(data, dict) else None
