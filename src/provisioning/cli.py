"""Typer CLI for the Orbit provisioner.

Commands:

* ``provision SLUG`` -- run the provisioning pipeline for a project.
* ``logs SLUG`` -- show the tail of a project's provisioning log.
"""

from __future__ import annotations

import json
from collections import deque
from pathlib import Path
from typing import NoReturn, Optional

import typer

from src.provisioning import display
from src.provisioning.config import load_provision_config
from src.provisioning.context import (
    CacheDriver,
    DatabaseDriver,
    ProvisionContext,
    QueueDriver,
    SessionDriver,
    Visibility,
)
from src.provisioning.exceptions import ConfigurationError
from src.provisioning.logger import provision_log_path
from src.provisioning.models import ExitCode
from src.provisioning.pipeline import execute_provision
from src.shared.config import OrbitSettings
from src.shared.constants import VERSION
from src.shared.logging import setup_logging

app = typer.Typer(
    name="orbit-provision",
    help="Provision local Orbit development projects.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"orbit-provision {VERSION}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Provision local Orbit development projects."""


def _fail(message: str, code: ExitCode, json_output: bool) -> NoReturn:
    if json_output:
        typer.echo(json.dumps({"status": "error", "error": message, "exit_code": int(code)}))
    else:
        display.print_error(message)
    raise typer.Exit(code=int(code))


@app.command()
def provision(
    slug: str = typer.Argument(..., help="Project slug"),
    github_repo: Optional[str] = typer.Option(
        None, "--github-repo", help="GitHub repo to create (user/repo format)"
    ),
    clone_url: Optional[str] = typer.Option(None, "--clone-url", help="Existing repo URL to clone"),
    template: Optional[str] = typer.Option(
        None, "--template", help="Template repository (user/repo format)"
    ),
    visibility: str = typer.Option("private", "--visibility", help="Repository visibility (private/public)"),
    php: Optional[str] = typer.Option(None, "--php", help="PHP version to use (e.g. 8.4)"),
    db_driver: Optional[str] = typer.Option(None, "--db-driver", help="Database driver (sqlite, pgsql)"),
    session_driver: Optional[str] = typer.Option(
        None, "--session-driver", help="Session driver (file, cookie, database, redis)"
    ),
    cache_driver: Optional[str] = typer.Option(
        None, "--cache-driver", help="Cache driver (file, database, redis)"
    ),
    queue_driver: Optional[str] = typer.Option(
        None, "--queue-driver", help="Queue driver (sync, database, redis)"
    ),
    name: Optional[str] = typer.Option(None, "--name", help="Display name for APP_NAME (defaults to slug)"),
    minimal: bool = typer.Option(False, "--minimal", help="Only run composer install during setup"),
    fork: bool = typer.Option(False, "--fork", help="Fork the repository instead of importing as new"),
    json_output: bool = typer.Option(False, "--json", help="Output the result as JSON"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", dir_okay=False, help="Path to the provisioner config YAML"
    ),
) -> None:
    """Provision a project (create repo, clone, set up, register)."""
    settings = OrbitSettings()
    setup_logging("orbit-provision", settings.log_level, settings.log_json)

    try:
        options = dict(
            github_repo=github_repo,
            clone_url=clone_url,
            template=template,
            visibility=Visibility(visibility.lower()),
            runtime_version=php,
            db_driver=DatabaseDriver.parse(db_driver),
            session_driver=SessionDriver.parse(session_driver),
            cache_driver=CacheDriver.parse(cache_driver),
            queue_driver=QueueDriver.parse(queue_driver),
            minimal=minimal,
            fork=fork,
            display_name=name,
        )
    except ValueError as exc:
        _fail(str(exc), ExitCode.INVALID_ARGUMENTS, json_output)

    config_path = config_file or settings.config_file
    try:
        config = load_provision_config(config_path)
        context = ProvisionContext.create(slug, config, home=settings.home, **options)
    except ValueError as exc:
        _fail(str(exc), ExitCode.INVALID_ARGUMENTS, json_output)
    except ConfigurationError as exc:
        _fail(str(exc), ExitCode.CONFIGURATION_ERROR, json_output)

    console = None if json_output else display.get_console()
    if console is not None:
        display.print_provision_header(context)

    outcome = execute_provision(context, config, settings, console=console, config_path=config_path)

    if json_output:
        typer.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        display.print_step_table(outcome)
        display.print_outcome(outcome)
    raise typer.Exit(code=int(outcome.exit_code))


@app.command()
def logs(
    slug: str = typer.Argument(..., help="Project slug"),
    lines: int = typer.Option(50, "--lines", "-n", min=1, help="Number of lines to show"),
) -> None:
    """Show the tail of a project's provisioning log."""
    settings = OrbitSettings()
    path = provision_log_path(settings.provision_log_dir, slug)
    if not path.is_file():
        display.print_error(f"No provisioning log for '{slug}' at {path}")
        raise typer.Exit(code=int(ExitCode.GENERAL_ERROR))
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        tail = deque(f, maxlen=lines)
    for line in tail:
        typer.echo(line.rstrip("\n"))
