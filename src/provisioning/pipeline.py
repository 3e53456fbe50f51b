"""Provisioning pipeline orchestrator.

The pipeline is an ordered list of :class:`StepDescriptor` objects (see
:func:`build_steps`) consumed by a generic runner. Each descriptor names
the step, the status it enters, whether its failure is fatal, and when it
is skipped. The runner owns the run's state machine, polls the
cancellation token between steps, classifies failures, and converts every
way a run can end into exactly one terminal broadcast.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from rich.console import Console

from src.provisioning.actions import (
    BuildAssets,
    CheckRepoAvailable,
    CloneRepository,
    ConfigureEnvironment,
    ConfigureTrustedProxies,
    CreateDatabase,
    CreateRepository,
    ForkRepository,
    GenerateAppKey,
    GitHubAccount,
    ImportRepository,
    InstallComposerDependencies,
    InstallNodeDependencies,
    RegisterProject,
    ReloadProxy,
    RestartRuntimeContainer,
    RunMigrations,
    RunPostInstallScripts,
    SetRuntimeVersion,
    StepAction,
)
from src.provisioning.actions.base import has_script, project_file, read_package_json
from src.provisioning.broadcaster import StatusBroadcaster
from src.provisioning.config import ProvisionConfig
from src.provisioning.context import ProvisionContext
from src.provisioning.exceptions import (
    FatalStepError,
    NonFatalStepError,
    ProvisionAbortedError,
)
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import (
    ExitCode,
    ProvisionOutcome,
    ProvisionStatus,
    StepRecord,
    StepState,
)
from src.provisioning.proxy import CaddyfileGenerator, ProxyConfigurator, SiteScanner
from src.provisioning.registry_client import McpClient
from src.provisioning.shell import CommandRunner
from src.provisioning.shutdown import CancellationToken, GracefulShutdown
from src.provisioning.site_store import SiteOverrideStore
from src.provisioning.state_machine import create_provision_machine, trigger_name
from src.shared.config import OrbitSettings

logger = logging.getLogger(__name__)

#: Step data keys that update the context's repository coordinates.
_SOURCE_KEYS = ("github_repo", "clone_url")


# ---------------------------------------------------------------------------
# Run model (state machine model)
# ---------------------------------------------------------------------------


class ProvisionRun:
    """Mutable state of one run; the ``transitions`` machine drives ``state``.

    Every state change is recorded in :attr:`history` and broadcast
    through the provision logger.
    """

    def __init__(self, context: ProvisionContext, plog: ProvisionLogger) -> None:
        self.context = context
        self.plog = plog
        self.data: dict[str, Any] = {}
        self.history: list[str] = []
        self.records: list[StepRecord] = []
        self.error: str | None = None

    # -- machine callbacks ---------------------------------------------

    def announce(self, event: Any) -> None:
        error = event.kwargs.get("error")
        self._publish(self.state, error)

    def announce_initial(self) -> None:
        self._publish(self.state, None)

    def _publish(self, status: str, error: str | None) -> None:
        self.history.append(status)
        self.plog.broadcast(status, error)

    # -- helpers --------------------------------------------------------

    @property
    def status(self) -> ProvisionStatus:
        return ProvisionStatus(self.state)

    @property
    def finished(self) -> bool:
        return self.status.is_terminal

    def advance(self, status: ProvisionStatus) -> None:
        if self.state == status.value:
            return
        self.trigger(trigger_name(status))

    def abandon(self, error: str) -> None:
        """Move to ``failed`` unless the run already ended."""
        if self.finished:
            return
        self.error = error
        self.trigger("fail", error=error)

    def absorb(self, data: dict[str, Any]) -> None:
        """Merge step output into the run and refresh the context."""
        self.data.update(data)
        updates = {k: data[k] for k in _SOURCE_KEYS if data.get(k)}
        if updates:
            self.context = self.context.with_source(**updates)

    def record(self, name: str, state: StepState, detail: str = "") -> None:
        self.records.append(StepRecord(name=name, state=state, detail=detail))


# ---------------------------------------------------------------------------
# Step descriptors
# ---------------------------------------------------------------------------


SkipPredicate = Callable[[ProvisionRun], bool]


@dataclass(frozen=True)
class StepDescriptor:
    """One entry of the pipeline.

    ``action=None`` marks a pure status transition. ``skip`` is evaluated
    against the run right before the step would start, so it sees context
    updates made by earlier steps.
    """

    name: str
    action: StepAction | None = None
    status: ProvisionStatus | None = None
    fatal: bool = True
    skip: SkipPredicate | None = None

    def should_skip(self, run: ProvisionRun) -> bool:
        return self.skip is not None and self.skip(run)


def _minimal(run: ProvisionRun) -> bool:
    return run.context.minimal


def _no_file(*parts: str) -> SkipPredicate:
    return lambda run: not project_file(run.context, *parts).is_file()


def _no_build_script(run: ProvisionRun) -> bool:
    return run.context.minimal or not has_script(read_package_json(run.context), "build")


def _not_forking(run: ProvisionRun) -> bool:
    ctx = run.context
    return not (ctx.fork and ctx.clone_url and not ctx.template)


def _no_import(run: ProvisionRun) -> bool:
    ctx = run.context
    return bool(not ctx.clone_url or ctx.template or ctx.fork or ctx.github_repo)


@dataclass
class Collaborators:
    """Services shared by the steps of one run."""

    runner: CommandRunner
    config: ProvisionConfig
    account: GitHubAccount
    store: SiteOverrideStore | None
    proxy: ProxyConfigurator
    registry: McpClient

    @classmethod
    def from_config(
        cls,
        config: ProvisionConfig,
        settings: OrbitSettings,
        token: CancellationToken,
        config_path: str | Path | None = None,
    ) -> Collaborators:
        runner = CommandRunner(token)
        store = SiteOverrideStore(settings.database_path)
        scanner = SiteScanner(config, store, settings.home)
        proxy = CaddyfileGenerator(
            config, scanner, runner, settings.resolved_config_dir, settings.home
        )
        return cls(
            runner=runner,
            config=config,
            account=GitHubAccount(runner, config, config_path),
            store=store,
            proxy=proxy,
            registry=McpClient(config.orchestrator.url),
        )


def build_steps(collab: Collaborators) -> list[StepDescriptor]:
    """Return the default ordered pipeline."""
    runner, config, account = collab.runner, collab.config, collab.account
    S = ProvisionStatus
    return [
        # Source acquisition
        StepDescriptor("check_repo", CheckRepoAvailable(runner, config, account)),
        StepDescriptor(
            "fork", ForkRepository(runner, config, account),
            status=S.CREATING_REPO, skip=_not_forking,
        ),
        StepDescriptor(
            "create_repository", CreateRepository(runner, config, account),
            status=S.CREATING_REPO, skip=lambda run: not run.context.template,
        ),
        StepDescriptor(
            "clone", CloneRepository(runner, config),
            status=S.CLONING, skip=lambda run: not run.context.clone_url,
        ),
        StepDescriptor("import", ImportRepository(runner, config, account), skip=_no_import),
        StepDescriptor("reload_proxy", ReloadProxy(collab.proxy), fatal=False),
        # Setup
        StepDescriptor("setup", status=S.SETTING_UP),
        StepDescriptor(
            "composer_install", InstallComposerDependencies(runner, config),
            status=S.INSTALLING_COMPOSER, skip=_no_file("composer.json"),
        ),
        StepDescriptor(
            "node_install", InstallNodeDependencies(runner, config),
            status=S.INSTALLING_NPM,
            skip=lambda run: run.context.minimal or _no_file("package.json")(run),
        ),
        StepDescriptor(
            "build_assets", BuildAssets(runner, config),
            status=S.BUILDING, fatal=False, skip=_no_build_script,
        ),
        StepDescriptor("configure_environment", ConfigureEnvironment(runner, config), skip=_minimal),
        StepDescriptor("create_database", CreateDatabase(runner, config), fatal=False, skip=_minimal),
        StepDescriptor("generate_app_key", GenerateAppKey(runner, config), skip=_minimal),
        StepDescriptor(
            "runtime_version", SetRuntimeVersion(runner, config, collab.store), skip=_minimal,
        ),
        StepDescriptor("migrations", RunMigrations(runner, config), skip=_minimal),
        StepDescriptor(
            "post_install", RunPostInstallScripts(runner, config), fatal=False, skip=_minimal,
        ),
        StepDescriptor(
            "trusted_proxies", ConfigureTrustedProxies(runner, config), fatal=False, skip=_minimal,
        ),
        # Finalization
        StepDescriptor("finalize", status=S.FINALIZING),
        StepDescriptor(
            "register", RegisterProject(collab.registry),
            fatal=False, skip=lambda run: not collab.registry.is_configured(),
        ),
        StepDescriptor("restart_runtime", RestartRuntimeContainer(runner, config), fatal=False),
    ]


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class ProvisionPipeline:
    """Runs a step list for one context and reports the outcome.

    Args:
        steps: Ordered step descriptors.
        token: Cancellation token, polled before every step.
        plog: Provision logger for the run.
    """

    def __init__(
        self,
        steps: list[StepDescriptor],
        token: CancellationToken,
        plog: ProvisionLogger,
    ) -> None:
        self.steps = steps
        self.token = token
        self.plog = plog

    def run(self, context: ProvisionContext) -> ProvisionOutcome:
        run = ProvisionRun(context, self.plog)
        create_provision_machine(run)
        run.announce_initial()

        exit_code = ExitCode.SUCCESS
        try:
            self._run_steps(run)
            self.token.raise_if_cancelled()
            run.advance(ProvisionStatus.READY)
            self.plog.info(f"Project {context.slug} provisioned successfully!")
        except ProvisionAbortedError as exc:
            exit_code = ExitCode.ABORTED
            self.plog.error(f"Aborting: {exc.reason}")
            run.abandon(exc.reason)
        except KeyboardInterrupt:
            exit_code = ExitCode.ABORTED
            self.plog.error("Aborting: Process interrupted")
            run.abandon("Process interrupted")
        except FatalStepError as exc:
            exit_code = ExitCode.GENERAL_ERROR
            self.plog.error(exc.message)
            run.abandon(exc.message)
        except Exception as exc:
            logger.exception("Unexpected error while provisioning %s", context.slug)
            message = str(exc) or type(exc).__name__
            exit_code = ExitCode.GENERAL_ERROR
            self.plog.error(message)
            run.abandon(message)

        return ProvisionOutcome(
            slug=context.slug,
            status=run.status,
            exit_code=exit_code,
            error=run.error,
            transitions=list(run.history),
            steps=list(run.records),
            data=dict(run.data),
        )

    def _run_steps(self, run: ProvisionRun) -> None:
        for step in self.steps:
            self.token.raise_if_cancelled()
            if step.should_skip(run):
                run.record(step.name, StepState.SKIPPED)
                continue
            if step.status is not None:
                run.advance(step.status)
            if step.action is None:
                run.record(step.name, StepState.DONE)
                continue

            logger.debug("Running step %s for %s", step.name, run.context.slug)
            result = step.action.handle(run.context, self.plog, run.data)
            if result.is_failed and step.fatal:
                run.record(step.name, StepState.FAILED, result.error or "")
                raise FatalStepError(step.name, result.error or "Step failed")
            if result.is_failed:
                warning = NonFatalStepError(step.name, result.error or "Step failed")
                self.plog.warn(str(warning))
                run.record(step.name, StepState.WARNING, warning.message)
                continue
            run.absorb(result.data)
            run.record(step.name, StepState.DONE)


# ---------------------------------------------------------------------------
# Top-level entry point
# ---------------------------------------------------------------------------


def execute_provision(
    context: ProvisionContext,
    config: ProvisionConfig,
    settings: OrbitSettings,
    console: Console | None = None,
    config_path: str | Path | None = None,
    install_signals: bool = True,
) -> ProvisionOutcome:
    """Provision *context* end to end with signal-driven cancellation.

    Args:
        context: The provisioning request.
        config: Loaded provisioner configuration.
        settings: Environment settings (paths to logs and database).
        console: Console for operator output; ``None`` keeps it quiet.
        config_path: Config file to write a discovered GitHub username to.
        install_signals: Route SIGINT / SIGTERM to the run's token.

    Returns:
        The run outcome.
    """
    token = CancellationToken()
    shutdown = GracefulShutdown(token)
    if install_signals:
        shutdown.install()

    broadcaster = StatusBroadcaster(config.reverb.url, config.reverb.app_id)
    plog = ProvisionLogger(
        context.slug,
        log_dir=settings.provision_log_dir,
        broadcaster=broadcaster,
        console=console,
    )
    collab = Collaborators.from_config(config, settings, token, config_path)
    try:
        pipeline = ProvisionPipeline(build_steps(collab), token, plog)
        return pipeline.run(context)
    finally:
        if install_signals:
            shutdown.restore()
        if collab.store is not None:
            collab.store.close()
