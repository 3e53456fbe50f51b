"""Source acquisition: repository checks, fork, template creation, clone, import."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from src.provisioning.actions.base import ProvisionAction, excerpt
from src.provisioning.config import ProvisionConfig, save_provision_config
from src.provisioning.context import ProvisionContext
from src.provisioning.exceptions import ConfigurationError
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult
from src.provisioning.shell import CommandRunner

logger = logging.getLogger(__name__)

_GITHUB_URL = re.compile(r"github\.com[:/]([^/]+/[^/\s]+?)(?:\.git)?$")


def extract_repo_from_url(url: str | None) -> str:
    """Return ``owner/name`` for a GitHub clone URL (https or ssh form).

    Anything that is not a GitHub URL is assumed to already be in
    ``owner/name`` form.
    """
    if not url:
        return ""
    match = _GITHUB_URL.search(url.strip())
    if match:
        return match.group(1)
    return url.strip().replace(".git", "")


def github_clone_url(repo: str) -> str:
    return f"https://github.com/{repo}.git"


def directory_is_empty(path: str | Path) -> bool:
    path = Path(path)
    return not path.exists() or (path.is_dir() and not any(path.iterdir()))


class GitHubAccount:
    """Resolves (and caches) the GitHub login of the operator.

    The configured ``github_username`` wins; otherwise ``gh api user`` is
    asked once and the answer is written back to the config file.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config: ProvisionConfig,
        config_path: str | Path | None = None,
    ) -> None:
        self._runner = runner
        self._config = config
        self._config_path = config_path
        self._resolved = False

    def username(self, context: ProvisionContext) -> str | None:
        if self._config.github_username:
            return self._config.github_username
        if self._resolved:
            return None
        self._resolved = True

        result = self._runner.run(
            ["gh", "api", "user", "--jq", ".login"],
            env=context.subprocess_env(),
            timeout=self._config.timeouts.gh,
        )
        login = result.stdout.strip() if result.success else ""
        if not login:
            logger.info("GitHub username unavailable: %s", result.describe_failure())
            return None

        self._config.github_username = login
        if self._config_path is not None:
            try:
                save_provision_config(self._config, self._config_path)
            except (OSError, ConfigurationError) as exc:
                logger.warning("Could not cache GitHub username: %s", exc)
        return login


class _RepositoryAction(ProvisionAction):
    def __init__(
        self,
        runner: CommandRunner,
        config: ProvisionConfig,
        account: GitHubAccount,
    ) -> None:
        super().__init__(runner, config)
        self.account = account

    def target_repo(self, context: ProvisionContext) -> str | None:
        """Repository this run will create under the operator's account."""
        if context.github_repo:
            return context.github_repo
        username = self.account.username(context)
        return f"{username}/{context.slug}" if username else None


class CheckRepoAvailable(_RepositoryAction):
    """Refuses to start when the run would overwrite existing work."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        acquires_source = bool(context.clone_url or context.template)
        path = Path(context.project_path)

        if acquires_source and not directory_is_empty(path):
            return StepResult.failed(
                f"Directory {context.project_path} already exists and is not empty"
            )
        if not acquires_source and not path.is_dir():
            return StepResult.failed(
                f"Project directory {context.project_path} does not exist "
                "(pass --clone-url or --template to create it)"
            )

        target = self._repo_to_create(context)
        if target is None:
            return StepResult.ok()

        result = self.run(context, ["gh", "repo", "view", target, "--json", "name"],
                          timeout=self.config.timeouts.gh, cwd=context.home_dir)
        if result.success:
            return StepResult.failed(f"Repository {target} already exists on GitHub")
        logger.info(f"Repository {target} is available")
        return StepResult.ok()

    def _repo_to_create(self, context: ProvisionContext) -> str | None:
        if context.template:
            return self.target_repo(context)
        if not context.clone_url:
            return None
        if context.fork:
            username = self.account.username(context)
            return f"{username}/{context.slug}" if username else None
        if context.github_repo:
            return None
        username = self.account.username(context)
        if not username:
            return None
        owner = extract_repo_from_url(context.clone_url).split("/")[0]
        if owner.lower() == username.lower():
            return None
        return f"{username}/{context.slug}"


class ForkRepository(_RepositoryAction):
    """Forks the clone source into the operator's account."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        source = extract_repo_from_url(context.clone_url)
        username = self.account.username(context)
        if not source:
            return StepResult.failed("Cannot fork: no source repository given")
        if not username:
            return StepResult.failed("Cannot fork: GitHub username is unknown")

        logger.info(f"Forking {source} as {username}/{context.slug}...")
        result = self.run(
            context,
            ["gh", "repo", "fork", source, "--clone=false", "--fork-name", context.slug],
            timeout=self.config.timeouts.gh,
            cwd=context.home_dir,
        )
        if not result.success:
            return StepResult.failed(f"Fork failed: {excerpt(result.describe_failure())}")

        repo = f"{username}/{context.slug}"
        logger.info(f"Forked repository: {repo}")
        return StepResult.ok({"github_repo": repo, "clone_url": github_clone_url(repo)})


class CreateRepository(_RepositoryAction):
    """Creates the project repository from a template repository."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        repo = self.target_repo(context)
        if not repo:
            return StepResult.failed(
                "Cannot create repository from template: GitHub username is unknown "
                "(set github_username or pass --github-repo)"
            )

        logger.info(f"Creating {repo} from template {context.template}...")
        result = self.run(
            context,
            [
                "gh", "repo", "create", repo,
                "--template", str(context.template),
                f"--{context.visibility.value}",
            ],
            timeout=self.config.timeouts.gh,
            cwd=context.home_dir,
        )
        if not result.success:
            return StepResult.failed(
                f"Repository creation failed: {excerpt(result.describe_failure())}"
            )

        logger.info(f"Created repository: {repo}")
        return StepResult.ok({"github_repo": repo, "clone_url": github_clone_url(repo)})


class CloneRepository(ProvisionAction):
    """Clones the project source into the project path.

    Repositories created from a template are populated by GitHub
    asynchronously, so a failed clone is retried a few times.
    """

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        if not context.clone_url:
            return StepResult.ok()
        if not directory_is_empty(context.project_path):
            return StepResult.failed(
                f"Directory {context.project_path} already exists and is not empty"
            )

        Path(context.project_path).parent.mkdir(parents=True, exist_ok=True)
        attempts = max(1, self.config.clone_retries)
        logger.info(f"Cloning {context.clone_url}...")

        last_error = ""
        for attempt in range(1, attempts + 1):
            result = self.run(
                context,
                ["git", "clone", context.clone_url, context.project_path],
                timeout=self.config.timeouts.clone,
                cwd=str(Path(context.project_path).parent),
            )
            if result.success:
                logger.info("Repository cloned")
                return StepResult.ok()
            last_error = result.describe_failure()
            if attempt < attempts:
                logger.warn(f"Clone attempt {attempt} failed, retrying: {excerpt(last_error)}")
                if self.runner.token.wait(self.config.clone_retry_delay):
                    self.runner.token.raise_if_cancelled()

        return StepResult.failed(f"Clone failed: {excerpt(last_error)}")


class ImportRepository(_RepositoryAction):
    """Publishes a clone of someone else's repository as a new repository.

    Cloning one's own repository only records it as the project's
    repository.
    """

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        if context.template or context.fork or context.github_repo or not context.clone_url:
            return StepResult.ok()

        username = self.account.username(context)
        if not username:
            return StepResult.ok()

        source = extract_repo_from_url(context.clone_url)
        owner = source.split("/")[0]
        if owner.lower() == username.lower():
            return StepResult.ok({"github_repo": source})

        target = f"{username}/{context.slug}"
        logger.info(f"Importing as new repository: {target}")
        result = self.run(
            context,
            [
                "gh", "repo", "create", target,
                f"--{context.visibility.value}",
                "--source=.", "--push",
            ],
            timeout=self.config.timeouts.gh,
        )
        if not result.success:
            return StepResult.failed(
                f"Failed to import as new repository: {excerpt(result.describe_failure())}"
            )
        logger.info("Repository imported successfully")
        return StepResult.ok({"github_repo": target})
