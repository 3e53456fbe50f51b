"""Database migrations and post-install composer scripts."""

from __future__ import annotations

from typing import Any

from src.provisioning.actions.base import (
    ProvisionAction,
    excerpt,
    has_script,
    project_file,
    read_composer_json,
)
from src.provisioning.context import ProvisionContext
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult


class RunMigrations(ProvisionAction):
    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        if not project_file(context, "artisan").is_file():
            logger.info("Skipping migrations - no artisan file found")
            return StepResult.ok()

        # Cached config would shadow the freshly written .env
        logger.info("Clearing config cache...")
        cleared = self.run(
            context, ["php", "artisan", "config:clear"], timeout=self.config.timeouts.artisan
        )
        if not cleared.success:
            logger.log(f"config:clear failed: {cleared.describe_failure()}")

        logger.info("Running database migrations...")
        result = self.run(
            context, ["php", "artisan", "migrate", "--force"], timeout=self.config.timeouts.migrate
        )
        logger.log(f"migrate exit code: {result.returncode}")
        if result.stdout.strip():
            logger.log(f"migrate stdout: {result.stdout.strip()}")
        if result.stderr.strip():
            logger.log(f"migrate stderr: {result.stderr.strip()}")

        if not result.success:
            if result.timed_out:
                return StepResult.failed(f"migrate failed: {result.describe_failure()}")
            error = result.output or "Unknown error"
            return StepResult.failed(f"migrate failed (exit {result.returncode}): {error}")

        logger.info("Migrations completed successfully")
        return StepResult.ok()


class RunPostInstallScripts(ProvisionAction):
    """Runs composer's ``post-autoload-dump`` hooks skipped during install."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        if not has_script(read_composer_json(context), "post-autoload-dump"):
            return StepResult.ok()

        logger.info("Running post-install scripts...")
        result = self.run(
            context,
            ["composer", "run-script", "post-autoload-dump", "--no-interaction"],
            timeout=self.config.timeouts.post_install,
        )
        if not result.success:
            return StepResult.failed(
                f"Post-install scripts failed: {excerpt(result.describe_failure())}"
            )
        logger.info("Post-install scripts completed")
        return StepResult.ok()
