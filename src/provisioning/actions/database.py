"""PostgreSQL database creation for projects using the pgsql driver."""

from __future__ import annotations

from typing import Any

from src.provisioning.actions.base import ProvisionAction
from src.provisioning.context import DatabaseDriver, ProvisionContext
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult
from src.provisioning.shell import CommandResult


class CreateDatabase(ProvisionAction):
    """Creates the project database inside the shared PostgreSQL container.

    The database server is optional infrastructure: when it is not
    running, or the create statement fails, a warning is logged and the
    step still succeeds. Migrations report a missing database more
    precisely later in the run.
    """

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        if context.db_driver is not DatabaseDriver.PGSQL:
            logger.log("Skipping PostgreSQL database creation - not using pgsql driver")
            return StepResult.ok()

        logger.info(f"Creating PostgreSQL database: {context.slug}")
        if not self.server_running(context):
            logger.warn("PostgreSQL container not running, skipping database creation")
            return StepResult.ok()

        if self.database_exists(context):
            logger.info("Database already exists")
            return StepResult.ok()

        result = self.psql(context, ["-c", f'CREATE DATABASE "{context.slug}";'])
        if result.success:
            logger.info("PostgreSQL database created successfully")
        else:
            logger.warn(f"Failed to create database: {result.describe_failure()}")
        return StepResult.ok()

    def server_running(self, context: ProvisionContext) -> bool:
        container = self.config.postgres.container
        result = self.run(
            context,
            ["docker", "ps", "--filter", f"name={container}", "--format", "{{.Names}}"],
            timeout=self.config.timeouts.docker_exec,
            cwd=context.home_dir,
        )
        return result.success and container in result.stdout.split()

    def database_exists(self, context: ProvisionContext) -> bool:
        result = self.psql(
            context,
            ["-tAc", f"SELECT 1 FROM pg_database WHERE datname='{context.slug}'"],
        )
        return result.success and result.stdout.strip() == "1"

    def psql(self, context: ProvisionContext, args: list[str]) -> CommandResult:
        postgres = self.config.postgres
        return self.run(
            context,
            ["docker", "exec", postgres.container, "psql", "-U", postgres.username, *args],
            timeout=self.config.timeouts.docker_exec,
            cwd=context.home_dir,
        )
