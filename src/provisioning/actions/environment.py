"""Environment file configuration, application key and trusted proxies."""

from __future__ import annotations

import re
import shutil
from typing import Any

from src.provisioning.actions.base import ProvisionAction, excerpt, project_file
from src.provisioning.context import DatabaseDriver, ProvisionContext
from src.provisioning.env_file import read_env_value, upsert_env_value
from src.provisioning.logger import ProvisionLogger
from src.provisioning.models import StepResult
from src.shared.utils import atomic_write_text


class ConfigureEnvironment(ProvisionAction):
    """Writes application, database and driver settings into ``.env``.

    Driver keys are only written when the corresponding driver is set;
    an unset driver leaves the project's own default in place.
    """

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        env_example = project_file(context, ".env.example")
        env_path = project_file(context, ".env")

        if env_example.is_file() and not env_path.exists():
            logger.info("Copying .env.example to .env")
            try:
                shutil.copyfile(env_example, env_path)
            except OSError as exc:
                return StepResult.failed(f"Failed to copy .env.example to .env: {exc}")

        if not env_path.is_file():
            logger.info("No .env file found, skipping environment configuration")
            return StepResult.ok()

        logger.info("Configuring environment...")
        try:
            env = env_path.read_text(encoding="utf-8")
        except OSError as exc:
            return StepResult.failed(f"Failed to read .env file: {exc}")
        logger.log(f".env file size before: {len(env)} bytes")

        env = self.apply(context, env, logger)
        if context.db_driver is DatabaseDriver.SQLITE:
            failure = self._create_sqlite_database(context, logger)
            if failure is not None:
                return failure

        try:
            atomic_write_text(env_path, env)
        except OSError as exc:
            return StepResult.failed(f"Failed to write .env file: {exc}")

        logger.log(f".env file size after: {len(env)} bytes")
        logger.info("Environment configured successfully")
        return StepResult.ok()

    def apply(self, context: ProvisionContext, env: str, logger: ProvisionLogger) -> str:
        """Return *env* with every setting for *context* upserted."""
        env = upsert_env_value(env, "APP_NAME", context.app_name)
        logger.log(f"Set APP_NAME to: {context.app_name}")
        env = upsert_env_value(env, "APP_URL", context.app_url)
        logger.log(f"Set APP_URL to: {context.app_url}")

        if context.db_driver is DatabaseDriver.PGSQL:
            postgres = self.config.postgres
            for key, value in (
                ("DB_CONNECTION", "pgsql"),
                ("DB_HOST", postgres.host),
                ("DB_PORT", str(postgres.port)),
                ("DB_DATABASE", context.slug),
                ("DB_USERNAME", postgres.username),
                ("DB_PASSWORD", postgres.password),
            ):
                env = upsert_env_value(env, key, value)
            logger.log(f"Configured PostgreSQL database: {context.slug}")
        elif context.db_driver is DatabaseDriver.SQLITE:
            env = upsert_env_value(env, "DB_CONNECTION", "sqlite")
            logger.log("Configured SQLite database")

        for key, driver in (
            ("SESSION_DRIVER", context.session_driver),
            ("CACHE_STORE", context.cache_driver),
            ("QUEUE_CONNECTION", context.queue_driver),
        ):
            if driver.is_set:
                env = upsert_env_value(env, key, driver.value)
                logger.log(f"Set {key} to: {driver.value}")

        if context.needs_redis:
            env = upsert_env_value(env, "REDIS_HOST", self.config.redis.host)
            env = upsert_env_value(env, "REDIS_PORT", str(self.config.redis.port))
            logger.log("Configured Redis connection")
        return env

    def _create_sqlite_database(
        self, context: ProvisionContext, logger: ProvisionLogger
    ) -> StepResult | None:
        sqlite_path = project_file(context, "database", "database.sqlite")
        if sqlite_path.exists():
            logger.log("SQLite database already exists")
            return None
        try:
            sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            sqlite_path.touch()
        except OSError as exc:
            return StepResult.failed(f"Failed to create SQLite database: {exc}")
        logger.log("Created SQLite database file")
        return None


class GenerateAppKey(ProvisionAction):
    """Generates ``APP_KEY`` when the env file has none."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        env_path = project_file(context, ".env")
        if not project_file(context, "artisan").is_file() or not env_path.is_file():
            return StepResult.ok()
        try:
            current = read_env_value(env_path.read_text(encoding="utf-8"), "APP_KEY")
        except OSError as exc:
            return StepResult.failed(f"Failed to read .env file: {exc}")
        if current:
            logger.log("APP_KEY already set")
            return StepResult.ok()

        logger.info("Generating application key...")
        result = self.run(
            context,
            ["php", "artisan", "key:generate", "--force"],
            timeout=self.config.timeouts.artisan,
        )
        if not result.success:
            return StepResult.failed(f"key:generate failed ({excerpt(result.describe_failure())})")
        return StepResult.ok()


_MIDDLEWARE_HOOK = re.compile(
    r"->withMiddleware\(function \(Middleware \$middleware\)(?:\s*:\s*void)?\s*\{"
)
TRUST_PROXIES_LINE = "$middleware->trustProxies(at: '*');"


class ConfigureTrustedProxies(ProvisionAction):
    """Trusts the reverse proxy so generated URLs use https."""

    def handle(
        self,
        context: ProvisionContext,
        logger: ProvisionLogger,
        data: dict[str, Any] | None = None,
    ) -> StepResult:
        bootstrap = project_file(context, "bootstrap", "app.php")
        if not bootstrap.is_file():
            return StepResult.ok()
        try:
            source = bootstrap.read_text(encoding="utf-8")
        except OSError as exc:
            return StepResult.failed(f"Failed to read bootstrap/app.php: {exc}")

        if "trustProxies" in source:
            logger.log("Trusted proxies already configured")
            return StepResult.ok()

        match = _MIDDLEWARE_HOOK.search(source)
        if match is None:
            logger.log("No middleware hook in bootstrap/app.php, skipping trusted proxies")
            return StepResult.ok()

        updated = source[: match.end()] + f"\n        {TRUST_PROXIES_LINE}" + source[match.end():]
        try:
            atomic_write_text(bootstrap, updated)
        except OSError as exc:
            return StepResult.failed(f"Failed to write bootstrap/app.php: {exc}")
        logger.info("Configured trusted proxies")
        return StepResult.ok()
