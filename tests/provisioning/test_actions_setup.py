"""Tests for database, dependency, migration and runtime actions."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.provisioning.actions.database import CreateDatabase
from src.provisioning.actions.dependencies import (
    BuildAssets,
    InstallComposerDependencies,
    InstallNodeDependencies,
    detect_lock_files,
)
from src.provisioning.actions.migrations import RunMigrations, RunPostInstallScripts
from src.provisioning.actions.runtime import (
    RestartRuntimeContainer,
    SetRuntimeVersion,
    read_version_file,
)
from src.provisioning.context import DatabaseDriver
from tests.provisioning.conftest import log_text


def _write_json(path: Path, data: dict) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class TestCreateDatabase:
    @pytest.fixture
    def pg_context(self, make_context):
        return make_context(db_driver=DatabaseDriver.PGSQL)

    def test_not_pgsql(self, runner, config, context, plog):
        assert CreateDatabase(runner, config).handle(context, plog).success
        assert runner.calls == []

    def test_server_not_running_is_a_warning(self, runner, config, pg_context, plog):
        runner.on("docker", "ps", stdout="")
        result = CreateDatabase(runner, config).handle(pg_context, plog)
        assert result.success
        assert "WARNING: PostgreSQL container not running" in log_text(plog)
        assert not runner.called("docker", "exec")

    def test_docker_unavailable_is_a_warning(self, runner, config, pg_context, plog):
        runner.on("docker", returncode=127, stderr="docker: command not found")
        assert CreateDatabase(runner, config).handle(pg_context, plog).success

    def test_creates_database(self, runner, config, pg_context, plog):
        runner.on("docker", "ps", stdout="orbit-postgres\n")
        runner.on("docker", "exec", "orbit-postgres", "psql", "-U", "orbit", "-tAc", stdout="")
        assert CreateDatabase(runner, config).handle(pg_context, plog).success
        assert runner.calls[-1].args[-2:] == ["-c", 'CREATE DATABASE "my-app";']

    def test_existing_database(self, runner, config, pg_context, plog):
        runner.on("docker", "ps", stdout="orbit-postgres\n")
        runner.on("docker", "exec", "orbit-postgres", "psql", "-U", "orbit", "-tAc", stdout="1\n")
        assert CreateDatabase(runner, config).handle(pg_context, plog).success
        assert not any("CREATE DATABASE" in c for c in runner.commands())

    def test_create_failure_is_a_warning(self, runner, config, pg_context, plog):
        runner.on("docker", "ps", stdout="orbit-postgres\n")
        runner.on("docker", "exec", returncode=1, stderr="permission denied")
        result = CreateDatabase(runner, config).handle(pg_context, plog)
        assert result.success
        assert "Failed to create database" in log_text(plog)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


class TestComposerInstall:
    def test_install(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "composer.json", {})
        assert InstallComposerDependencies(runner, config).handle(context, plog).success
        assert runner.calls[0].args == ["composer", "install", "--no-interaction", "--no-scripts"]
        assert runner.calls[0].timeout == config.timeouts.composer_install

    def test_skipped_without_manifest(self, runner, config, context, plog):
        assert InstallComposerDependencies(runner, config).handle(context, plog).success
        assert runner.calls == []

    def test_failure(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "composer.json", {})
        runner.on("composer", returncode=2, stderr="Your requirements could not be resolved")
        result = InstallComposerDependencies(runner, config).handle(context, plog)
        assert result.is_failed
        assert "could not be resolved" in result.error


class TestNodeInstall:
    def test_detect_lock_files(self, project_dir):
        (project_dir / "bun.lockb").write_text("", encoding="utf-8")
        (project_dir / "yarn.lock").write_text("", encoding="utf-8")
        assert detect_lock_files(project_dir) == {"bun": "bun.lockb", "yarn": "yarn.lock"}

    def test_defaults_to_npm(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {})
        result = InstallNodeDependencies(runner, config).handle(context, plog)
        assert result.data == {"package_manager": "npm"}
        assert runner.calls[0].args == ["npm", "install", "--legacy-peer-deps"]

    @pytest.mark.parametrize(
        "lock, manager",
        [("pnpm-lock.yaml", "pnpm"), ("yarn.lock", "yarn"), ("package-lock.json", "npm")],
    )
    def test_lock_file_selects_manager(self, runner, config, context, project_dir, plog, lock, manager):
        _write_json(project_dir / "package.json", {})
        (project_dir / lock).write_text("", encoding="utf-8")
        result = InstallNodeDependencies(runner, config).handle(context, plog)
        assert result.data["package_manager"] == manager
        assert runner.calls[0].args[0] == manager

    def test_bun_uses_home_binary(self, runner, config, context, project_dir, home_dir, plog):
        _write_json(project_dir / "package.json", {})
        (project_dir / "bun.lock").write_text("", encoding="utf-8")
        bun = home_dir / ".bun" / "bin" / "bun"
        bun.parent.mkdir(parents=True)
        bun.write_text("", encoding="utf-8")
        InstallNodeDependencies(runner, config).handle(context, plog)
        assert runner.calls[0].args == [str(bun), "install"]
        assert runner.calls[0].timeout == config.timeouts.bun_install

    def test_multiple_lock_files_fail(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {})
        (project_dir / "package-lock.json").write_text("", encoding="utf-8")
        (project_dir / "yarn.lock").write_text("", encoding="utf-8")
        result = InstallNodeDependencies(runner, config).handle(context, plog)
        assert result.is_failed
        assert result.error.startswith("Multiple lock files detected:")
        assert runner.calls == []

    def test_npm_failure_is_a_warning(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {})
        runner.on("npm", returncode=1, stderr="ERESOLVE")
        result = InstallNodeDependencies(runner, config).handle(context, plog)
        assert result.success
        assert "npm install had issues" in log_text(plog)

    def test_pnpm_failure_is_fatal(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {})
        (project_dir / "pnpm-lock.yaml").write_text("", encoding="utf-8")
        runner.on("pnpm", returncode=1, stderr="lockfile outdated")
        result = InstallNodeDependencies(runner, config).handle(context, plog)
        assert result.is_failed
        assert "lockfile outdated" in result.error


class TestBuildAssets:
    def test_build_with_detected_manager(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {"scripts": {"build": "vite build"}})
        runner.on("pnpm", "run", "build", stdout="built in 2s")
        result = BuildAssets(runner, config).handle(context, plog, {"package_manager": "pnpm"})
        assert result.success
        assert runner.calls[0].args == ["pnpm", "run", "build"]
        assert "built in 2s" in log_text(plog)

    def test_defaults_to_npm(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {"scripts": {"build": "vite build"}})
        BuildAssets(runner, config).handle(context, plog)
        assert runner.calls[0].args == ["npm", "run", "build"]

    def test_no_build_script(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {"scripts": {"dev": "vite"}})
        assert BuildAssets(runner, config).handle(context, plog).success
        assert runner.calls == []

    def test_failure(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "package.json", {"scripts": {"build": "vite build"}})
        runner.on("npm", "run", "build", returncode=1, stderr="Could not resolve import")
        result = BuildAssets(runner, config).handle(context, plog)
        assert result.is_failed
        assert result.error.startswith("Asset build failed:")


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


class TestRunMigrations:
    def test_runs_config_clear_then_migrate(self, runner, config, context, project_dir, plog):
        (project_dir / "artisan").write_text("", encoding="utf-8")
        assert RunMigrations(runner, config).handle(context, plog).success
        assert runner.commands() == [
            "php artisan config:clear",
            "php artisan migrate --force",
        ]

    def test_config_clear_failure_is_ignored(self, runner, config, context, project_dir, plog):
        (project_dir / "artisan").write_text("", encoding="utf-8")
        runner.on("php", "artisan", "config:clear", returncode=1)
        assert RunMigrations(runner, config).handle(context, plog).success

    def test_migrate_failure(self, runner, config, context, project_dir, plog):
        (project_dir / "artisan").write_text("", encoding="utf-8")
        runner.on("php", "artisan", "migrate", returncode=1, stderr="SQLSTATE[08006] could not connect")
        result = RunMigrations(runner, config).handle(context, plog)
        assert result.is_failed
        assert result.error == "migrate failed (exit 1): SQLSTATE[08006] could not connect"

    def test_migrate_timeout(self, runner, config, context, project_dir, plog):
        (project_dir / "artisan").write_text("", encoding="utf-8")
        runner.on("php", "artisan", "migrate", returncode=-9, timed_out=True)
        result = RunMigrations(runner, config).handle(context, plog)
        assert result.is_failed
        assert "timed out" in result.error

    def test_no_artisan(self, runner, config, context, plog):
        assert RunMigrations(runner, config).handle(context, plog).success
        assert runner.calls == []


class TestPostInstallScripts:
    def test_runs_when_defined(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "composer.json", {"scripts": {"post-autoload-dump": ["@php artisan package:discover"]}})
        assert RunPostInstallScripts(runner, config).handle(context, plog).success
        assert runner.calls[0].args[:3] == ["composer", "run-script", "post-autoload-dump"]

    def test_skipped_when_undefined(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "composer.json", {"scripts": {}})
        assert RunPostInstallScripts(runner, config).handle(context, plog).success
        assert runner.calls == []

    def test_failure(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "composer.json", {"scripts": {"post-autoload-dump": []}})
        runner.on("composer", returncode=1, stderr="Script failed")
        assert RunPostInstallScripts(runner, config).handle(context, plog).is_failed


# ---------------------------------------------------------------------------
# Runtime version
# ---------------------------------------------------------------------------


class TestSetRuntimeVersion:
    def test_valid_hint_wins(self, runner, config, make_context, project_dir, plog):
        _write_json(project_dir / "composer.json", {"require": {"php": "~8.3.0"}})
        store = MagicMock()
        ctx = make_context(runtime_version="8.4")
        result = SetRuntimeVersion(runner, config, store).handle(ctx, plog)
        assert result.data == {"version": "8.4"}
        assert read_version_file(project_dir) == "8.4"
        store.set_version.assert_called_once_with("my-app", str(project_dir), "8.4")

    def test_detects_from_composer(self, runner, config, context, project_dir, plog):
        _write_json(project_dir / "composer.json", {"require": {"php": ">=8.2 <8.5"}})
        result = SetRuntimeVersion(runner, config).handle(context, plog)
        assert result.data == {"version": "8.4"}
        assert (project_dir / ".php-version").read_text(encoding="utf-8") == "8.4\n"

    def test_unknown_hint_falls_back_to_detection(self, runner, config, make_context, project_dir, plog):
        ctx = make_context(runtime_version="7.4")
        result = SetRuntimeVersion(runner, config).handle(ctx, plog)
        assert result.data == {"version": "8.5"}
        assert "PHP 7.4 is not installed" in log_text(plog)


class TestRestartRuntimeContainer:
    def test_restarts_container_for_version(self, runner, config, context, plog):
        result = RestartRuntimeContainer(runner, config).handle(context, plog, {"version": "8.3"})
        assert result.success
        assert runner.calls[0].args == ["docker", "restart", "orbit-php-83"]

    def test_version_from_file(self, runner, config, context, project_dir, plog):
        (project_dir / ".php-version").write_text("8.4\n", encoding="utf-8")
        RestartRuntimeContainer(runner, config).handle(context, plog)
        assert runner.calls[0].args[-1] == "orbit-php-84"

    def test_default_version(self, runner, config, context, plog):
        RestartRuntimeContainer(runner, config).handle(context, plog)
        assert runner.calls[0].args[-1] == "orbit-php-85"

    def test_failure_never_fails_step(self, runner, config, context, plog):
        runner.on("docker", "restart", returncode=1, stderr="No such container")
        assert RestartRuntimeContainer(runner, config).handle(context, plog).success
        assert "Failed to restart PHP container" in log_text(plog)
