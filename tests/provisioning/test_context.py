"""Tests for src.provisioning.context."""

from __future__ import annotations

import dataclasses

import pytest

from src.provisioning.config import ProvisionConfig
from src.provisioning.context import (
    CacheDriver,
    DatabaseDriver,
    ProvisionContext,
    QueueDriver,
    SessionDriver,
    build_subprocess_env,
)
from src.provisioning.exceptions import ConfigurationError


class TestDriverOptions:
    def test_parse_unset(self):
        assert DatabaseDriver.parse(None) is DatabaseDriver.UNSET
        assert SessionDriver.parse("") is SessionDriver.UNSET
        assert not CacheDriver.parse(None).is_set

    def test_parse_value(self):
        assert DatabaseDriver.parse("pgsql") is DatabaseDriver.PGSQL
        assert QueueDriver.parse(" Redis ") is QueueDriver.REDIS
        assert SessionDriver.parse("cookie").is_set

    def test_parse_returns_calling_type(self):
        assert DatabaseDriver.parse.__annotations__["return"] == "Self"
        for option in (DatabaseDriver, SessionDriver, CacheDriver, QueueDriver):
            assert type(option.parse(None)) is option

    def test_parse_invalid_lists_choices(self):
        with pytest.raises(ValueError, match="sqlite, pgsql"):
            DatabaseDriver.parse("mysql")

    def test_cookie_is_not_a_cache_driver(self):
        with pytest.raises(ValueError):
            CacheDriver.parse("cookie")


class TestSlugValidation:
    @pytest.mark.parametrize("slug", ["app", "my-app", "app2", "a-b-c"])
    def test_valid(self, slug):
        assert ProvisionContext(slug=slug, project_path=f"/p/{slug}").slug == slug

    @pytest.mark.parametrize(
        "slug", ["", "My-App", "my_app", "-app", "app-", "my--app", "a b", "../etc"]
    )
    def test_invalid(self, slug):
        with pytest.raises(ValueError, match="Invalid slug"):
            ProvisionContext(slug=slug, project_path="/p/x")


class TestCreate:
    def test_uses_first_path_expanded_against_home(self):
        config = ProvisionConfig(paths=["~/projects", "/srv/other"], tld="test")
        ctx = ProvisionContext.create("my-app", config, home="/home/dev")
        assert ctx.project_path == "/home/dev/projects/my-app"
        assert ctx.home == "/home/dev"
        assert ctx.tld == "test"

    def test_explicit_tld_wins(self):
        config = ProvisionConfig(paths=["/srv"], tld="test")
        ctx = ProvisionContext.create("app", config, home="/h", tld="local")
        assert ctx.tld == "local"

    def test_trailing_slash_in_path(self):
        config = ProvisionConfig(paths=["/srv/projects/"])
        ctx = ProvisionContext.create("app", config, home="/h")
        assert ctx.project_path == "/srv/projects/app"

    def test_no_paths_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            ProvisionContext.create("app", ProvisionConfig(paths=[]), home="/h")

    def test_invalid_slug_raises_value_error(self):
        with pytest.raises(ValueError):
            ProvisionContext.create("Bad Slug", ProvisionConfig(), home="/h")


class TestDerivedValues:
    def test_domain_and_url(self):
        ctx = ProvisionContext(slug="my-app", project_path="/p/my-app", tld="ccc")
        assert ctx.domain == "my-app.ccc"
        assert ctx.app_url == "https://my-app.ccc"

    def test_app_name_from_slug(self):
        ctx = ProvisionContext(slug="my-cool-app", project_path="/p")
        assert ctx.app_name == "My Cool App"

    def test_app_name_prefers_display_name(self):
        ctx = ProvisionContext(slug="my-app", project_path="/p", display_name="Shop")
        assert ctx.app_name == "Shop"

    def test_needs_redis(self):
        assert not ProvisionContext(slug="a", project_path="/p").needs_redis
        ctx = ProvisionContext(slug="a", project_path="/p", queue_driver=QueueDriver.REDIS)
        assert ctx.needs_redis

    def test_home_dir(self):
        ctx = ProvisionContext(slug="a", project_path="/p", home="/home/dev")
        assert ctx.home_dir == "/home/dev"


class TestImmutability:
    def test_frozen(self):
        ctx = ProvisionContext(slug="a", project_path="/p")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ctx.slug = "b"  # type: ignore[misc]

    def test_with_source_returns_copy(self):
        ctx = ProvisionContext(slug="a", project_path="/p", template="org/tpl")
        updated = ctx.with_source(github_repo="me/a", clone_url="https://github.com/me/a.git")
        assert ctx.github_repo is None
        assert updated.github_repo == "me/a"
        assert updated.clone_url == "https://github.com/me/a.git"
        assert updated.template == "org/tpl"

    def test_with_source_keeps_unspecified_fields(self):
        ctx = ProvisionContext(slug="a", project_path="/p", clone_url="u")
        assert ctx.with_source(github_repo="me/a").clone_url == "u"


class TestSubprocessEnv:
    def test_contains_only_home_and_path(self):
        env = build_subprocess_env("/home/dev")
        assert set(env) == {"HOME", "PATH"}
        assert env["HOME"] == "/home/dev"
        assert env["PATH"].startswith("/home/dev/.local/bin:")
        assert "/usr/bin" in env["PATH"].split(":")

    def test_parent_environment_is_not_inherited(self, monkeypatch):
        monkeypatch.setenv("DB_DATABASE", "other_project")
        monkeypatch.setenv("APP_KEY", "leaked")
        ctx = ProvisionContext(slug="a", project_path="/p", home="/home/dev")
        env = ctx.subprocess_env()
        assert "DB_DATABASE" not in env
        assert "APP_KEY" not in env
