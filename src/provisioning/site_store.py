"""Persistent per-project runtime-version overrides.

Other Orbit tooling (proxy generation, status reporting) reads the
resolved version from here instead of resolving it again.
"""
from __future__ import annotations

import logging
from pathlib import Path

from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import init_sites_db

logger = logging.getLogger(__name__)


class SiteOverrideStore:
    """SQLite-backed store of per-project runtime versions.

    Every public method is independently try/excepted so that a store
    failure never raises into the pipeline; if the database cannot be
    opened at all, the store degrades to a no-op.

    Args:
        db_path: Path to the site database.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._pool: ConnectionPool | None = None
        try:
            pool = ConnectionPool(db_path)
            init_sites_db(pool)
            self._pool = pool
        except Exception as exc:
            logger.warning("Site store unavailable at %s (non-blocking): %s", db_path, exc)

    @property
    def available(self) -> bool:
        return self._pool is not None

    def set_version(self, slug: str, path: str, version: str) -> None:
        """Record *version* as the runtime version for *slug*."""
        if self._pool is None:
            return
        try:
            with self._pool.transaction() as conn:
                conn.execute(
                    """INSERT INTO projects (slug, path, php_version)
                       VALUES (?, ?, ?)
                       ON CONFLICT(slug) DO UPDATE SET
                           path = excluded.path,
                           php_version = excluded.php_version,
                           updated_at = datetime('now')""",
                    (slug, path, version),
                )
        except Exception as exc:
            logger.warning("SiteOverrideStore.set_version failed (non-blocking): %s", exc)

    def get_version(self, slug: str) -> str | None:
        override = self.get_override(slug)
        return override["php_version"] if override else None

    def get_override(self, slug: str) -> dict | None:
        if self._pool is None:
            return None
        try:
            row = self._pool.get().execute(
                "SELECT slug, path, php_version, updated_at FROM projects WHERE slug = ?",
                (slug,),
            ).fetchone()
        except Exception as exc:
            logger.warning("SiteOverrideStore.get_override failed (non-blocking): %s", exc)
            return None
        return dict(row) if row else None

    def all_overrides(self) -> dict[str, str]:
        """Map of slug to runtime version for every project with one set."""
        if self._pool is None:
            return {}
        try:
            rows = self._pool.get().execute(
                "SELECT slug, php_version FROM projects WHERE php_version IS NOT NULL"
            ).fetchall()
        except Exception as exc:
            logger.warning("SiteOverrideStore.all_overrides failed (non-blocking): %s", exc)
            return {}
        return {row["slug"]: row["php_version"] for row in rows}

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
