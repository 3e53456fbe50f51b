"""Database schema initialization."""
from __future__ import annotations

from src.shared.db.connection import ConnectionPool


def init_sites_db(pool: ConnectionPool) -> None:
    """Create the per-project site table used for runtime-version overrides."""
    conn = pool.get()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            slug TEXT NOT NULL UNIQUE,
            path TEXT,
            php_version TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE INDEX IF NOT EXISTS idx_projects_php_version ON projects(php_version);
    """)
    conn.commit()
