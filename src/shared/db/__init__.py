"""SQLite connection handling and schema initialization."""

from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import init_sites_db

__all__ = [
    "ConnectionPool",
    "init_sites_db",
]
