"""Shared constants used across the provisioner."""
from __future__ import annotations

# Application version
VERSION: str = "1.0.0"

# Runtime (PHP) versions, highest first
AVAILABLE_PHP_VERSIONS: list[str] = ["8.5", "8.4", "8.3"]

# Container names
CADDY_CONTAINER: str = "orbit-caddy"
POSTGRES_CONTAINER: str = "orbit-postgres"
REDIS_HOST: str = "orbit-redis"
PHP_CONTAINER_PREFIX: str = "orbit-php-"
PHP_CONTAINER_PORT: int = 8080

# Broadcast settings
BROADCAST_EVENT: str = "project.provision.status"
BROADCAST_GLOBAL_CHANNEL: str = "provisioning"
BROADCAST_TIMEOUT_S: float = 5.0

# Registry settings
REGISTRY_TIMEOUT_S: float = 120.0

# Database settings
DB_BUSY_TIMEOUT_MS: int = 30000

# Home directory used when HOME is unset
DEFAULT_HOME: str = "/home/orbit"
