"""Process settings read from the environment using pydantic-settings."""
from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from src.shared.constants import DEFAULT_HOME


class OrbitSettings(BaseSettings):
    """Environment-level settings for a provisioner invocation."""
    home: str = Field(default=DEFAULT_HOME, validation_alias="HOME")
    config_dir: str = Field(default="", validation_alias="ORBIT_CONFIG_DIR")
    log_level: str = Field(default="WARNING", validation_alias="ORBIT_LOG_LEVEL")
    log_json: bool = Field(default=False, validation_alias="ORBIT_LOG_JSON")
    test_db: str = Field(default="", validation_alias="ORBIT_TEST_DB")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def resolved_config_dir(self) -> Path:
        """Directory holding config.yaml, logs and the site database."""
        if self.config_dir:
            return Path(self.config_dir)
        return Path(self.home) / ".config" / "orbit"

    @property
    def config_file(self) -> Path:
        return self.resolved_config_dir / "config.yaml"

    @property
    def database_path(self) -> Path:
        if self.test_db:
            return Path(self.test_db)
        return self.resolved_config_dir / "database.sqlite"

    @property
    def provision_log_dir(self) -> Path:
        return self.resolved_config_dir / "logs" / "provision"
