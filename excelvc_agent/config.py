"""
Configuration management for ExcelVC Agent.
Handles loading, validation, and persistence of configuration.
"""

import json
import os
from pathlib import Path
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Config(BaseModel):
    """Configuration model with validation."""

    model_config = ConfigDict(validate_assignment=True)

    # Watching
    watch_roots: List[str] = Field(default_factory=list, description="Directory trees to monitor")
    watch_new_directories: bool = Field(
        True,
        description="Register sub-directories created after a root was first watched"
    )

    # Capture timing
    quiet_period_seconds: float = Field(1.0, gt=0, description="Debounce window after the last event")
    stability_poll_seconds: float = Field(0.4, gt=0, description="Interval between file size samples")
    compression_level: int = Field(6, ge=1, le=9, description="gzip compression level")

    # Retention
    retention_days: int = Field(7, ge=1, le=3650, description="Age after which versions are purged")
    retention_interval_hours: int = Field(24, ge=1, le=720, description="Retention sweep interval")
    config_reload_minutes: int = Field(1, ge=1, le=1440, description="Interval for picking up new watch roots")

    # Encryption
    encryption_key_env: str = Field("EXCELVC_KEY", min_length=1, description="Environment variable holding the key")

    # Storage settings
    db_path: str = Field("~/.excelvc/excelvc.db", description="SQLite database path")
    log_dir: str = Field("~/.excelvc/logs", description="Log file directory")

    # Logging settings
    log_level: str = Field("INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    @field_validator('watch_roots')
    @classmethod
    def validate_watch_roots(cls, v):
        """Store roots as absolute paths without duplicates, keeping order."""
        normalized = []
        for root in v:
            path = os.path.abspath(os.path.expanduser(root))
            if path not in normalized:
                normalized.append(path)
        return normalized

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        allowed = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in allowed:
            raise ValueError(f'Log level must be one of: {", ".join(allowed)}')
        return v.upper()


class ConfigManager:
    """Manages configuration file loading and saving."""

    DEFAULT_CONFIG_PATH = Path.home() / ".excelvc" / "config.json"

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager.

        Args:
            config_path: Optional custom config path
        """
        self.config_path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from file.

        Returns:
            Config object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}\n"
                "Run setup or create config manually."
            )

        with open(self.config_path, 'r') as f:
            data = json.load(f)

        self._config = Config(**data)
        return self._config

    def save(self, config: Config) -> None:
        """Save configuration to file.

        Args:
            config: Config object to save
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            json.dump(
                config.model_dump(exclude_none=True),
                f,
                indent=2,
                sort_keys=True
            )

        # Owner only
        os.chmod(self.config_path, 0o600)

        self._config = config

    def get(self) -> Config:
        """Get current configuration (load if not cached)."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def update(self, updates: Dict[str, Any]) -> Config:
        """Update configuration fields.

        Args:
            updates: Dictionary of fields to update

        Returns:
            Updated Config object
        """
        updated_data = self.get().model_dump()
        updated_data.update(updates)

        new_config = Config(**updated_data)
        self.save(new_config)

        return new_config

    def add_watch_root(self, root: str) -> bool:
        """Append a root to ``watch_roots``.

        Returns:
            False if the root was already configured
        """
        path = os.path.abspath(os.path.expanduser(root))
        roots = list(self.get().watch_roots)
        if path in roots:
            return False

        roots.append(path)
        self.update({'watch_roots': roots})
        return True

    def reset(self) -> None:
        """Delete configuration file."""
        if self.config_path.exists():
            self.config_path.unlink()
        self._config = None

    def ensure_directories(self) -> None:
        """Create log and database directories."""
        config = self.get()

        log_dir = Path(config.log_dir).expanduser()
        db_dir = Path(config.db_path).expanduser().parent

        for directory in [log_dir, db_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            os.chmod(directory, 0o700)
