"""Application-wide settings and configuration."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from cloudrecords.core.models import DatabaseScope

ENV_PREFIX = "CLOUDRECORDS_"

BACKENDS = ("memory", "cloudkit")
ENVIRONMENTS = ("development", "production")


@dataclass(frozen=True)
class Settings:
    """Centralized client settings, normally read from ``CLOUDRECORDS_*`` variables."""

    backend: str = "memory"
    container: str = "iCloud.com.example.cloudrecords"
    environment: str = "development"
    scope: DatabaseScope = DatabaseScope.PUBLIC

    # CloudKit Web Services credentials
    api_token: Optional[str] = None
    web_auth_token: Optional[str] = None
    key_id: Optional[str] = None
    private_key_path: Optional[Path] = None

    # Paths and logging
    data_dir: Path = Path.home() / ".cloudrecords" / "data"
    log_dir: Path = Path("logs")
    log_level: int = logging.INFO

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{self.backend}', expected one of {', '.join(BACKENDS)}")
        if self.environment not in ENVIRONMENTS:
            raise ValueError(
                f"Unknown environment '{self.environment}', expected one of {', '.join(ENVIRONMENTS)}"
            )
        if bool(self.key_id) != bool(self.private_key_path):
            raise ValueError("key_id and private_key_path must be configured together")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        kwargs = {}
        for name, attr in (
            ("BACKEND", "backend"),
            ("CONTAINER", "container"),
            ("ENVIRONMENT", "environment"),
            ("API_TOKEN", "api_token"),
            ("WEB_AUTH_TOKEN", "web_auth_token"),
            ("KEY_ID", "key_id"),
        ):
            value = get(name)
            if value is not None:
                kwargs[attr] = value

        scope = get("SCOPE")
        if scope is not None:
            kwargs["scope"] = DatabaseScope.parse(scope)

        for name, attr in (("PRIVATE_KEY_PATH", "private_key_path"), ("DATA_DIR", "data_dir"), ("LOG_DIR", "log_dir")):
            value = get(name)
            if value is not None:
                kwargs[attr] = Path(value).expanduser()

        log_level = get("LOG_LEVEL")
        if log_level is not None:
            level = logging.getLevelName(log_level.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level '{log_level}'")
            kwargs["log_level"] = level

        return cls(**kwargs)

    def ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
