"""Centralized configuration for testbench.

This module provides typed, validated configuration loaded from
environment variables and .env files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class APIConfig:
    """Test generation API configuration."""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    def __post_init__(self):
        if not self.gemini_api_key:
            self.gemini_api_key = os.getenv("GEMINI_API_KEY", "")
        self.gemini_model = os.getenv("TESTBENCH_GEMINI_MODEL", self.gemini_model)


@dataclass
class ExecutionConfig:
    """Execution and sandbox configuration."""
    timeout_seconds: float = 3.0
    memory_mb: int = 0  # 0 disables the address-space limit
    restricted: bool = False
    start_method: Optional[str] = None
    local_modules: tuple[str, ...] = ("source", "solution", "src", "main", "app")

    def __post_init__(self):
        self.timeout_seconds = float(os.getenv("TESTBENCH_TIMEOUT", self.timeout_seconds))
        self.memory_mb = int(os.getenv("TESTBENCH_MEMORY_MB", self.memory_mb))
        self.restricted = _env_flag("TESTBENCH_RESTRICTED", str(self.restricted))
        self.start_method = os.getenv("TESTBENCH_START_METHOD") or self.start_method

        modules = os.getenv("TESTBENCH_LOCAL_MODULES")
        if modules:
            self.local_modules = tuple(m.strip() for m in modules.split(",") if m.strip())


@dataclass
class PathConfig:
    """Path configuration."""
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    projects_db: Path = field(default_factory=lambda: Path("./data/projects.db"))
    logs_dir: Path = field(default_factory=lambda: Path("./data/logs"))

    def __post_init__(self):
        base = os.getenv("TESTBENCH_DATA_DIR")
        if base:
            self.data_dir = Path(base)
            self.projects_db = self.data_dir / "projects.db"
            self.logs_dir = self.data_dir / "logs"

    def ensure(self) -> None:
        """Create the data and log directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class WebConfig:
    """Web server configuration."""
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False

    def __post_init__(self):
        self.host = os.getenv("TESTBENCH_WEB_HOST", self.host)
        self.port = int(os.getenv("TESTBENCH_WEB_PORT", self.port))
        self.debug = _env_flag("TESTBENCH_DEBUG")


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"  # "json" or "text"
    file_enabled: bool = False
    console_enabled: bool = True

    def __post_init__(self):
        self.level = os.getenv("TESTBENCH_LOG_LEVEL", self.level).upper()
        self.format = os.getenv("TESTBENCH_LOG_FORMAT", self.format).lower()
        self.file_enabled = _env_flag("TESTBENCH_LOG_FILE", str(self.file_enabled))
        self.console_enabled = _env_flag("TESTBENCH_LOG_CONSOLE", str(self.console_enabled))


@dataclass
class Config:
    """Main configuration container."""
    api: APIConfig = field(default_factory=APIConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if self.execution.timeout_seconds <= 0:
            issues.append("timeout_seconds must be positive")

        if self.execution.memory_mb < 0:
            issues.append("memory_mb must not be negative")

        if self.log.format not in ("json", "text"):
            issues.append(f"Unknown log format: {self.log.format}")

        return issues

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
