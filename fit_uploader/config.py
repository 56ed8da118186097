"""Configuration management for fit_uploader"""

import json
import os
import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Base directory for the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
ENV_FILE = BASE_DIR / ".env"
load_dotenv(ENV_FILE)

# Settings file paths
SETTINGS_FILE = BASE_DIR / "settings.json"
PYPROJECT_FILE = BASE_DIR / "pyproject.toml"
PACKAGE_NAME = "tp-fit-uploader"

# Environment variable names for configuration
ENV_AUTH_TOKEN = "TP_AUTH_TOKEN"
ENV_ATHLETE_ID = "TP_ATHLETE_ID"
ENV_API_BASE = "TP_API_BASE"
ENV_PARALLELISM = "FIT_UPLOADER_PARALLELISM"
ENV_UPLOAD_FOLDER = "FIT_UPLOADER_UPLOAD_FOLDER"
ENV_LOG_DIR = "FIT_UPLOADER_LOG_DIR"
ENV_HTTP_TIMEOUT = "FIT_UPLOADER_HTTP_TIMEOUT"

DEFAULT_API_BASE = "https://tpapi.trainingpeaks.com"
DEFAULT_PARALLELISM = 8
DEFAULT_HTTP_TIMEOUT = 60.0


def get_package_version() -> str:
    """Get the installed package version, falling back to pyproject.toml."""
    try:
        return version(PACKAGE_NAME)
    except PackageNotFoundError:
        pass
    try:
        with open(PYPROJECT_FILE, "rb") as f:
            pyproject = tomllib.load(f)
        return str(pyproject.get("project", {}).get("version", "0.0.0"))
    except Exception:
        return "0.0.0"


class Settings:
    """Manages application settings stored in JSON format."""

    _instance: "Settings | None" = None
    _settings: dict[str, Any]

    def __new__(cls) -> "Settings":
        """Singleton pattern to ensure only one settings instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_settings()
        return cls._instance

    def _load_settings(self) -> None:
        """Load settings from file, with environment variables taking precedence.

        Priority order (highest to lowest):
        1. Environment variables (from .env file or system)
        2. settings.json (user-saved settings)
        3. Hardcoded defaults
        """
        defaults: dict[str, Any] = {
            "auth_token": "",
            "athlete_id": None,
            "api_base": DEFAULT_API_BASE,
            "parallelism": DEFAULT_PARALLELISM,
            "default_upload_folder": "",
            "log_directory": "",
            "http_timeout": DEFAULT_HTTP_TIMEOUT,
        }

        if SETTINGS_FILE.exists():
            with open(SETTINGS_FILE, encoding="utf-8") as f:
                defaults.update(json.load(f))

        # Override with environment variables (highest priority)
        env_overrides = {
            "auth_token": os.environ.get(ENV_AUTH_TOKEN),
            "athlete_id": os.environ.get(ENV_ATHLETE_ID),
            "api_base": os.environ.get(ENV_API_BASE),
            "parallelism": os.environ.get(ENV_PARALLELISM),
            "default_upload_folder": os.environ.get(ENV_UPLOAD_FOLDER),
            "log_directory": os.environ.get(ENV_LOG_DIR),
            "http_timeout": os.environ.get(ENV_HTTP_TIMEOUT),
        }

        # Only apply non-None environment values
        for key, value in env_overrides.items():
            if value is not None:
                defaults[key] = value

        self._settings = defaults

    def set(self, key: str, value: Any) -> None:
        """Set a setting value for the current process."""
        self._settings[key] = value

    @property
    def auth_token(self) -> str:
        """Get the bearer token used for uploads."""
        return str(self._settings.get("auth_token") or "")

    @property
    def athlete_id(self) -> int | None:
        """Get the athlete id, or None when not configured."""
        value = self._settings.get("athlete_id")
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def api_base(self) -> str:
        """Get the upload API base URL."""
        return str(self._settings.get("api_base") or DEFAULT_API_BASE).rstrip("/")

    @property
    def parallelism(self) -> int:
        """Get the number of files processed concurrently."""
        try:
            return max(1, int(self._settings.get("parallelism", DEFAULT_PARALLELISM)))
        except (TypeError, ValueError):
            return DEFAULT_PARALLELISM

    @property
    def default_upload_folder(self) -> str:
        """Get the default upload folder path."""
        return str(self._settings.get("default_upload_folder") or "")

    @property
    def log_directory(self) -> Path | None:
        """Get the JSONL log directory, or None when file logging is disabled."""
        value = self._settings.get("log_directory")
        if not value:
            return None
        return Path(str(value)).expanduser()

    @property
    def http_timeout(self) -> float:
        """Get the HTTP request timeout in seconds."""
        try:
            return float(self._settings.get("http_timeout", DEFAULT_HTTP_TIMEOUT))
        except (TypeError, ValueError):
            return DEFAULT_HTTP_TIMEOUT


def get_settings() -> Settings:
    """Get the singleton Settings instance."""
    return Settings()
