#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Configuration management for Auditas using Pydantic Settings.
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Optional
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


def _xdg_dir(variable: str, fallback: str, *parts: str) -> Path:
    """Resolve an XDG base directory, falling back to its default under $HOME."""
    base = os.getenv(variable) or str(Path.home() / fallback)
    return Path(base).joinpath(*parts)


def _default_log_dir() -> Path:
    return _xdg_dir("XDG_DATA_HOME", ".local/share", "auditas", "logs")


def _default_state_dir() -> Path:
    return _xdg_dir("XDG_STATE_HOME", ".local/state", "auditas", "state")


def _default_lock_dir() -> Path:
    return Path(tempfile.gettempdir()) / "auditas"


class AuditasConfig(BaseSettings):
    """
    Main configuration class for Auditas.

    Loads settings from environment variables and .env file.
    All settings can be overridden with AUDITAS_ prefix.

    Example:
        export AUDITAS_JOBS=8
        export AUDITAS_CROSS_PROCESS=true
    """

    # Processing Settings
    jobs: int = Field(
        default_factory=lambda: os.cpu_count() or 4,
        ge=1,
        le=512,
        description="Number of concurrent execution slots"
    )
    cross_process: bool = Field(
        default=False,
        description="Coordinate through advisory file locks and a file-backed counter"
    )
    lock_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a lock before giving up on the critical section"
    )

    # Paths
    log_dir: Path = Field(
        default_factory=_default_log_dir,
        description="Directory for log channel files"
    )
    state_dir: Path = Field(
        default_factory=_default_state_dir,
        description="Directory for durable state such as the resume cache"
    )
    lock_dir: Path = Field(
        default_factory=_default_lock_dir,
        description="Directory for ephemeral lock files and the counter store"
    )
    resume_cache_name: str = Field(
        default="verified.log",
        min_length=1,
        description="File name of the resume cache inside state_dir"
    )

    # Display Settings
    bar_width: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Width of the progress bar in characters"
    )
    name_width: int = Field(
        default=80,
        ge=8,
        description="Width of the identifier column in progress rows"
    )
    show_progress: bool = Field(
        default=True,
        description="Print one progress row per completed item"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$",
        description="Logging level"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AUDITAS_",
        case_sensitive=False,
        extra="ignore",
    )

    def __init__(self, **kwargs):
        """Initialize config and create necessary directories."""
        from dotenv import load_dotenv
        load_dotenv()

        try:
            super().__init__(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"\n\nConfiguration Errors:\n{e}") from e

        self._validate_config()

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.state_dir.mkdir(parents=True, exist_ok=True)
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create Auditas directories: {e}") from e

    def _validate_config(self):
        """Validate configuration and provide helpful error messages."""
        errors = []

        if "/" in self.resume_cache_name or "\\" in self.resume_cache_name:
            errors.append(
                f"resume_cache_name must be a bare file name, got '{self.resume_cache_name}'"
            )

        if self.log_dir.exists() and not self.log_dir.is_dir():
            errors.append(f"log_dir '{self.log_dir}' exists and is not a directory")
        if self.state_dir.exists() and not self.state_dir.is_dir():
            errors.append(f"state_dir '{self.state_dir}' exists and is not a directory")

        if errors:
            error_msg = "\n\nConfiguration Errors:\n" + "\n".join(f"  - {err}" for err in errors)
            raise ConfigurationError(error_msg)

    @property
    def resume_cache_path(self) -> Path:
        """Return the path of the resume cache file."""
        return self.state_dir / self.resume_cache_name

    def get_log_path(self, *parts: str) -> Path:
        """Get path within log directory."""
        return self.log_dir.joinpath(*parts)

    def get_lock_path(self, *parts: str) -> Path:
        """Get path within lock directory."""
        return self.lock_dir.joinpath(*parts)


# Singleton instance with thread-safe initialization
_config_instance: Optional[AuditasConfig] = None
_config_lock = threading.Lock()


def get_config(**kwargs) -> AuditasConfig:
    """
    Get or create the global configuration instance.

    Thread-safe singleton pattern using double-checked locking.

    Args:
        **kwargs: Optional configuration overrides (only used on first call)

    Returns:
        AuditasConfig instance
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AuditasConfig(**kwargs)
    return _config_instance


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config_instance
    with _config_lock:
        _config_instance = None
