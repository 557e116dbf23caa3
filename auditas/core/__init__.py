#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Core infrastructure for Auditas.
"""

from .config import AuditasConfig, get_config, reset_config
from .exceptions import (
    AuditasException,
    ConfigurationError,
    ResourceError,
    LockAcquisitionError,
    ResumeCacheError,
    OperationError,
)
from .logging import setup_logging, get_logger

__all__ = [
    # Config
    "AuditasConfig",
    "get_config",
    "reset_config",
    # Exceptions
    "AuditasException",
    "ConfigurationError",
    "ResourceError",
    "LockAcquisitionError",
    "ResumeCacheError",
    "OperationError",
    # Logging
    "setup_logging",
    "get_logger",
]
