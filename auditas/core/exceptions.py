#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Custom exceptions for the Auditas batch engine.
"""

from typing import Optional


class AuditasException(Exception):
    """Base exception for all Auditas errors."""
    pass


class ConfigurationError(AuditasException):
    """Raised when there's a configuration issue."""
    pass


class ResourceError(AuditasException):
    """Raised when a run-scoped resource (counter store, lock file) cannot be created."""
    pass


class LockAcquisitionError(ResourceError):
    """Raised when a named lock cannot be acquired within its timeout."""

    def __init__(self, lock_name: str, timeout: Optional[float] = None, reason: Optional[str] = None):
        self.lock_name = lock_name
        self.timeout = timeout
        self.reason = reason
        if reason:
            message = f"Could not acquire lock '{lock_name}': {reason}"
        elif timeout is None:
            message = f"Could not acquire lock '{lock_name}'"
        else:
            message = f"Could not acquire lock '{lock_name}' within {timeout:.1f}s"
        super().__init__(message)


class ResumeCacheError(AuditasException):
    """Raised when the resume cache cannot be rewritten or removed."""
    pass


class OperationError(AuditasException):
    """
    Raised by a per-item operation to report a categorised failure.

    The dispatcher converts it into a failed Outcome carrying ``category``.
    """

    def __init__(self, message: str, category: str = "FAIL"):
        self.category = category
        super().__init__(message)
