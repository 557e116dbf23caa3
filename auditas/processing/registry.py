#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Registry of run-scoped resources that must never outlive the run.

Counter stores and lock files are created per run. Every one of them is
registered here and released exactly once: when the owning scope exits,
at interpreter exit, or when SIGINT/SIGTERM arrives outside a scope.

Inside a ``with registry:`` scope a signal does not release anything
itself. It runs the signal callbacks (the batch processor stops its
dispatcher there) and defers to the previous handler, which normally
raises. The release then happens at scope exit, after in-flight work has
drained, so no late worker can recreate a released file.

Usage:
    with ResourceRegistry() as registry:
        registry.install_handlers()
        lock_path = registry.register(TempFile(lock_dir / "run.lock"))
        ...
    # everything registered has been cleaned up here
"""

import atexit
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from auditas.core import get_logger


class TempFile:
    """An ephemeral file removed on cleanup."""

    def __init__(self, path: Union[str, Path], create: bool = True):
        self.path = Path(path)
        if create:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)

    def cleanup(self):
        self.path.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"TempFile({self.path})"


class ResourceRegistry:
    """
    Tracks ephemeral resources and releases each of them exactly once.

    A resource is any object with a ``cleanup()`` method; plain paths are
    wrapped in :class:`TempFile`. Release order is unspecified.

    The registry is also a context manager, so a run can scope its
    resources with ``with``. Signal hooks are opt-in via
    :meth:`install_handlers` because only the main thread may install
    them.
    """

    HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self):
        self._resources: Dict[int, Any] = {}
        self._lock = threading.RLock()
        self._previous_handlers: Dict[int, Any] = {}
        self._atexit_registered = False
        self._scope_depth = 0
        self._signal_callbacks: List[Callable[[int], Any]] = []
        self.logger = get_logger(f"{__name__}.ResourceRegistry")

    def register(self, resource: Any) -> Any:
        """
        Register a resource for cleanup.

        Args:
            resource: Object with ``cleanup()``, or a path to remove

        Returns:
            The registered resource (a TempFile when a path was given)
        """
        if isinstance(resource, (str, Path)):
            resource = TempFile(resource)
        if not callable(getattr(resource, "cleanup", None)):
            raise TypeError(f"{resource!r} has no cleanup() method")

        with self._lock:
            self._resources[id(resource)] = resource
        self.logger.debug("Registered %r", resource)
        return resource

    def unregister(self, resource: Any) -> bool:
        """Forget a resource without cleaning it up."""
        with self._lock:
            return self._resources.pop(id(resource), None) is not None

    def release_all(self) -> int:
        """
        Clean up every registered resource.

        Safe to call repeatedly; a resource is only ever cleaned up once.
        A failing cleanup is logged and does not stop the others.

        Returns:
            Number of resources released by this call
        """
        with self._lock:
            resources: List[Any] = list(self._resources.values())
            self._resources.clear()

        released = 0
        for resource in resources:
            try:
                resource.cleanup()
                released += 1
                self.logger.debug("Released %r", resource)
            except Exception as e:
                self.logger.warning("Failed to release %r: %s", resource, e)
        return released

    def install_handlers(self, on_signal: Optional[Callable[[int], Any]] = None) -> bool:
        """
        Release everything at interpreter exit and on SIGINT/SIGTERM.

        Signal handlers are only installed from the main thread; atexit is
        always registered.

        Args:
            on_signal: Called with the signal number before anything else
                happens (e.g. to stop submitting work)

        Returns:
            True if signal handlers were installed
        """
        if on_signal is not None:
            self._signal_callbacks.append(on_signal)

        if not self._atexit_registered:
            atexit.register(self.release_all)
            self._atexit_registered = True

        if threading.current_thread() is not threading.main_thread():
            self.logger.debug("Not in main thread, skipping signal handlers")
            return False

        for sig in self.HANDLED_SIGNALS:
            if sig not in self._previous_handlers:
                self._previous_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)
        return True

    def uninstall_handlers(self):
        """Restore the signal handlers that were active before install_handlers()."""
        self._signal_callbacks.clear()
        if self._atexit_registered:
            atexit.unregister(self.release_all)
            self._atexit_registered = False

        if threading.current_thread() is not threading.main_thread():
            return

        for sig, previous in list(self._previous_handlers.items()):
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def _handle_signal(self, signum, frame):
        """Stop work, release (now or at scope exit), then defer to the previous handler."""
        signal_name = signal.Signals(signum).name
        for callback in list(self._signal_callbacks):
            try:
                callback(signum)
            except Exception as e:
                self.logger.warning("Signal callback %r failed: %s", callback, e)

        if self._scope_depth > 0:
            self.logger.warning("Received %s, releasing run resources once work drains", signal_name)
        else:
            self.logger.warning("Received %s, releasing run resources", signal_name)
            self.release_all()

        previous = self._previous_handlers.get(signum)
        self.uninstall_handlers()

        if callable(previous):
            previous(signum, frame)
        elif signum == signal.SIGINT and previous != signal.SIG_IGN:
            raise KeyboardInterrupt
        elif previous != signal.SIG_IGN:
            sys.exit(128 + signum)

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def __enter__(self) -> "ResourceRegistry":
        with self._lock:
            self._scope_depth += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        with self._lock:
            self._scope_depth -= 1
        self.release_all()
        self.uninstall_handlers()
        return False

    def __repr__(self) -> str:
        return f"ResourceRegistry(resources={len(self)})"


# Global instance with thread-safe initialization
_registry: Optional[ResourceRegistry] = None
_registry_lock = threading.Lock()


def get_resource_registry() -> ResourceRegistry:
    """
    Get the process-wide resource registry.

    Returns:
        The singleton ResourceRegistry instance
    """
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = ResourceRegistry()
    return _registry
