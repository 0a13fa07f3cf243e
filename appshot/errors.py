"""
Error types for screenshot generation.

All errors inherit from AppshotError. The generator retries TransientUIError
(and its ExternalTimeout subclass), never retries PreconditionError, and lets
SessionFatalError escape so the size scheduler can rebuild the browser session.
"""

from __future__ import annotations


class AppshotError(Exception):
    """Base exception for all appshot failures."""


class ConfigurationError(AppshotError):
    """Raised when the configuration file is missing or invalid."""


class PreconditionError(AppshotError):
    """Raised when a task cannot start, e.g. its source image is missing."""

    def __init__(self, path: str, reason: str = "Source screenshot not found"):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class TransientUIError(AppshotError):
    """Raised when the remote UI did not react as expected to a step."""


class ExternalTimeout(TransientUIError):
    """Raised when the export download is never observed."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Export download not observed within {timeout_ms}ms")


class SessionFatalError(AppshotError):
    """Raised when the browser process or context is no longer usable."""
