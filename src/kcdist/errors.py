"""Typed failures raised by the harness.

Every failure is loud: callers get one of these instead of a degraded run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kcdist.models import ProbeResult


class HarnessError(Exception):
    """Base class for all kcdist errors."""


class PreparationError(HarnessError):
    """The distribution could not be resolved or expanded."""


class AlreadyRunningError(HarnessError):
    """`start` was called under the manual policy while the server is alive."""


class StartError(HarnessError):
    """The server process could not be launched."""


class StreamReadError(HarnessError):
    """Reading the server's console output failed."""


class ReadinessTimeoutError(HarnessError):
    """The server did not answer its readiness endpoint before the deadline."""

    def __init__(self, message: str, result: ProbeResult | None = None):
        super().__init__(message)
        self.result: ProbeResult | None = result


class StopError(HarnessError):
    """The server did not stop gracefully and had to be killed."""


class DrainShutdownError(HarnessError):
    """The background drain task did not terminate within its bound."""
