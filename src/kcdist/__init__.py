"""Process-lifecycle supervisor for server distributions under test."""

from kcdist.errors import (
    AlreadyRunningError,
    DrainShutdownError,
    HarnessError,
    PreparationError,
    ReadinessTimeoutError,
    StartError,
    StopError,
    StreamReadError,
)
from kcdist.models import HarnessConfig, LaunchArguments, ProbeResult, StopMode
from kcdist.supervisor import DistributionSupervisor

__version__ = "0.1.0"

__all__ = [
    "AlreadyRunningError",
    "DistributionSupervisor",
    "DrainShutdownError",
    "HarnessConfig",
    "HarnessError",
    "LaunchArguments",
    "PreparationError",
    "ProbeResult",
    "ReadinessTimeoutError",
    "StartError",
    "StopError",
    "StopMode",
    "StreamReadError",
]
