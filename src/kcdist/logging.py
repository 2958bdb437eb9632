"""Centralized logging for kcdist (component loggers and console routing)."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from kcdist.utils import PrefixedLogHandler, print_with_prefix


class HarnessLogComponent(str, Enum):
    """Where a log originated (used for fine-grained filtering)."""

    SUPERVISOR = "supervisor"
    DISTRIBUTION = "distribution"
    PROBE = "probe"
    DRAIN = "drain"
    PROCESS_CONTROL = "process_control"


_COMPONENT_PREFIX: dict[HarnessLogComponent, tuple[str, str]] = {
    HarnessLogComponent.SUPERVISOR: ("[kcdist]", "bright_blue"),
    HarnessLogComponent.DISTRIBUTION: ("[dist]", "magenta"),
    HarnessLogComponent.PROBE: ("[probe]", "green"),
    HarnessLogComponent.DRAIN: ("[drain]", "bright_blue"),
    HarnessLogComponent.PROCESS_CONTROL: ("[proc]", "bright_blue"),
}

SERVER_PREFIX = "[server]"


class _LogState(BaseModel):
    configured: bool = False
    echo_server_output: bool = True


_STATE = _LogState()


def configure_logging(*, level: int = logging.INFO, echo_server_output: bool = True) -> None:
    """Attach a prefixed console handler to every component logger."""
    for component in HarnessLogComponent:
        prefix, color = _COMPONENT_PREFIX[component]
        logger = logging.getLogger(f"kcdist.{component.value}")
        logger.setLevel(level)
        logger.handlers.clear()
        handler = PrefixedLogHandler(prefix, color)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    _STATE.echo_server_output = echo_server_output
    _STATE.configured = True


def get_logger(component: HarnessLogComponent) -> logging.Logger:
    """Get a logger for a component (do not call stdlib logging directly)."""
    logger = logging.getLogger(f"kcdist.{component.value}")
    if not _STATE.configured and not logger.handlers:
        # Stay quiet unless an application configured logging for us.
        logger.addHandler(logging.NullHandler())
    return logger


def echo_server_line(line: str, *, is_stderr: bool = False) -> None:
    """Console sink for the child's output lines."""
    if not _STATE.echo_server_output:
        return
    print_with_prefix(SERVER_PREFIX, line, "red" if is_stderr else "white")
