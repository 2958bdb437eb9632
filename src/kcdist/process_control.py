"""Process tracking and deterministic stop helpers for the supervised server.

Design goals:
- Only stop processes we started (tracked by pid + create_time).
- Prefer graceful shutdown (SIGTERM), escalate to SIGKILL after a bounded wait.
- Take the launcher's descendants down with it (kc.sh starts the JVM as a child).
"""

from __future__ import annotations

import subprocess
import time

import psutil

from kcdist.constants import DEFAULT_KILL_TIMEOUT
from kcdist.logging import HarnessLogComponent, get_logger
from kcdist.models import TrackedProcess

logger = get_logger(HarnessLogComponent.PROCESS_CONTROL)


def track_process(pid: int) -> TrackedProcess | None:
    """Create a TrackedProcess for a running PID, recording create_time."""
    try:
        proc = psutil.Process(pid)
        return TrackedProcess(pid=pid, create_time=float(proc.create_time()))
    except psutil.Error:
        return None


def validate_tracked(tp: TrackedProcess) -> psutil.Process | None:
    """Return a psutil.Process only if PID matches create_time (prevents PID reuse bugs)."""
    if tp.pid is None or tp.create_time is None:
        return None
    try:
        proc = psutil.Process(tp.pid)
        if abs(float(proc.create_time()) - float(tp.create_time)) > 0.001:
            return None
        return proc
    except psutil.Error:
        return None


def list_descendants(tp: TrackedProcess) -> list[psutil.Process]:
    proc = validate_tracked(tp)
    if proc is None:
        return []
    try:
        return proc.children(recursive=True)
    except psutil.Error:
        return []


def _terminate_all(procs: list[psutil.Process]) -> None:
    for p in procs:
        try:
            p.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            logger.warning(f"Could not signal pid={p.pid}: {e}")


def _kill_all(procs: list[psutil.Process]) -> None:
    for p in procs:
        try:
            p.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            logger.warning(f"Could not signal pid={p.pid}: {e}")


def stop_process_tree(
    process: subprocess.Popen[str],
    tracked: TrackedProcess | None,
    *,
    timeout: float,
    kill_timeout: float = DEFAULT_KILL_TIMEOUT,
) -> bool:
    """Stop a launched process and its descendants.

    Behavior:
    - SIGTERM descendants first, then the root, and wait up to `timeout` in total.
    - Anything still alive after that is SIGKILLed.

    The root is waited on through its Popen handle so its exit code stays available.

    Returns:
        True if everything exited within `timeout`, False if something had to be killed
    """
    children = list_descendants(tracked) if tracked is not None else []
    deadline = time.monotonic() + timeout

    _terminate_all(children)
    process.terminate()

    root_exited = True
    try:
        _ = process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        root_exited = False

    _, alive = psutil.wait_procs(children, timeout=max(0.0, deadline - time.monotonic()))

    if root_exited and not alive:
        return True

    if not root_exited:
        logger.warning(f"pid={process.pid} ignored SIGTERM for {timeout:g}s, killing it")
        process.kill()
        try:
            _ = process.wait(timeout=kill_timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"pid={process.pid} survived SIGKILL for {kill_timeout:g}s")
    if alive:
        logger.warning(f"Killing {len(alive)} leftover descendant(s) of pid={process.pid}")
        _kill_all(alive)
        _ = psutil.wait_procs(alive, timeout=kill_timeout)
    return False
