"""Lifecycle supervisor for one server process under test.

The supervisor prepares the installation, launches `bin/kc.sh` with the derived
arguments, captures its console output and tears it down. What happens between
launch and teardown is decided by a stop policy:

- `AutomaticStopPolicy`: drain output on the caller's thread until the server exits
  on its own, then always tear down.
- `ManualStopPolicy`: drain output in the background, block until the server is
  ready and hand control back. Stopping is then the caller's job.
"""

from __future__ import annotations

import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from types import TracebackType

from kcdist.constants import (
    ADMIN_PASSWORD_ENV,
    ADMIN_USERNAME_ENV,
    BIN_DIR_NAME,
    DATA_DIR_NAME,
    DEFAULT_HTTP_PORT,
    DEFAULT_RELATIVE_PATH,
    EXIT_CODE_UNSET,
)
from kcdist.distribution import DistributionPreparer
from kcdist.drain import DrainTask, LineSink, StreamDrain
from kcdist.errors import (
    AlreadyRunningError,
    HarnessError,
    StartError,
    StopError,
)
from kcdist.logging import HarnessLogComponent, echo_server_line, get_logger
from kcdist.models import (
    HarnessConfig,
    LaunchArguments,
    LifecycleState,
    Lines,
    StopMode,
    TrackedProcess,
)
from kcdist.probe import ReadinessProber
from kcdist.process_control import stop_process_tree, track_process
from kcdist.utils import remove_dir

logger = get_logger(HarnessLogComponent.SUPERVISOR)


# === Stop policies ===


class StopPolicy(ABC):
    """How the supervisor behaves once the server process is running."""

    manual: bool = False

    @property
    def launch_mode_flag(self) -> bool:
        """Whether the launch-mode system property is passed to the server."""
        return not self.manual

    def check_can_start(self, supervisor: DistributionSupervisor) -> None:
        """Reject a start that would clobber a live server."""

    @abstractmethod
    def supervise(self, supervisor: DistributionSupervisor) -> None:
        """Run between a successful launch and the return of `start`."""


class AutomaticStopPolicy(StopPolicy):
    """Run the server to completion on the caller's thread."""

    manual = False

    def supervise(self, supervisor: DistributionSupervisor) -> None:
        try:
            supervisor._drain_inline()
        except BaseException:
            supervisor._teardown_quietly()
            raise
        supervisor.stop_if_running()


class ManualStopPolicy(StopPolicy):
    """Start the server, wait for readiness and leave it running."""

    manual = True

    def check_can_start(self, supervisor: DistributionSupervisor) -> None:
        if supervisor.is_running:
            raise AlreadyRunningError(
                "Server already running. You should manually stop the server "
                "before starting it again."
            )

    def supervise(self, supervisor: DistributionSupervisor) -> None:
        supervisor._drain_in_background()
        _ = supervisor.prober.wait_for_ready(supervisor.http_port, supervisor.relative_path)


def policy_for(mode: StopMode) -> StopPolicy:
    if mode == StopMode.manual:
        return ManualStopPolicy()
    return AutomaticStopPolicy()


# === Supervisor ===


class DistributionSupervisor:
    """Owns the server process handle, its output buffers and its lifecycle."""

    def __init__(
        self,
        config: HarnessConfig | None = None,
        *,
        preparer: DistributionPreparer | None = None,
        prober: ReadinessProber | None = None,
        policy: StopPolicy | None = None,
        sink: LineSink = echo_server_line,
    ):
        self.config: HarnessConfig = config or HarnessConfig()
        self.preparer: DistributionPreparer = preparer or DistributionPreparer(self.config)
        self.prober: ReadinessProber = prober or ReadinessProber.from_config(self.config)
        self.policy: StopPolicy = policy or policy_for(self.config.stop_mode)
        self._sink: LineSink = sink

        self._installation: Path | None = None
        self._process: subprocess.Popen[str] | None = None
        self._tracked: TrackedProcess | None = None
        self._drain: StreamDrain | None = None
        self._drain_task: DrainTask | None = None
        self._arguments: LaunchArguments = LaunchArguments()
        self._exit_code: int = EXIT_CODE_UNSET
        self._state: LifecycleState = LifecycleState.IDLE

    # --- accessors ---

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def exit_code(self) -> int:
        return self._exit_code

    @property
    def stdout_lines(self) -> Lines:
        return self._drain.stdout.snapshot() if self._drain else []

    @property
    def stderr_lines(self) -> Lines:
        return self._drain.stderr.snapshot() if self._drain else []

    @property
    def http_port(self) -> int:
        try:
            return self._arguments.http_port
        except ValueError:
            return DEFAULT_HTTP_PORT

    @property
    def relative_path(self) -> str:
        return self._arguments.relative_path or DEFAULT_RELATIVE_PATH

    @property
    def readiness_url(self) -> str:
        return self.prober.url_for(self.http_port, self.relative_path)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @property
    def installation_path(self) -> Path:
        """The prepared installation, materialized on first use."""
        if self._installation is None:
            self._installation = self.preparer.prepare()
        return self._installation

    def prepare(self) -> Path:
        return self.installation_path

    # --- lifecycle ---

    def start(self, arguments: list[str]) -> None:
        """Launch the server with `arguments` and supervise it per the stop policy.

        Raises:
            AlreadyRunningError: Manual policy and the previous server is still alive
            PreparationError: The installation could not be prepared
            StartError: The process could not be launched
            ReadinessTimeoutError: Manual policy and the server never became ready
            StopError: The server had to be killed during teardown
        """
        self.policy.check_can_start(self)
        self._reset()
        self.stop_if_running()
        self._process = None
        self._tracked = None

        try:
            self._launch(LaunchArguments(tokens=list(arguments)))
            self.policy.supervise(self)
        except HarnessError:
            self._fail()
            raise
        except Exception as cause:
            self._fail()
            raise StartError(f"Failed to start the server: {cause}") from cause
        except BaseException:
            self._fail()
            raise

    def stop_if_running(self) -> None:
        """Stop the server if it is alive and join the drain task. Safe to call repeatedly.

        Raises:
            StopError: The server ignored the graceful stop and was killed
            DrainShutdownError: The drain task did not terminate in time
        """
        stop_error: StopError | None = None
        try:
            stop_error = self._stop_process()
        finally:
            self._shutdown_drain_task()
        if stop_error is not None:
            raise stop_error

    def __enter__(self) -> DistributionSupervisor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is None:
            self.stop_if_running()
        else:
            self._teardown_quietly()

    # --- internals ---

    def _reset(self) -> None:
        self._shutdown_drain_task()
        self._drain = None
        self._exit_code = EXIT_CODE_UNSET

    def _launch(self, arguments: LaunchArguments) -> None:
        self._state = LifecycleState.LAUNCHING
        install = self.installation_path
        self._arguments = arguments
        _ = arguments.http_port  # reject a malformed port before spawning

        cmd = arguments.cli_args(
            self.config.launcher,
            debug=self.config.debug,
            launch_mode=self.policy.launch_mode_flag,
        )
        env = {
            **os.environ,
            ADMIN_USERNAME_ENV: self.config.admin_username,
            ADMIN_PASSWORD_ENV: self.config.admin_password,
        }

        # every run starts from a clean database
        if remove_dir(install / DATA_DIR_NAME):
            logger.debug(f"Removed {install / DATA_DIR_NAME}")

        logger.info(f"Launching {' '.join(cmd)} in {install / BIN_DIR_NAME}")
        self._process = subprocess.Popen(
            cmd,
            cwd=install / BIN_DIR_NAME,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        self._tracked = track_process(self._process.pid)
        self._drain = StreamDrain(self._process, sink=self._sink)
        self._state = LifecycleState.RUNNING

    def _drain_inline(self) -> None:
        assert self._drain is not None and self._process is not None
        self._drain.run()
        self._collect_exit_code()

    def _drain_in_background(self) -> None:
        assert self._drain is not None
        self._shutdown_drain_task()
        self._drain_task = DrainTask(self._drain)
        self._drain_task.start()

    def _shutdown_drain_task(self) -> None:
        task, self._drain_task = self._drain_task, None
        if task is not None:
            task.cancel_and_join(self.config.drain_join_timeout)

    def _collect_exit_code(self) -> None:
        if self._process is None:
            return
        code = self._process.poll()
        if code is not None:
            self._exit_code = code

    def _stop_process(self) -> StopError | None:
        stop_error: StopError | None = None
        if self.is_running:
            assert self._process is not None
            self._state = LifecycleState.STOPPING
            logger.info(f"Stopping server pid={self._process.pid}")
            graceful = stop_process_tree(
                self._process, self._tracked, timeout=self.config.stop_timeout
            )
            self._collect_exit_code()
            self._state = LifecycleState.STOPPED
            if not graceful:
                stop_error = StopError(
                    f"Failed to stop the server within {self.config.stop_timeout:g}s; "
                    f"it was killed (exit code {self._exit_code})"
                )
        elif self._process is not None and self._state == LifecycleState.RUNNING:
            self._collect_exit_code()
            self._state = LifecycleState.STOPPED
        return stop_error

    def _teardown_quietly(self) -> None:
        """Best-effort teardown while another error is propagating."""
        try:
            self.stop_if_running()
        except Exception as e:
            logger.error(f"Teardown after failure also failed: {e!r}")

    def _fail(self) -> None:
        self._teardown_quietly()
        self._state = LifecycleState.FAILED
