"""Capture a child process's console output while it runs."""

from __future__ import annotations

import subprocess
import threading
from typing import IO, Protocol

from kcdist.errors import DrainShutdownError, StreamReadError
from kcdist.logging import HarnessLogComponent, echo_server_line, get_logger
from kcdist.models import Channel, Lines

logger = get_logger(HarnessLogComponent.DRAIN)


class LineSink(Protocol):
    """Where drained lines are echoed for live observation."""

    def __call__(self, line: str, *, is_stderr: bool = False) -> None: ...


class ChannelBuffer:
    """Lines read from one channel.

    Each buffer has exactly one writer (its reader thread). Readers of the
    buffer take snapshots.
    """

    def __init__(self, channel: Channel):
        self.channel: Channel = channel
        self._lines: Lines = []

    def append(self, line: str) -> None:
        self._lines.append(line)

    def snapshot(self) -> Lines:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class StreamDrain:
    """Copy stdout and stderr of a running process into owned line buffers.

    One reader thread per channel. `run()` blocks while the process is alive
    (or until cancelled), then gives the readers a bounded time to pick up the
    trailing output.
    """

    def __init__(
        self,
        process: subprocess.Popen[str],
        *,
        sink: LineSink = echo_server_line,
        poll_interval: float = 0.05,
        reader_join_timeout: float = 5.0,
    ):
        self.process: subprocess.Popen[str] = process
        self.stdout: ChannelBuffer = ChannelBuffer(Channel.STDOUT)
        self.stderr: ChannelBuffer = ChannelBuffer(Channel.STDERR)
        self._sink: LineSink = sink
        self._poll_interval: float = poll_interval
        self._reader_join_timeout: float = reader_join_timeout
        self._cancelled: threading.Event = threading.Event()
        self._error: BaseException | None = None
        self._error_channel: Channel | None = None

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _read_channel(self, stream: IO[str], buffer: ChannelBuffer) -> None:
        is_stderr = buffer.channel == Channel.STDERR
        try:
            for raw in iter(stream.readline, ""):
                line = raw.rstrip("\r\n")
                buffer.append(line)
                self._sink(line, is_stderr=is_stderr)
        except Exception as e:
            if self._error is None:
                self._error = e
                self._error_channel = buffer.channel

    def run(self) -> None:
        """Drain both channels until the process exits or the drain is cancelled.

        Raises:
            StreamReadError: If reading either channel failed
        """
        streams = [(self.process.stdout, self.stdout), (self.process.stderr, self.stderr)]
        readers: list[threading.Thread] = []
        for stream, buffer in streams:
            if stream is None:
                continue
            reader = threading.Thread(
                target=self._read_channel,
                args=(stream, buffer),
                name=f"kcdist-{buffer.channel.value}-reader",
                daemon=True,
            )
            reader.start()
            readers.append(reader)

        while self.process.poll() is None and not self._cancelled.is_set():
            _ = self._cancelled.wait(self._poll_interval)

        for reader in readers:
            reader.join(self._reader_join_timeout)
            if reader.is_alive():
                logger.warning(f"{reader.name} still blocked after the process went away")

        if self._error is not None:
            channel = self._error_channel.value if self._error_channel else "output"
            raise StreamReadError(
                f"Failed to read server {channel}: {self._error}"
            ) from self._error


class DrainTask:
    """A `StreamDrain` running on its own background thread."""

    def __init__(self, drain: StreamDrain):
        self.drain: StreamDrain = drain
        self._error: StreamReadError | None = None
        self._thread: threading.Thread = threading.Thread(
            target=self._run, name="kcdist-drain", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            self.drain.run()
        except StreamReadError as e:
            logger.error(str(e))
            self._error = e

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def cancel_and_join(self, timeout: float) -> None:
        """Cancel the drain and wait for it to finish.

        Raises:
            DrainShutdownError: If the thread is still alive after `timeout`
            StreamReadError: If the drain had failed while running
        """
        self.drain.cancel()
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise DrainShutdownError(f"Drain task did not terminate within {timeout:g}s")
        if self._error is not None:
            error, self._error = self._error, None
            raise error
