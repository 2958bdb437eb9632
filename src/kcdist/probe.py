"""Readiness polling against the server's master realm endpoint."""

from __future__ import annotations

import time
from typing import Callable

import httpx
from tenacity import Retrying, retry_if_result, stop_before_delay, wait_fixed

from kcdist.constants import (
    DEFAULT_HOST,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_READINESS_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    READINESS_PATH,
)
from kcdist.errors import ReadinessTimeoutError
from kcdist.insecure import insecure_client
from kcdist.logging import HarnessLogComponent, get_logger
from kcdist.models import HarnessConfig, ProbeResult, collapse_slashes

logger = get_logger(HarnessLogComponent.PROBE)

ClientFactory = Callable[[float], httpx.Client]


def readiness_url(
    port: int, relative_path: str, *, host: str = DEFAULT_HOST, scheme: str = "http"
) -> str:
    """Build `scheme://host:port/<relative_path>/realms/master/` without doubled slashes."""
    path = collapse_slashes(f"/{relative_path}{READINESS_PATH}")
    return f"{scheme}://{host}:{port}{path}"


class ReadinessProber:
    """Poll the readiness endpoint at a fixed interval until it answers 200.

    Every other outcome (non-200 status, refused connection, timeout, TLS failure,
    even a malformed URL) counts as "not ready yet" and is retried until the deadline.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        *,
        deadline: float = DEFAULT_READINESS_TIMEOUT,
        interval: float = DEFAULT_POLL_INTERVAL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        scheme: str = "http",
        client_factory: ClientFactory = insecure_client,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.host: str = host
        self.deadline: float = deadline
        self.interval: float = interval
        self.request_timeout: float = request_timeout
        self.scheme: str = scheme
        self._client_factory: ClientFactory = client_factory
        self._sleep: Callable[[float], None] = sleep

    @classmethod
    def from_config(cls, config: HarnessConfig) -> ReadinessProber:
        return cls(
            config.host,
            deadline=config.readiness_timeout,
            interval=config.poll_interval,
            request_timeout=config.request_timeout,
        )

    def url_for(self, port: int, relative_path: str) -> str:
        return readiness_url(port, relative_path, host=self.host, scheme=self.scheme)

    def poll(self, port: int, relative_path: str) -> ProbeResult:
        """Poll until ready or until the deadline passes; never raises."""
        url = self.url_for(port, relative_path)
        attempts = 0
        started = time.monotonic()

        def attempt(client: httpx.Client) -> bool:
            nonlocal attempts
            attempts += 1
            # the last attempt must finish by deadline + interval
            budget = self.deadline + self.interval - (time.monotonic() - started)
            timeout = max(min(self.request_timeout, budget), 0.001)
            try:
                response = client.get(url, timeout=timeout)
            except Exception as e:
                logger.debug(f"Attempt {attempts} against {url} failed: {e!r}")
                return False
            if response.status_code != 200:
                logger.debug(f"Attempt {attempts} against {url} got {response.status_code}")
                return False
            return True

        retryer = Retrying(
            stop=stop_before_delay(self.deadline),
            wait=wait_fixed(self.interval),
            retry=retry_if_result(lambda ready: not ready),
            retry_error_callback=lambda _state: False,
            sleep=self._sleep,
        )
        with self._client_factory(self.request_timeout) as client:
            ready = bool(retryer(attempt, client))

        return ProbeResult(
            ready=ready,
            url=url,
            attempts=attempts,
            elapsed=time.monotonic() - started,
        )

    def wait_for_ready(self, port: int, relative_path: str) -> ProbeResult:
        """Block until the server is ready.

        Raises:
            ReadinessTimeoutError: If the deadline passes first
        """
        result = self.poll(port, relative_path)
        if not result.ready:
            raise ReadinessTimeoutError(
                f"Server at {result.url} was not ready after {self.deadline:g}s "
                f"({result.attempts} attempts)",
                result,
            )
        logger.info(f"Server is ready at {result.url} ({result.elapsed:.1f}s)")
        return result
