"""Trust-all HTTP transport for the test harness only.

The server under test usually runs with a self-signed certificate, so readiness
checks skip certificate and hostname verification. Nothing outside the readiness
prober may build clients from here.
"""

from __future__ import annotations

import httpx


def insecure_client(
    timeout: float, transport: httpx.BaseTransport | None = None
) -> httpx.Client:
    """Build an httpx client that accepts any certificate for any host."""
    return httpx.Client(
        verify=False,
        timeout=httpx.Timeout(timeout),
        transport=transport,
        follow_redirects=False,
    )
