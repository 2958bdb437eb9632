"""Shared fixtures: fake server distributions packed the way the real one ships."""

from __future__ import annotations

import socket
import sys
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from kcdist.models import HarnessConfig

DIST_VERSION = "1.0"
ARCHIVE_NAME = f"keycloak-server-x-dist-{DIST_VERSION}.zip"
INSTALL_NAME = f"keycloak.x-{DIST_VERSION}"

# Serves 200 on <relative-path>/realms/master/ once FAKE_READY_DELAY seconds have passed,
# or never when FAKE_NEVER_READY is set.
FAKE_SERVER = '''\
import http.server
import os
import re
import sys
import time

port = 8080
relative_path = "/"
for arg in sys.argv[1:]:
    if arg.startswith("--http-port="):
        port = int(arg.split("=", 1)[1])
    elif arg.startswith("--http-relative-path="):
        relative_path = arg.split("=", 1)[1]

ready_path = re.sub(r"/{2,}", "/", "/" + relative_path + "/realms/master/")
delay = float(os.environ.get("FAKE_READY_DELAY", "0"))
never = bool(os.environ.get("FAKE_NEVER_READY"))
started = time.monotonic()


class Handler(http.server.BaseHTTPRequestHandler):
    def do_GET(self):
        ready = not never and time.monotonic() - started >= delay
        self.send_response(200 if ready and self.path == ready_path else 503)
        self.end_headers()

    def log_message(self, *args):
        pass


print(f"listening on {port}", flush=True)
print("admin=" + os.environ.get("KEYCLOAK_ADMIN", ""), file=sys.stderr, flush=True)
http.server.HTTPServer(("127.0.0.1", port), Handler).serve_forever()
'''

SERVE_SCRIPT = f'#!/bin/sh\nexec "{sys.executable}" fake_server.py "$@"\n'

ECHO_SCRIPT = """\
#!/bin/sh
echo "args: $*"
echo "admin: $KEYCLOAK_ADMIN/$KEYCLOAK_ADMIN_PASSWORD"
echo "cwd: $(pwd)"
echo "boom" >&2
exit 3
"""

SLEEP_SCRIPT = f'#!/bin/sh\nexec "{sys.executable}" -c "import time; time.sleep(60)"\n'

posix_only = pytest.mark.skipif(
    sys.platform == "win32", reason="the launcher is a POSIX shell script"
)


def build_distribution(
    archive_dir: Path,
    launcher_body: str,
    *,
    archive_name: str = ARCHIVE_NAME,
    install_name: str = INSTALL_NAME,
) -> Path:
    """Pack `<install_name>/bin/kc.sh` (plus the fake server) into a zip archive."""
    archive_dir.mkdir(parents=True, exist_ok=True)
    archive = archive_dir / archive_name
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr(f"{install_name}/bin/kc.sh", launcher_body)
        zf.writestr(f"{install_name}/bin/fake_server.py", FAKE_SERVER)
        zf.writestr(f"{install_name}/conf/keycloak.conf", "")
    return archive


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., HarnessConfig]:
    """Config factory pointing at a freshly built distribution in tmp_path."""

    def factory(launcher_body: str = ECHO_SCRIPT, **overrides: object) -> HarnessConfig:
        archive = build_distribution(tmp_path / "artifacts", launcher_body)
        values: dict[str, object] = {
            "artifact": archive,
            "dist_root": tmp_path / "dist",
            "host": "127.0.0.1",
            "poll_interval": 0.1,
            "readiness_timeout": 15.0,
            "stop_timeout": 5.0,
            "drain_join_timeout": 10.0,
        }
        values.update(overrides)
        return HarnessConfig.model_validate(values)

    return factory


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest.fixture
def quiet_sink() -> Callable[..., None]:
    def sink(line: str, *, is_stderr: bool = False) -> None:
        pass

    return sink
