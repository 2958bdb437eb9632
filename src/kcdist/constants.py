"""Global constants for kcdist."""

# Distribution layout

DEFAULT_DIST_ROOT_NAME = "kc-tests"
DEFAULT_GROUP_ID = "org.keycloak"
DEFAULT_ARTIFACT_ID = "keycloak-server-x-dist"
DEFAULT_PACKAGING = "zip"
DEFAULT_INSTALL_PREFIX = "keycloak.x"
DEFAULT_LAUNCHER = "kc.sh"
BIN_DIR_NAME = "bin"
DATA_DIR_NAME = "data"

# Launch flags and environment for the child

DEBUG_FLAG = "--debug"
LAUNCH_MODE_PROPERTY = "kc.launch.mode"
LAUNCH_MODE_TEST = "test"
HTTP_PORT_ARG = "--http-port"
HTTP_RELATIVE_PATH_ARG = "--http-relative-path"
DEFAULT_HTTP_PORT = 8080
DEFAULT_RELATIVE_PATH = "/"

ADMIN_USERNAME_ENV = "KEYCLOAK_ADMIN"
ADMIN_PASSWORD_ENV = "KEYCLOAK_ADMIN_PASSWORD"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin"

# Readiness

DEFAULT_HOST = "localhost"
READINESS_PATH = "/realms/master/"
DEFAULT_READINESS_TIMEOUT = 120.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_REQUEST_TIMEOUT = 1.0

# Shutdown

DEFAULT_STOP_TIMEOUT = 10.0
DEFAULT_KILL_TIMEOUT = 5.0
DEFAULT_DRAIN_JOIN_TIMEOUT = 30.0

# Sentinel for "child has not exited yet"
EXIT_CODE_UNSET = -1
