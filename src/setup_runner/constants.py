"""Constants for the setup runner."""

import os
import re

# Action names map 1:1 to catalog files
ACTION_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

# Executable extensions, in resolution order
POSIX_EXTENSIONS = (".sh", ".py")
WINDOWS_EXTENSIONS = (".ps1", ".cmd", ".bat", ".py")

LEVELS = ("Error", "Warning", "Info", "Debug")

# Canonical key order for state files
STATE_KEYS = (
    "action",
    "status",
    "rc",
    "started_at",
    "finished_at",
    "user",
    "host",
    "log_path",
    "version",
)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_SKIPPED)

STAGER_NAME = "stage-setup-runner"
DISPATCHER_LOG_NAME = "dispatcher"

STAMP_FORMAT = "%Z %d-%m-%Y %H:%M:%S"

DEFAULT_VERSION = "unknown"


def executable_extensions() -> tuple:
    """Catalog extensions for the running platform."""
    if os.name == "nt":
        return WINDOWS_EXTENSIONS
    return POSIX_EXTENSIONS
