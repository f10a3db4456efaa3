"""Per-action state records stored as line-oriented key=value text.

Plain text rather than JSON/YAML so shell and PowerShell actions can read and
write the same files without a parser, and so `cat` shows them as-is.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from setup_runner.config import RunnerConfig
from setup_runner.constants import STATE_KEYS, STATUSES, STATUS_SUCCESS


class StateParseError(ValueError):
    """Raised when a state file's content cannot be parsed."""
    pass


def parse_kv(text: str) -> Dict[str, str]:
    """
    Parse key=value lines into an ordered dict.

    Blank lines and '#' comments are ignored. Values may be wrapped in one
    pair of double quotes (older scripts wrote timestamp="..."). Later keys
    win over earlier duplicates.

    Raises:
        StateParseError: On a non-blank line without '=' or with an empty key.
    """
    data: Dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            raise StateParseError(f"line {lineno}: expected key=value, got {raw!r}")
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            raise StateParseError(f"line {lineno}: empty key")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        data[key] = value
    return data


def serialize_kv(data: Dict[str, str]) -> str:
    """Render an ordered dict as key=value lines, one per line."""
    lines = []
    for key, value in data.items():
        text = "" if value is None else str(value)
        if "\n" in text or "\r" in text:
            raise ValueError(f"State value for {key!r} must be a single line")
        lines.append(f"{key}={text}")
    return "\n".join(lines) + "\n"


def single_line(value) -> str:
    """Flatten a value onto one line so it cannot split a key=value entry."""
    return " ".join(str(value).splitlines())


@dataclass
class StateRecord:
    """Outcome of an action's most recent run."""

    action: str
    status: str
    rc: int
    started_at: str
    finished_at: str
    user: str
    host: str
    log_path: str
    version: str
    # Action-specific keys written after the fixed ones
    extras: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, str]:
        data = {
            "action": self.action,
            "status": self.status,
            "rc": str(self.rc),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "user": self.user,
            "host": self.host,
            "log_path": self.log_path,
            "version": single_line(self.version),
        }
        for key, value in self.extras.items():
            if key not in data:
                data[key] = single_line(value)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "StateRecord":
        """
        Build a record from parsed key=value pairs.

        Raises:
            StateParseError: If a fixed field is missing, status is not a known
                value, or rc is not an integer.
        """
        missing = [k for k in STATE_KEYS if k not in data]
        if missing:
            raise StateParseError(f"missing fields: {', '.join(missing)}")
        if data["status"] not in STATUSES:
            raise StateParseError(f"unknown status: {data['status']!r}")
        try:
            rc = int(data["rc"])
        except ValueError:
            raise StateParseError(f"rc is not an integer: {data['rc']!r}")

        return cls(
            action=data["action"],
            status=data["status"],
            rc=rc,
            started_at=data["started_at"],
            finished_at=data["finished_at"],
            user=data["user"],
            host=data["host"],
            log_path=data["log_path"],
            version=data["version"],
            extras={k: v for k, v in data.items() if k not in STATE_KEYS},
        )


class StateStore:
    """Reads and atomically replaces <state_root>/<action>.state files."""

    def __init__(self, state_root: Path):
        self.state_root = Path(state_root)
        # Reasons for the most recent read() returning None on an existing file
        self.last_error: Optional[str] = None

    @classmethod
    def from_config(cls, config: RunnerConfig) -> "StateStore":
        return cls(config.state_root)

    def path_for(self, action: str) -> Path:
        return self.state_root / f"{action}.state"

    def read(self, action: str) -> Optional[StateRecord]:
        """
        Load an action's record.

        Returns None when the file is missing, unreadable, or corrupt; a corrupt
        or unreadable file also sets last_error. Never raises.
        """
        self.last_error = None
        path = self.path_for(action)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            self.last_error = f"cannot read {path}: {e}"
            return None

        try:
            record = StateRecord.from_dict(parse_kv(text))
        except StateParseError as e:
            self.last_error = f"corrupt state file {path}: {e}"
            return None

        if record.action != action:
            self.last_error = f"state file {path} belongs to {record.action!r}"
            return None
        return record

    def write(self, record: StateRecord) -> Path:
        """
        Replace the action's state file atomically.

        The record is written to a temp file in the same directory, flushed,
        then renamed over the destination, so readers see the old record or
        the new one and never a partial file. The temp file is removed if
        anything fails before the rename.
        """
        self.state_root.mkdir(parents=True, exist_ok=True)
        dest = self.path_for(record.action)
        content = serialize_kv(record.to_dict())

        fd, tmp_name = tempfile.mkstemp(
            dir=self.state_root,
            prefix=f".{record.action}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, dest)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        return dest

    def list_records(self) -> List[StateRecord]:
        """All readable records, sorted by action name."""
        if not self.state_root.is_dir():
            return []
        records = []
        for path in sorted(self.state_root.glob("*.state")):
            record = self.read(path.stem)
            if record is not None:
                records.append(record)
        return records
