"""Append-only per-action log files.

Every entry is one line: '<stamp> <Level> <message>'. Writes are best-effort;
an uncreatable directory or unwritable file never fails the caller.
"""

from pathlib import Path
from typing import Optional

import click

from setup_runner.clock import now_stamp
from setup_runner.config import RunnerConfig
from setup_runner.constants import LEVELS


class LogSink:
    """Leveled, timestamped log writer for one action (or the dispatcher)."""

    def __init__(
        self,
        path: Path,
        name: str,
        zone: Optional[str] = None,
        quiet: bool = False,
    ):
        self.path = Path(path)
        self.name = name
        self.zone = zone
        self.quiet = quiet
        # Set after the first failed write so the operator is told once
        self.write_failed = False

    @classmethod
    def for_action(cls, config: RunnerConfig, name: str, quiet: bool = False) -> "LogSink":
        return cls(config.log_path(name), name, zone=config.timezone, quiet=quiet)

    @classmethod
    def for_dispatcher(cls, config: RunnerConfig) -> "LogSink":
        return cls(config.dispatcher_log, "dispatcher", zone=config.timezone, quiet=True)

    def format_line(self, level: str, message: str) -> str:
        # Embedded newlines would split one entry across lines
        flat = " ".join(str(message).splitlines())
        return f"{now_stamp(self.zone)} {level} {flat}\n"

    def append(self, level: str, message: str) -> None:
        """Write one entry and mirror it to the console."""
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}. Use one of {', '.join(LEVELS)}")

        line = self.format_line(level, message)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            if not self.write_failed and not self.quiet:
                click.echo(f"{now_stamp(self.zone)} Warning log not writable ({self.path}): {e}", err=True)
            self.write_failed = True

        if not self.quiet:
            click.echo(line.rstrip("\n"), err=level in ("Error", "Warning"))

    def error(self, message: str) -> None:
        self.append("Error", message)

    def warning(self, message: str) -> None:
        self.append("Warning", message)

    def info(self, message: str) -> None:
        self.append("Info", message)

    def debug(self, message: str) -> None:
        self.append("Debug", message)

    def tail(self, lines: int = 50) -> list:
        """Last N lines of the log, or [] if it does not exist."""
        try:
            content = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return []
        all_lines = content.splitlines()
        if lines <= 0:
            return all_lines
        return all_lines[-lines:]
