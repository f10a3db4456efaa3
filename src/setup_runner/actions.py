"""Action interface.

The dispatcher only needs `run(args, force) -> exit code`. Whether that execs
a catalog script or calls Python in-process is up to the implementation.
"""

import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from setup_runner.config import RunnerConfig
from setup_runner.constants import DEFAULT_VERSION
from setup_runner.lifecycle import ActionContext, Work, run_action


def interpreter_for(path: Path) -> List[str]:
    """Command prefix that executes a catalog file of this type."""
    suffix = path.suffix.lower()
    if suffix == ".sh":
        return ["bash"]
    if suffix == ".py":
        return [sys.executable]
    if suffix == ".ps1":
        return ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-File"]
    if suffix in (".cmd", ".bat"):
        return ["cmd", "/c"]
    return []


def forward_args(args: Sequence[str], force: bool) -> List[str]:
    """
    Arguments passed to the action process.

    Drops the "--" separator after runner flags and appends --force only when the caller
    has not already passed it.
    """
    forwarded = list(args)
    if "--" in forwarded:
        idx = forwarded.index("--")
        # "--force -- <args>": the separator only ends the runner's own flags
        if all(a == "--force" for a in forwarded[:idx]):
            forwarded = forwarded[:idx] + forwarded[idx + 1:]
    if force and "--force" not in forwarded:
        forwarded.append("--force")
    return forwarded


class Action(ABC):
    """A named, independently invocable unit of provisioning work."""

    name: str

    @abstractmethod
    def run(self, args: Sequence[str] = (), force: bool = False) -> int:
        """
        Run the action.

        Args:
            args: Action-specific arguments
            force: Re-run even if a previous run succeeded

        Returns:
            Process-style exit code (0 = success or skipped)
        """
        pass


class ScriptAction(Action):
    """A catalog file executed as a child process.

    The script owns its own lifecycle (state/log), so nothing is recorded here.
    """

    def __init__(self, name: str, path: Path, env: Optional[dict] = None):
        self.name = name
        self.path = Path(path)
        self.env = env

    def command(self, args: Sequence[str] = (), force: bool = False) -> List[str]:
        return interpreter_for(self.path) + [str(self.path)] + forward_args(args, force)

    def run(self, args: Sequence[str] = (), force: bool = False) -> int:
        cmd = self.command(args, force)
        try:
            result = subprocess.run(cmd, env=self.env)
        except FileNotFoundError:
            # Missing interpreter, same code a shell would give
            return 127
        except PermissionError:
            return 126
        return result.returncode


class FunctionAction(Action):
    """An in-process Python action run under the lifecycle contract."""

    def __init__(
        self,
        name: str,
        work: Work,
        config: RunnerConfig,
        version: str = DEFAULT_VERSION,
        quiet: bool = False,
    ):
        self.name = name
        self.work = work
        self.config = config
        self.version = version
        self.quiet = quiet

    def run(self, args: Sequence[str] = (), force: bool = False) -> int:
        forwarded = forward_args(args, False)
        force = force or "--force" in forwarded
        return run_action(
            self.name,
            self.work,
            self.config,
            args=[a for a in forwarded if a != "--force"],
            force=force,
            version=self.version,
            quiet=self.quiet,
        )


class CommandAction(FunctionAction):
    """Any external command run under the lifecycle contract.

    Gives plain shell/PowerShell scripts skip-on-success, --force, state and
    log handling without re-implementing them.
    """

    def __init__(
        self,
        name: str,
        cmd: Sequence[str],
        config: RunnerConfig,
        version: str = DEFAULT_VERSION,
        cwd: Optional[str] = None,
    ):
        self.cmd = [str(c) for c in cmd]
        self.cwd = cwd
        super().__init__(name, self._work, config, version=version)

    def _work(self, ctx: ActionContext) -> int:
        ctx.extras["command"] = " ".join(self.cmd)
        ctx.run_command(self.cmd + list(ctx.args), cwd=self.cwd)
        return 0
