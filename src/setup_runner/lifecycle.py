"""Action lifecycle: skip on prior success, run, record.

START -> CHECK_PRIOR -> (SKIPPED | RUNNING -> SUCCESS | FAILED) -> END

Only a prior status=success record licenses a skip, and --force always runs.
The final record is written even when the work fails. KeyboardInterrupt and
other BaseExceptions propagate without a record, leaving the prior one in place.
"""

import getpass
import inspect
import os
import socket
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Union

import click

from setup_runner.clock import iso_now
from setup_runner.config import RunnerConfig, load_config
from setup_runner.constants import (
    DEFAULT_VERSION,
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCESS,
)
from setup_runner.errors import ConfigError, ProvisioningError
from setup_runner.log_sink import LogSink
from setup_runner.state_store import StateRecord, StateStore


def current_user() -> str:
    # SUDO_USER names the operator when an action re-execs itself under sudo
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user:
        return sudo_user
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def current_host() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


@dataclass
class ActionContext:
    """What a unit of work gets to see while RUNNING."""

    name: str
    config: RunnerConfig
    log: LogSink
    args: List[str] = field(default_factory=list)
    force: bool = False
    version: str = DEFAULT_VERSION
    extras: Dict[str, str] = field(default_factory=dict)

    def run_command(
        self,
        cmd: Sequence[str],
        check: bool = True,
        env: Optional[dict] = None,
        cwd: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run an external tool, logging its output at Debug.

        Raises:
            ProvisioningError: If the tool is missing, or exits nonzero and
                check is True. The error carries the tool's exit code.
        """
        cmd = [str(c) for c in cmd]
        self.log.info(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                env=env,
                cwd=cwd,
            )
        except FileNotFoundError:
            raise ProvisioningError(f"Command not found: {cmd[0]}", rc=127)
        except OSError as e:
            raise ProvisioningError(f"Cannot run {cmd[0]}: {e}")

        for line in (result.stdout or "").splitlines():
            self.log.debug(f"  {line}")
        for line in (result.stderr or "").splitlines():
            self.log.debug(f"  stderr: {line}")

        if check and result.returncode != 0:
            raise ProvisioningError(
                f"{cmd[0]} exited with code {result.returncode}",
                rc=result.returncode,
            )
        return result


# A unit of work: returns None/0 on success or a nonzero rc, or raises.
Work = Callable[[ActionContext], Union[int, None]]


def _record(
    ctx: ActionContext,
    status: str,
    rc: int,
    started_at: str,
    user: str,
    host: str,
) -> StateRecord:
    return StateRecord(
        action=ctx.name,
        status=status,
        rc=rc,
        started_at=started_at,
        finished_at=iso_now(ctx.config.timezone),
        user=user,
        host=host,
        log_path=str(ctx.log.path.resolve()),
        version=ctx.version,
        extras=dict(ctx.extras),
    )


def _write_final(store: StateStore, record: StateRecord, log: LogSink) -> None:
    try:
        path = store.write(record)
    except (OSError, ValueError) as e:
        log.error(f"Could not write state for {record.action}: {e}")
        return
    log.debug(f"State updated: {path}")


def run_action(
    name: str,
    work: Work,
    config: RunnerConfig,
    args: Optional[Sequence[str]] = None,
    force: bool = False,
    version: str = DEFAULT_VERSION,
    quiet: bool = False,
) -> int:
    """
    Run one action under the lifecycle contract and return its exit code.

    Args:
        name: Action identity; selects the log and state file
        work: Callable performing the provisioning steps
        config: Runner layout (state/log roots, timezone)
        args: Action-specific arguments, exposed as ctx.args
        force: Ignore a prior success record
        version: Version tag written to the state record
        quiet: Do not mirror log lines to the console

    Returns:
        0 on success or skip, the failing rc otherwise
    """
    log = LogSink.for_action(config, name, quiet=quiet)
    store = StateStore.from_config(config)
    ctx = ActionContext(
        name=name,
        config=config,
        log=log,
        args=list(args or []),
        force=force,
        version=version,
    )

    # START
    started_at = iso_now(config.timezone)
    user = current_user()
    host = current_host()
    log.info(f"Starting {name} (version={version}) force={str(force).lower()}")

    # CHECK_PRIOR
    if not force:
        prior = store.read(name)
        if store.last_error:
            log.warning(f"Ignoring unreadable state: {store.last_error}")
        if prior is not None and prior.succeeded:
            log.info("Previous success recorded; skipping. Use --force to re-run.")
            # Keep action-specific keys such as install paths
            for key, value in prior.extras.items():
                ctx.extras.setdefault(key, value)
            _write_final(store, _record(ctx, STATUS_SKIPPED, 0, started_at, user, host), log)
            return 0

    # RUNNING
    try:
        result = work(ctx)
        rc = int(result or 0)
        if rc != 0:
            log.error(f"{name} finished with exit code {rc}")
    except ProvisioningError as e:
        log.error(f"{name} failed: {e}")
        rc = e.rc
    except Exception as e:
        log.error(f"{name} failed: {type(e).__name__}: {e}")
        rc = 1

    # END
    status = STATUS_SUCCESS if rc == 0 else STATUS_FAILED
    _write_final(store, _record(ctx, status, rc, started_at, user, host), log)
    log.info(f"Done: {name} status={status} rc={rc}")
    return rc


def action_main(
    name: str,
    work: Work,
    version: str = DEFAULT_VERSION,
    argv: Optional[Sequence[str]] = None,
) -> None:
    """
    Entrypoint for Python scripts in the catalog.

    Handles --force and --help (the work function's docstring), passes any
    other arguments through as ctx.args, and exits with the action's rc.
    """
    argv = list(sys.argv[1:] if argv is None else argv)

    if "-h" in argv or "--help" in argv:
        click.echo(name)
        click.echo()
        click.echo(f"Usage:\n  setup-runner {name} [--force] [-- <args>]")
        if work.__doc__:
            click.echo()
            click.echo(inspect.cleandoc(work.__doc__))
        sys.exit(0)

    force = "--force" in argv
    rest = [a for a in argv if a != "--force"]
    if rest and rest[0] == "--":
        rest = rest[1:]

    try:
        config = load_config()
    except ConfigError as e:
        click.echo(f"Configuration error:\n{e}", err=True)
        sys.exit(1)

    sys.exit(run_action(name, work, config, args=rest, force=force, version=version))