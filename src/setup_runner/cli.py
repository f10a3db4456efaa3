"""CLI entrypoint for the setup runner."""

from pathlib import Path
from typing import Optional

import click

from setup_runner.config import RunnerConfig, load_config
from setup_runner.constants import DEFAULT_VERSION, DISPATCHER_LOG_NAME
from setup_runner.dispatcher import Dispatcher, is_valid_action_name
from setup_runner.errors import CatalogMissingError, ConfigError, UnknownActionError

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

PASSTHROUGH_SETTINGS = {
    "ignore_unknown_options": True,
    "allow_interspersed_args": False,
    "help_option_names": ["-h", "--help"],
}


class ActionGroup(click.Group):
    """Group that treats `setup-runner <action> ...` as `setup-runner run <action> ...`."""

    def resolve_command(self, ctx, args):
        if args and args[0] not in self.commands and not args[0].startswith("-"):
            args = ["run"] + list(args)
        return super().resolve_command(ctx, args)


def _config(ctx: click.Context) -> RunnerConfig:
    try:
        return load_config(ctx.find_root().obj or {})
    except ConfigError as e:
        click.echo(f"Configuration error:\n{e}", err=True)
        raise SystemExit(1)


def read_version(config: RunnerConfig) -> str:
    """Version tag of the staged catalog, from <target_root>/VERSION."""
    try:
        tag = (config.target_root / "VERSION").read_text(encoding="utf-8").strip()
    except OSError:
        return DEFAULT_VERSION
    return tag or DEFAULT_VERSION


@click.group(cls=ActionGroup, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="setup-runner")
@click.option("--root", type=click.Path(), default=None, help="Staged root (contains bin/ and actions/)")
@click.option("--logs-root", type=click.Path(), default=None, help="Directory for action logs")
@click.option("--state-root", type=click.Path(), default=None, help="Directory for action state files")
@click.option("--tz", "timezone", default=None, help="Timezone for log stamps (e.g. Asia/Kolkata)")
@click.pass_context
def cli(ctx, root: Optional[str], logs_root: Optional[str], state_root: Optional[str], timezone: Optional[str]):
    """Setup runner - idempotent machine provisioning actions.

    \b
    Usage:
      setup-runner list
      setup-runner run <action> [--force] [-- <action-args>]
      setup-runner <action> [--force] [action-args]
      setup-runner version
    """
    ctx.obj = {
        "target_root": root,
        "logs_root": logs_root,
        "state_root": state_root,
        "timezone": timezone,
    }


@cli.command("list")
@click.pass_context
def list_actions(ctx):
    """List actions available in the staged catalog."""
    config = _config(ctx)
    try:
        names = Dispatcher(config).list()
    except CatalogMissingError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    for name in names:
        click.echo(name)


@cli.command("run", context_settings=PASSTHROUGH_SETTINGS)
@click.option("--force", is_flag=True, help="Re-run even if a previous run succeeded")
@click.argument("action")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run_action_cmd(ctx, force: bool, action: str, args):
    """Run an action from the catalog; exits with the action's exit code."""
    config = _config(ctx)
    dispatcher = Dispatcher(config)
    try:
        rc = dispatcher.run(action, list(args), force=force)
    except UnknownActionError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo(err=True)
        click.echo(ctx.find_root().get_help(), err=True)
        raise SystemExit(1)
    except CatalogMissingError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    raise SystemExit(rc)


@cli.command()
@click.pass_context
def version(ctx):
    """Print the staged catalog version."""
    click.echo(read_version(_config(ctx)))


@cli.command()
@click.argument("checkout", type=click.Path(exists=True, file_okay=False))
@click.option("--no-path", is_flag=True, help="Do not add the staged bin/ to PATH")
@click.pass_context
def stage(ctx, checkout: str, no_path: bool):
    """Stage actions and entrypoints from a repo CHECKOUT into the target root."""
    from setup_runner.stager import stage as stage_checkout

    config = _config(ctx)
    try:
        rc = stage_checkout(Path(checkout), config, update_path=not no_path)
    except ConfigError as e:
        click.echo(f"Configuration error:\n{e}", err=True)
        raise SystemExit(1)
    if rc == 0:
        click.echo()
        click.echo("Try:")
        click.echo("  setup-runner list")
        click.echo(f"Logs: {config.logs_root}")
    raise SystemExit(rc)


@cli.command()
@click.argument("action", required=False)
@click.pass_context
def status(ctx, action: Optional[str]):
    """Show the recorded outcome of ACTION, or of every action."""
    from setup_runner.observe import print_status
    from setup_runner.state_store import StateStore

    config = _config(ctx)
    if action and not is_valid_action_name(action):
        click.echo(f"Error: Invalid action name: {action}", err=True)
        raise SystemExit(1)
    if not print_status(StateStore.from_config(config), action):
        raise SystemExit(1)


@cli.command()
@click.argument("action")
@click.option("--lines", "-n", default=50, show_default=True, help="Number of lines to show (0 = all)")
@click.pass_context
def logs(ctx, action: str, lines: int):
    """Show the tail of ACTION's log ('dispatcher' for the dispatcher log)."""
    from setup_runner.log_sink import LogSink

    config = _config(ctx)
    if not is_valid_action_name(action):
        click.echo(f"Error: Invalid action name: {action}", err=True)
        raise SystemExit(1)

    if action == DISPATCHER_LOG_NAME:
        sink = LogSink.for_dispatcher(config)
    else:
        sink = LogSink.for_action(config, action, quiet=True)

    tail = sink.tail(lines)
    if not tail:
        click.echo(f"No log entries at {sink.path}", err=True)
        raise SystemExit(1)
    for line in tail:
        click.echo(line)


@cli.command(context_settings=PASSTHROUGH_SETTINGS)
@click.option("--force", is_flag=True, help="Re-run even if a previous run succeeded")
@click.option("--version-tag", default=DEFAULT_VERSION, help="Version written to the state record")
@click.argument("name")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def wrap(ctx, force: bool, version_tag: str, name: str, command):
    """Run COMMAND as action NAME under skip/force/state/log handling.

    \b
    Example:
      setup-runner wrap install-java -- sudo apt-get install -y openjdk-21-jdk
    """
    from setup_runner.actions import CommandAction

    if not is_valid_action_name(name):
        click.echo(f"Error: Invalid action name: {name}", err=True)
        raise SystemExit(1)

    command = list(command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        click.echo("Error: No command given after '--'", err=True)
        raise SystemExit(1)

    config = _config(ctx)
    rc = CommandAction(name, command, config, version=version_tag).run(force=force)
    raise SystemExit(rc)


if __name__ == "__main__":
    cli()
