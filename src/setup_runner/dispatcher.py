"""Action catalog lookup and dispatch."""

from pathlib import Path
from typing import List, Optional, Sequence

from setup_runner.actions import ScriptAction, forward_args
from setup_runner.config import RunnerConfig
from setup_runner.constants import ACTION_NAME_RE, executable_extensions
from setup_runner.errors import (
    CatalogMissingError,
    InvalidActionNameError,
    UnknownActionError,
)
from setup_runner.log_sink import LogSink


def is_valid_action_name(name: str) -> bool:
    return bool(ACTION_NAME_RE.match(name or ""))


class Catalog:
    """The directory of action executables, one file per action name.

    Files whose name starts with '_' are helpers and are never listed.
    """

    def __init__(self, catalog_dir: Path, extensions: Optional[Sequence[str]] = None):
        self.catalog_dir = Path(catalog_dir)
        self.extensions = tuple(extensions or executable_extensions())

    @classmethod
    def from_config(cls, config: RunnerConfig) -> "Catalog":
        return cls(config.catalog_dir)

    def _require_dir(self) -> None:
        if not self.catalog_dir.is_dir():
            raise CatalogMissingError(self.catalog_dir)

    def list(self) -> List[str]:
        """
        Sorted action names with extensions stripped.

        Raises:
            CatalogMissingError: If the catalog directory does not exist.
        """
        self._require_dir()
        names = set()
        for entry in self.catalog_dir.iterdir():
            if not entry.is_file():
                continue
            if entry.suffix.lower() not in self.extensions:
                continue
            stem = entry.stem
            if stem.startswith("_") or not is_valid_action_name(stem):
                continue
            names.add(stem)
        return sorted(names)

    def resolve(self, name: str) -> ScriptAction:
        """
        Map an action name to its catalog file.

        When the same name exists with several extensions, the first in
        platform order wins.

        Raises:
            InvalidActionNameError: If the name is not [A-Za-z0-9_-]+.
            CatalogMissingError: If the catalog directory does not exist.
            UnknownActionError: If no catalog file matches.
        """
        if not is_valid_action_name(name) or name.startswith("_"):
            raise InvalidActionNameError(name)
        self._require_dir()
        for ext in self.extensions:
            path = self.catalog_dir / f"{name}{ext}"
            if path.is_file():
                return ScriptAction(name, path)
        raise UnknownActionError(name)

    def __contains__(self, name: str) -> bool:
        try:
            self.resolve(name)
        except (UnknownActionError, CatalogMissingError):
            return False
        return True


class Dispatcher:
    """Resolves action names, runs them, and passes their exit code through."""

    def __init__(
        self,
        config: RunnerConfig,
        catalog: Optional[Catalog] = None,
        log: Optional[LogSink] = None,
    ):
        self.config = config
        self.catalog = catalog or Catalog.from_config(config)
        self.log = log or LogSink.for_dispatcher(config)

    def list(self) -> List[str]:
        return self.catalog.list()

    def run(self, name: str, args: Sequence[str] = (), force: bool = False) -> int:
        """
        Run a catalog action as a child process and return its exit code verbatim.

        Raises:
            UnknownActionError: If the action is not in the catalog.
            CatalogMissingError: If the catalog has not been staged.
        """
        try:
            action = self.catalog.resolve(name)
        except UnknownActionError:
            self.log.error(f"run {name}: unknown action")
            raise

        action.env = self.config.as_env()
        forwarded = forward_args(args, force)
        rc = action.run(args, force)
        self.log.info(f"run {name} args={forwarded} rc={rc}")
        return rc
