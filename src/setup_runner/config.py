"""Configuration loading for the setup runner."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from setup_runner.constants import DISPATCHER_LOG_NAME
from setup_runner.errors import ConfigError

CONFIG_KEYS = ("target_root", "logs_root", "state_root", "timezone", "profile_path")

ENV_VARS = {
    "target_root": "SETUP_RUNNER_ROOT",
    "logs_root": "SETUP_RUNNER_LOG_ROOT",
    "state_root": "SETUP_RUNNER_STATE_ROOT",
    "timezone": "SETUP_RUNNER_TZ",
    "profile_path": "SETUP_RUNNER_PROFILE",
}


@dataclass
class RunnerConfig:
    """Filesystem layout and clock settings threaded through every component."""

    target_root: Path
    logs_root: Path
    state_root: Path
    timezone: Optional[str] = None
    profile_path: Optional[Path] = field(default=None)

    @property
    def bin_dir(self) -> Path:
        return self.target_root / "bin"

    @property
    def catalog_dir(self) -> Path:
        return self.target_root / "actions"

    @property
    def dispatcher_log(self) -> Path:
        return self.logs_root / f"{DISPATCHER_LOG_NAME}.log"

    def as_env(self) -> dict:
        """Environment for child actions so they see the same layout."""
        env = dict(os.environ)
        for key, env_var in ENV_VARS.items():
            value = getattr(self, key)
            if value is not None:
                env[env_var] = str(value)
        return env

    def log_path(self, action: str) -> Path:
        return self.logs_root / f"{action}.log"

    def state_path(self, action: str) -> Path:
        return self.state_root / f"{action}.state"


def default_layout() -> dict:
    """Per-OS default roots."""
    if os.name == "nt":
        base = Path(os.environ.get("ProgramData", r"C:\ProgramData")) / "setup-runner"
        logs = base / "logs"
        return {
            "target_root": base,
            "logs_root": logs,
            "state_root": logs / "state-files",
            "profile_path": None,
        }
    logs = Path("/var/log/setup-runner")
    return {
        "target_root": Path("/usr/local/setup-runner"),
        "logs_root": logs,
        "state_root": logs / "state-files",
        "profile_path": Path.home() / ".profile",
    }


def load_config_file(path: Path) -> dict:
    """
    Load layout overrides from a YAML file.

    Raises:
        ConfigError: If the file is missing, unparsable, or not a mapping.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    unknown = sorted(set(data) - set(CONFIG_KEYS))
    if unknown:
        raise ConfigError(
            f"Unknown keys in config file {path}: {', '.join(unknown)}\n"
            f"Allowed keys: {', '.join(CONFIG_KEYS)}"
        )

    wrong_type = sorted(k for k, v in data.items() if v is not None and not isinstance(v, str))
    if wrong_type:
        raise ConfigError(
            f"Config file {path}: values must be strings: {', '.join(wrong_type)}"
        )
    return {k: v for k, v in data.items() if v is not None}


def load_config(overrides: Optional[dict] = None) -> RunnerConfig:
    """
    Build the runner configuration.

    Precedence (highest first): explicit overrides, environment variables
    (including a .env file), the YAML file named by SETUP_RUNNER_CONFIG,
    per-OS defaults. state_root follows logs_root unless set on its own.

    Raises:
        ConfigError: If the YAML config file is invalid.
    """
    load_dotenv()

    values = {}
    config_file = os.environ.get("SETUP_RUNNER_CONFIG")
    if config_file:
        values.update(load_config_file(Path(config_file).expanduser()))

    for key, env_var in ENV_VARS.items():
        env_value = os.environ.get(env_var)
        if env_value:
            values[key] = env_value

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    defaults = default_layout()
    target_root = Path(values.get("target_root", defaults["target_root"])).expanduser()
    logs_root = Path(values.get("logs_root", defaults["logs_root"])).expanduser()
    if "state_root" in values:
        state_root = Path(values["state_root"]).expanduser()
    elif "logs_root" in values:
        state_root = logs_root / "state-files"
    else:
        state_root = defaults["state_root"]

    profile = values.get("profile_path", defaults["profile_path"])

    return RunnerConfig(
        target_root=target_root,
        logs_root=logs_root,
        state_root=state_root,
        timezone=values.get("timezone") or None,
        profile_path=Path(profile).expanduser() if profile else None,
    )
