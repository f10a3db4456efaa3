"""Stage the action catalog and dispatcher from a repo checkout.

Expected checkout layout:
    <checkout>/actions/      action scripts (become the catalog)
    <checkout>/bin/          dispatcher entrypoints / wrappers
    <checkout>/completions/  optional shell completion files
    <checkout>/VERSION       optional version tag

bin/ and actions/ are cleared and re-copied on every run so that actions
removed from the checkout disappear from `list`. Everything else under the
target root is left alone.
"""

import os
import re
import shutil
import stat
from pathlib import Path
from typing import Optional

from setup_runner.config import RunnerConfig
from setup_runner.constants import STAGER_NAME, executable_extensions
from setup_runner.errors import ConfigError, ProvisioningError
from setup_runner.lifecycle import ActionContext, run_action

STAGED_TREES = ("bin", "actions", "completions")

PATH_MARKER = "# added by setup-runner"


def resync_catalog(src: Path, dst: Path, staged_root: Path) -> int:
    """
    Replace dst with a fresh copy of src.

    Destructive within dst only, and refuses to touch anything outside
    staged_root. A missing src leaves an empty dst.

    Returns:
        Number of files copied
    """
    src = Path(src)
    dst = Path(dst)
    root = Path(staged_root).resolve()
    resolved = dst.resolve()
    if resolved == root or root not in resolved.parents:
        raise ProvisioningError(f"Refusing to clear {dst}: not inside {staged_root}")

    if dst.is_symlink() or dst.is_file():
        dst.unlink()
    elif dst.exists():
        shutil.rmtree(dst)

    if not src.is_dir():
        dst.mkdir(parents=True, exist_ok=True)
        return 0

    shutil.copytree(src, dst)
    return sum(1 for p in dst.rglob("*") if p.is_file())


def mark_executable(directory: Path) -> None:
    """chmod +x every catalog-type file (no-op on Windows)."""
    if os.name == "nt" or not directory.is_dir():
        return
    extensions = executable_extensions()
    for path in directory.iterdir():
        if path.is_file() and (path.suffix.lower() in extensions or not path.suffix):
            mode = path.stat().st_mode
            path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def ensure_on_path(bin_dir: Path, profile_path: Optional[Path] = None) -> bool:
    """
    Add bin_dir to the user's persistent command search path.

    POSIX: appends an export line to profile_path. Windows: updates the
    user-level PATH in the registry.

    Returns:
        True if the path was added, False if it was already present.

    Raises:
        OSError: If the profile or registry cannot be updated.
    """
    bin_str = str(bin_dir)

    if os.name == "nt":
        return _ensure_on_windows_path(bin_str)

    if profile_path is None:
        raise OSError("No shell profile configured")

    profile_path = Path(profile_path)
    existing = profile_path.read_text(encoding="utf-8") if profile_path.exists() else ""
    if _profile_has_entry(existing, bin_str):
        return False

    line = f'export PATH="{bin_str}:$PATH"  {PATH_MARKER}\n'
    with open(profile_path, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(line)
    return True


def _profile_has_entry(profile_text: str, bin_str: str) -> bool:
    """True if bin_str appears as a whole entry on a PATH-setting line."""
    entry = re.compile(r"(^|[:'\"=])" + re.escape(bin_str.rstrip("/")) + r"/?([:'\"]|$|\s)")
    for line in profile_text.splitlines():
        if "PATH" not in line:
            continue
        if entry.search(line):
            return True
    return False


def _ensure_on_windows_path(bin_str: str) -> bool:
    import winreg

    with winreg.OpenKey(winreg.HKEY_CURRENT_USER, "Environment", 0, winreg.KEY_ALL_ACCESS) as key:
        try:
            current, _ = winreg.QueryValueEx(key, "Path")
        except FileNotFoundError:
            current = ""
        parts = [p for p in current.split(";") if p]
        if any(p.rstrip("\\").lower() == bin_str.rstrip("\\").lower() for p in parts):
            return False
        parts.append(bin_str)
        winreg.SetValueEx(key, "Path", 0, winreg.REG_EXPAND_SZ, ";".join(parts))
    return True


def stage(checkout: Path, config: RunnerConfig, update_path: bool = True, quiet: bool = False) -> int:
    """
    Stage a checkout into config.target_root and record the outcome.

    Always runs (a prior success never skips staging), writes a state record
    named stage-setup-runner.

    Raises:
        ConfigError: If the checkout directory does not exist.

    Returns:
        0 on success, nonzero if staging failed
    """
    checkout = Path(checkout).expanduser().resolve()
    if not checkout.is_dir():
        raise ConfigError(f"Repository checkout not found: {checkout}")

    def work(ctx: ActionContext) -> int:
        return _stage_work(ctx, checkout, update_path)

    return run_action(STAGER_NAME, work, config, force=True, quiet=quiet)


def _stage_work(ctx: ActionContext, checkout: Path, update_path: bool) -> int:
    config = ctx.config
    log = ctx.log

    log.info(f"Repo checkout: {checkout}")
    log.info(f"Target root: {config.target_root}")

    for directory in (config.target_root, config.bin_dir, config.catalog_dir,
                      config.logs_root, config.state_root):
        directory.mkdir(parents=True, exist_ok=True)

    if not (checkout / "actions").is_dir():
        log.warning(f"No actions/ directory in {checkout}; catalog will be empty")

    for tree in STAGED_TREES:
        src = checkout / tree
        dst = config.target_root / tree
        if tree == "completions" and not src.is_dir():
            continue
        copied = resync_catalog(src, dst, config.target_root)
        log.info(f"Staged {tree}/: {copied} file(s)")

    mark_executable(config.bin_dir)
    mark_executable(config.catalog_dir)

    version_file = checkout / "VERSION"
    if version_file.is_file():
        shutil.copy2(version_file, config.target_root / "VERSION")
        ctx.version = version_file.read_text(encoding="utf-8").strip() or ctx.version
        log.info(f"Version: {ctx.version}")

    ctx.extras["checkout"] = str(checkout)
    ctx.extras["target_root"] = str(config.target_root)

    if update_path:
        try:
            if ensure_on_path(config.bin_dir, config.profile_path):
                log.info(f"Added {config.bin_dir} to PATH (open a new shell to pick it up)")
            else:
                log.debug(f"{config.bin_dir} already on PATH")
        except (OSError, ImportError) as e:
            log.warning(f"Could not add {config.bin_dir} to PATH: {e}")

    log.info("Staging complete.")
    return 0
