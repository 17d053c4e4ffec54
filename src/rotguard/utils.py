# src/rotguard/utils.py

import os
from pathlib import Path

from rotguard.errors import PathError

DEFAULT_VAR_DIR = Path("/var/tmp/rotguard")
DEFAULT_AGE = "7d"
LOCK_NAME = "rotguard.lock"


def find_var_dir(var_dir=None):
    """
    Return the working directory holding manifests and the lock.
    If var_dir is not provided, use $ROTGUARD_VAR_DIR or /var/tmp/rotguard.
    """
    if var_dir:
        return Path(var_dir)
    env = os.environ.get("ROTGUARD_VAR_DIR")
    if env:
        return Path(os.path.expanduser(env))
    return DEFAULT_VAR_DIR


def default_age():
    return os.environ.get("ROTGUARD_AGE") or DEFAULT_AGE


def find_log_path():
    """
    Master log location: $ROTGUARD_LOG_FILE, else $ROTGUARD_LOG_DIR/rotguard.log,
    else ~/.logs/rotguard/rotguard.log.
    """
    log_file = os.environ.get("ROTGUARD_LOG_FILE")
    if log_file:
        return Path(os.path.expanduser(log_file))
    log_dir = os.environ.get("ROTGUARD_LOG_DIR")
    base_dir = Path(log_dir) if log_dir else (Path.home() / ".logs" / "rotguard")
    return base_dir / "rotguard.log"


def canonical_scan_root(path) -> Path:
    """Resolve PATH and make sure it is a readable directory."""
    root = Path(path).expanduser().resolve()
    if not root.exists():
        raise PathError(f"Path does not exist: {root}")
    if not root.is_dir():
        raise PathError(f"Not a directory: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise PathError(f"Directory is not readable: {root}")
    return root


def prepare_var_dir(var_dir) -> Path:
    """Create the working directory if needed and check it is writable."""
    var_dir = Path(var_dir).expanduser()
    try:
        var_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PathError(f"Cannot create working directory {var_dir}: {e}") from e
    if not var_dir.is_dir():
        raise PathError(f"Working directory is not a directory: {var_dir}")
    if not os.access(var_dir, os.W_OK | os.X_OK):
        raise PathError(f"Working directory is not writable: {var_dir}")
    return var_dir
