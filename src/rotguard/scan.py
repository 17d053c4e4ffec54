import hashlib
import logging
import os
import stat
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from rotguard.errors import FileReadWarning, PathError
from rotguard.manifest import ManifestEntry, ManifestStore
from rotguard.timegate import is_cold

logger = logging.getLogger("rotguard.scan")

CHUNK_SIZE = 1024 * 1024

# manifest lines are newline-delimited and unescaped
LINE_BREAKS = ("\n", "\r")
UNREPRESENTABLE = "name not representable in manifest"


@dataclass
class ScanResult:
    """Statistics for one walk of the tree."""
    root: str
    files_seen: int = 0
    files_hashed: int = 0
    files_too_recent: int = 0
    files_special: int = 0
    bytes_hashed: int = 0
    duration_seconds: float = 0.0
    warnings: List[FileReadWarning] = field(default_factory=list)


class _ReadFailure(Exception):
    def __init__(self, stage: str, error: OSError):
        super().__init__(f"{stage} failed: {error}")
        self.stage = stage
        self.error = error


def compute_sha256(file_path) -> str:
    """Read the whole file and return its SHA-256 hex digest."""
    h = hashlib.sha256()
    try:
        f = open(file_path, "rb")
    except OSError as e:
        raise _ReadFailure("open", e) from e
    with f:
        try:
            while chunk := f.read(CHUNK_SIZE):
                h.update(chunk)
        except OSError as e:
            # EIO here is the latent sector error this tool exists to surface
            raise _ReadFailure("read", e) from e
    return h.hexdigest()


def _collect_candidates(root: str, age_seconds: int, now: float, result: ScanResult) -> list:
    """
    Walk ROOT and return (path, mtime) for every cold regular file.

    Directories are recursed but never recorded. Symlinks are not followed,
    and anything that is not a regular file (symlinks, FIFOs, sockets,
    device nodes) is skipped.
    """
    candidates = []

    def _on_error(err: OSError):
        reason = err.strerror or str(err)
        result.warnings.append(FileReadWarning(path=err.filename or root, reason=reason))
        logger.warning(f"⚠️ Could not list: {err.filename} ({reason})")

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            full_path = os.path.join(dirpath, name)
            result.files_seen += 1
            try:
                st = os.lstat(full_path)
            except OSError as e:
                result.warnings.append(FileReadWarning(path=full_path, reason=str(e)))
                logger.warning(f"⚠️ Could not stat: {full_path} ({e})")
                continue
            if not stat.S_ISREG(st.st_mode):
                result.files_special += 1
                continue
            if not is_cold(st.st_mtime, age_seconds, now):
                result.files_too_recent += 1
                continue
            if any(ch in full_path for ch in LINE_BREAKS):
                result.warnings.append(FileReadWarning(path=full_path, reason=UNREPRESENTABLE))
                logger.warning(f"⚠️ Skipping {full_path!r}: {UNREPRESENTABLE}")
                continue
            candidates.append((full_path, int(st.st_mtime), st.st_size))
    return candidates


def scan_path(root_path, age_seconds: int, store: ManifestStore,
              now: Optional[float] = None, show_progress: Optional[bool] = None) -> ScanResult:
    """
    Re-read every cold file under ROOT_PATH and rebuild the 'scan' manifest.

    Args:
        root_path: Directory to walk
        age_seconds: Only files last modified more than this long ago are read
        store: Manifest store whose 'scan' generation is truncated and rewritten
        now: Reference time (default: time.time())
        show_progress: Force the progress bar on/off (default: stdout is a TTY)

    Returns:
        ScanResult with counters and the per-file read warnings

    Raises:
        PathError: ROOT_PATH is missing or not a directory
        ManifestIOError: the scan manifest could not be written
    """
    root = os.path.abspath(str(root_path))
    if not os.path.isdir(root):
        raise PathError(f"Not a directory: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise PathError(f"Directory is not readable: {root}")

    if now is None:
        now = time.time()
    if show_progress is None:
        show_progress = sys.stdout.isatty()

    started_at = time.monotonic()
    result = ScanResult(root=root)
    store.truncate("scan")

    logger.info(f"📍 Scanning: {root}")
    candidates = _collect_candidates(root, age_seconds, now, result)
    logger.info(f"📁 Cold files: {len(candidates)} of {result.files_seen}")

    with store.writer("scan") as out:
        for full_path, mtime, size in tqdm(candidates, desc="📦 Reading", unit="file",
                                           disable=not show_progress):
            try:
                checksum = compute_sha256(full_path)
            except _ReadFailure as e:
                result.warnings.append(FileReadWarning(path=full_path, reason=str(e)))
                logger.warning(f"⚠️ Could not {e.stage}: {full_path} ({e.error})")
                continue
            out.append(ManifestEntry(path=Path(full_path).as_posix(), mtime=mtime, checksum=checksum))
            result.files_hashed += 1
            result.bytes_hashed += size

    result.duration_seconds = time.monotonic() - started_at
    logger.info(
        f"✅ Read {result.files_hashed:,} files "
        f"({result.bytes_hashed / 1024 / 1024:.1f} MB) in {result.duration_seconds:.1f}s"
    )
    return result
