"""
manifest.py — Line-oriented checksum manifests and their generations

Each line is ``path:mtime:checksum``. Colons inside paths are not escaped;
lines are decoded from the right so the mtime and checksum fields always
come back intact, but external tools splitting on ':' will misread such
paths.
"""

import logging
import os
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List

from rotguard.errors import ManifestIOError

logger = logging.getLogger("rotguard.manifest")

GENERATIONS = ("current", "old", "scan", "new")
DEFAULT_PREFIX = "checksums"


@dataclass(frozen=True)
class ManifestEntry:
    path: str
    mtime: int
    checksum: str

    def to_line(self) -> str:
        return f"{self.path}:{self.mtime}:{self.checksum}"

    @classmethod
    def from_line(cls, line: str) -> "ManifestEntry":
        """Parse one manifest line (trailing newline allowed)."""
        parts = line.rstrip("\r\n").rsplit(":", 2)
        if len(parts) != 3 or not parts[0]:
            raise ValueError(f"expected path:mtime:checksum, got {line!r}")
        path, mtime, checksum = parts
        return cls(path=path, mtime=int(mtime), checksum=checksum)


class ManifestWriter:
    """Appends entries to an open generation file."""

    def __init__(self, handle, path: Path):
        self._handle = handle
        self.path = path
        self.count = 0

    def append(self, entry: ManifestEntry) -> None:
        try:
            self._handle.write(entry.to_line() + "\n")
        except OSError as e:
            raise ManifestIOError(f"Cannot write manifest {self.path}: {e}") from e
        self.count += 1


class ManifestStore:
    """
    The four manifest generations kept in a working directory.

    Generations live at ``<var_dir>/<prefix>_<generation>``:
        current  last accepted baseline
        old      previous baseline, kept as a fallback
        scan     output of the most recent walk (rebuilt every run)
        new      reserved for a merged result
    """

    def __init__(self, var_dir: Path, prefix: str = DEFAULT_PREFIX):
        self.var_dir = Path(var_dir)
        self.prefix = prefix

    def path_for(self, generation: str) -> Path:
        if generation not in GENERATIONS:
            raise ValueError(f"Unknown manifest generation: {generation}")
        return self.var_dir / f"{self.prefix}_{generation}"

    def exists(self, generation: str) -> bool:
        return self.path_for(generation).is_file()

    def truncate(self, generation: str) -> None:
        path = self.path_for(generation)
        try:
            path.write_text("", encoding="utf-8")
        except OSError as e:
            raise ManifestIOError(f"Cannot truncate manifest {path}: {e}") from e

    @contextmanager
    def writer(self, generation: str) -> Iterator[ManifestWriter]:
        """Truncate GENERATION and yield a writer appending to it."""
        path = self.path_for(generation)
        try:
            handle = open(path, "w", encoding="utf-8", errors="surrogateescape")
        except OSError as e:
            raise ManifestIOError(f"Cannot open manifest {path}: {e}") from e
        try:
            yield ManifestWriter(handle, path)
        finally:
            try:
                handle.close()
            except OSError as e:
                raise ManifestIOError(f"Cannot close manifest {path}: {e}") from e

    def write(self, generation: str, entries: Iterable[ManifestEntry]) -> int:
        with self.writer(generation) as out:
            for entry in entries:
                out.append(entry)
            return out.count

    def read(self, generation: str) -> List[ManifestEntry]:
        """Load GENERATION; a generation that was never written reads as empty."""
        path = self.path_for(generation)
        if not path.exists():
            return []
        entries = []
        try:
            with open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
                for lineno, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        entries.append(ManifestEntry.from_line(line))
                    except ValueError as e:
                        raise ManifestIOError(f"{path}:{lineno}: {e}") from e
        except OSError as e:
            raise ManifestIOError(f"Cannot read manifest {path}: {e}") from e
        return entries

    def count(self, generation: str) -> int:
        if not self.exists(generation):
            return 0
        return len(self.read(generation))

    def promote(self, src: str, dst: str) -> None:
        """Copy generation SRC over generation DST."""
        src_path = self.path_for(src)
        dst_path = self.path_for(dst)
        tmp_path = dst_path.with_name(dst_path.name + ".tmp")
        try:
            shutil.copyfile(src_path, tmp_path)
            os.replace(tmp_path, dst_path)
        except OSError as e:
            raise ManifestIOError(f"Cannot promote {src_path} to {dst_path}: {e}") from e
        logger.info(f"📄 Promoted {src} -> {dst}")

    def rotate(self, source: str = "scan") -> None:
        """Accept SOURCE: current becomes old, SOURCE becomes current."""
        if not self.exists(source):
            raise ManifestIOError(f"No {source} manifest to promote: {self.path_for(source)}")
        if self.exists("current"):
            self.promote("current", "old")
        self.promote(source, "current")
