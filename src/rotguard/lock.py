"""
Host-local advisory lock kept alive by a heartbeat.

The lock file holds the owner's pid, but freshness is read from its mtime:
a background heartbeat thread touches the file every interval, and a lock
whose mtime is older than ``interval * grace_multiplier`` is presumed
abandoned and may be taken over. No flock/fcntl and no process listing,
so it behaves the same on network filesystems.

    manager = LockManager(var_dir / "rotguard.lock")
    with manager.acquire():
        ...  # scan
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from rotguard.errors import LockContentionError, LockIOError

logger = logging.getLogger("rotguard.lock")

DEFAULT_HEARTBEAT_INTERVAL = 60
DEFAULT_GRACE_MULTIPLIER = 1.5


class LockState(Enum):
    UNLOCKED = "unlocked"
    ACQUIRING = "acquiring"
    HELD = "held"
    RELEASED = "released"


@dataclass
class LockRecord:
    lockfile_path: Path
    owner_pid: int
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    grace_multiplier: float = DEFAULT_GRACE_MULTIPLIER

    @property
    def grace_seconds(self) -> float:
        return self.heartbeat_interval * self.grace_multiplier


@dataclass
class LockStatus:
    """What a lock file currently says about its holder."""
    lock_path: Path
    exists: bool
    owner_pid: Optional[int] = None
    heartbeat_age: Optional[float] = None
    stale: bool = False


def _owner_check() -> Callable[[], bool]:
    """Liveness check for the thread/process that is acquiring the lock."""
    main = threading.main_thread()
    pid = os.getpid()
    return lambda: main.is_alive() and os.getpid() == pid


def _read_pid(lock_path: Path) -> Optional[int]:
    try:
        text = lock_path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise LockIOError(f"Cannot read lock {lock_path}: {e}") from e
    try:
        return int(text)
    except ValueError:
        return None


def read_lock_status(lock_path, heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
                     grace_multiplier: float = DEFAULT_GRACE_MULTIPLIER,
                     clock: Callable[[], float] = time.time) -> LockStatus:
    lock_path = Path(lock_path)
    try:
        mtime = lock_path.stat().st_mtime
    except FileNotFoundError:
        return LockStatus(lock_path=lock_path, exists=False)
    except OSError as e:
        raise LockIOError(f"Cannot stat lock {lock_path}: {e}") from e
    age = clock() - mtime
    return LockStatus(
        lock_path=lock_path,
        exists=True,
        owner_pid=_read_pid(lock_path),
        heartbeat_age=age,
        stale=age > heartbeat_interval * grace_multiplier,
    )


class LockHandle:
    """A held lock. Release it explicitly or use it as a context manager."""

    def __init__(self, manager: "LockManager", record: LockRecord, owner_alive: Callable[[], bool]):
        self.manager = manager
        self.record = record
        self.state = LockState.ACQUIRING
        self._owner_alive = owner_alive
        self._stop = threading.Event()
        self._mutex = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def held(self) -> bool:
        return self.state is LockState.HELD

    def release(self) -> None:
        self.manager.release(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class LockManager:
    """Acquire and release the heartbeat lock at LOCK_PATH."""

    def __init__(self, lock_path, heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
                 grace_multiplier: float = DEFAULT_GRACE_MULTIPLIER,
                 clock: Callable[[], float] = time.time,
                 owner_alive: Optional[Callable[[], bool]] = None):
        self.lock_path = Path(lock_path)
        self.heartbeat_interval = heartbeat_interval
        self.grace_multiplier = grace_multiplier
        self.clock = clock
        self._owner_alive = owner_alive

    @property
    def grace_seconds(self) -> float:
        return self.heartbeat_interval * self.grace_multiplier

    def status(self) -> LockStatus:
        return read_lock_status(self.lock_path, self.heartbeat_interval,
                                self.grace_multiplier, self.clock)

    # -- acquisition -------------------------------------------------------

    def acquire(self) -> LockHandle:
        """
        Take the lock or fail.

        Raises:
            LockContentionError: the current holder's heartbeat is still fresh
            LockIOError: the lock file could not be created or replaced
        """
        pid = os.getpid()
        record = LockRecord(
            lockfile_path=self.lock_path,
            owner_pid=pid,
            heartbeat_interval=self.heartbeat_interval,
            grace_multiplier=self.grace_multiplier,
        )
        handle = LockHandle(self, record, self._owner_alive or _owner_check())

        if not self._create(pid):
            self._take_over_stale(pid)

        handle.state = LockState.HELD
        handle._thread = threading.Thread(
            target=self._heartbeat, args=(handle,),
            name=f"rotguard-heartbeat-{pid}",
        )
        handle._thread.start()
        logger.info(f"🔒 Acquired lock {self.lock_path} (pid {pid})")
        return handle

    def _create(self, pid: int) -> bool:
        """Create the lock exclusively; False if it already exists."""
        try:
            fd = os.open(self.lock_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise LockIOError(f"Cannot create lock {self.lock_path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{pid}\n")
        except OSError as e:
            raise LockIOError(f"Cannot write lock {self.lock_path}: {e}") from e
        return True

    def _take_over_stale(self, pid: int) -> None:
        try:
            last_beat = self.lock_path.stat().st_mtime
        except FileNotFoundError:
            # holder released between our create attempt and the stat
            if self._create(pid):
                return
            raise LockContentionError(self.lock_path, self.grace_seconds)
        except OSError as e:
            raise LockIOError(f"Cannot stat lock {self.lock_path}: {e}") from e

        previous_pid = _read_pid(self.lock_path)
        if self.clock() <= last_beat + self.grace_seconds:
            raise LockContentionError(self.lock_path, self.grace_seconds, previous_pid)

        logger.warning(
            f"⚠️ Reclaiming stale lock {self.lock_path} "
            f"(last heartbeat {self.clock() - last_beat:.0f}s ago, pid {previous_pid or 'unknown'})"
        )
        self._replace(pid)
        # a second process may have replaced it in the same window
        winner = _read_pid(self.lock_path)
        if winner != pid:
            raise LockContentionError(self.lock_path, self.grace_seconds, winner)

    def _replace(self, pid: int) -> None:
        tmp_path = self.lock_path.with_name(f"{self.lock_path.name}.{pid}.tmp")
        try:
            tmp_path.write_text(f"{pid}\n", encoding="utf-8")
            os.replace(tmp_path, self.lock_path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise LockIOError(f"Cannot replace lock {self.lock_path}: {e}") from e

    # -- heartbeat ---------------------------------------------------------

    def _touch(self) -> None:
        try:
            os.utime(self.lock_path, None)
        except OSError as e:
            raise LockIOError(f"Cannot refresh lock {self.lock_path}: {e}") from e

    def _heartbeat(self, handle: LockHandle) -> None:
        while not handle._stop.wait(self.heartbeat_interval):
            if not handle._owner_alive():
                logger.warning(f"⚠️ Lock owner is gone; releasing {self.lock_path}")
                try:
                    self._release(handle, from_heartbeat=True)
                except LockIOError as e:
                    logger.error(f"❌ {e}")
                return
            try:
                holder = _read_pid(self.lock_path)
                if holder != handle.record.owner_pid:
                    logger.error(
                        f"❌ Lock {self.lock_path} is no longer ours "
                        f"(holder: {holder or 'none'}); heartbeat stopped"
                    )
                    return
                self._touch()
            except LockIOError as e:
                logger.error(f"❌ {e}")

    # -- release -----------------------------------------------------------

    def release(self, handle: LockHandle) -> None:
        """
        Stop the heartbeat and delete the lock file.

        Releasing an already released handle is a no-op. A lock file that
        vanished while we held it raises LockIOError.
        """
        self._release(handle, from_heartbeat=False)

    def _release(self, handle: LockHandle, from_heartbeat: bool) -> None:
        with handle._mutex:
            if handle.state in (LockState.RELEASED, LockState.UNLOCKED):
                return
            handle.state = LockState.RELEASED
            handle._stop.set()

        thread = handle._thread
        if not from_heartbeat and thread is not None and thread is not threading.current_thread():
            thread.join()

        holder = _read_pid(self.lock_path)
        if holder is not None and holder != handle.record.owner_pid:
            raise LockIOError(f"Lock {self.lock_path} now belongs to pid {holder}; leaving it in place")
        try:
            os.unlink(self.lock_path)
        except FileNotFoundError as e:
            raise LockIOError(f"Lock file disappeared before release: {self.lock_path}") from e
        except OSError as e:
            raise LockIOError(f"Cannot remove lock {self.lock_path}: {e}") from e
        logger.info(f"🔓 Released lock {self.lock_path}")
