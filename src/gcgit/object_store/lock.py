"""Advisory lock on an instance directory.

Usage:
    with InstanceLock(instance_dir):
        ...  # pull, diff
"""
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".gcgit.lock"


class LockError(Exception):
    """Raised when the instance is held by another live process."""

    def __init__(self, instance: str, pid: int):
        self.instance = instance
        self.pid = pid
        super().__init__(f"Instance '{instance}' is locked by another gcgit process (PID {pid})")


def _process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by someone else
    except OSError:
        return False
    return True


class InstanceLock:
    """PID lock file inside the instance directory.

    The file is created exclusively. A lock file left behind by a process
    that no longer runs, or one that cannot be read, is removed and the
    acquisition retried once.
    """

    def __init__(self, instance_dir: Path):
        self.instance_dir = instance_dir
        self.path = instance_dir / LOCK_FILENAME
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def _read_pid(self) -> Optional[int]:
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as handle:
            handle.write(str(os.getpid()))
        return True

    def acquire(self) -> "InstanceLock":
        """Take the lock.

        Raises:
            LockError: If a live process holds it
        """
        self.instance_dir.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            if self._try_create():
                self._held = True
                logger.debug(f"Acquired lock {self.path}")
                return self

            pid = self._read_pid()
            if pid is not None and _process_alive(pid):
                raise LockError(self.instance_dir.name, pid)

            logger.warning(f"Removing stale lock file {self.path} (PID {pid})")
            self.path.unlink(missing_ok=True)

        pid = self._read_pid()
        raise LockError(self.instance_dir.name, pid or -1)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self.path.unlink()
            logger.debug(f"Released lock {self.path}")
        except FileNotFoundError:
            logger.warning(f"Lock file {self.path} already removed")

    def __enter__(self) -> "InstanceLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
