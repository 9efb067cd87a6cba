"""File lock artifacts for source files.

Manifesto:
    Two orchestration runs must never import the same source file at the
    same time.  A lock artifact next to the file (``<file>.lock``) is
    created with exclusive-create semantics, so exactly one run wins the
    create; everyone else waits until the artifact disappears.

Lock Flow::

    Run A: open(<file>.lock, O_CREAT|O_EXCL) ──▶ created ──▶ execute ──▶ unlink
    Run B: open(<file>.lock, O_CREAT|O_EXCL) ──▶ exists  ──▶ sleep ──▶ retry

    There is no expiry: a lock left by a crashed run has to be removed
    by an operator (``FileLock.break_lock``).  Callers wanting a bounded
    wait pass ``timeout``.

Tags:
    bunch-import, locking, concurrency, file-system

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path

from bunch_import.core.errors import LockError, LockTimeoutError
from bunch_import.core.protocols import Lock
from bunch_import.framework.logging import get_logger

logger = get_logger(__name__)

LOCK_SUFFIX = ".lock"


class FileLock:
    """Exclusive lock scoped to one source file.

    Example:
        >>> lock = FileLock("/data/products_20240101-120000_01.csv", owner="serial-1")
        >>> with lock:
        ...     execute_file()
    """

    def __init__(
        self,
        path: str | Path,
        *,
        owner: str | None = None,
        poll_interval: float = 0.5,
        timeout: float | None = None,
    ) -> None:
        """Initialize the lock.

        Args:
            path: Source file the lock protects
            owner: Identifier written into the artifact (usually the run serial)
            poll_interval: Seconds between acquire attempts
            timeout: Give up after this many seconds (``None`` waits forever)
        """
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + LOCK_SUFFIX)
        self.owner = owner or str(os.getpid())
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._held = False

    @property
    def is_held(self) -> bool:
        """Whether this instance currently holds the lock."""
        return self._held

    def is_locked(self) -> bool:
        """Check whether any run holds the lock."""
        return self.lock_path.exists()

    def try_acquire(self) -> bool:
        """Attempt to create the artifact once.

        Returns:
            True if acquired, False if another run holds it
        """
        if self._held:
            return True
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise LockError(f"Can't create lock {self.lock_path}", cause=e).with_context(path=str(self.path))
        with os.fdopen(fd, "w") as handle:
            handle.write(f"{os.getpid()} {self.owner}\n")
        self._held = True
        logger.debug("lock.acquired", lock=str(self.lock_path), owner=self.owner)
        return True

    def acquire(self) -> None:
        """Block until the lock is held.

        Raises:
            LockTimeoutError: If ``timeout`` elapsed first
        """
        started = time.monotonic()
        waiting_logged = False
        while not self.try_acquire():
            if not waiting_logged:
                logger.info("lock.waiting", lock=str(self.lock_path))
                waiting_logged = True
            if self.timeout is not None and time.monotonic() - started >= self.timeout:
                raise LockTimeoutError(str(self.lock_path), self.timeout)
            time.sleep(self.poll_interval)

    def release(self) -> None:
        """Remove the artifact if this instance holds it."""
        if not self._held:
            return
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as e:
            raise LockError(f"Can't remove lock {self.lock_path}", cause=e).with_context(path=str(self.path))
        finally:
            self._held = False
        logger.debug("lock.released", lock=str(self.lock_path))

    def break_lock(self) -> bool:
        """Force-remove a stale artifact left by a crashed run.

        Returns:
            True if an artifact was removed
        """
        if not self.lock_path.exists():
            return False
        self.lock_path.unlink(missing_ok=True)
        logger.warning("lock.broken", lock=str(self.lock_path))
        return True

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"FileLock({str(self.lock_path)!r}, held={self._held})"


LockFactory = Callable[[str], Lock]


def file_lock_factory(
    *,
    owner: str | None = None,
    poll_interval: float = 0.5,
    timeout: float | None = None,
) -> LockFactory:
    """Build a callable that creates a :class:`FileLock` per source path."""

    def factory(path: str) -> FileLock:
        return FileLock(path, owner=owner, poll_interval=poll_interval, timeout=timeout)

    return factory


__all__ = ["FileLock", "LockFactory", "file_lock_factory", "LOCK_SUFFIX"]
