"""Non-blocking, environment-wide deployment lock.

The lock is held by at most one deployment at a time, across threads of this
process (threading.Lock) and across processes on the host (flock on a lock
file). Acquisition never waits: a held lock reports :class:`Busy`.
"""

from __future__ import annotations

import fcntl
import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import IO, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Busy:
    """The lock is held by another deployment attempt."""

    name: str


class Acquired:
    """A held lock. Use as a context manager; exit always releases."""

    def __init__(self, lock: OperationLock, handle: IO[str]) -> None:
        self._lock = lock
        self._handle: IO[str] | None = handle

    @property
    def name(self) -> str:
        return self._lock.name

    def release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        self._lock._release(handle)

    def __enter__(self) -> Acquired:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class OperationLock:
    """A named exclusive lock backed by `<lock_dir>/<name>.lock`."""

    def __init__(self, name: str, lock_dir: Path) -> None:
        self.name = name
        self.path = lock_dir / f"{name}.lock"
        self._thread_lock = threading.Lock()

    def try_acquire(self) -> Acquired | Busy:
        if not self._thread_lock.acquire(blocking=False):
            return Busy(self.name)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle = self.path.open("a+", encoding="utf-8")
        except BaseException:
            self._thread_lock.release()
            raise

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            self._thread_lock.release()
            return Busy(self.name)
        except BaseException:
            handle.close()
            self._thread_lock.release()
            raise

        try:
            handle.seek(0)
            handle.truncate()
            handle.write(f"{os.getpid()}\n")
            handle.flush()
        except BaseException:
            self._release(handle)
            raise
        logger.debug("Lock acquired", extra={"lock": self.name})
        return Acquired(self, handle)

    def is_held(self) -> bool:
        """Whether a deployment currently holds the lock.

        Within this process the thread lock answers directly. A holder in
        another process is recognised by the live PID it stamps into the
        lock file; a stamp left by a dead process is ignored.
        """

        if self._thread_lock.locked():
            return True
        return _pid_is_alive(self._read_holder_pid())

    def _read_holder_pid(self) -> int | None:
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        try:
            return int(text)
        except ValueError:
            return None

    def _release(self, handle: IO[str]) -> None:
        try:
            try:
                handle.seek(0)
                handle.truncate()
                handle.flush()
            except OSError as e:
                logger.warning(
                    "Failed to clear lock holder stamp", extra={"lock": self.name, "error": str(e)}
                )
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
            self._thread_lock.release()
            logger.debug("Lock released", extra={"lock": self.name})

    def try_run(self, on_acquired: Callable[[], T], on_conflict: Callable[[], T]) -> T:
        """Run `on_acquired` under the lock, or `on_conflict` if it is held."""

        result = self.try_acquire()
        if isinstance(result, Busy):
            logger.info("Lock busy", extra={"lock": self.name})
            return on_conflict()
        with result:
            return on_acquired()


def _pid_is_alive(pid: int | None) -> bool:
    if pid is None or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
