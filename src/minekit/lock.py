"""Advisory lock guarding one installer run per base root."""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .exceptions import LockError
from .writer import atomic_write_bytes

logger = logging.getLogger(__name__)

OWNER_FILE = "owner.json"


@dataclass(frozen=True)
class InstallLock:
    """A held lock directory. Release it when the run ends."""

    lock_dir: Path
    lock_id: str

    def release(self) -> None:
        """Remove the lock, ignoring a lock that was already broken."""
        (self.lock_dir / OWNER_FILE).unlink(missing_ok=True)
        try:
            self.lock_dir.rmdir()
        except FileNotFoundError:
            pass
        logger.debug("Released lock %s", self.lock_dir)

    def __enter__(self) -> InstallLock:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def _is_stale(lock_dir: Path, ttl_seconds: float) -> bool:
    owner = lock_dir / OWNER_FILE
    try:
        payload = json.loads(owner.read_text(encoding="utf-8"))
        acquired = datetime.fromisoformat(payload["acquired_at"])
    except (OSError, ValueError, KeyError, TypeError):
        # No readable owner record: a crashed run, or one still starting up
        try:
            age = time.time() - lock_dir.stat().st_mtime
        except FileNotFoundError:
            return True
        return age > ttl_seconds

    if acquired.tzinfo is None:
        acquired = acquired.replace(tzinfo=UTC)
    return (datetime.now(tz=UTC) - acquired).total_seconds() > ttl_seconds


def acquire_install_lock(
    lock_dir: Path,
    ttl_seconds: float = 120.0,
    timeout_seconds: float = 10.0,
    poll_interval_seconds: float = 0.1,
) -> InstallLock:
    """Acquire the lock directory, breaking it when stale.

    Raises:
        LockError: If a live lock is still held after the timeout
    """
    lock_dir = Path(lock_dir)
    lock_dir.parent.mkdir(parents=True, exist_ok=True)
    started = time.monotonic()

    while True:
        try:
            lock_dir.mkdir()
        except FileExistsError:
            if _is_stale(lock_dir, ttl_seconds):
                logger.warning("Breaking stale installer lock at %s", lock_dir)
                (lock_dir / OWNER_FILE).unlink(missing_ok=True)
                try:
                    lock_dir.rmdir()
                except OSError:
                    pass
                continue
            if time.monotonic() - started >= timeout_seconds:
                msg = f"Another MineKit run holds the lock at {lock_dir}"
                raise LockError(msg, details={"lock_dir": str(lock_dir)}) from None
            time.sleep(poll_interval_seconds)
            continue

        lock_id = uuid.uuid4().hex
        payload = {
            "lock_id": lock_id,
            "pid": os.getpid(),
            "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
        }
        atomic_write_bytes(lock_dir / OWNER_FILE, (json.dumps(payload) + "\n").encode("utf-8"))
        logger.debug("Acquired lock %s", lock_dir)
        return InstallLock(lock_dir=lock_dir, lock_id=lock_id)
