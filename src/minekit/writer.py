"""Local filesystem writer for tool-managed files."""

from __future__ import annotations

import errno
import logging
import os
import tempfile
from pathlib import Path

from .exceptions import WriteError
from .models import WriteErrorKind

logger = logging.getLogger(__name__)


def classify_os_error(exc: OSError) -> WriteErrorKind:
    """Map an OSError onto the write error taxonomy."""
    if isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EPERM, errno.EROFS):
        return WriteErrorKind.PERMISSION_DENIED
    if exc.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
        return WriteErrorKind.DISK_FULL
    return WriteErrorKind.IO_ERROR


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes via a sibling temp file and os.replace.

    Readers observe either the old content or the new content, never a
    partially written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=str(path.parent),
            prefix=path.name + ".",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            temp_path = Path(tmp.name)
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(temp_path, path)
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)


class LocalWriter:
    """Materializes and removes files, creating parents as needed."""

    def write(self, dest: Path, data: bytes) -> None:
        """Write bytes to a destination, overwriting unconditionally.

        Raises:
            WriteError: If the file or its parents cannot be written
        """
        try:
            atomic_write_bytes(Path(dest), data)
        except OSError as e:
            kind = classify_os_error(e)
            msg = f"Failed to write {dest}: {e.strerror or e}"
            raise WriteError(msg, kind, Path(dest)) from e
        logger.debug("Wrote %s (%d bytes)", dest, len(data))

    def write_text(self, dest: Path, text: str) -> None:
        """Write UTF-8 text to a destination."""
        self.write(dest, text.encode("utf-8"))

    def read(self, path: Path) -> bytes | None:
        """Read a file, returning None when it does not exist."""
        try:
            return Path(path).read_bytes()
        except FileNotFoundError:
            return None

    def exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def delete(self, path: Path) -> bool:
        """Delete a file. A missing file counts as success.

        Returns:
            True if a file was removed, False if it was already absent

        Raises:
            WriteError: If the file exists but cannot be removed
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            kind = classify_os_error(e)
            msg = f"Failed to delete {path}: {e.strerror or e}"
            raise WriteError(msg, kind, Path(path)) from e
        logger.debug("Deleted %s", path)
        return True

    def prune_empty_dirs(self, root: Path) -> None:
        """Remove empty directories under root, root included.

        Directories still holding files are left in place.
        """
        root = Path(root)
        if not root.is_dir():
            return
        for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
            try:
                Path(dirpath).rmdir()
            except OSError:
                # Not empty, or not ours to remove
                continue
            logger.debug("Removed empty directory %s", dirpath)
