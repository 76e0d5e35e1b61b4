"""
Atomic file writes with mandatory permission verification.

A secret file is never visible at its final path with the wrong
permissions or with partial content:

    1. content goes to a temp file in the target's own directory
    2. the temp file gets its final mode before any byte is written
    3. os.replace() publishes it in a single rename
    4. the published file's mode is read back and compared

Anything that fails before step 3 removes the temp file and leaves the
target exactly as it was.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Union

from .errors import MilouIOError, NotFoundError, PermissionMismatchError

logger = logging.getLogger("milou.atomic")

SECRET_MODE = 0o600
PUBLIC_MODE = 0o644


def file_mode(path: Path) -> int:
    """Return the permission bits of an existing file.

    Args:
        path: File to inspect.

    Returns:
        int: Mode bits, e.g. 0o600.
    """
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError as exc:
        raise NotFoundError(f"File not found: {path}", str(path)) from exc
    except OSError as exc:
        raise MilouIOError(Path(path), f"cannot stat: {exc}") from exc


def verify_perms(path: Path, mode: int) -> None:
    """Check that ``path`` carries exactly ``mode``.

    Args:
        path: File to check.
        mode: Required permission bits.

    Raises:
        NotFoundError: If the file does not exist.
        PermissionMismatchError: If the bits differ.
    """
    actual = file_mode(path)
    if actual != mode:
        raise PermissionMismatchError(Path(path), mode, actual)


def _fsync_dir(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        # Some filesystems refuse fsync on directories; the rename already happened.
        pass
    finally:
        os.close(fd)


def atomic_write(path: Path, content: Union[str, bytes], mode: int) -> None:
    """Replace ``path`` with ``content`` atomically and verify its mode.

    Args:
        path: Destination file. Its directory must already exist.
        content: Text (written as UTF-8) or raw bytes.
        mode: Permission bits the file must carry once published.

    Raises:
        MilouIOError: If anything fails before the replace. The
            target is untouched and the temp file is gone.
        PermissionMismatchError: If the published file's mode differs
            from ``mode``.
    """
    target = Path(path)
    data = content.encode("utf-8") if isinstance(content, str) else content

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
        )
    except OSError as exc:
        raise MilouIOError(target, f"cannot create temp file: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            # Mode first: the file is never published with mkstemp's defaults.
            os.fchmod(handle.fileno(), mode)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, target)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise MilouIOError(target, str(exc)) from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    _fsync_dir(target.parent)
    verify_perms(target, mode)
    logger.debug("Wrote %s (%d bytes, mode %o)", target, len(data), mode)
