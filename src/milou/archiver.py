"""
External tar wrapper.

The archive tool is a black box: it either exits 0 or it failed. Every
other outcome, including a missing binary, becomes ExternalToolError so
no caller ever has to inspect a return code.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .errors import ExternalToolError

logger = logging.getLogger("milou.archiver")


class TarArchiver:
    """Packs and unpacks gzip-compressed tarballs with the system tar."""

    def __init__(self, tar_binary: str = "tar"):
        self.tar_binary = tar_binary

    def _run(self, args: list[str]) -> None:
        cmd = [self.tar_binary, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise ExternalToolError(self.tar_binary, None, str(exc)) from exc
        if result.returncode != 0:
            raise ExternalToolError(self.tar_binary, result.returncode, result.stderr)

    def pack(self, source_dir: Path, archive_path: Path) -> None:
        """Archive the contents of ``source_dir`` into ``archive_path``.

        Entries are stored relative to ``source_dir`` so the archive
        root holds the staged files directly.
        """
        self._run(["-czf", str(archive_path), "-C", str(source_dir), "."])

    def unpack(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract ``archive_path`` into ``dest_dir``, keeping file modes."""
        self._run(["-xzpf", str(archive_path), "-C", str(dest_dir)])
