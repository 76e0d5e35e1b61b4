"""Tests for the external tar wrapper."""

from __future__ import annotations

from pathlib import Path

import pytest

from milou.archiver import TarArchiver
from milou.errors import ExternalToolError


class TestTarArchiver:
    """Exit statuses become typed errors."""

    def test_pack_unpack(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        (src / "ssl").mkdir(parents=True)
        (src / ".env").write_text("A=1\n")
        (src / "ssl" / "k").write_text("key")
        (src / "ssl" / "k").chmod(0o600)

        archive = tmp_path / "a.tar.gz"
        TarArchiver().pack(src, archive)

        dest = tmp_path / "dest"
        dest.mkdir()
        TarArchiver().unpack(archive, dest)

        assert (dest / ".env").read_text() == "A=1\n"
        assert (dest / "ssl" / "k").stat().st_mode & 0o777 == 0o600

    def test_nonzero_exit(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.tar.gz"
        bad.write_bytes(b"garbage")
        with pytest.raises(ExternalToolError) as excinfo:
            TarArchiver().unpack(bad, tmp_path)
        assert excinfo.value.tool == "tar"
        assert excinfo.value.returncode not in (0, None)

    def test_missing_binary(self, tmp_path: Path) -> None:
        with pytest.raises(ExternalToolError) as excinfo:
            TarArchiver("/nonexistent/tar").pack(tmp_path, tmp_path / "x.tar.gz")
        assert excinfo.value.returncode is None
