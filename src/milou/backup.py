"""
Configuration backup and restore.

A backup is a gzip-compressed tarball of the live configuration store,
the secret material under ssl/, and the deployment's compose files,
plus a plaintext MANIFEST describing it.

Layout inside the tarball:
    ./
    ├── .env                   # configuration store (0600)
    ├── MANIFEST               # name, created, host, user, restore hint
    ├── docker-compose*.yml    # compose files, original modes
    └── ssl/                   # secret material, original modes
        ├── milou.key
        └── milou.crt

create:  STAGING -> ARCHIVING -> DONE | FAILED
restore: EXTRACTING -> APPLYING -> DONE | FAILED

Restore replaces each live file atomically, one at a time. It is NOT
transactional across files: if the Nth replacement fails, files 1..N-1
are already restored and stay that way. Operators should re-run the
restore (or restore the pre_restore_* safety backup) after fixing the
cause.
"""

from __future__ import annotations

import getpass
import logging
import os
import shutil
import socket
import tarfile
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .archiver import TarArchiver
from .atomic import SECRET_MODE, atomic_write, file_mode
from .errors import (
    ConflictRequiresConfirmation,
    MilouError,
    MilouIOError,
    NotFoundError,
)
from .models import BackupRecord, MilouSettings, RestoreResult

logger = logging.getLogger("milou.backup")

ARCHIVE_SUFFIX = ".tar.gz"
PARTIAL_SUFFIX = ".partial"
MANIFEST_NAME = "MANIFEST"
BACKUPS_DIR_MODE = 0o700

MANIFEST_FIELDS = {
    "Backup Name": "name",
    "Created": "created",
    "Host": "host",
    "User": "user",
    "Restore with": "restore_hint",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return str(os.getuid())


def _check_name(name: str) -> str:
    """Normalise a backup name; accepts names with the archive suffix."""
    if name.endswith(ARCHIVE_SUFFIX):
        name = name[: -len(ARCHIVE_SUFFIX)]
    if not name or name in (".", "..") or name.startswith("."):
        raise ValueError(f"Invalid backup name: {name!r}")
    if "/" in name or "\\" in name or os.sep in name:
        raise ValueError(f"Backup name cannot contain path separators: {name!r}")
    return name


def _is_regular(path: Path) -> bool:
    return path.is_file() and not path.is_symlink()


def _member_path(name: str) -> str:
    """Strip the leading './' that tar adds when packing a directory's contents."""
    while name.startswith("./"):
        name = name[2:]
    return name


def render_manifest(name: str, created: datetime, env_file: str, secret_dir: str) -> str:
    """Build the human-readable MANIFEST text for a backup."""
    return (
        "Milou Backup Manifest\n"
        "=====================\n"
        f"Backup Name: {name}\n"
        f"Created: {created.isoformat()}\n"
        f"Host: {socket.gethostname()}\n"
        f"User: {_current_user()}\n"
        "\n"
        "Contents:\n"
        f"- Configuration files ({env_file}, docker-compose files)\n"
        f"- SSL certificates and keys ({secret_dir}/, if present)\n"
        "\n"
        f"Restore with: milou backup restore {name}\n"
    )


def parse_manifest(text: str) -> dict[str, str]:
    """Read the labelled fields back out of MANIFEST text.

    Args:
        text: MANIFEST content.

    Returns:
        dict: Keys ``name``, ``created``, ``host``, ``user``,
        ``restore_hint`` for whichever fields are present.
    """
    fields: dict[str, str] = {}
    for line in text.splitlines():
        label, sep, value = line.partition(":")
        if sep and label.strip() in MANIFEST_FIELDS:
            fields[MANIFEST_FIELDS[label.strip()]] = value.strip()
    return fields


class BackupManager:
    """Creates, lists, restores and prunes configuration backups.

    Each operation runs its own state machine; nothing is shared between
    calls except the files on disk.
    """

    def __init__(self, settings: MilouSettings, archiver: Optional[TarArchiver] = None):
        """Initialize the backup manager.

        Args:
            settings: Base directory and file layout to back up.
            archiver: Archive tool wrapper. Defaults to the system tar.
        """
        self.settings = settings
        self.base_dir = settings.base_dir
        self.backups_dir = settings.backups_path
        self.archiver = archiver or TarArchiver(settings.tar_binary)

    def _archive_path(self, name: str) -> Path:
        return self.backups_dir / f"{name}{ARCHIVE_SUFFIX}"

    @staticmethod
    def _ensure_dir(path: Path, mode: int) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True, mode=mode)
        except OSError as exc:
            raise MilouIOError(path, f"cannot create directory: {exc}") from exc

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def _collect_sources(self) -> list[tuple[str, Path]]:
        """Find the live files to back up as (archive-relative path, source)."""
        sources: dict[str, Path] = {}

        env_path = self.settings.env_path
        # The store is followed through a symlink; secret files are not.
        if env_path.is_file():
            sources[self.settings.env_file] = env_path

        secret_root = self.base_dir / self.settings.secret_dir
        if secret_root.is_dir():
            for path in sorted(secret_root.rglob("*")):
                if _is_regular(path):
                    sources[path.relative_to(self.base_dir).as_posix()] = path

        for secret in self.settings.secret_files:
            path = self.base_dir / secret.path
            if _is_regular(path):
                sources[secret.path] = path

        for pattern in self.settings.compose_patterns:
            for path in sorted(self.base_dir.glob(pattern)):
                if _is_regular(path):
                    sources[path.name] = path

        return sorted(sources.items())

    def _stage(self, staging: Path, sources: list[tuple[str, Path]], name: str) -> None:
        env_file = self.settings.env_file
        for rel, src in sources:
            dest = staging / rel
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dest)
                if rel == env_file:
                    os.chmod(dest, SECRET_MODE)
            except OSError as exc:
                raise MilouIOError(src, f"failed to stage for backup: {exc}") from exc

        manifest = render_manifest(
            name, datetime.now(timezone.utc), env_file, self.settings.secret_dir
        )
        try:
            (staging / MANIFEST_NAME).write_text(manifest, encoding="utf-8")
        except OSError as exc:
            raise MilouIOError(staging / MANIFEST_NAME, str(exc)) from exc

    def create(self, name: Optional[str] = None, confirm: bool = False) -> BackupRecord:
        """Snapshot the live store and secret material into an archive.

        Args:
            name: Backup name. Defaults to ``backup_<UTC timestamp>``.
            confirm: Must be True to overwrite an existing backup of the
                same name.

        Returns:
            BackupRecord: The archive that was written.

        Raises:
            ConflictRequiresConfirmation: If the name is taken and
                ``confirm`` is False.
            NotFoundError: If there is nothing to back up.
            ExternalToolError: If tar fails. No archive is left behind.
            MilouIOError: On filesystem failures while staging.
        """
        name = _check_name(name or f"backup_{_timestamp()}")
        archive_path = self._archive_path(name)
        logger.info("Creating backup: %s", name)

        if archive_path.exists() and not confirm:
            raise ConflictRequiresConfirmation(
                f"Backup {name} already exists; confirmation required to overwrite", name
            )

        sources = self._collect_sources()
        if not sources:
            raise NotFoundError(f"Nothing to back up in {self.base_dir}", str(self.base_dir))

        self._ensure_dir(self.backups_dir, BACKUPS_DIR_MODE)
        partial_path = archive_path.with_name(archive_path.name + PARTIAL_SUFFIX)

        try:
            staging = Path(tempfile.mkdtemp(prefix="milou-backup-"))
        except OSError as exc:
            raise MilouIOError(Path(tempfile.gettempdir()), f"cannot create staging dir: {exc}") from exc

        try:
            logger.debug("Backup %s: staging %d file(s) in %s", name, len(sources), staging)
            self._stage(staging, sources, name)

            logger.debug("Backup %s: archiving", name)
            try:
                self.archiver.pack(staging, partial_path)
                os.replace(partial_path, archive_path)
            except OSError as exc:
                partial_path.unlink(missing_ok=True)
                raise MilouIOError(archive_path, str(exc)) from exc
            except BaseException:
                partial_path.unlink(missing_ok=True)
                raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        record = self._record(archive_path)
        logger.info("Backup created: %s (%d bytes)", archive_path, record.size)
        return record

    # ------------------------------------------------------------------
    # list / get
    # ------------------------------------------------------------------

    @staticmethod
    def _record(path: Path) -> BackupRecord:
        stat = path.stat()
        return BackupRecord(
            name=path.name[: -len(ARCHIVE_SUFFIX)],
            path=path,
            size=stat.st_size,
            created=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def list(self) -> list[BackupRecord]:
        """List backup archives, most recent first.

        Returns:
            list[BackupRecord]: Empty if the backups directory is missing.
        """
        if not self.backups_dir.is_dir():
            return []

        records = []
        for path in self.backups_dir.glob(f"*{ARCHIVE_SUFFIX}"):
            try:
                if _is_regular(path):
                    records.append(self._record(path))
            except FileNotFoundError:
                # Removed by a concurrent clean between glob and stat.
                continue

        records.sort(key=lambda r: (r.created, r.name), reverse=True)
        return records

    def get(self, name: str) -> BackupRecord:
        """Look up a backup by name.

        Raises:
            NotFoundError: If no archive has that name.
        """
        name = _check_name(name)
        path = self._archive_path(name)
        if not _is_regular(path):
            raise NotFoundError(f"Backup not found: {name}", name)
        return self._record(path)

    def read_manifest(self, name: str) -> dict[str, str]:
        """Return the parsed MANIFEST of a backup without extracting it."""
        record = self.get(name)
        try:
            with tarfile.open(record.path, "r:gz") as tar:
                for member in tar.getmembers():
                    if member.isfile() and _member_path(member.name) == MANIFEST_NAME:
                        f = tar.extractfile(member)
                        if f is not None:
                            return parse_manifest(f.read().decode("utf-8", errors="replace"))
        except (tarfile.TarError, OSError) as exc:
            raise MilouIOError(record.path, f"unreadable archive: {exc}") from exc
        raise NotFoundError(f"No {MANIFEST_NAME} in backup {name}", name)

    # ------------------------------------------------------------------
    # restore
    # ------------------------------------------------------------------

    def _safety_backup(self) -> Optional[str]:
        """Snapshot current live state; failure never blocks a restore."""
        name = f"pre_restore_{_timestamp()}"
        logger.info("Backing up current state before restore: %s", name)
        try:
            return self.create(name).name
        except (MilouError, OSError) as exc:
            logger.warning("Failed to create pre-restore backup, continuing restore: %s", exc)
            return None

    def _staged_secret_files(self, staging: Path) -> list[str]:
        rels = set()
        secret_root = staging / self.settings.secret_dir
        if secret_root.is_dir():
            for path in secret_root.rglob("*"):
                if _is_regular(path):
                    rels.add(path.relative_to(staging).as_posix())
        for secret in self.settings.secret_files:
            if _is_regular(staging / secret.path):
                rels.add(secret.path)
        return sorted(rels)

    def _apply(self, staging: Path) -> list[str]:
        """Replace live files from an extracted archive, one atomic swap each."""
        restored: list[str] = []
        self._ensure_dir(self.base_dir, BACKUPS_DIR_MODE)

        env_file = self.settings.env_file
        env_src = staging / env_file
        if _is_regular(env_src):
            atomic_write(self.settings.env_path, env_src.read_bytes(), SECRET_MODE)
            restored.append(env_file)
            logger.info("%s restored with 600 permissions", env_file)

        declared = {secret.path: secret.mode for secret in self.settings.secret_files}
        for rel in self._staged_secret_files(staging):
            src = staging / rel
            mode = declared.get(rel, file_mode(src))
            dest = self.base_dir / rel
            self._ensure_dir(dest.parent, BACKUPS_DIR_MODE)
            atomic_write(dest, src.read_bytes(), mode)
            restored.append(rel)
            logger.info("Restored %s (mode %o)", rel, mode)

        for pattern in self.settings.compose_patterns:
            for src in sorted(staging.glob(pattern)):
                if not _is_regular(src):
                    continue
                atomic_write(self.base_dir / src.name, src.read_bytes(), file_mode(src))
                restored.append(src.name)
                logger.info("Restored %s", src.name)

        return restored

    def restore(self, name: str, safety_backup: bool = True) -> RestoreResult:
        """Put a backup's files back in place.

        Args:
            name: Backup to restore.
            safety_backup: Snapshot the current state first (best effort).

        Returns:
            RestoreResult: Restored paths and the safety backup name.

        Raises:
            NotFoundError: If the backup does not exist.
            ExternalToolError: If extraction fails. Nothing live changed.
            MilouIOError / PermissionMismatchError: If a file swap fails
                while applying. Earlier files stay replaced.
        """
        record = self.get(name)
        logger.warning("Restoring from backup: %s", record.name)

        safety = self._safety_backup() if safety_backup else None

        try:
            staging = Path(tempfile.mkdtemp(prefix="milou-restore-"))
        except OSError as exc:
            raise MilouIOError(Path(tempfile.gettempdir()), f"cannot create staging dir: {exc}") from exc

        try:
            logger.debug("Restore %s: extracting into %s", record.name, staging)
            self.archiver.unpack(record.path, staging)

            logger.debug("Restore %s: applying", record.name)
            restored = self._apply(staging)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info("Restore completed: %s (%d file(s))", record.name, len(restored))
        return RestoreResult(name=record.name, restored=restored, safety_backup=safety)

    # ------------------------------------------------------------------
    # clean
    # ------------------------------------------------------------------

    def clean(self, keep: Optional[int] = None) -> list[BackupRecord]:
        """Delete all but the ``keep`` most recent backups.

        Args:
            keep: How many to keep. Defaults to the settings (10).

        Returns:
            list[BackupRecord]: The backups that were removed.
        """
        keep = self.settings.keep_backups if keep is None else keep
        if keep < 0:
            raise ValueError("keep must be zero or positive")

        records = self.list()
        if len(records) <= keep:
            logger.info("Only %d backup(s) found, nothing to clean", len(records))
            return []

        removed = records[keep:]
        logger.info("Removing %d old backup(s), keeping %d", len(removed), keep)
        for record in removed:
            try:
                record.path.unlink()
            except FileNotFoundError:
                logger.debug("Backup already gone: %s", record.path)
            except OSError as exc:
                raise MilouIOError(record.path, f"failed to remove: {exc}") from exc
            logger.info("Removed: %s", record.path.name)
        return removed
