#!/usr/bin/env python3
# CUI // SP-CTI
"""Backup and rollback store for migrated source files.

Every source file is snapshotted under ``<run_dir>/backups/<Component>/<relpath>``
before it is overwritten. ``backup()`` returns a single-use BackupReceipt and
``write()`` refuses to touch a source file without one, so the
backup-before-write ordering is enforced by the store rather than by callers.

The manifest (``backup-manifest.json``) is rewritten after every backup so a
crashed or aborted run can still be rolled back, either through this class or
through the generated ``rollback.sh``.
"""

import hashlib
import json
import logging
import os
import shlex
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from tools.log_migration.errors import BackupError
from tools.log_migration.migration_models import BackupEntry, ComponentTag

logger = logging.getLogger("log_migration.backup_store")

MANIFEST_NAME = "backup-manifest.json"
ROLLBACK_SCRIPT_NAME = "rollback.sh"


def _iso_timestamp_full() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _atomic_write_bytes(target: Path, data: bytes) -> None:
    """Write *data* to a temp file beside *target*, then os.replace() it in."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if target.exists():
            shutil.copymode(str(target), tmp)
        os.replace(tmp, str(target))
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


@dataclass(frozen=True)
class BackupReceipt:
    """Capability token proving a snapshot exists for ``entry.original_path``."""

    entry: BackupEntry
    store_id: str
    token: str
    seq: int

    @property
    def backup_path(self) -> str:
        return self.entry.backup_path


@dataclass(frozen=True)
class StoreEvent:
    seq: int
    kind: str  # backup | write | restore
    path: str
    timestamp: float


def generate_rollback_script(entries: Iterable[BackupEntry], created_paths: Iterable[str] = (),
                             run_dir: Optional[str] = None) -> str:
    """Render a bash script restoring each entry with ``cp`` and removing created files.

    The script does not need the engine to run.
    """
    entries = list(entries)
    created_paths = list(created_paths)
    lines = [
        "#!/usr/bin/env bash",
        f"# Log migration rollback, generated {_iso_timestamp_full()}",
    ]
    if run_dir:
        lines.append(f"# Backups: {run_dir}")
    lines += ["set -euo pipefail", ""]

    current = None
    for entry in entries:
        if entry.component != current:
            current = entry.component
            lines.append(f"# {current.value}")
        lines.append(f"cp -- {shlex.quote(entry.backup_path)} {shlex.quote(entry.original_path)}")
    if created_paths:
        lines += ["", "# Files created by the migration"]
        lines += [f"rm -f -- {shlex.quote(p)}" for p in created_paths]
    lines += ["", f'echo "Rollback complete: {len(entries)} file(s) restored"', ""]
    return "\n".join(lines)


class BackupStore:
    """Run-scoped backup store. Thread-safe; one lock guards all state.

    Args:
        project_root: Root of the project being migrated.
        run_dir: Directory of the current run (``.log-migration/runs/<id>``).
    """

    def __init__(self, project_root, run_dir):
        self.project_root = Path(os.path.abspath(project_root))
        self.run_dir = Path(os.path.abspath(run_dir))
        self.backup_root = self.run_dir / "backups"
        self.manifest_path = self.run_dir / MANIFEST_NAME
        self.store_id = uuid.uuid4().hex
        self._lock = threading.Lock()
        self._entries: List[BackupEntry] = []
        self._by_path: Dict[str, BackupEntry] = {}
        self._checksums: Dict[str, str] = {}
        self._outstanding: Dict[str, str] = {}
        self._created: List[str] = []
        self._events: List[StoreEvent] = []
        self._seq = 0

    # -- snapshots -------------------------------------------------------
    def backup(self, file_path, content: Union[str, bytes, None] = None,
               component=ComponentTag.CORE) -> BackupReceipt:
        """Snapshot *file_path* and return a receipt for one write.

        *content* defaults to the bytes currently on disk. A file already
        backed up in this run keeps its first (pre-migration) snapshot.
        """
        tag = ComponentTag.from_name(component)
        original = Path(os.path.abspath(file_path))
        rel = self._relative(original)
        if content is None:
            try:
                data = original.read_bytes()
            except OSError as exc:
                raise BackupError(f"Cannot read {original}: {exc}", file_path=str(original))
        elif isinstance(content, str):
            data = content.encode("utf-8")
        else:
            data = content

        with self._lock:
            entry = self._by_path.get(str(original))
            if entry is None:
                backup_path = self.backup_root / tag.value / rel
                try:
                    _atomic_write_bytes(backup_path, data)
                except OSError as exc:
                    raise BackupError(f"Backup of {original} failed: {exc}",
                                      file_path=str(original))
                entry = BackupEntry(original_path=str(original), backup_path=str(backup_path),
                                    component=tag)
                self._entries.append(entry)
                self._by_path[entry.original_path] = entry
                self._checksums[entry.original_path] = _sha256(data)
                self._write_manifest_locked()
            else:
                logger.debug("%s already backed up in this run; keeping first snapshot", rel)
            seq = self._record_locked("backup", entry.original_path)
            token = uuid.uuid4().hex
            self._outstanding[token] = entry.original_path

        logger.debug("Backed up %s -> %s (seq %d)", rel, entry.backup_path, seq)
        return BackupReceipt(entry=entry, store_id=self.store_id, token=token, seq=seq)

    def write(self, receipt: BackupReceipt, new_content: Union[str, bytes], file_path=None) -> int:
        """Overwrite the original file covered by *receipt*. Returns the event seq."""
        if not isinstance(receipt, BackupReceipt) or receipt.store_id != self.store_id:
            raise BackupError("Receipt was not issued by this backup store",
                              file_path=str(file_path or ""))
        target = receipt.entry.original_path
        if file_path is not None and os.path.abspath(file_path) != target:
            raise BackupError(f"Receipt covers {target}, not {file_path}", file_path=str(file_path))

        data = new_content.encode("utf-8") if isinstance(new_content, str) else new_content
        with self._lock:
            if self._outstanding.pop(receipt.token, None) is None:
                raise BackupError(f"Receipt for {target} was already used", file_path=target)
            if not os.path.exists(receipt.entry.backup_path):
                raise BackupError(f"Backup for {target} is missing", file_path=target)
            try:
                _atomic_write_bytes(Path(target), data)
            except OSError as exc:
                raise BackupError(f"Write to {target} failed: {exc}", file_path=target)
            seq = self._record_locked("write", target)
        return seq

    def backup_critical_files(self, names: Iterable[str]) -> List[str]:
        """Copy project configuration files into ``<run_dir>/critical/``."""
        copied = []
        critical_dir = self.run_dir / "critical"
        for name in names:
            source = self.project_root / name
            if not source.is_file():
                continue
            dest = critical_dir / name
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(str(source), str(dest))
            copied.append(str(dest))
            logger.debug("Backed up critical file %s", name)
        return copied

    def record_created(self, path) -> None:
        """Track a file the engine created so rollback can remove it."""
        with self._lock:
            path = os.path.abspath(path)
            if path not in self._created:
                self._created.append(path)
                self._write_manifest_locked()

    # -- restore ---------------------------------------------------------
    def restore_file(self, entry: BackupEntry) -> str:
        backup = Path(entry.backup_path)
        if not backup.is_file():
            raise BackupError(f"Backup file missing: {backup}", file_path=entry.original_path)
        data = backup.read_bytes()
        expected = self._checksums.get(entry.original_path)
        if expected and _sha256(data) != expected:
            raise BackupError(f"Backup checksum mismatch for {entry.original_path}",
                              file_path=entry.original_path)
        _atomic_write_bytes(Path(entry.original_path), data)
        with self._lock:
            self._record_locked("restore", entry.original_path)
        logger.info("Restored %s", self._display(entry.original_path))
        return entry.original_path

    def restore_component(self, component) -> List[str]:
        """Restore every entry tagged *component*; other components are untouched."""
        tag = ComponentTag.from_name(component)
        restored = [self.restore_file(e) for e in self.entries_for(tag)]
        logger.info("Rolled back %d file(s) for %s", len(restored), tag.value)
        return restored

    def restore_all(self, remove_created: bool = True) -> List[str]:
        restored = [self.restore_file(e) for e in self.entries]
        if remove_created:
            for path in self.created_files:
                if os.path.exists(path):
                    os.unlink(path)
                    logger.info("Removed %s", self._display(path))
        return restored

    # -- rollback script -------------------------------------------------
    def generate_rollback_script(self, entries: Optional[Iterable[BackupEntry]] = None,
                                 created_paths: Optional[Iterable[str]] = None) -> str:
        return generate_rollback_script(
            self.entries if entries is None else entries,
            self.created_files if created_paths is None else created_paths,
            run_dir=str(self.backup_root),
        )

    def write_rollback_script(self, path=None) -> str:
        target = Path(path) if path else self.run_dir / ROLLBACK_SCRIPT_NAME
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(self.generate_rollback_script())
        os.chmod(str(target), 0o755)
        return str(target)

    def rollback_command(self, component) -> str:
        """Shell one-liner restoring a single component."""
        tag = ComponentTag.from_name(component)
        cmds = [f"cp -- {shlex.quote(e.backup_path)} {shlex.quote(e.original_path)}"
                for e in self.entries_for(tag)]
        return " && ".join(cmds)

    # -- accessors -------------------------------------------------------
    @property
    def entries(self) -> List[BackupEntry]:
        with self._lock:
            return list(self._entries)

    def entries_for(self, component) -> List[BackupEntry]:
        tag = ComponentTag.from_name(component)
        return [e for e in self.entries if e.component is tag]

    def entry_for(self, file_path) -> Optional[BackupEntry]:
        with self._lock:
            return self._by_path.get(os.path.abspath(file_path))

    @property
    def created_files(self) -> List[str]:
        with self._lock:
            return list(self._created)

    @property
    def events(self) -> List[StoreEvent]:
        with self._lock:
            return list(self._events)

    # -- persistence -----------------------------------------------------
    @classmethod
    def load(cls, project_root, run_dir) -> "BackupStore":
        """Rebuild a store from a past run's manifest."""
        store = cls(project_root, run_dir)
        if not store.manifest_path.is_file():
            raise BackupError(f"No backup manifest in {run_dir}", file_path=str(store.manifest_path))
        try:
            with open(store.manifest_path, "r", encoding="utf-8") as f:
                manifest = json.load(f)
        except (OSError, ValueError) as exc:
            raise BackupError(f"Unreadable backup manifest: {exc}",
                              file_path=str(store.manifest_path))
        for item in manifest.get("entries", []):
            entry = BackupEntry.from_dict(item)
            store._entries.append(entry)
            store._by_path[entry.original_path] = entry
            if item.get("sha256"):
                store._checksums[entry.original_path] = item["sha256"]
        store._created = list(manifest.get("created_files", []))
        return store

    def _write_manifest_locked(self) -> None:
        entries = []
        for entry in self._entries:
            item = entry.to_dict()
            item["sha256"] = self._checksums.get(entry.original_path, "")
            entries.append(item)
        manifest = {
            "project_root": str(self.project_root),
            "run_dir": str(self.run_dir),
            "updated_at": _iso_timestamp_full(),
            "entries": entries,
            "created_files": list(self._created),
        }
        data = json.dumps(manifest, indent=2).encode("utf-8")
        _atomic_write_bytes(self.manifest_path, data)

    def _record_locked(self, kind: str, path: str) -> int:
        self._seq += 1
        self._events.append(StoreEvent(seq=self._seq, kind=kind, path=path, timestamp=time.time()))
        return self._seq

    def _relative(self, path: Path) -> Path:
        try:
            return path.relative_to(self.project_root)
        except ValueError:
            raise BackupError(f"{path} is outside the project root {self.project_root}",
                              file_path=str(path))

    def _display(self, path: str) -> str:
        try:
            return Path(path).relative_to(self.project_root).as_posix()
        except ValueError:
            return path
