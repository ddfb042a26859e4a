"""
Document Store Module.

Locates the authoritative portfolio file on disk and performs raw reads/writes.

Dated snapshots follow a ``<prefix><anything><suffix>`` naming convention
(e.g. ``portfolio-2024-06-15.json``). The lexicographically greatest name
wins, so callers must pick names whose lexicographic order matches their
chronological order. This is not validated.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CURRENT_FILE = "portfolio-current.json"
DEFAULT_SNAPSHOT_PREFIX = "portfolio-"
DEFAULT_SNAPSHOT_SUFFIX = ".json"
DEFAULT_LEGACY_FILE = "portfolio.json"


class DocumentParseError(ValueError):
    """Stored bytes are not a valid serialized document."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"{name}: {reason}")
        self.name = name


@dataclass(frozen=True)
class SnapshotIdentity:
    """ファイル名 + mtime(ns) によるドキュメント版の識別子"""

    file_name: str
    mtime_ns: int


@dataclass(frozen=True)
class FileRef:
    """A resolved document file inside the store's data directory."""

    name: str
    path: Path


@dataclass
class DocumentStore:
    """Filesystem access for the portfolio document."""

    data_dir: Path
    current_file: str = DEFAULT_CURRENT_FILE
    snapshot_prefix: str = DEFAULT_SNAPSHOT_PREFIX
    snapshot_suffix: str = DEFAULT_SNAPSHOT_SUFFIX
    legacy_file: str = DEFAULT_LEGACY_FILE
    decode: Callable[[Any], Any] | None = None

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)

    def _ref(self, name: str) -> FileRef:
        return FileRef(name=name, path=self.data_dir / name)

    def _is_snapshot(self, entry: os.DirEntry) -> bool:
        return (
            entry.name.startswith(self.snapshot_prefix)
            and entry.name.endswith(self.snapshot_suffix)
            and entry.is_file()
        )

    def resolve_latest(self) -> FileRef | None:
        """
        Find the file holding the current document.

        Returns:
            The greatest dated snapshot, else the legacy file, else None

        Raises:
            OSError: If the data directory cannot be listed
        """
        with os.scandir(self.data_dir) as entries:
            names = sorted(e.name for e in entries if self._is_snapshot(e))
        if names:
            return self._ref(names[-1])

        legacy = self._ref(self.legacy_file)
        if legacy.path.is_file():
            return legacy
        return None

    def stat(self, ref: FileRef) -> int:
        """Return the modification time of ``ref`` in nanoseconds."""
        return os.stat(ref.path).st_mtime_ns

    def identity(self, ref: FileRef) -> SnapshotIdentity:
        """Return the (name, mtime) identity of ``ref``."""
        return SnapshotIdentity(file_name=ref.name, mtime_ns=self.stat(ref))

    def read(self, ref: FileRef) -> Any:
        """
        Read and parse the document stored in ``ref``.

        When ``decode`` is set the parsed JSON is passed through it, and any
        ``ValueError`` it raises (pydantic's ValidationError included) is
        reported as a parse error.

        Raises:
            OSError: If the file is missing or unreadable
            DocumentParseError: If the content is not a valid document
        """
        raw = ref.path.read_bytes()
        try:
            data = json.loads(raw)
            return self.decode(data) if self.decode else data
        except ValueError as e:
            raise DocumentParseError(ref.name, str(e)) from e

    def write(self, document: Any) -> SnapshotIdentity:
        """
        Persist ``document`` to the current file.

        The content goes to a temp file in the same directory first and is
        renamed over the target only once it is fully on disk.

        Returns:
            Identity of the written file, taken from the temp file before the
            rename (a rename keeps the mtime), so nothing can fail once the
            target has been replaced

        Raises:
            OSError: On any write failure (the target is left as it was)
        """
        payload = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
        target = self._ref(self.current_file)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.data_dir, prefix=".tmp-", suffix=".part"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
                mtime_ns = os.fstat(f.fileno()).st_mtime_ns
            os.replace(tmp_name, target.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        ident = SnapshotIdentity(file_name=target.name, mtime_ns=mtime_ns)
        logger.info("Saved portfolio to %s (mtime_ns=%d)", ident.file_name, ident.mtime_ns)
        return ident
