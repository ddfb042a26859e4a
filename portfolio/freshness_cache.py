"""
Freshness Cache Module.

Provides a rate-limited, mtime-validated read-through cache in front of the
DocumentStore. Holds exactly one document.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .document_store import DocumentStore, SnapshotIdentity

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = 2.0  # seconds


@dataclass(frozen=True)
class CacheState:
    """document と identity は常にセットで差し替える"""

    document: Any
    identity: SnapshotIdentity


@dataclass(frozen=True)
class CacheSnapshot:
    """Read-only view of the cache bookkeeping."""

    identity: SnapshotIdentity | None
    last_check_time: float | None


@dataclass
class FreshnessCache:
    """ポートフォリオ文書のキャッシュ（2秒レート制限 + mtime検証）"""

    store: DocumentStore
    default_factory: Callable[[], Any] = dict
    rate_limit: float = RATE_LIMIT_WINDOW
    clock: Callable[[], float] = time.monotonic
    _state: CacheState | None = field(default=None, init=False)
    _last_check_time: float | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def get(self) -> Any:
        """
        Return the current document.

        Within the rate-limit window after a load or write the cached copy is
        returned without touching the store. Outside it the store is
        consulted and the file is re-read only if its identity changed.

        Returns:
            The cached document, or a fresh default document if no file exists

        Raises:
            OSError: If resolving, stat-ing or reading the file fails
            DocumentParseError: If the resolved file is not valid JSON
        """
        with self._lock:
            now = self.clock()
            state = self._state
            if (
                state is not None
                and self._last_check_time is not None
                and now - self._last_check_time < self.rate_limit
            ):
                return state.document
            self._advance_check_time(now)

            ref = self.store.resolve_latest()
            if ref is None:
                # 不在はキャッシュしない（次回ウィンドウ外で再解決）
                logger.debug("No portfolio file in %s, serving default", self.store.data_dir)
                return self.default_factory()

            ident = self.store.identity(ref)
            if state is not None and state.identity == ident:
                return state.document

            logger.info(
                "Loading data from disk: %s (mtime_ns=%d, cached=%s)",
                ident.file_name,
                ident.mtime_ns,
                state.identity if state else None,
            )
            document = self.store.read(ref)
            self._state = CacheState(document=document, identity=ident)
            return document

    def put(self, document: Any) -> None:
        """
        Persist ``document`` and make it the cached value.

        Raises:
            OSError: If the write fails; the cache is left unchanged
        """
        with self._lock:
            ident = self.store.write(document)
            self._state = CacheState(document=document, identity=ident)
            self._advance_check_time(self.clock())

    def snapshot(self) -> CacheSnapshot:
        """Return the current identity and last check time."""
        with self._lock:
            return CacheSnapshot(
                identity=self._state.identity if self._state else None,
                last_check_time=self._last_check_time,
            )

    def _advance_check_time(self, now: float) -> None:
        if self._last_check_time is None or now > self._last_check_time:
            self._last_check_time = now
