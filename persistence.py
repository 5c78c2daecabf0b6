"""Persistence mirror.

The entity store is authoritative; this module mirrors it to a key-value
table (one JSON document per key) and rehydrates it at startup. Writes are
debounced: every mutation marks the mirror dirty and the full snapshot is
written once the store has been idle for ``delay`` seconds.
"""

import json
import logging
import threading
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError

from config import FLUSH_DELAY, KEY_PREFIX
from db import SessionLocal
from models import StorageEntry
from store import DOCUMENT_NAMES, EntityStore

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """Namespaced string storage backed by the ``storage`` table."""

    def __init__(self, session_factory=SessionLocal, prefix: str = KEY_PREFIX):
        self.session_factory = session_factory
        self.prefix = prefix

    def key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def get_item(self, name: str) -> Optional[str]:
        with self.session_factory() as db:
            entry = db.get(StorageEntry, self.key(name))
            return entry.value if entry else None

    def set_items(self, documents: Dict[str, str]):
        with self.session_factory() as db:
            for name, value in documents.items():
                entry = db.get(StorageEntry, self.key(name))
                if entry:
                    entry.value = value
                else:
                    db.add(StorageEntry(key=self.key(name), value=value))
            db.commit()

    def set_item(self, name: str, value: str):
        self.set_items({name: value})


def encode_documents(snapshot: Dict[str, object]) -> Dict[str, str]:
    return {name: json.dumps(value, ensure_ascii=False) for name, value in snapshot.items()}


class PersistenceMirror:
    def __init__(
        self,
        storage: KeyValueStorage,
        snapshot: Callable[[], Dict[str, object]],
        delay: float = FLUSH_DELAY,
    ):
        self.storage = storage
        self.snapshot = snapshot
        self.delay = delay
        self.dirty = False
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        self._write_lock = threading.Lock()

    def _arm(self):
        # dipanggil dengan _timer_lock dipegang
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.delay > 0:
            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def _disarm(self):
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def mark_dirty(self):
        with self._timer_lock:
            self.dirty = True
            self._arm()
        if self.delay <= 0:
            self.flush()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def flush(self) -> bool:
        """Write the full snapshot now. Returns False if the write failed.

        A failed write keeps the mirror dirty and schedules another attempt
        after ``delay`` seconds.
        """
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self.dirty = False
        with self._write_lock:
            try:
                documents = encode_documents(self.snapshot())
                self.storage.set_items(documents)
            except (SQLAlchemyError, TypeError, ValueError):
                # state di memori tetap dipakai
                logger.exception("Gagal menyimpan data ke storage")
                failed = True
            else:
                failed = False
        if failed:
            with self._timer_lock:
                self.dirty = True
                self._arm()
            return False
        logger.debug("Snapshot tersimpan (%d dokumen)", len(documents))
        return True

    def close(self):
        if self.dirty or self.pending:
            if not self.flush():
                self._disarm()
                logger.error("Data belum tersimpan saat ditutup")

    def load(self, store: EntityStore) -> List[str]:
        """Rehydrate ``store`` from storage.

        Returns the names of documents that could not be loaded; those keep
        their empty/default value.
        """
        failed = []
        for name in DOCUMENT_NAMES:
            try:
                raw = self.storage.get_item(name)
            except SQLAlchemyError:
                logger.exception("Gagal membaca %s dari storage", name)
                failed.append(name)
                continue
            if raw is None:
                continue
            try:
                store.restore(name, json.loads(raw))
            except (ValueError, TypeError, SchemaError):
                logger.exception("Data %s rusak, dimulai kosong", name)
                failed.append(name)
        if failed:
            logger.warning("Dokumen gagal dimuat: %s", ", ".join(failed))
        return failed
