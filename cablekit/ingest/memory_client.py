"""
In-memory implementation of DatabaseClient.

Thread-safe reference backend used by tests and by callers that keep the
lineage in-process. Writes are buffered per thread and applied atomically on
commit, so a failed ingestion leaves nothing behind and readers never see a
half-written upload.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from ..errors import InputError, NotFound, ReferentialError
from ..record import CableRecord
from .models import ImportRun, Upload
from .store import DatabaseClient

logger = logging.getLogger(__name__)


class InMemoryClient(DatabaseClient):
    """In-memory lineage store and import run ledger."""

    def __init__(self):
        self._lock = threading.RLock()
        self._local = threading.local()
        self._uploads: Dict[str, Upload] = {}
        self._records: Dict[str, List[CableRecord]] = {}
        self._runs: Dict[str, ImportRun] = {}

    def _pending(self) -> Optional[Dict[str, Any]]:
        return getattr(self._local, "tx", None)

    def _require_transaction(self) -> Dict[str, Any]:
        tx = self._pending()
        if tx is None:
            raise RuntimeError("No transaction in progress. Call begin_transaction() first.")
        return tx

    def begin_transaction(self) -> None:
        """Begin a transaction for the calling thread."""
        if self._pending() is not None:
            raise RuntimeError("Transaction already in progress")
        self._local.tx = {"uploads": {}, "records": {}, "runs": {}}

    def commit_transaction(self) -> None:
        """Apply the calling thread's buffered writes atomically."""
        tx = self._require_transaction()
        try:
            with self._lock:
                for upload_id in tx["uploads"]:
                    if upload_id in self._uploads:
                        raise InputError(f"Upload {upload_id} already exists")
                for run_id in tx["runs"]:
                    if run_id in self._runs:
                        raise InputError(f"Import run {run_id} already exists")

                self._uploads.update(tx["uploads"])
                self._records.update(tx["records"])
                self._runs.update(tx["runs"])
        finally:
            self._local.tx = None

    def rollback_transaction(self) -> None:
        """Discard the calling thread's buffered writes."""
        self._require_transaction()
        self._local.tx = None

    def in_transaction(self) -> bool:
        return self._pending() is not None

    def lock_group(self, group_key: str) -> None:
        # Single process: GroupLockRegistry already serializes the group
        self._require_transaction()

    # ------------------------------------------------------------------
    # Lineage store
    # ------------------------------------------------------------------

    def _has_upload(self, upload_id: str) -> bool:
        tx = self._pending()
        if tx is not None and upload_id in tx["uploads"]:
            return True
        with self._lock:
            return upload_id in self._uploads

    def append_upload(self, upload: Upload, records: List[CableRecord]) -> None:
        tx = self._require_transaction()

        if self._has_upload(upload.id):
            raise InputError(f"Upload {upload.id} already exists; uploads are immutable")
        if upload.previous_upload_id is not None and not self._has_upload(upload.previous_upload_id):
            raise ReferentialError(
                f"Upload {upload.id} references missing previous upload {upload.previous_upload_id}"
            )

        tx["uploads"][upload.id] = upload
        tx["records"][upload.id] = copy.deepcopy(list(records))

    def get_upload(self, upload_id: str) -> Upload:
        tx = self._pending()
        if tx is not None and upload_id in tx["uploads"]:
            return tx["uploads"][upload_id]
        with self._lock:
            upload = self._uploads.get(upload_id)
        if upload is None:
            raise NotFound("upload", upload_id)
        return upload

    def list_uploads(self, group_key: str) -> List[Upload]:
        with self._lock:
            uploads = [u for u in self._uploads.values() if u.group_key == group_key]
        tx = self._pending()
        if tx is not None:
            uploads.extend(u for u in tx["uploads"].values() if u.group_key == group_key)
        return uploads

    def get_records(self, upload_id: str) -> List[CableRecord]:
        tx = self._pending()
        if tx is not None and upload_id in tx["records"]:
            return copy.deepcopy(tx["records"][upload_id])
        with self._lock:
            if upload_id not in self._records:
                raise NotFound("upload", upload_id)
            return copy.deepcopy(self._records[upload_id])

    # ------------------------------------------------------------------
    # Import run ledger
    # ------------------------------------------------------------------

    def record_import_run(self, run: ImportRun) -> None:
        tx = self._require_transaction()
        if run.id in tx["runs"]:
            raise InputError(f"Import run {run.id} already recorded")
        tx["runs"][run.id] = copy.deepcopy(run)

    def get_import_run(self, run_id: str) -> ImportRun:
        tx = self._pending()
        if tx is not None and run_id in tx["runs"]:
            return copy.deepcopy(tx["runs"][run_id])
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise NotFound("import run", run_id)
        return copy.deepcopy(run)

    def list_import_runs(self, group_key: str, limit: int) -> List[ImportRun]:
        if limit <= 0:
            raise InputError(f"limit must be positive, got {limit}")
        with self._lock:
            runs = [r for r in self._runs.values() if r.group_key == group_key]
        runs.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [copy.deepcopy(r) for r in runs[:limit]]

    def close(self) -> None:
        logger.debug("InMemoryClient closed")
