"""
Storage interface for the lineage store and the import run ledger.

Key principles:
- Never mutate past data: uploads and import runs are append-only
- An upload and its record set are written as one unit
- Referential integrity of the lineage is checked at write time
- Transactions are per calling thread, so ingestions of different groups
  can run concurrently against one client
"""

from typing import List

from ..record import CableRecord
from .models import ImportRun, Upload


class DatabaseClient:
    """
    Abstract database client interface.

    Implement this interface with your actual storage (see InMemoryClient and
    SupabaseClient). Writes happen inside begin/commit/rollback; reads may be
    called with or without a transaction in progress.
    """

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin_transaction(self) -> None:
        """Begin a transaction for the calling thread."""
        raise NotImplementedError

    def commit_transaction(self) -> None:
        """Commit the calling thread's transaction."""
        raise NotImplementedError

    def rollback_transaction(self) -> None:
        """Rollback the calling thread's transaction."""
        raise NotImplementedError

    def in_transaction(self) -> bool:
        """True if the calling thread has a transaction open."""
        raise NotImplementedError

    def lock_group(self, group_key: str) -> None:
        """
        Take a storage-level lock on a group for the current transaction.

        Released automatically at commit/rollback. Backends that only serve
        one process may implement this as a no-op; in-process serialization
        is handled by GroupLockRegistry.

        Args:
            group_key: Group being written
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Lineage store
    # ------------------------------------------------------------------

    def append_upload(
        self,
        upload: Upload,
        records: List[CableRecord]
    ) -> None:
        """
        Insert a new upload together with its record set (immutable).

        Args:
            upload: Upload to insert
            records: Record set, in ingestion order

        Raises:
            InputError: If an upload with the same id already exists
            ReferentialError: If upload.previous_upload_id is set and does
                not reference an existing upload
        """
        raise NotImplementedError

    def get_upload(self, upload_id: str) -> Upload:
        """
        Get a single upload.

        Raises:
            NotFound: If the upload does not exist
        """
        raise NotImplementedError

    def list_uploads(self, group_key: str) -> List[Upload]:
        """
        Get all uploads of a group.

        No ordering guarantee; use resolve_head / sort_lineage.
        """
        raise NotImplementedError

    def get_records(self, upload_id: str) -> List[CableRecord]:
        """
        Get the record set stored for an upload, in ingestion order.

        Raises:
            NotFound: If the upload does not exist (an upload with zero
                records returns an empty list)
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Import run ledger
    # ------------------------------------------------------------------

    def record_import_run(self, run: ImportRun) -> None:
        """Persist an import run (duplicate or not)."""
        raise NotImplementedError

    def get_import_run(self, run_id: str) -> ImportRun:
        """
        Get a single import run.

        Raises:
            NotFound: If the run does not exist
        """
        raise NotImplementedError

    def list_import_runs(self, group_key: str, limit: int) -> List[ImportRun]:
        """
        Get the most recent import runs of a group.

        Ordered by created_at descending (ties: id descending).

        Args:
            group_key: Group key
            limit: Maximum number of runs to return (positive)
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the client."""
