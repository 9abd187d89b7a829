"""
Read path for uploads, record sets and import runs.

Reads take no locks. Uploads and import runs are written as whole units, so
a reader sees either the state before or after a concurrent ingestion.
Unknown ids and empty groups raise NotFound; they are never reported as an
empty dataset.
"""

import logging
from typing import List, Optional

from ..config import load_settings
from ..diff import DiffPayload, diff_records
from ..errors import NotFound
from ..record import CableRecord
from .head import resolve_head, sort_lineage
from .models import ImportRun, Upload
from .store import DatabaseClient

logger = logging.getLogger(__name__)


def get_records(db: DatabaseClient, upload_id: str) -> List[CableRecord]:
    """
    Get the record set of an upload, in ingestion order.

    Callers that need code order sort explicitly.

    Raises:
        NotFound: If the upload does not exist
    """
    return db.get_records(upload_id)


def resolve_group_head(db: DatabaseClient, group_key: str) -> Upload:
    """
    Resolve the current HEAD of a group.

    Raises:
        NotFound: If the group has no uploads
    """
    head = resolve_head(db.list_uploads(group_key))
    if head is None:
        raise NotFound("group", group_key)
    return head


def get_head_records(db: DatabaseClient, group_key: str) -> List[CableRecord]:
    """Get the record set of a group's HEAD (NotFound for an empty group)."""
    return db.get_records(resolve_group_head(db, group_key).id)


def list_uploads(db: DatabaseClient, group_key: str) -> List[Upload]:
    """All uploads of a group, oldest first (HEAD last)."""
    return sort_lineage(db.list_uploads(group_key))


def list_import_runs(
    db: DatabaseClient,
    group_key: str,
    limit: Optional[int] = None
) -> List[ImportRun]:
    """
    Most recent import runs of a group, newest first.

    Args:
        db: Database client
        group_key: Group key
        limit: Maximum runs to return (defaults to CABLEKIT_RUN_LIST_LIMIT)
    """
    if limit is None:
        limit = load_settings().run_list_limit
    return db.list_import_runs(group_key, limit)


def get_diff(db: DatabaseClient, import_run_id: str) -> DiffPayload:
    """
    Get the diff stored on an import run.

    Raises:
        NotFound: If the import run does not exist
    """
    return db.get_import_run(import_run_id).diff


def diff_uploads(
    db: DatabaseClient,
    before_upload_id: str,
    after_upload_id: str
) -> DiffPayload:
    """
    Compute the diff between any two uploads on demand.

    Nothing is stored; the uploads do not need to be adjacent in the lineage
    or even belong to the same group.

    Raises:
        NotFound: If either upload does not exist
    """
    before = db.get_records(before_upload_id)
    after = db.get_records(after_upload_id)

    diff = diff_records(before, after)
    logger.debug(f"Diff {before_upload_id} -> {after_upload_id}: {diff.summary()}")
    return diff


def get_lineage(db: DatabaseClient, upload_id: str) -> List[Upload]:
    """
    Walk the lineage back from an upload to the first upload of its group.

    Returns:
        Uploads newest first, starting with `upload_id`

    Raises:
        NotFound: If the upload does not exist
    """
    chain: List[Upload] = []
    seen = set()
    current: Optional[str] = upload_id

    while current is not None and current not in seen:
        seen.add(current)
        upload = db.get_upload(current)
        chain.append(upload)
        current = upload.previous_upload_id

    return chain
