"""
Snapshot-based cable dataset ingestion.

This module is the only write path of the lineage. Each call:
- computes the group key of the upload
- fingerprints the record set
- under a per-group lock and one storage transaction: resolves the current
  HEAD, rejects a pure re-upload of HEAD, diffs against HEAD, appends the new
  upload and records the import run

Key principles:
- Never mutate past data (uploads and import runs are append-only)
- Every ingestion attempt leaves exactly one import run, duplicates included
- A failed ingestion leaves nothing behind and never blocks its group
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from ..diff import DiffPayload, diff_records, find_duplicate_codes
from ..errors import InputError
from ..fingerprint import compute_content_hash
from ..grouping import GroupMetadata, compute_group_key
from ..record import CableRecord, coerce_record
from .head import resolve_head
from .locks import GroupLockRegistry, default_registry
from .models import ImportRun, IngestPreview, Upload, build_summary
from .store import DatabaseClient

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
GroupLike = Union[GroupMetadata, Mapping[str, Any]]
RecordLike = Union[CableRecord, Mapping[str, Any]]

RESTORE_LABEL_PREFIX = "restore:"

# Smallest step that keeps a new upload strictly after the previous HEAD
_MIN_STEP = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _prepare_records(records: Iterable[RecordLike]) -> List[CableRecord]:
    """
    Coerce and validate an incoming record set.

    Raises:
        InputError: If a record has no code, or a code appears more than once
    """
    if records is None:
        raise InputError("Record set is required (use an empty list for an empty dataset)")

    prepared = [coerce_record(record) for record in records]

    duplicates = find_duplicate_codes(prepared)
    if duplicates:
        sample = ", ".join(duplicates[:10])
        raise InputError(
            f"Record set contains duplicate cable codes ({len(duplicates)}): {sample}"
        )
    return prepared


def _next_uploaded_at(now: datetime, head: Optional[Upload]) -> datetime:
    """
    Timestamp for a new upload.

    Never earlier than (or equal to) the current HEAD, so the appended upload
    is always the new HEAD even if the clock went backwards.
    """
    if head is not None and now <= head.uploaded_at:
        return head.uploaded_at + _MIN_STEP
    return now


def _ingest_group(
    db: DatabaseClient,
    group_key: str,
    records: List[CableRecord],
    source_label: Optional[str],
    actor_id: Optional[str],
    note: Optional[str],
    force: bool,
    locks: Optional[GroupLockRegistry],
    clock: Optional[Clock],
    debug: bool
) -> ImportRun:
    registry = locks or default_registry()
    clock = clock or _utcnow
    content_hash = compute_content_hash(records)

    if debug:
        logger.info(
            f"Ingest requested: group={group_key!r} records={len(records)} "
            f"hash={content_hash[:12]} source={source_label!r}"
        )

    with registry.hold(group_key):
        # Begin transaction for atomicity
        db.begin_transaction()

        try:
            # ====================================================================
            # STEP 1: Resolve HEAD under the group lock
            # ====================================================================
            db.lock_group(group_key)
            head = resolve_head(db.list_uploads(group_key))
            previous_upload_id = head.id if head else None

            if debug:
                logger.info(f"HEAD resolved: group={group_key!r} head={previous_upload_id}")

            now = clock()
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            # Runs and uploads share one stamp that never precedes HEAD
            stamp = _next_uploaded_at(now, head)

            # ====================================================================
            # STEP 2: Duplicate check (content fingerprint vs HEAD)
            # ====================================================================
            same_as_head = head is not None and head.content_hash == content_hash
            if same_as_head and not force:
                diff = DiffPayload.empty()
                run = ImportRun(
                    id=_new_id(),
                    group_key=group_key,
                    created_at=stamp,
                    created_by=actor_id,
                    previous_upload_id=head.id,
                    new_upload_id=None,
                    content_hash=content_hash,
                    summary=build_summary(diff, len(records)),
                    diff=diff,
                    source_label=source_label,
                    note=note,
                    forced=False,
                )
                db.record_import_run(run)
                db.commit_transaction()

                logger.info(
                    f"Duplicate upload rejected: group={group_key!r} matches HEAD {head.id} "
                    f"(run {run.id})"
                )
                return run

            # ====================================================================
            # STEP 3: Diff against HEAD's records (empty set for a new group)
            # ====================================================================
            before = db.get_records(head.id) if head else []
            diff = diff_records(before, records)

            if debug:
                logger.info(f"Diff computed: {diff.summary()}")

            # ====================================================================
            # STEP 4: Append upload and record the import run
            # ====================================================================
            upload = Upload(
                id=_new_id(),
                group_key=group_key,
                uploaded_at=stamp,
                content_hash=content_hash,
                previous_upload_id=previous_upload_id,
                source_label=source_label,
                record_count=len(records),
            )
            db.append_upload(upload, records)

            run = ImportRun(
                id=_new_id(),
                group_key=group_key,
                created_at=stamp,
                created_by=actor_id,
                previous_upload_id=previous_upload_id,
                new_upload_id=upload.id,
                content_hash=content_hash,
                summary=build_summary(diff, len(records)),
                diff=diff,
                source_label=source_label,
                note=note,
                forced=same_as_head,
            )
            db.record_import_run(run)

            db.commit_transaction()

            summary = run.summary
            logger.info(
                f"Upload {upload.id} ingested: group={group_key!r} previous={previous_upload_id} "
                f"added={summary['added']} removed={summary['removed']} "
                f"changed={summary['changed']} total={summary['total']}"
                + (" (forced)" if run.forced else "")
            )
            return run

        except Exception as e:
            # Rollback on any error
            if db.in_transaction():
                db.rollback_transaction()
            logger.error(f"Cable dataset ingestion failed for group {group_key!r}: {e}", exc_info=True)
            raise


def ingest(
    db: DatabaseClient,
    group_metadata: GroupLike,
    records: Iterable[RecordLike],
    source_label: Optional[str] = None,
    actor_id: Optional[str] = None,
    *,
    note: Optional[str] = None,
    force: bool = False,
    locks: Optional[GroupLockRegistry] = None,
    clock: Optional[Clock] = None,
    debug: bool = False
) -> ImportRun:
    """
    Ingest a cable dataset snapshot.

    Flow:
    1. Compute the group key from the metadata
    2. Validate the record set (codes present and unique)
    3. Fingerprint the record set
    4. Under the group lock, in one transaction:
       a. resolve HEAD
       b. same content as HEAD → log a duplicate import run, no new upload
       c. otherwise diff against HEAD, append the upload, log the import run

    Args:
        db: Database client instance
        group_metadata: GroupMetadata or mapping (group_id, or
                        project_code/contract_code/subproject_code)
        records: Parsed record set (CableRecord or row mappings with a 'code')
        source_label: Informational label (file name); never used for identity
        actor_id: Who triggered the import
        note: Optional free text stored on the import run
        force: Append even when the content matches HEAD
        locks: Lock registry (defaults to the process-wide registry)
        clock: Callable returning the current time (defaults to UTC now)
        debug: Enable debug logging of each ingestion step

    Returns:
        ImportRun of this attempt (new_upload_id is None for a duplicate)

    Raises:
        InputError: If the metadata yields no group key or the record set is
            malformed (nothing is written)
        ReferentialError: If the lineage link cannot be stored (transaction
            is rolled back)

    Example:
        run = ingest(
            db,
            {"project_code": "C32", "contract_code": "6092"},
            [{"code": "C1", "theoretical_length": 10}],
            source_label="inca_2026_10_01.xlsx",
            actor_id="operator-7",
        )
    """
    group_key = compute_group_key(group_metadata)
    prepared = _prepare_records(records)

    return _ingest_group(
        db=db,
        group_key=group_key,
        records=prepared,
        source_label=source_label,
        actor_id=actor_id,
        note=note,
        force=force,
        locks=locks,
        clock=clock,
        debug=debug,
    )


def preview_ingest(
    db: DatabaseClient,
    group_metadata: GroupLike,
    records: Iterable[RecordLike]
) -> IngestPreview:
    """
    Dry run of `ingest`: report what would happen, write nothing.

    Takes no lock; a concurrent ingestion may make the preview stale.

    Raises:
        InputError: Same validation as `ingest`
    """
    group_key = compute_group_key(group_metadata)
    prepared = _prepare_records(records)
    content_hash = compute_content_hash(prepared)

    head = resolve_head(db.list_uploads(group_key))
    is_duplicate = head is not None and head.content_hash == content_hash

    if is_duplicate:
        diff = DiffPayload.empty()
    else:
        diff = diff_records(db.get_records(head.id) if head else [], prepared)

    return IngestPreview(
        group_key=group_key,
        content_hash=content_hash,
        previous_upload_id=head.id if head else None,
        is_duplicate=is_duplicate,
        total=len(prepared),
        diff=diff,
    )


def restore_upload(
    db: DatabaseClient,
    upload_id: str,
    actor_id: Optional[str] = None,
    *,
    note: Optional[str] = None,
    force: bool = False,
    locks: Optional[GroupLockRegistry] = None,
    clock: Optional[Clock] = None,
    debug: bool = False
) -> ImportRun:
    """
    Make an older upload's content the group's HEAD again.

    The lineage is never rewritten: the old record set is ingested as a new
    upload (new id, new timestamp, full import run) linked to the current
    HEAD. Restoring content that already is HEAD is a duplicate, like any
    other re-upload.

    Args:
        db: Database client instance
        upload_id: Upload whose records should become current
        actor_id: Who triggered the restore
        note: Optional free text stored on the import run

    Returns:
        ImportRun of the restore

    Raises:
        NotFound: If the upload does not exist
    """
    source = db.get_upload(upload_id)
    records = db.get_records(upload_id)

    return _ingest_group(
        db=db,
        group_key=source.group_key,
        records=records,
        source_label=f"{RESTORE_LABEL_PREFIX}{upload_id}",
        actor_id=actor_id,
        note=note,
        force=force,
        locks=locks,
        clock=clock,
        debug=debug,
    )
