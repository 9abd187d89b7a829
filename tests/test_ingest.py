"""
Tests for cable dataset ingestion.

These tests verify that:
1. New content creates an upload linked to the previous HEAD, with its diff
2. Re-uploading HEAD's content is logged but creates no upload
3. Failures roll back completely and never leave a group locked
4. Concurrent ingestions of one group serialize; different groups don't interact
5. Every upload has exactly one import run
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from cablekit.errors import InputError, ReferentialError
from cablekit.fingerprint import compute_content_hash
from cablekit.grouping import GroupMetadata, compute_group_key
from cablekit.ingest import (
    GroupLockRegistry,
    InMemoryClient,
    Upload,
    get_head_records,
    get_records,
    ingest,
    list_import_runs,
    list_uploads,
    preview_ingest,
    resolve_group_head,
    restore_upload,
)
from cablekit.record import CableRecord

T0 = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock: every call is one second later."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self._now = start
        self._step = step
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self._now += self._step
            return self._now


class SlowClient(InMemoryClient):
    """Widens the HEAD read → append window to expose races."""

    def list_uploads(self, group_key):
        uploads = super().list_uploads(group_key)
        time.sleep(0.002)
        return uploads


class FailingRunClient(InMemoryClient):
    """Fails while recording the import run, after the upload was appended."""

    def record_import_run(self, run):
        raise RuntimeError("ledger unavailable")


class GhostHeadClient(InMemoryClient):
    """Reports a HEAD that does not exist in storage."""

    def list_uploads(self, group_key):
        ghost = Upload(
            id="ghost",
            group_key=group_key,
            uploaded_at=T0 + timedelta(days=365),
            content_hash="0" * 64,
        )
        return super().list_uploads(group_key) + [ghost]

    def get_records(self, upload_id):
        if upload_id == "ghost":
            return []
        return super().get_records(upload_id)


@pytest.fixture
def db():
    return InMemoryClient()


@pytest.fixture
def clock():
    return TickingClock()


GROUP = {"group_id": "nave-32"}
GROUP_KEY = "nave-32"


def run_ingest(db, records, clock, group=GROUP, **kwargs):
    """Helper to ingest with the test defaults."""
    kwargs.setdefault("source_label", "inca.xlsx")
    kwargs.setdefault("actor_id", "operator-1")
    return ingest(db, group, records, clock=clock, **kwargs)


def assert_audit_complete(db, group_key):
    """Every upload of the group has exactly one import run pointing at it."""
    runs = db.list_import_runs(group_key, 10_000)
    for upload in db.list_uploads(group_key):
        matching = [r for r in runs if r.new_upload_id == upload.id]
        assert len(matching) == 1, upload.id


# =============================================================================
# BASIC SCENARIOS
# =============================================================================

class TestIngestScenarios:
    """The lineage life cycle of one group."""

    def test_first_upload_adds_everything(self, db, clock):
        run = run_ingest(db, [{"code": "C1", "len": 10}], clock)

        assert run.new_upload_id is not None
        assert run.previous_upload_id is None
        assert run.diff.to_dict() == {"added": ["C1"], "removed": [], "changed": []}
        assert run.summary == {"added": 1, "removed": 0, "changed": 0, "total": 1}
        assert resolve_group_head(db, GROUP_KEY).id == run.new_upload_id

    def test_identical_reupload_is_duplicate(self, db, clock):
        first = run_ingest(db, [{"code": "C1", "len": 10}], clock)
        second = run_ingest(db, [{"code": "c1 ", "len": "10"}], clock)

        assert second.is_duplicate
        assert second.new_upload_id is None
        assert second.previous_upload_id == first.new_upload_id
        assert second.diff.is_empty
        assert len(db.list_uploads(GROUP_KEY)) == 1
        assert len(db.list_import_runs(GROUP_KEY, 10)) == 2

    def test_changed_length(self, db, clock):
        run_ingest(db, [{"code": "C1", "len": 10}], clock)
        run = run_ingest(db, [{"code": "C1", "len": 20}], clock)

        assert run.diff.to_dict() == {
            "added": [],
            "removed": [],
            "changed": [{"code": "C1", "before": {"len": 10}, "after": {"len": 20}}],
        }

    def test_near_equal_value_is_a_change(self, db, clock):
        run_ingest(db, [{"code": "C1", "len": 1}], clock)
        run = run_ingest(db, [{"code": "C1", "len": "1.00000000000000001"}], clock)

        assert not run.is_duplicate
        assert [c.code for c in run.diff.changed] == ["C1"]
        assert run.summary["changed"] == 1

    def test_reformatted_numbers_are_duplicate(self, db, clock):
        run_ingest(db, [{"code": "C1", "len": 10, "width": 2.5}], clock)
        run = run_ingest(db, [{"code": "C1", "len": "10.00", "width": "2.50"}], clock)

        assert run.is_duplicate
        assert run.diff.is_empty

    def test_record_replaced(self, db, clock):
        run_ingest(db, [{"code": "C1", "len": 10}], clock)
        run_ingest(db, [{"code": "C1", "len": 20}], clock)
        run = run_ingest(db, [{"code": "C2", "len": 5}], clock)

        assert run.diff.to_dict() == {"added": ["C2"], "removed": ["C1"], "changed": []}
        assert [r.code for r in get_head_records(db, GROUP_KEY)] == ["C2"]

    def test_lineage_is_linear(self, db, clock):
        runs = [
            run_ingest(db, [{"code": "C1", "len": n}], clock)
            for n in range(1, 5)
        ]
        uploads = list_uploads(db, GROUP_KEY)

        assert [u.id for u in uploads] == [r.new_upload_id for r in runs]
        assert uploads[0].previous_upload_id is None
        for prev, cur in zip(uploads, uploads[1:]):
            assert cur.previous_upload_id == prev.id
            assert cur.uploaded_at > prev.uploaded_at

    def test_duplicate_of_older_upload_is_new_content(self, db, clock):
        """Only HEAD counts for deduplication."""
        run_ingest(db, [{"code": "C1", "len": 10}], clock)
        run_ingest(db, [{"code": "C1", "len": 20}], clock)
        run = run_ingest(db, [{"code": "C1", "len": 10}], clock)

        assert not run.is_duplicate
        assert len(db.list_uploads(GROUP_KEY)) == 3

    def test_empty_dataset_is_a_valid_upload(self, db, clock):
        run_ingest(db, [{"code": "C1"}], clock)
        run = run_ingest(db, [], clock)

        assert run.new_upload_id is not None
        assert run.diff.removed == ["C1"]
        assert get_records(db, run.new_upload_id) == []

    def test_upload_fields(self, db, clock):
        records = [CableRecord(code="C2", attributes={"len": 5}), {"code": "C1", "len": 10}]
        run = run_ingest(db, records, clock, source_label="week40.xlsx", note="weekly export")
        upload = db.get_upload(run.new_upload_id)

        assert upload.group_key == GROUP_KEY
        assert upload.source_label == "week40.xlsx"
        assert upload.record_count == 2
        assert upload.content_hash == compute_content_hash(
            [CableRecord(code="C1", attributes={"len": 10}), CableRecord(code="C2", attributes={"len": 5})]
        )
        assert run.created_by == "operator-1"
        assert run.note == "weekly export"
        assert [r.code for r in get_records(db, upload.id)] == ["C2", "C1"]

    def test_earlier_uploads_untouched(self, db, clock):
        first = run_ingest(db, [{"code": "C1", "len": 10}], clock)
        snapshot = db.get_upload(first.new_upload_id).to_dict()
        records = [r.to_dict() for r in get_records(db, first.new_upload_id)]

        run_ingest(db, [{"code": "C1", "len": 20}, {"code": "C2"}], clock)

        assert db.get_upload(first.new_upload_id).to_dict() == snapshot
        assert [r.to_dict() for r in get_records(db, first.new_upload_id)] == records

    def test_legacy_group_metadata(self, db, clock):
        a = GroupMetadata(project_code="C32", contract_code="6092", subproject_code="A")
        b = {"project_code": " c32", "contract_code": "6092", "subproject_code": "a "}

        first = run_ingest(db, [{"code": "C1"}], clock, group=a)
        second = run_ingest(db, [{"code": "C1"}], clock, group=b)

        assert second.is_duplicate
        assert second.previous_upload_id == first.new_upload_id

    def test_outcome_logged(self, db, clock, caplog):
        with caplog.at_level(logging.INFO, logger="cablekit.ingest.snapshot_ingest"):
            run_ingest(db, [{"code": "C1"}], clock)
            run_ingest(db, [{"code": "C1"}], clock)

        messages = [r.getMessage() for r in caplog.records]
        assert any("ingested" in m and "added=1" in m for m in messages)
        assert any("Duplicate upload rejected" in m for m in messages)


# =============================================================================
# FORCE, PREVIEW, RESTORE
# =============================================================================

class TestIngestOptions:
    """Tests for force, dry-run preview and restore."""

    def test_force_appends_identical_content(self, db, clock):
        first = run_ingest(db, [{"code": "C1", "len": 10}], clock)
        run = run_ingest(db, [{"code": "C1", "len": 10}], clock, force=True)

        assert run.new_upload_id is not None
        assert run.forced is True
        assert run.previous_upload_id == first.new_upload_id
        assert run.diff.is_empty
        assert resolve_group_head(db, GROUP_KEY).id == run.new_upload_id

    def test_force_on_new_content_is_a_normal_upload(self, db, clock):
        run = run_ingest(db, [{"code": "C1"}], clock, force=True)
        assert run.forced is False

    def test_preview_writes_nothing(self, db, clock):
        run_ingest(db, [{"code": "C1", "len": 10}], clock)

        preview = preview_ingest(db, GROUP, [{"code": "C1", "len": 20}, {"code": "C2"}])

        assert preview.group_key == GROUP_KEY
        assert not preview.is_duplicate
        assert preview.total == 2
        assert preview.diff.added == ["C2"]
        assert [c.code for c in preview.diff.changed] == ["C1"]
        assert len(db.list_uploads(GROUP_KEY)) == 1
        assert len(db.list_import_runs(GROUP_KEY, 10)) == 1

    def test_preview_detects_duplicate(self, db, clock):
        first = run_ingest(db, [{"code": "C1", "len": 10}], clock)
        preview = preview_ingest(db, GROUP, [{"code": "C1", "len": 10}])

        assert preview.is_duplicate
        assert preview.previous_upload_id == first.new_upload_id
        assert preview.diff.is_empty

    def test_preview_of_new_group(self, db):
        preview = preview_ingest(db, {"group_id": "fresh"}, [{"code": "C1"}])

        assert preview.previous_upload_id is None
        assert preview.diff.added == ["C1"]
        assert preview.to_dict()["summary"] == {"added": 1, "removed": 0, "changed": 0}

    def test_restore_makes_old_content_head(self, db, clock):
        group = GroupMetadata(project_code="C32", contract_code="6092")
        v1 = run_ingest(db, [{"code": "C1", "len": 10}], clock, group=group)
        v2 = run_ingest(db, [{"code": "C1", "len": 20}, {"code": "C2"}], clock, group=group)
        group_key = compute_group_key(group)

        run = restore_upload(db, v1.new_upload_id, "supervisor", clock=clock, note="bad export")

        head = resolve_group_head(db, group_key)
        assert head.id == run.new_upload_id
        assert head.previous_upload_id == v2.new_upload_id
        assert head.source_label == f"restore:{v1.new_upload_id}"
        assert head.content_hash == db.get_upload(v1.new_upload_id).content_hash
        assert run.diff.removed == ["C2"]
        assert [c.code for c in run.diff.changed] == ["C1"]
        assert run.created_by == "supervisor"
        assert len(db.list_uploads(group_key)) == 3

    def test_restore_of_head_is_duplicate(self, db, clock):
        first = run_ingest(db, [{"code": "C1"}], clock)
        run = restore_upload(db, first.new_upload_id, "supervisor", clock=clock)

        assert run.is_duplicate
        assert len(db.list_uploads(GROUP_KEY)) == 1


# =============================================================================
# FAILURES
# =============================================================================

class TestIngestFailures:
    """Failed ingestions leave no trace and no lock behind."""

    def test_duplicate_codes_rejected(self, db, clock):
        with pytest.raises(InputError):
            run_ingest(db, [{"code": "C1"}, {"code": " c1"}], clock)

        assert db.list_uploads(GROUP_KEY) == []
        assert db.list_import_runs(GROUP_KEY, 10) == []

    def test_record_without_code_rejected(self, db, clock):
        with pytest.raises(InputError):
            run_ingest(db, [{"len": 10}], clock)

    def test_missing_group_metadata_rejected(self, db, clock):
        with pytest.raises(InputError):
            run_ingest(db, [{"code": "C1"}], clock, group={})

    def test_storage_failure_rolls_back(self, clock, caplog):
        db = FailingRunClient()

        with caplog.at_level(logging.ERROR):
            with pytest.raises(RuntimeError, match="ledger unavailable"):
                run_ingest(db, [{"code": "C1"}], clock)

        assert db.list_uploads(GROUP_KEY) == []
        assert not db.in_transaction()
        assert any(r.exc_info for r in caplog.records if r.levelno == logging.ERROR)

    def test_referential_error_rolls_back(self, clock):
        db = GhostHeadClient()

        with pytest.raises(ReferentialError):
            run_ingest(db, [{"code": "C1"}], clock)

        assert [u.id for u in db.list_uploads(GROUP_KEY)] == ["ghost"]
        assert db.list_import_runs(GROUP_KEY, 10) == []

    def test_failure_releases_group_lock(self, clock):
        locks = GroupLockRegistry()
        failing = FailingRunClient()

        with pytest.raises(RuntimeError):
            run_ingest(failing, [{"code": "C1"}], clock, locks=locks)

        assert locks.active_groups() == []

        db = InMemoryClient()
        run = run_ingest(db, [{"code": "C1"}], clock, locks=locks)
        assert run.new_upload_id is not None


# =============================================================================
# TIME AND CONCURRENCY
# =============================================================================

class TestIngestConcurrency:
    """Serialization per group, independence across groups."""

    def test_clock_skew_keeps_new_upload_head(self, db):
        first = run_ingest(db, [{"code": "C1", "len": 1}], lambda: T0)
        late = run_ingest(db, [{"code": "C1", "len": 2}], lambda: T0 - timedelta(hours=1))

        head = resolve_group_head(db, GROUP_KEY)
        assert head.id == late.new_upload_id
        assert head.uploaded_at > db.get_upload(first.new_upload_id).uploaded_at

    def test_clock_skew_keeps_run_order(self, db):
        first = run_ingest(db, [{"code": "C1", "len": 1}], lambda: T0)
        late = run_ingest(db, [{"code": "C1", "len": 2}], lambda: T0 - timedelta(hours=1))
        repeat = run_ingest(db, [{"code": "C1", "len": 2}], lambda: T0 - timedelta(hours=2))

        runs = list_import_runs(db, GROUP_KEY)

        assert [r.id for r in runs] == [repeat.id, late.id, first.id]
        assert late.created_at == db.get_upload(late.new_upload_id).uploaded_at
        assert repeat.is_duplicate
        assert repeat.created_at > late.created_at

    def test_naive_clock_treated_as_utc(self, db):
        run = run_ingest(db, [{"code": "C1"}], lambda: datetime(2026, 10, 1, 8, 0))
        assert db.get_upload(run.new_upload_id).uploaded_at.tzinfo is not None

    def test_different_groups_are_independent(self, clock):
        db = SlowClient()
        errors = []

        def worker(group_id):
            try:
                for n in range(5):
                    run_ingest(db, [{"code": "C1", "len": n}], clock, group={"group_id": group_id})
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(g,)) for g in ("A", "B")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        for group_key in ("a", "b"):
            uploads = list_uploads(db, group_key)
            assert len(uploads) == 5
            assert {u.group_key for u in uploads} == {group_key}
            assert uploads[0].previous_upload_id is None
            assert_audit_complete(db, group_key)

    def test_same_group_serializes(self, clock):
        db = SlowClient()
        errors = []

        def worker(n):
            try:
                run_ingest(db, [{"code": "C1", "len": n}], clock)
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []

        runs = list_import_runs(db, GROUP_KEY, limit=100)
        assert len(runs) == 10

        # Exactly one run started from an empty group; every other run built
        # on a distinct previous upload, so the lineage is one chain
        bases = [r.previous_upload_id for r in runs]
        assert bases.count(None) == 1
        assert len(set(bases)) == len(bases)

        uploads = list_uploads(db, GROUP_KEY)
        assert len(uploads) == 10
        for prev, cur in zip(uploads, uploads[1:]):
            assert cur.previous_upload_id == prev.id
        assert_audit_complete(db, GROUP_KEY)

    def test_concurrent_duplicates(self, clock):
        db = SlowClient()
        run_ingest(db, [{"code": "C1", "len": 1}], clock)

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(run_ingest(db, [{"code": "C1", "len": 2}], clock)))
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # First one wins, the rest see it as HEAD and are rejected
        assert sorted(r.is_duplicate for r in results) == [False, True, True, True]
        winner = next(r for r in results if not r.is_duplicate)
        assert all(r.previous_upload_id == winner.new_upload_id for r in results if r.is_duplicate)
        assert len(db.list_uploads(GROUP_KEY)) == 2
