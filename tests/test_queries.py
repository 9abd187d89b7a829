"""Tests for the read path (point-in-time and HEAD queries, run listing)."""

from datetime import datetime, timedelta, timezone

import pytest

from cablekit.errors import NotFound
from cablekit.ingest import (
    InMemoryClient,
    diff_uploads,
    get_diff,
    get_head_records,
    get_lineage,
    get_records,
    ingest,
    list_import_runs,
    list_uploads,
    resolve_group_head,
)

T0 = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)
GROUP = {"group_id": "nave-32"}
GROUP_KEY = "nave-32"


@pytest.fixture
def db():
    return InMemoryClient()


@pytest.fixture
def history(db):
    """Three uploads and one rejected duplicate in group nave-32."""
    ticks = iter(T0 + timedelta(minutes=n) for n in range(100))

    def clock():
        return next(ticks)

    datasets = [
        [{"code": "C1", "len": 10}, {"code": "C2", "len": 5}],
        [{"code": "C1", "len": 12}, {"code": "C2", "len": 5}],
        [{"code": "C1", "len": 12}, {"code": "C2", "len": 5}],
        [{"code": "C1", "len": 12}, {"code": "C3", "len": 7}],
    ]
    return [ingest(db, GROUP, records, "inca.xlsx", "operator-1", clock=clock) for records in datasets]


class TestSnapshotQueries:
    """Tests for record queries."""

    def test_point_in_time_records(self, db, history):
        first = get_records(db, history[0].new_upload_id)
        assert [(r.code, r.attributes["len"]) for r in first] == [("C1", 10), ("C2", 5)]

    def test_head_records(self, db, history):
        assert [r.code for r in get_head_records(db, GROUP_KEY)] == ["C1", "C3"]

    def test_resolve_group_head(self, db, history):
        assert resolve_group_head(db, GROUP_KEY).id == history[3].new_upload_id

    def test_unknown_upload(self, db):
        with pytest.raises(NotFound):
            get_records(db, "nope")

    def test_empty_group_is_not_found(self, db):
        with pytest.raises(NotFound) as exc_info:
            get_head_records(db, "unknown")
        assert exc_info.value.kind == "group"

    def test_uploads_in_lineage_order(self, db, history):
        uploads = list_uploads(db, GROUP_KEY)
        expected = [history[0].new_upload_id, history[1].new_upload_id, history[3].new_upload_id]
        assert [u.id for u in uploads] == expected


class TestRunQueries:
    """Tests for import run queries."""

    def test_runs_newest_first(self, db, history):
        runs = list_import_runs(db, GROUP_KEY)

        assert [r.id for r in runs] == [r.id for r in reversed(history)]
        assert runs[1].is_duplicate

    def test_limit(self, db, history):
        assert len(list_import_runs(db, GROUP_KEY, limit=2)) == 2

    def test_default_limit_from_environment(self, db, history, monkeypatch):
        monkeypatch.setenv("CABLEKIT_RUN_LIST_LIMIT", "1")
        assert [r.id for r in list_import_runs(db, GROUP_KEY)] == [history[3].id]

    def test_get_diff(self, db, history):
        diff = get_diff(db, history[3].id)
        assert diff.to_dict() == {"added": ["C3"], "removed": ["C2"], "changed": []}

    def test_get_diff_unknown_run(self, db):
        with pytest.raises(NotFound):
            get_diff(db, "nope")


class TestLineageQueries:
    """Tests for on-demand diffs and lineage walks."""

    def test_diff_between_any_two_uploads(self, db, history):
        diff = diff_uploads(db, history[0].new_upload_id, history[3].new_upload_id)

        assert diff.added == ["C3"]
        assert diff.removed == ["C2"]
        assert [(c.code, c.before["len"], c.after["len"]) for c in diff.changed] == [("C1", 10, 12)]

    def test_stored_diff_matches_on_demand_diff(self, db, history):
        run = history[1]
        assert diff_uploads(db, run.previous_upload_id, run.new_upload_id) == get_diff(db, run.id)

    def test_lineage_walk(self, db, history):
        chain = get_lineage(db, history[3].new_upload_id)

        assert [u.id for u in chain] == [
            history[3].new_upload_id,
            history[1].new_upload_id,
            history[0].new_upload_id,
        ]
        assert chain[-1].previous_upload_id is None

    def test_lineage_of_unknown_upload(self, db):
        with pytest.raises(NotFound):
            get_lineage(db, "nope")
