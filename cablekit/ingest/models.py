"""Lineage entities: uploads, import runs and ingestion previews."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from ..diff import DiffPayload


@dataclass(frozen=True)
class Upload:
    """
    One ingested dataset snapshot.

    Created once at ingestion; never mutated, never deleted. The record set
    itself is stored alongside (see DatabaseClient.get_records).
    """
    id: str
    group_key: str
    uploaded_at: datetime
    content_hash: str
    previous_upload_id: Optional[str] = None
    source_label: Optional[str] = None  # informational only, never identity
    record_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "group_key": self.group_key,
            "uploaded_at": self.uploaded_at.isoformat(),
            "content_hash": self.content_hash,
            "previous_upload_id": self.previous_upload_id,
            "source_label": self.source_label,
            "record_count": self.record_count,
        }


@dataclass
class ImportRun:
    """
    Audit record of one ingestion attempt.

    new_upload_id is None when the attempt was rejected as a duplicate of
    the current HEAD; the run is still kept for traceability.
    """
    id: str
    group_key: str
    created_at: datetime
    created_by: Optional[str]
    previous_upload_id: Optional[str]
    new_upload_id: Optional[str]
    content_hash: str
    summary: Dict[str, int]
    diff: DiffPayload
    source_label: Optional[str] = None
    note: Optional[str] = None
    forced: bool = False

    @property
    def is_duplicate(self) -> bool:
        return self.new_upload_id is None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "id": self.id,
            "group_key": self.group_key,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
            "previous_upload_id": self.previous_upload_id,
            "new_upload_id": self.new_upload_id,
            "content_hash": self.content_hash,
            "summary": dict(self.summary),
            "diff": self.diff.to_dict(),
            "source_label": self.source_label,
            "note": self.note,
            "forced": self.forced,
            "is_duplicate": self.is_duplicate,
        }


@dataclass
class IngestPreview:
    """Result of a dry-run ingestion: what `ingest` would do, nothing written."""
    group_key: str
    content_hash: str
    previous_upload_id: Optional[str]
    is_duplicate: bool
    total: int
    diff: DiffPayload = field(default_factory=DiffPayload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_key": self.group_key,
            "content_hash": self.content_hash,
            "previous_upload_id": self.previous_upload_id,
            "is_duplicate": self.is_duplicate,
            "total": self.total,
            "summary": self.diff.summary(),
            "diff": self.diff.to_dict(),
        }


def build_summary(diff: DiffPayload, total: int) -> Dict[str, int]:
    """Summary counts stored on an import run."""
    summary = diff.summary()
    summary["total"] = total
    return summary


def summary_from_mapping(data: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    data = data or {}
    return {key: int(data.get(key) or 0) for key in ("added", "removed", "changed", "total")}
