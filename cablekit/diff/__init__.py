"""Record diff module for comparing cable dataset snapshots."""

from .record_diff import (
    diff_records,
    DiffPayload,
    ChangedRecord,
    FieldChange,
    field_changes,
    changed_fields,
    find_duplicate_codes,
)

__all__ = [
    "diff_records",
    "DiffPayload",
    "ChangedRecord",
    "FieldChange",
    "field_changes",
    "changed_fields",
    "find_duplicate_codes",
]
