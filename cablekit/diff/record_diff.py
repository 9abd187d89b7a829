"""
Record diff engine for comparing cable dataset snapshots.

This module implements an identity-first diff engine that:
- Uses the normalized cable code as stable identity (not row position)
- Sorts both sides once and merge-walks them (O(n log n), never pairwise)
- Uses the record model's canonical comparison, so formatting noise never
  shows up as a change
- Stores full before/after records for changed cables; field-level detail
  is a derived view (field_changes / changed_fields), not part of the payload

The payload size is proportional to change volume, not dataset size:
unchanged cables are omitted entirely.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from ..errors import InputError
from ..record import CableRecord, coerce_record, comparable_value, records_identical

RecordLike = Union[CableRecord, Mapping[str, Any]]


@dataclass
class ChangedRecord:
    """A cable present on both sides whose attributes differ."""
    code: str
    before: Dict[str, Any]
    after: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "before": dict(self.before), "after": dict(self.after)}


@dataclass
class FieldChange:
    """
    A single attribute-level change inside a ChangedRecord.

    Derived on demand; never stored.
    """
    type: str  # "ATTRIBUTE_ADDED", "ATTRIBUTE_REMOVED", "ATTRIBUTE_CHANGED"
    field: str
    from_value: Any
    to_value: Any


@dataclass
class DiffPayload:
    """
    Complete diff between two record sets.

    This is the stored artifact of an import run. Its dict form is the
    serialization-stable wire shape:

        {"added": [code, ...],
         "removed": [code, ...],
         "changed": [{"code", "before", "after"}, ...]}
    """
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    changed: List[ChangedRecord] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "DiffPayload":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)

    def summary(self) -> Dict[str, int]:
        """Counts of added/removed/changed records."""
        return {
            "added": len(self.added),
            "removed": len(self.removed),
            "changed": len(self.changed),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "added": list(self.added),
            "removed": list(self.removed),
            "changed": [entry.to_dict() for entry in self.changed],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DiffPayload":
        return cls(
            added=list(data.get("added") or []),
            removed=list(data.get("removed") or []),
            changed=[
                ChangedRecord(
                    code=entry["code"],
                    before=dict(entry.get("before") or {}),
                    after=dict(entry.get("after") or {}),
                )
                for entry in data.get("changed") or []
            ],
        )


def find_duplicate_codes(records: Iterable[CableRecord]) -> List[str]:
    """
    Return identity keys that appear more than once, sorted.

    A record set with duplicates violates the one-code-per-upload rule.
    """
    seen = set()
    duplicates = set()
    for record in records:
        key = record.identity_key
        if key in seen:
            duplicates.add(key)
        seen.add(key)
    return sorted(duplicates)


def _sorted_by_identity(records: Iterable[RecordLike], side: str) -> List[Tuple[str, CableRecord]]:
    keyed = sorted(
        ((record.identity_key, record) for record in map(coerce_record, records)),
        key=lambda pair: pair[0],
    )

    # Sorted input: duplicates are adjacent
    duplicates = sorted({
        keyed[idx][0] for idx in range(1, len(keyed))
        if keyed[idx][0] == keyed[idx - 1][0]
    })
    if duplicates:
        sample = ", ".join(duplicates[:10])
        raise InputError(
            f"Duplicate cable codes in '{side}' record set ({len(duplicates)}): {sample}"
        )
    return keyed


def diff_records(
    before: Iterable[RecordLike],
    after: Iterable[RecordLike]
) -> DiffPayload:
    """
    Compare two record sets and produce a structured diff.

    Steps:
    1. Sort each side by identity key (duplicates fail fast)
    2. Merge-walk both sorted lists
    3. Keys only in `after` → added, only in `before` → removed
    4. Keys on both sides → changed if any canonical attribute differs

    Args:
        before: Baseline record set (empty for the first upload of a group)
        after: New record set

    Returns:
        DiffPayload with added/removed codes and changed records, all
        ordered by code ascending

    Raises:
        InputError: If a code appears more than once within one side
    """
    side_a = _sorted_by_identity(before, "before")
    side_b = _sorted_by_identity(after, "after")

    added: List[str] = []
    removed: List[str] = []
    changed: List[ChangedRecord] = []

    i = j = 0
    while i < len(side_a) and j < len(side_b):
        key_a, record_a = side_a[i]
        key_b, record_b = side_b[j]

        if key_a == key_b:
            if not records_identical(record_a, record_b):
                changed.append(ChangedRecord(
                    code=key_a,
                    before=dict(record_a.attributes),
                    after=dict(record_b.attributes)
                ))
            i += 1
            j += 1
        elif key_a < key_b:
            removed.append(key_a)
            i += 1
        else:
            added.append(key_b)
            j += 1

    removed.extend(key for key, _ in side_a[i:])
    added.extend(key for key, _ in side_b[j:])

    return DiffPayload(added=added, removed=removed, changed=changed)


def field_changes(entry: ChangedRecord) -> List[FieldChange]:
    """
    Perform a field-level diff of one changed record.

    Uses the same canonical comparison as the diff engine, so padding or
    number formatting never appears as a change.

    Args:
        entry: Changed record from a DiffPayload

    Returns:
        Field changes ordered by field name
    """
    changes = []
    keys = sorted(
        {str(k).strip() for k in entry.before} | {str(k).strip() for k in entry.after}
    )
    before = {str(k).strip(): v for k, v in entry.before.items()}
    after = {str(k).strip(): v for k, v in entry.after.items()}

    for key in keys:
        val_a = comparable_value(before.get(key))
        val_b = comparable_value(after.get(key))
        if val_a == val_b:
            continue

        if val_a is None:
            change_type = "ATTRIBUTE_ADDED"
        elif val_b is None:
            change_type = "ATTRIBUTE_REMOVED"
        else:
            change_type = "ATTRIBUTE_CHANGED"

        changes.append(FieldChange(
            type=change_type,
            field=key,
            from_value=before.get(key),
            to_value=after.get(key)
        ))

    return changes


def changed_fields(entry: ChangedRecord) -> List[str]:
    """Names of the attributes that differ in a changed record, sorted."""
    return [change.field for change in field_changes(entry)]
