"""
Content fingerprint for cable datasets.

The fingerprint must:
- Remain stable when rows are reordered, columns are reordered, or cells
  differ only by whitespace/number formatting
- Change when any semantic value changes
- NOT include upload ids, timestamps or source labels

It is used to reject no-op re-uploads before they enter the lineage.
"""

import hashlib
import json
from typing import Iterable, List

from .record import CableRecord, comparable_attributes


def _serialize_record(record: CableRecord) -> str:
    # Sorted keys + compact separators give one representation per record
    payload = {
        "code": record.identity_key,
        "attributes": comparable_attributes(record.attributes),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_record_checksum(record: CableRecord) -> str:
    """
    Compute a deterministic checksum for a single record.

    Args:
        record: Cable record

    Returns:
        SHA256 hex digest of the canonical record
    """
    return hashlib.sha256(_serialize_record(record).encode("utf-8")).hexdigest()


def compute_content_hash(records: Iterable[CableRecord]) -> str:
    """
    Compute the order-independent fingerprint of a whole record set.

    Each record is canonicalized (identity key + canonical attributes) and
    serialized; the serialized lines are sorted, joined and hashed.

    Args:
        records: Record set of one upload

    Returns:
        SHA256 hex digest
    """
    lines: List[str] = sorted(_serialize_record(record) for record in records)
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()
