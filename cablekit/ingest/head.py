"""
HEAD resolution.

HEAD is never stored: it is recomputed from the immutable upload list every
time. The ordering is total and explicit (uploaded_at, then id), so the
answer never depends on the order storage happens to return rows in.
"""

from typing import Iterable, List, Optional, Tuple
from datetime import datetime

from .models import Upload


def _lineage_key(upload: Upload) -> Tuple[datetime, str]:
    return (upload.uploaded_at, upload.id)


def resolve_head(uploads: Iterable[Upload]) -> Optional[Upload]:
    """
    Select the authoritative upload of a group.

    Rule: maximum uploaded_at; ties broken by the lexicographically greatest
    id. Pure and deterministic for any permutation of the input.

    Args:
        uploads: All uploads of one group (any order)

    Returns:
        HEAD upload, or None if the group has no uploads
    """
    return max(uploads, key=_lineage_key, default=None)


def sort_lineage(uploads: Iterable[Upload]) -> List[Upload]:
    """Order uploads oldest first using the HEAD ordering (HEAD is last)."""
    return sorted(uploads, key=_lineage_key)
