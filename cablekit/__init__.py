from .record import CableRecord, normalize_row_from_dict
from .grouping import GroupMetadata, compute_group_key
from .fingerprint import compute_content_hash
from .errors import CableKitError, InputError, ReferentialError, NotFound
from .schema import STANDARD_FIELDS, COLUMN_MAPPINGS

__all__ = [
    "CableRecord",
    "normalize_row_from_dict",
    "GroupMetadata",
    "compute_group_key",
    "compute_content_hash",
    "CableKitError",
    "InputError",
    "ReferentialError",
    "NotFound",
    "STANDARD_FIELDS",
    "COLUMN_MAPPINGS",
]
