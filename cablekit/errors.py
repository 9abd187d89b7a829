"""Error taxonomy for the lineage and diff engine.

Duplicate content is NOT an error: a re-upload matching the current HEAD is
handled by logging an import run without creating a new upload.
"""


class CableKitError(Exception):
    """Base class for all cablekit errors."""


class InputError(CableKitError, ValueError):
    """
    Malformed input presented to the engine.

    Raised for record sets that violate the one-code-per-upload rule,
    records without a code, or group metadata that yields no group key.
    The caller must fix the input and retry.
    """


class ReferentialError(CableKitError):
    """An upload references a predecessor that does not exist in the store."""


class NotFound(CableKitError, LookupError):
    """
    Requested upload, group or import run does not exist.

    Distinct from an empty dataset, which is a valid upload with zero records.
    """

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")
