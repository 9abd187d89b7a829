"""Project grouping: which lineage an upload belongs to."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .errors import InputError

# ASCII unit separator; never appears in typed project/contract codes
GROUP_KEY_DELIMITER = "\x1f"


@dataclass(frozen=True)
class GroupMetadata:
    """
    Upload metadata used to compute the group key.

    Either an explicit `group_id`, or the legacy triple
    (project_code, contract_code, subproject_code).
    """
    group_id: Optional[str] = None
    project_code: Optional[str] = None
    contract_code: Optional[str] = None
    subproject_code: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GroupMetadata":
        return cls(
            group_id=data.get("group_id") or data.get("group_key"),
            project_code=data.get("project_code"),
            contract_code=data.get("contract_code"),
            subproject_code=data.get("subproject_code"),
        )


def _norm(value: Optional[Any]) -> str:
    return str(value if value is not None else "").strip().lower()


def compute_group_key(metadata: Union[GroupMetadata, Mapping[str, Any]]) -> str:
    """
    Compute the lineage key of an upload.

    Pure function of the metadata: it never looks at records, timestamps or
    upload order, so re-grouping historical uploads is reproducible.

    Args:
        metadata: GroupMetadata or an equivalent mapping

    Returns:
        Lower-cased, trimmed group key

    Raises:
        InputError: If neither a group id nor any legacy code is given
    """
    if not isinstance(metadata, GroupMetadata):
        metadata = GroupMetadata.from_mapping(metadata)

    explicit = _norm(metadata.group_id)
    if explicit:
        return explicit

    parts = [
        _norm(metadata.project_code),
        _norm(metadata.contract_code),
        _norm(metadata.subproject_code),
    ]
    if not any(parts):
        raise InputError(
            "Cannot compute group key: provide 'group_id' or at least one of "
            "'project_code', 'contract_code', 'subproject_code'."
        )
    return GROUP_KEY_DELIMITER.join(parts)
