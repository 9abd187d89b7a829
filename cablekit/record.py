"""
Record model for cable-tracking datasets.

A dataset is a list of CableRecord rows. Each row is identified by its cable
code; everything else lives in an attribute mapping.

This module is the ONLY place that decides what counts as "equal":
- Identity: codes are compared after NFKC normalization, whitespace
  trimming/collapsing and upper-casing (data entry upstream is inconsistent)
- Equality: attribute values are canonicalized before comparison so that
  formatting noise (padding, "10" vs 10.0, empty cell vs missing cell)
  never shows up as a change

Both the content fingerprint and the diff engine build on these helpers, so
they can never disagree about what changed.
"""

import math
import re
import unicodedata
from dataclasses import dataclass, field
from decimal import MAX_EMAX, MIN_EMIN, Context, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Union

from .errors import InputError
from .schema import COLUMN_MAPPINGS, NUMERIC_FIELDS, STANDARD_FIELDS

# Plain decimal literals only; no exponents, no thousands separators
_DECIMAL_LITERAL = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

Scalar = Union[str, int, float, Decimal, bool, None]


@dataclass
class CableRecord:
    """
    One cable row of a dataset snapshot.

    `code` is kept exactly as ingested; matching across uploads uses
    `identity_key`. `attributes` preserves the ingested column order.
    """
    code: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def identity_key(self) -> str:
        return normalize_code(self.code)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {"code": self.code, "attributes": dict(self.attributes)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CableRecord":
        return cls(code=data["code"], attributes=dict(data.get("attributes") or {}))


def normalize_code(code: Any) -> str:
    """
    Canonicalize a cable code so joins stay stable across imports.

    - normalize unicode (NFKC)
    - trim and collapse inner whitespace
    - upper-case

    Args:
        code: Raw code value (usually a string, sometimes a number from Excel)

    Returns:
        Identity key; empty string if the code is blank
    """
    if code is None:
        return ""
    text = unicodedata.normalize("NFKC", str(code))
    return " ".join(text.split()).upper()


def _canonical_number(value: Union[int, float, Decimal]) -> Optional[Decimal]:
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        number = Decimal(repr(value))
    else:
        number = Decimal(value)
    if not number.is_finite():
        return None
    if number.is_zero():
        return Decimal(0)
    # Trailing zeros only; precision equal to the digit count never rounds
    context = Context(prec=len(number.as_tuple().digits), Emax=MAX_EMAX, Emin=MIN_EMIN)
    return number.normalize(context)


def _plain_number(number: Decimal) -> Union[int, float]:
    if number == number.to_integral_value():
        return int(number)
    return float(number)


def canonical_value(value: Any) -> Any:
    """
    Canonicalize a single attribute value for comparison and hashing.

    Rules:
    - None, empty and whitespace-only strings → None
    - strings are trimmed and inner whitespace collapsed
    - numbers (and strings that are plain decimal literals) compare by value:
      10, 10.0, Decimal("10.00") and " 10 " all become Decimal("10"); values
      are exact, so 1 and "1.00000000000000001" stay different
    - NaN/infinity → None
    - bools are kept as bools (they are flags, not numbers)

    Args:
        value: Raw attribute value

    Returns:
        Canonical value: None, bool, str or a normalized Decimal
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return _canonical_number(value)
    if not isinstance(value, str):
        value = str(value)

    text = " ".join(value.split())
    if not text:
        return None
    if _DECIMAL_LITERAL.match(text):
        return _canonical_number(Decimal(text))
    return text


def canonical_attributes(attributes: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Canonicalize an attribute mapping.

    Keys are trimmed and null values dropped, so a missing column and an empty
    cell are the same thing.
    """
    result = {}
    for key, value in attributes.items():
        canonical = canonical_value(value)
        if canonical is not None:
            result[str(key).strip()] = canonical
    return result


def _tag_number(canonical: Any) -> Any:
    if isinstance(canonical, Decimal):
        return {"num": format(canonical, "f")}
    return canonical


def comparable_value(value: Any) -> Any:
    """
    Canonical value in the form used for equality and hashing.

    Numbers become {"num": "<plain decimal>"}, so they never compare equal to
    a bool (True == Decimal(1) in Python) nor serialize like a text cell.
    """
    return _tag_number(canonical_value(value))


def comparable_attributes(attributes: Mapping[str, Any]) -> Dict[str, Any]:
    """Canonical attributes with every value in comparable form."""
    return {key: _tag_number(value) for key, value in canonical_attributes(attributes).items()}


def records_identical(a: CableRecord, b: CableRecord) -> bool:
    """True if two same-entity records carry the same canonical attributes."""
    return comparable_attributes(a.attributes) == comparable_attributes(b.attributes)


def coerce_record(obj: Union[CableRecord, Mapping[str, Any]]) -> CableRecord:
    """
    Turn a CableRecord or a row mapping into a CableRecord.

    Accepted mapping shapes:
    - {"code": ..., "attributes": {...}}
    - {"code": ..., <attr>: <value>, ...} (every other key is an attribute)

    Raises:
        InputError: If the record has no usable code
    """
    if isinstance(obj, CableRecord):
        record = obj
    elif isinstance(obj, Mapping):
        if "code" not in obj:
            raise InputError(f"Record has no 'code': {dict(obj)!r}")
        if set(obj.keys()) <= {"code", "attributes"} and isinstance(obj.get("attributes"), Mapping):
            record = CableRecord(code=obj["code"], attributes=dict(obj["attributes"]))
        else:
            attributes = {k: v for k, v in obj.items() if k != "code"}
            record = CableRecord(code=obj["code"], attributes=attributes)
    else:
        raise InputError(f"Unsupported record type: {type(obj).__name__}")

    if not normalize_code(record.code):
        raise InputError("Record code is blank")
    if not isinstance(record.code, str):
        record = CableRecord(code=str(record.code), attributes=record.attributes)
    return record


# =============================================================================
# ROW MAPPING (parsed spreadsheet row -> CableRecord)
# =============================================================================

def canonical_header(header: Any) -> str:
    """
    Canonicalize a spreadsheet header: "Lunghezza di posa " → "LUNGHEZZA_DI_POSA".

    Accents are stripped, everything that is not A-Z/0-9 becomes "_".
    """
    text = unicodedata.normalize("NFD", str(header if header is not None else "").strip().upper())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"[^A-Z0-9]+", "_", text).strip("_")


def parse_number(value: Any) -> Optional[Union[int, float]]:
    """
    Parse a spreadsheet number, accepting Italian formatting ("1.234,5").

    Returns None for blanks and anything that is not a number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = _canonical_number(value)
    else:
        text = str(value).strip().replace(" ", "")
        if not text:
            return None
        if "," in text:
            text = text.replace(".", "").replace(",", ".")
        try:
            number = _canonical_number(Decimal(text))
        except InvalidOperation:
            return None
    return _plain_number(number) if number is not None else None


def _clean_cell(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def normalize_row_from_dict(row: Mapping[str, Any]) -> Optional[CableRecord]:
    """
    Convert a parsed spreadsheet row (header → cell) into a CableRecord.

    Headers are canonicalized and mapped through COLUMN_MAPPINGS onto
    STANDARD_FIELDS. Headers with no mapping are kept under their lower-cased
    canonical name so no column is silently lost.

    Args:
        row: Dictionary produced by the spreadsheet parser

    Returns:
        CableRecord, or None if the row carries no cable code (blank/filler rows)
    """
    cells = {}
    for header, value in row.items():
        key = canonical_header(header)
        if key and key not in cells:
            cells[key] = value

    consumed = set()
    mapped = {}
    for standard in STANDARD_FIELDS:
        for alias in COLUMN_MAPPINGS.get(standard, []):
            if alias in cells and _clean_cell(cells[alias]) is not None:
                mapped[standard] = cells[alias]
                consumed.add(alias)
                break

    raw_code = mapped.pop("code", None)
    if not normalize_code(raw_code):
        return None
    code = " ".join(unicodedata.normalize("NFKC", str(raw_code)).split())

    attributes = {}
    for standard in STANDARD_FIELDS[1:]:
        value = mapped.get(standard)
        if standard in NUMERIC_FIELDS:
            attributes[standard] = parse_number(value)
        else:
            attributes[standard] = _clean_cell(value)

    for key, value in cells.items():
        if key in consumed or any(key in aliases for aliases in COLUMN_MAPPINGS.values()):
            continue
        attributes[key.lower()] = _clean_cell(value)

    return CableRecord(code=code, attributes=attributes)
