"""
Transformer - NaPTAN Record Normalization

Maps raw access-nodes CSV records onto Stop records. Column lookup is
tolerant of header case and spacing, and each field is resolved from an
ordered list of accepted header names. Rows that cannot become a valid
stop yield a SkipReason instead of raising.
"""

from __future__ import annotations

import functools
import math
import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Optional, Union

from ..types import SkipReason, Stop

# Header synonyms in priority order, compared after normalize_header()
ID_FIELDS = ("ATCOCode",)
ADMIN_AREA_FIELDS = ("AdministrativeAreaCode", "AdminAreaCode")
LAT_FIELDS = ("Latitude", "Lat")
LNG_FIELDS = ("Longitude", "Lon", "Lng")
NAME_FIELDS = ("CommonName", "StopName", "ShortCommonName", "Descriptor", "Name")

# Optional descriptive attributes: Stop field -> header synonyms
OPTIONAL_FIELDS = {
    "locality_name": ("LocalityName", "Town"),
    "stop_type": ("StopType",),
    "stop_area_code": ("StopAreaCode",),
    "indicator": ("Indicator",),
    "street": ("Street",),
    "bearing": ("Bearing",),
    "nptg_locality_code": ("NptgLocalityCode",),
    "status": ("Status",),
}

_HEADER_NOISE = re.compile(r"[\s_\-]+")
_LEADING_NUMBER = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@functools.lru_cache(maxsize=512)
def normalize_header(header: str) -> str:
    """Canonical form of a column header: no BOM, lowercase, no spacing."""
    return _HEADER_NOISE.sub("", header.lstrip("\ufeff")).lower()


def normalize_record(raw: Mapping) -> dict:
    """Re-key a raw record by normalized header.

    Duplicate headers collapse onto the first non-empty value so a blank
    trailing column cannot shadow real data.
    """
    record: dict = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            continue
        norm = normalize_header(key)
        existing = record.get(norm)
        if isinstance(existing, str) and existing.strip():
            continue
        record[norm] = value
    return record


def pick(record: Mapping, candidates: tuple[str, ...]) -> Optional[str]:
    """
    Return the first present, non-empty value among candidate headers.

    Args:
        record: Record keyed by normalized header
        candidates: Accepted header names in priority order

    Returns:
        Stripped string value, or None if no candidate resolves
    """
    for candidate in candidates:
        value = record.get(normalize_header(candidate))
        if isinstance(value, str):
            value = value.strip()
            if value:
                return value
    return None


def parse_coordinate(raw: Optional[str]) -> Optional[float]:
    """
    Parse the leading decimal number of a coordinate string.

    Trailing text is ignored ("53.38N" -> 53.38). Values with no leading
    number, NaN and infinities are rejected.
    """
    if raw is None:
        return None
    match = _LEADING_NUMBER.match(raw)
    if match is None:
        return None
    value = float(match.group(0))
    if not math.isfinite(value):
        return None
    return value


def map_row(raw: Mapping, atco_prefix: Optional[str] = None) -> Union[Stop, SkipReason]:
    """
    Map one raw CSV record to a Stop, or explain why it was skipped.

    Args:
        raw: Column header -> string value, headers in any case/spacing
        atco_prefix: Keep only ids starting with this prefix; None keeps all

    Returns:
        Normalized Stop, or the SkipReason for the rejected row
    """
    record = normalize_record(raw)

    stop_id = pick(record, ID_FIELDS)
    if stop_id is None:
        return SkipReason.MISSING_ID
    if atco_prefix and not stop_id.startswith(atco_prefix):
        return SkipReason.PREFIX_MISMATCH

    lat = parse_coordinate(pick(record, LAT_FIELDS))
    lng = parse_coordinate(pick(record, LNG_FIELDS))
    if lat is None or lng is None:
        return SkipReason.INVALID_COORDINATES

    optional = {field: pick(record, names) for field, names in OPTIONAL_FIELDS.items()}

    return Stop(
        id=stop_id,
        name=pick(record, NAME_FIELDS) or stop_id,
        lat=lat,
        lng=lng,
        admin_area_code=pick(record, ADMIN_AREA_FIELDS),
        **optional,
    )


def map_records(records: Iterable[Union[Mapping, SkipReason]],
                atco_prefix: Optional[str] = None) -> Iterator[Union[Stop, SkipReason]]:
    """Map a record stream, passing through lines the reader already rejected."""
    for raw in records:
        if isinstance(raw, SkipReason):
            yield raw
        else:
            yield map_row(raw, atco_prefix)
