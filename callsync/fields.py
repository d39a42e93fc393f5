# callsync/fields.py
"""
Extracted Field Classifier
--------------------------
Splits the flat mapping a voice agent extracts from a conversation into
universal fields (fixed customer columns) and custom fields (freeform
per-customer attribute bag).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

# -----------------------------
# Lexicons
# -----------------------------
UNIVERSAL_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "phone",
        "email",
        "appointment_time",
        "day",
        "month",
    }
)

# Injected by the organization-wide sync for attribution; never persisted.
ATTRIBUTION_FIELDS = frozenset({"business_name"})


@dataclass
class FieldSplit:
    universal: Dict[str, str] = field(default_factory=dict)
    custom: Dict[str, str] = field(default_factory=dict)


def split_extracted_fields(
    extracted: Optional[Mapping[str, str]],
    attribution_fields: Iterable[str] = (),
) -> FieldSplit:
    """Partition extracted fields; unknown keys always land in ``custom``."""
    split = FieldSplit()
    if not extracted:
        return split

    allowed = UNIVERSAL_FIELDS | frozenset(attribution_fields)
    for key, value in extracted.items():
        if key in allowed:
            split.universal[key] = value
        else:
            split.custom[key] = value
    return split


__all__ = ["ATTRIBUTION_FIELDS", "FieldSplit", "UNIVERSAL_FIELDS", "split_extracted_fields"]
