"""
Reduce a record to the allowlisted attributes, in allowlist order.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from .errors import MissingAttributeError


def project(
    record: Mapping[str, Any],
    attributes: Sequence[str],
    enrichment: Optional[Mapping[str, Any]] = None,
    strict: bool = False,
) -> dict[str, Any]:
    """
    Copy the attributes present on `record`, then append `enrichment` fields.

    Absent attributes are omitted, or raise MissingAttributeError when strict.
    Only top-level fields are addressable; dotted names are plain keys.
    """
    row: dict[str, Any] = {}
    for name in attributes:
        if name in record:
            row[name] = record[name]
        elif strict:
            raise MissingAttributeError(name)
    if enrichment:
        for key, value in enrichment.items():
            row[key] = value
    return row
