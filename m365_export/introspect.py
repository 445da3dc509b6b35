"""
Attribute table bootstrap.

Runs a read-only listing command, looks at the first object it returns and
writes an attribute table listing every field with an inferred type and
Required = NO, ready to be edited for a new resource kind.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from .attributes import AttributeSpec, write_attribute_table
from .collectors.base import BaseCollector
from .endpoints import EndpointDescriptor
from .errors import RemoteFetchError, SinkWriteError

logger = logging.getLogger("m365_export.introspect")

_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$")
_MS_JSON_DATE = re.compile(r"^/Date\(-?\d+([+-]\d{4})?\)/$")


def infer_type(value: Any) -> str:
    """Name the type of a JSON value as it appears in an attribute table."""
    if value is None:
        return "Null"
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Integer"
    if isinstance(value, float):
        return "Double"
    if isinstance(value, str):
        if _ISO_DATETIME.match(value) or _MS_JSON_DATE.match(value):
            return "DateTime"
        return "String"
    if isinstance(value, (list, tuple)):
        return "Collection"
    return "Object"


def describe_record(record: Mapping[str, Any]) -> list[AttributeSpec]:
    return [
        AttributeSpec(name=name, attribute_type=infer_type(value), required=False)
        for name, value in record.items()
    ]


async def get_attributes_of_returned_object(
    collector: BaseCollector,
    command: str,
    path: str | Path,
    endpoint: Optional[EndpointDescriptor] = None,
    overwrite: bool = False,
) -> Path:
    """
    Write an attribute table describing the first object `command` returns.
    An existing table is left alone unless `overwrite` is set.
    """
    path = Path(path)
    if path.exists() and not overwrite:
        logger.error(f"Attribute table {path} already exists, not replacing it")
        raise SinkWriteError(f"Attribute table {path} already exists (use --overwrite to replace it)")

    logger.info(f"[{collector.name}] Inspecting output of {command}")
    first = None
    async with collector.connect(endpoint) as client:
        results = collector.run_command(client, command, endpoint)
        try:
            async for record in results:
                first = record
                break
        finally:
            await results.aclose()

    if first is None:
        logger.error(f"{command} returned no objects to inspect")
        raise RemoteFetchError(f"{command} returned no objects to inspect")

    specs = describe_record(first)
    written = write_attribute_table(specs, path)
    logger.info(f"Wrote {len(specs)} attribute(s) for {command} to {written}")
    return written
