"""
Attribute allowlist tables.

An attribute table is a comma-delimited file with the header
``Attributes,Attribute Type,Required``. Only rows flagged ``YES`` are exported.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .config import (
    ATTRIBUTES_COLUMN,
    ATTRIBUTE_TYPE_COLUMN,
    REQUIRED_COLUMN,
    REQUIRED_FLAG,
)
from .errors import ConfigurationError, SinkWriteError

logger = logging.getLogger("m365_export.attributes")


@dataclass(frozen=True)
class AttributeSpec:
    """One row of an attribute table."""
    name: str
    attribute_type: str = ""
    required: bool = False


def read_attribute_table(path: str | Path) -> list[AttributeSpec]:
    """Read every row of an attribute table, in file order."""
    path = Path(path)
    try:
        with open(path, "r", newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            header = [h.strip() for h in (reader.fieldnames or [])]
            reader.fieldnames = header
            missing = [c for c in (ATTRIBUTES_COLUMN, REQUIRED_COLUMN) if c not in header]
            if missing:
                raise ConfigurationError(
                    f"Attribute table {path} is missing column(s): {', '.join(missing)}"
                )
            specs = []
            for line_no, row in enumerate(reader, start=2):
                name = (row.get(ATTRIBUTES_COLUMN) or "").strip()
                if not name:
                    logger.warning(f"{path}:{line_no}: empty attribute name, row ignored")
                    continue
                specs.append(AttributeSpec(
                    name=name,
                    attribute_type=(row.get(ATTRIBUTE_TYPE_COLUMN) or "").strip(),
                    required=(row.get(REQUIRED_COLUMN) or "").strip().upper() == REQUIRED_FLAG,
                ))
    except ConfigurationError as e:
        logger.error(str(e))
        raise
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.error(f"Cannot read attribute table {path}: {e}")
        raise ConfigurationError(f"Cannot read attribute table {path}: {e}") from e
    return specs


def load_attributes(path: str | Path) -> list[str]:
    """
    Return the names of the attributes flagged as required, in file order.
    Duplicates are kept as they appear.
    """
    logger.info(f"Loading attribute table {path}")
    names = [spec.name for spec in read_attribute_table(path) if spec.required]
    logger.info(f"{len(names)} attribute(s) selected from {path}")
    return names


def write_attribute_table(specs: Iterable[AttributeSpec], path: str | Path) -> Path:
    """Write an attribute table, e.g. to bootstrap configuration for a new resource kind."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh)
            writer.writerow([ATTRIBUTES_COLUMN, ATTRIBUTE_TYPE_COLUMN, REQUIRED_COLUMN])
            for spec in specs:
                writer.writerow([
                    spec.name,
                    spec.attribute_type,
                    REQUIRED_FLAG if spec.required else "NO",
                ])
    except OSError as e:
        logger.error(f"Cannot write attribute table {path}: {e}")
        raise SinkWriteError(f"Cannot write attribute table {path}: {e}") from e
    return path
