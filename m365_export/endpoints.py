"""
Admin-center tables for multi-geo tenants.

Semicolon-delimited, one admin center per row:
``AdminCenterUrl;MultiGeoLocation[;PersonalRootSiteURL]``.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import (
    ADMIN_CENTER_URL_COLUMN,
    MULTI_GEO_LOCATION_COLUMN,
    PERSONAL_ROOT_SITE_URL_COLUMN,
)
from .errors import ConfigurationError

logger = logging.getLogger("m365_export.endpoints")


@dataclass(frozen=True)
class EndpointDescriptor:
    """A regional admin-center entry point."""
    url: str
    region_tag: str = ""
    personal_root_site_url: Optional[str] = None


def load_endpoints(
    path: str | Path,
    require_personal_root: bool = False,
) -> list[EndpointDescriptor]:
    """
    Read the admin-center table in file order.
    Set require_personal_root for OneDrive exports, which filter on PersonalRootSiteURL.
    """
    path = Path(path)
    logger.info(f"Loading admin centers from {path}")
    required = [ADMIN_CENTER_URL_COLUMN, MULTI_GEO_LOCATION_COLUMN]
    if require_personal_root:
        required.append(PERSONAL_ROOT_SITE_URL_COLUMN)

    try:
        with open(path, "r", newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh, delimiter=";")
            header = [h.strip() for h in (reader.fieldnames or [])]
            reader.fieldnames = header
            missing = [c for c in required if c not in header]
            if missing:
                raise ConfigurationError(
                    f"Admin-center table {path} is missing column(s): {', '.join(missing)}"
                )

            endpoints = []
            for line_no, row in enumerate(reader, start=2):
                url = (row.get(ADMIN_CENTER_URL_COLUMN) or "").strip()
                if not url:
                    raise ConfigurationError(f"{path}:{line_no}: empty {ADMIN_CENTER_URL_COLUMN}")
                personal_root = None
                if require_personal_root:
                    personal_root = (row.get(PERSONAL_ROOT_SITE_URL_COLUMN) or "").strip()
                    if not personal_root:
                        raise ConfigurationError(
                            f"{path}:{line_no}: empty {PERSONAL_ROOT_SITE_URL_COLUMN}"
                        )
                endpoints.append(EndpointDescriptor(
                    url=url.rstrip("/"),
                    region_tag=(row.get(MULTI_GEO_LOCATION_COLUMN) or "").strip(),
                    personal_root_site_url=personal_root,
                ))
    except ConfigurationError as e:
        logger.error(str(e))
        raise
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.error(f"Cannot read admin-center table {path}: {e}")
        raise ConfigurationError(f"Cannot read admin-center table {path}: {e}") from e

    if not endpoints:
        logger.error(f"Admin-center table {path} has no rows")
        raise ConfigurationError(f"Admin-center table {path} has no rows")

    logger.info(f"{len(endpoints)} admin center(s) loaded")
    return endpoints
