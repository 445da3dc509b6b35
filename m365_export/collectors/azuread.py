"""
Azure AD Collector
Lists directory users and guest users through Microsoft Graph.

Graph answers 400 when `$select` names a property the user type does not
have. Such a property is dropped from `$select` and the listing retried, so
an unknown attribute ends up as a missing column like on every other service.
"""

from __future__ import annotations

import logging
import re
from typing import AsyncIterator, Optional, Sequence

from ..config import GRAPH_BASE_URL, GRAPH_PAGE_SIZE, GRAPH_SCOPE
from ..endpoints import EndpointDescriptor
from ..errors import ApiError
from ..remote.client import ApiClient
from .base import BaseCollector, Record, ResourceQuery

logger = logging.getLogger("m365_export.collectors.azuread")

UNKNOWN_PROPERTY_PATTERN = re.compile(r"Could not find a property named '([^']+)'")


def _unknown_property(error: ApiError, select: list[str]) -> Optional[str]:
    """Return the `$select` entry Graph rejected, if that is what `error` reports."""
    if error.status_code != 400:
        return None
    match = UNKNOWN_PROPERTY_PATTERN.search(error.message or "")
    if not match:
        return None
    # Graph property names are case-insensitive
    rejected = match.group(1).lower()
    for name in select:
        if name.lower() == rejected:
            return name
    return None


class AzureADCollector(BaseCollector):
    name = "AzureAD"
    description = "Azure Active Directory users and guest users"
    scope = GRAPH_SCOPE
    base_url = GRAPH_BASE_URL
    resources = {
        "Users": ResourceQuery("users"),
        "GuestUsers": ResourceQuery("users", params={"$filter": "userType eq 'Guest'"}),
    }

    async def _list(
        self,
        client: ApiClient,
        query: ResourceQuery,
        attributes: Sequence[str],
        endpoint: Optional[EndpointDescriptor],
    ) -> AsyncIterator[Record]:
        # Only ask Graph for what will be exported
        select = list(dict.fromkeys(attributes))
        while True:
            params = {"$top": str(GRAPH_PAGE_SIZE), **query.params}
            if select:
                params["$select"] = ",".join(select)
            yielded = False
            try:
                async for item in client.stream(query.target, params=params):
                    yielded = True
                    item.pop("@odata.type", None)
                    yield item
                return
            except ApiError as e:
                unknown = None if yielded else _unknown_property(e, select)
                if unknown is None:
                    raise
                logger.warning(
                    f"[{self.name}] Graph has no property '{unknown}', "
                    f"dropping it from $select and retrying"
                )
                select.remove(unknown)
