"""
SharePoint Online and OneDrive for Business Collectors
Both list the admin center's aggregated site-collection list. SharePoint
drops personal sites with a predicate; OneDrive asks the server for the
sites below the admin center's PersonalRootSiteURL.

Multi-geo tenants expose one admin center per region, so every call is
bound to an EndpointDescriptor.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Sequence
from urllib.parse import urlsplit

from ..config import SHAREPOINT_PAGE_SIZE, SHAREPOINT_SITES_LIST
from ..endpoints import EndpointDescriptor
from ..errors import ConfigurationError
from ..remote.client import ApiClient
from .base import BaseCollector, Record, ResourceQuery

logger = logging.getLogger("m365_export.collectors.sharepoint")

SITES_LIST_ITEMS = f"_api/web/lists/GetByTitle('{SHAREPOINT_SITES_LIST}')/items"
SITE_URL_FIELD = "SiteUrl"


def is_personal_site(record: Record) -> bool:
    return "/personal/" in str(record.get(SITE_URL_FIELD) or "").lower()


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class SharePointCollector(BaseCollector):
    name = "SharePoint"
    description = "SharePoint Online site collections"
    resources = {
        "Sites": ResourceQuery(
            SITES_LIST_ITEMS,
            predicate=lambda record: not is_personal_site(record),
        ),
    }

    def _require_endpoint(self, endpoint: Optional[EndpointDescriptor]) -> EndpointDescriptor:
        if endpoint is None:
            raise ConfigurationError(f"{self.name} export needs an admin center URL")
        return endpoint

    def scope_for(self, endpoint: Optional[EndpointDescriptor]) -> str:
        parts = urlsplit(self._require_endpoint(endpoint).url)
        return f"{parts.scheme}://{parts.netloc}/.default"

    def base_url_for(self, endpoint: Optional[EndpointDescriptor]) -> str:
        return self._require_endpoint(endpoint).url

    def headers_for(self, endpoint: Optional[EndpointDescriptor]) -> dict:
        return {"Accept": "application/json;odata=nometadata"}

    def _params(self, query: ResourceQuery, endpoint: EndpointDescriptor) -> dict:
        return {"$top": str(SHAREPOINT_PAGE_SIZE), **query.params}

    async def _list(
        self,
        client: ApiClient,
        query: ResourceQuery,
        attributes: Sequence[str],
        endpoint: Optional[EndpointDescriptor],
    ) -> AsyncIterator[Record]:
        endpoint = self._require_endpoint(endpoint)
        async for item in client.stream(query.target, params=self._params(query, endpoint)):
            yield item


class OneDriveCollector(SharePointCollector):
    name = "OneDrive"
    description = "OneDrive for Business personal sites"
    resources = {
        "Sites": ResourceQuery(SITES_LIST_ITEMS),
    }

    def _params(self, query: ResourceQuery, endpoint: EndpointDescriptor) -> dict:
        if not endpoint.personal_root_site_url:
            raise ConfigurationError(
                f"OneDrive export for {endpoint.url} needs a PersonalRootSiteURL"
            )
        params = super()._params(query, endpoint)
        params["$filter"] = (
            f"startswith({SITE_URL_FIELD},{_odata_literal(endpoint.personal_root_site_url)})"
        )
        return params
