"""
Base collector class — one collector per service.
Each collector knows how to connect to its service and how to list every
resource kind it exports, either through a dedicated server-side query or
by filtering the records with a predicate.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Sequence

import httpx

from ..auth.authenticator import Authenticator
from ..endpoints import EndpointDescriptor
from ..errors import ConfigurationError, RemoteFetchError
from ..remote.client import ApiClient
from ..safety.guardian import SafetyGuardian

logger = logging.getLogger("m365_export.collectors")

Record = Mapping[str, Any]


@dataclass(frozen=True)
class ResourceQuery:
    """
    How one resource kind is listed.
    `target` is an endpoint path or a cmdlet name, `params` the server-side
    query, `predicate` an optional client-side filter over each record.
    """
    target: str
    params: dict = field(default_factory=dict)
    predicate: Optional[Callable[[Record], bool]] = None


def field_is(name: str, expected: Any) -> Callable[[Record], bool]:
    """Predicate matching records whose field equals `expected` (absent never matches)."""
    def _predicate(record: Record) -> bool:
        return name in record and record[name] == expected
    return _predicate


class BaseCollector(ABC):
    """
    Abstract base class for service collectors.

    Subclasses declare `resources` and implement `_list()` for their API.
    The base class provides connection scoping, predicate filtering, and
    error logging.
    """

    name: str = "base"
    description: str = "Base collector"
    scope: str = ""
    base_url: str = ""
    resources: dict[str, ResourceQuery] = {}

    def __init__(
        self,
        authenticator: Authenticator,
        guardian: SafetyGuardian,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.authenticator = authenticator
        self.guardian = guardian
        self.transport = transport

    @property
    def resource_kinds(self) -> list[str]:
        return list(self.resources)

    def query_for(self, kind: str) -> ResourceQuery:
        try:
            return self.resources[kind]
        except KeyError:
            raise ConfigurationError(
                f"{self.name} has no resource kind '{kind}' "
                f"(known: {', '.join(self.resources)})"
            ) from None

    def scope_for(self, endpoint: Optional[EndpointDescriptor]) -> str:
        return self.scope

    def base_url_for(self, endpoint: Optional[EndpointDescriptor]) -> str:
        return self.base_url

    def headers_for(self, endpoint: Optional[EndpointDescriptor]) -> dict:
        return {}

    @asynccontextmanager
    async def connect(self, endpoint: Optional[EndpointDescriptor] = None) -> AsyncIterator[ApiClient]:
        """Open a connection to the service; it is released when the block exits."""
        where = endpoint.url if endpoint else self.name
        logger.info(f"[{self.name}] Connecting to {where}")
        token = await self.authenticator.acquire_token(self.scope_for(endpoint))
        client = ApiClient(
            self.base_url_for(endpoint),
            token,
            self.guardian,
            headers=self.headers_for(endpoint),
            transport=self.transport,
        )
        async with client:
            try:
                yield client
            finally:
                stats = client.get_stats()
                logger.info(
                    f"[{self.name}] Disconnecting from {where} "
                    f"({stats['total_requests']} requests, {stats['throttle_events']} throttled)"
                )

    async def fetch(
        self,
        client: ApiClient,
        kind: str,
        attributes: Sequence[str] = (),
        endpoint: Optional[EndpointDescriptor] = None,
    ) -> AsyncIterator[Record]:
        """Stream the records of one resource kind."""
        query = self.query_for(kind)
        logger.info(f"[{self.name}] Fetching {kind}")
        count = 0
        try:
            async for record in self._list(client, query, attributes, endpoint):
                if query.predicate is not None and not query.predicate(record):
                    continue
                count += 1
                yield record
        except RemoteFetchError as e:
            logger.error(f"[{self.name}] Fetching {kind} failed after {count} record(s): {e}")
            raise
        logger.info(f"[{self.name}] Fetched {count} {kind} record(s)")

    async def run_command(
        self,
        client: ApiClient,
        command: str,
        endpoint: Optional[EndpointDescriptor] = None,
    ) -> AsyncIterator[Record]:
        """Run a listing command by name; collectors accept their resource kinds."""
        async for record in self.fetch(client, command, endpoint=endpoint):
            yield record

    @abstractmethod
    def _list(
        self,
        client: ApiClient,
        query: ResourceQuery,
        attributes: Sequence[str],
        endpoint: Optional[EndpointDescriptor],
    ) -> AsyncIterator[Record]:
        """Yield raw records for a query."""
        raise NotImplementedError
