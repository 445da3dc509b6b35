"""
Exchange Online Collector
Lists mailboxes by subtype and Microsoft 365 (unified) groups by invoking
read-only cmdlets through the Exchange admin REST API.

Mailbox subtypes use both filter strategies: soft-deleted and shared
mailboxes have a dedicated server-side query, active and disabled mailboxes
are the same listing split on the AccountDisabled property.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Sequence

from ..config import EXCHANGE_BASE_URL, EXCHANGE_PAGE_SIZE, EXCHANGE_SCOPE
from ..endpoints import EndpointDescriptor
from ..errors import CredentialError
from ..remote.client import ApiClient
from .base import BaseCollector, Record, ResourceQuery, field_is

logger = logging.getLogger("m365_export.collectors.exchange")

USER_MAILBOXES = {"RecipientTypeDetails": "UserMailbox", "ResultSize": "Unlimited"}


class ExchangeCollector(BaseCollector):
    name = "Exchange"
    description = "Exchange Online mailboxes and unified groups"
    scope = EXCHANGE_SCOPE
    resources = {
        "ActiveMailboxes": ResourceQuery(
            "Get-Mailbox",
            params=USER_MAILBOXES,
            predicate=field_is("AccountDisabled", False),
        ),
        "DisabledMailboxes": ResourceQuery(
            "Get-Mailbox",
            params=USER_MAILBOXES,
            predicate=field_is("AccountDisabled", True),
        ),
        "SoftDeletedMailboxes": ResourceQuery(
            "Get-Mailbox",
            params={"SoftDeletedMailbox": True, "ResultSize": "Unlimited"},
        ),
        "SharedMailboxes": ResourceQuery(
            "Get-Mailbox",
            params={"RecipientTypeDetails": "SharedMailbox", "ResultSize": "Unlimited"},
        ),
        "UnifiedGroups": ResourceQuery(
            "Get-UnifiedGroup",
            params={"ResultSize": "Unlimited"},
        ),
    }

    def base_url_for(self, endpoint: Optional[EndpointDescriptor]) -> str:
        # The tenant id is only known once a token has been issued
        if not self.authenticator.tenant_id:
            raise CredentialError("Exchange admin API needs the tenant id from sign-in")
        return f"{EXCHANGE_BASE_URL}/{self.authenticator.tenant_id}"

    def headers_for(self, endpoint: Optional[EndpointDescriptor]) -> dict:
        return {"Prefer": f"odata.maxpagesize={EXCHANGE_PAGE_SIZE}"}

    async def invoke(
        self,
        client: ApiClient,
        cmdlet: str,
        parameters: Optional[dict] = None,
    ) -> AsyncIterator[Record]:
        """Stream the output objects of one cmdlet."""
        self.guardian.validate_command(cmdlet)
        body = {"CmdletInput": {"CmdletName": cmdlet, "Parameters": parameters or {}}}
        async for item in client.stream("InvokeCommand", method="POST", json_body=body):
            yield {k: v for k, v in item.items() if not k.startswith("@")}

    async def _list(
        self,
        client: ApiClient,
        query: ResourceQuery,
        attributes: Sequence[str],
        endpoint: Optional[EndpointDescriptor],
    ) -> AsyncIterator[Record]:
        async for item in self.invoke(client, query.target, query.params):
            yield item

    async def run_command(
        self,
        client: ApiClient,
        command: str,
        endpoint: Optional[EndpointDescriptor] = None,
    ) -> AsyncIterator[Record]:
        """Accept a resource kind or any Get-* cmdlet."""
        if command in self.resources:
            async for record in self.fetch(client, command, endpoint=endpoint):
                yield record
            return
        async for record in self.invoke(client, command):
            yield record
