"""
Microsoft Teams Collector
Lists Teams users and calling, meeting and messaging policies through the
Teams tenant admin API.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Sequence

from ..config import TEAMS_BASE_URL, TEAMS_SCOPE
from ..endpoints import EndpointDescriptor
from ..remote.client import ApiClient
from .base import BaseCollector, Record, ResourceQuery

logger = logging.getLogger("m365_export.collectors.teams")


def _policy(policy_type: str) -> ResourceQuery:
    return ResourceQuery(f"Skype.Policy/configurations/{policy_type}")


class TeamsCollector(BaseCollector):
    name = "Teams"
    description = "Teams users and calling/meeting/messaging policies"
    scope = TEAMS_SCOPE
    base_url = TEAMS_BASE_URL
    resources = {
        "Users": ResourceQuery("Teams.User/users", params={"skipUserPolicies": "false"}),
        "CallingPolicies": _policy("TeamsCallingPolicy"),
        "MeetingPolicies": _policy("TeamsMeetingPolicy"),
        "MessagingPolicies": _policy("TeamsMessagingPolicy"),
    }

    async def _list(
        self,
        client: ApiClient,
        query: ResourceQuery,
        attributes: Sequence[str],
        endpoint: Optional[EndpointDescriptor],
    ) -> AsyncIterator[Record]:
        async for item in client.stream(query.target, params=dict(query.params) or None):
            yield item
