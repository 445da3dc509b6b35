"""
Shared fixtures for the m365_export test suite.
"""
import json
from pathlib import Path

import httpx
import pytest

from m365_export.pipeline import RunContext
from m365_export.safety.guardian import SafetyGuardian


class FakeAuthenticator:
    """Stands in for Authenticator; hands out a fixed token per scope."""

    def __init__(self, tenant_id="tenant-guid"):
        self.tenant_id = tenant_id
        self.scopes = []

    async def acquire_token(self, scope):
        self.scopes.append(scope)
        return f"token-for-{scope}"


def json_response(payload, status_code=200, headers=None):
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **(headers or {})},
    )


def write_attribute_csv(path: Path, rows):
    lines = ["Attributes,Attribute Type,Required"]
    lines += [f"{name},String,{flag}" for name, flag in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def fake_auth():
    return FakeAuthenticator()


@pytest.fixture
def guardian():
    return SafetyGuardian()


@pytest.fixture
def run_context(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    return RunContext(
        output_dir=out,
        config_dir=tmp_path / "Configuration",
        timestamp="2026-10-17 10.00.00",
    )


class RecordingHandler:
    """MockTransport handler that replays responses and keeps the requests."""

    def __init__(self, responder):
        self.responder = responder
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.responder(request)

    def transport(self):
        return httpx.MockTransport(self)


@pytest.fixture
def recording():
    return RecordingHandler
