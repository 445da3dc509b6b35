"""
Tests for MSAL-based token acquisition (msal is mocked).
"""
import asyncio
from unittest.mock import patch

import pytest

from m365_export.auth.authenticator import Authenticator
from m365_export.auth.credentials import Credential
from m365_export.config import AuthConfig
from m365_export.errors import CredentialError

CRED = Credential("admin@contoso.com", "pw")
SCOPE = "https://graph.microsoft.com/.default"


@patch("m365_export.auth.authenticator.msal.PublicClientApplication")
def test_password_sign_in(mock_app_cls):
    app = mock_app_cls.return_value
    app.get_accounts.return_value = []
    app.acquire_token_by_username_password.return_value = {
        "access_token": "tok",
        "id_token_claims": {"tid": "tenant-guid"},
    }

    auth = Authenticator(AuthConfig(), CRED)
    assert asyncio.run(auth.acquire_token(SCOPE)) == "tok"
    assert auth.tenant_id == "tenant-guid"
    app.acquire_token_by_username_password.assert_called_once_with(
        "admin@contoso.com", "pw", scopes=[SCOPE]
    )
    assert mock_app_cls.call_args.kwargs["authority"] == "https://login.microsoftonline.com/organizations"


@patch("m365_export.auth.authenticator.msal.PublicClientApplication")
def test_second_resource_uses_cached_account(mock_app_cls):
    app = mock_app_cls.return_value
    app.get_accounts.side_effect = [[], [{"username": "admin@contoso.com"}]]
    app.acquire_token_by_username_password.return_value = {"access_token": "graph"}
    app.acquire_token_silent.return_value = {"access_token": "exchange"}

    auth = Authenticator(AuthConfig(), CRED)
    asyncio.run(auth.acquire_token(SCOPE))
    assert asyncio.run(auth.acquire_token("https://outlook.office365.com/.default")) == "exchange"
    assert app.acquire_token_by_username_password.call_count == 1
    mock_app_cls.assert_called_once()


@patch("m365_export.auth.authenticator.msal.PublicClientApplication")
def test_failed_sign_in_raises_credential_error(mock_app_cls):
    app = mock_app_cls.return_value
    app.get_accounts.return_value = []
    app.acquire_token_by_username_password.return_value = {
        "error": "invalid_grant",
        "error_description": "AADSTS50126: Invalid username or password.",
    }
    with pytest.raises(CredentialError, match="AADSTS50126"):
        asyncio.run(Authenticator(AuthConfig(), CRED).acquire_token(SCOPE))


def test_password_mode_requires_credential():
    with pytest.raises(CredentialError):
        asyncio.run(Authenticator(AuthConfig()).acquire_token(SCOPE))


def test_unknown_mode():
    with pytest.raises(CredentialError, match="Unknown auth mode"):
        asyncio.run(Authenticator(AuthConfig(mode="kerberos"), CRED).acquire_token(SCOPE))


def test_certificate_mode_without_config():
    with pytest.raises(CredentialError, match="Certificate"):
        asyncio.run(Authenticator(AuthConfig(mode="certificate")).acquire_token(SCOPE))


def test_missing_certificate_file(tmp_path):
    from m365_export.config import CertificateAuth
    config = AuthConfig(
        mode="certificate",
        certificate=CertificateAuth("t", "c", str(tmp_path / "missing.txt"), "pw"),
    )
    with pytest.raises(CredentialError, match="not found"):
        asyncio.run(Authenticator(config).acquire_token(SCOPE))


@patch("m365_export.auth.authenticator.msal.ConfidentialClientApplication")
@patch.object(Authenticator, "_load_certificate", return_value=("PEM", "abc123"))
def test_certificate_token(mock_load, mock_app_cls):
    from m365_export.config import CertificateAuth
    mock_app_cls.return_value.acquire_token_for_client.return_value = {"access_token": "app-tok"}
    config = AuthConfig(mode="certificate", certificate=CertificateAuth("tid", "cid", "cert.txt", "pw"))

    auth = Authenticator(config)
    assert asyncio.run(auth.acquire_token(SCOPE)) == "app-tok"
    assert auth.tenant_id == "tid"
    assert mock_app_cls.call_args.kwargs["client_credential"] == {
        "thumbprint": "abc123", "private_key": "PEM",
    }
