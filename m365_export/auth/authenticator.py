"""
Authentication module — username/password and certificate-based sign-in.
Uses MSAL for token acquisition against Microsoft Identity Platform; one token
per service resource (Graph, Exchange, Teams, SharePoint admin center).
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)
import msal

from ..config import AuthConfig, LOGIN_BASE_URL
from ..errors import CredentialError
from .credentials import Credential

logger = logging.getLogger("m365_export.auth")


class Authenticator:
    """
    Handles MSAL-based authentication.
    Supports:
      - Username/password sign-in with a public client ("password" mode)
      - Certificate-based app-only authentication ("certificate" mode)
    Tokens for further resources are served from the MSAL cache when possible.
    """

    def __init__(self, config: AuthConfig, credential: Optional[Credential] = None):
        self.config = config
        self.credential = credential
        self.tenant_id: Optional[str] = None
        self._app = None

    async def acquire_token(self, scope: str) -> str:
        """Acquire an access token for one resource scope."""
        if self.config.mode == "password":
            return self._acquire_password_token(scope)
        elif self.config.mode == "certificate":
            return self._acquire_certificate_token(scope)
        else:
            raise CredentialError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_password_token(self, scope: str) -> str:
        if not self.credential:
            raise CredentialError("Password auth requires a resolved credential.")

        if self._app is None:
            self._app = msal.PublicClientApplication(
                client_id=self.config.client_id,
                authority=self.config.authority,
            )

        accounts = self._app.get_accounts(username=self.credential.principal)
        result = None
        if accounts:
            result = self._app.acquire_token_silent([scope], account=accounts[0])

        if not result:
            logger.info(f"Signing in as {self.credential.principal} for {scope}")
            result = self._app.acquire_token_by_username_password(
                self.credential.principal,
                self.credential.secret,
                scopes=[scope],
            )
        return self._extract_token(result, scope)

    def _acquire_certificate_token(self, scope: str) -> str:
        cert_config = self.config.certificate
        if not cert_config:
            raise CredentialError("Certificate auth config not provided.")

        if self._app is None:
            private_key_pem, thumbprint = self._load_certificate(
                cert_config.certificate_path, cert_config.certificate_password
            )
            self._app = msal.ConfidentialClientApplication(
                client_id=cert_config.client_id,
                authority=f"{LOGIN_BASE_URL}/{cert_config.tenant_id}",
                client_credential={
                    "thumbprint": thumbprint,
                    "private_key": private_key_pem,
                },
            )
            self.tenant_id = cert_config.tenant_id

        logger.info(f"Requesting app-only token for {scope}")
        result = self._app.acquire_token_for_client(scopes=[scope])
        return self._extract_token(result, scope)

    @staticmethod
    def _load_certificate(cert_path: str, password: str) -> tuple[str, str]:
        """Decode a base64 PFX file into a PEM private key and SHA1 thumbprint."""
        if not password:
            password = os.environ.get("M365_CERT_PASSWORD", "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        try:
            with open(cert_path, "r") as f:
                pfx_bytes = base64.b64decode(f.read().strip())
            private_key, certificate, _ = pkcs12.load_key_and_certificates(
                pfx_bytes, password.encode("utf-8") if password else None
            )
        except FileNotFoundError as e:
            raise CredentialError(f"Certificate file not found: {cert_path}") from e
        except (OSError, ValueError) as e:
            raise CredentialError(f"Failed to load certificate {cert_path}: {e}") from e

        if private_key is None or certificate is None:
            raise CredentialError(f"Certificate {cert_path} has no private key or certificate")

        private_key_pem = private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ).decode("utf-8")
        thumbprint = certificate.fingerprint(SHA1()).hex()
        logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")
        return private_key_pem, thumbprint

    def _extract_token(self, result: Optional[dict], scope: str) -> str:
        if result and "access_token" in result:
            claims = result.get("id_token_claims") or {}
            if claims.get("tid"):
                self.tenant_id = claims["tid"]
            return result["access_token"]
        result = result or {}
        error = result.get("error_description", result.get("error", "Unknown"))
        logger.error(f"Token acquisition failed for {scope}: {error}")
        raise CredentialError(f"Authentication failed for {scope}: {error}")
