"""
Configuration module for the M365 export jobs.
Defines service endpoints, retry settings, and the operational dataclasses.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError


# ─── Authentication ──────────────────────────────────────────────────────────

# Public client used by the Microsoft admin PowerShell modules; works for
# username/password sign-in without a tenant-specific app registration.
DEFAULT_PUBLIC_CLIENT_ID = "1950a258-227b-4e31-a9cf-717495945fc2"
DEFAULT_AUTHORITY_TENANT = "organizations"
LOGIN_BASE_URL = "https://login.microsoftonline.com"

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Prompted if empty

@dataclass
class AuthConfig:
    """Authentication configuration — "password" (default) or "certificate"."""
    mode: str = "password"
    client_id: str = DEFAULT_PUBLIC_CLIENT_ID
    tenant_id: str = DEFAULT_AUTHORITY_TENANT
    certificate: Optional[CertificateAuth] = None

    @property
    def authority(self) -> str:
        return f"{LOGIN_BASE_URL}/{self.tenant_id}"


# ─── Service Endpoints ──────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

EXCHANGE_BASE_URL = "https://outlook.office365.com/adminapi/beta"
EXCHANGE_SCOPE = "https://outlook.office365.com/.default"

TEAMS_BASE_URL = "https://api.interfaces.records.teams.microsoft.com"
TEAMS_SCOPE = "48ac35b8-9aa8-4d74-927d-1f4a14a0b239/.default"

# Hidden admin-center list holding one item per site collection
SHAREPOINT_SITES_LIST = "DO_NOT_DELETE_SPLIST_TENANTADMIN_AGGREGATED_SITECOLLECTIONS"

# Retry / throttling
MAX_RETRIES = 5
INITIAL_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 120.0
BACKOFF_MULTIPLIER = 2.0
REQUEST_TIMEOUT_SECONDS = 60.0
CONNECT_TIMEOUT_SECONDS = 30.0

# Pagination
GRAPH_PAGE_SIZE = 999
EXCHANGE_PAGE_SIZE = 1000
SHAREPOINT_PAGE_SIZE = 5000
MAX_PAGES_PER_QUERY = 100000      # Safety cap on pagination loops


# ─── Export Settings ────────────────────────────────────────────────────────

ATTRIBUTES_COLUMN = "Attributes"
ATTRIBUTE_TYPE_COLUMN = "Attribute Type"
REQUIRED_COLUMN = "Required"
REQUIRED_FLAG = "YES"

ADMIN_CENTER_URL_COLUMN = "AdminCenterUrl"
MULTI_GEO_LOCATION_COLUMN = "MultiGeoLocation"
PERSONAL_ROOT_SITE_URL_COLUMN = "PersonalRootSiteURL"

# Enrichment column appended to multi-geo exports
REGION_COLUMN = "Multi Geo Location"

DEFAULT_TIMESTAMP_FORMAT = "%Y-%m-%d %H.%M.%S"


@dataclass
class OutputConfig:
    """Output directory and naming settings."""
    file_path: str = ""
    config_dir: str = "Configuration"
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT
    timestamp: str = ""
    overwrite: bool = False

    def resolve_timestamp(self) -> str:
        """Fix the run timestamp on first use so every file of a run shares it."""
        if not self.timestamp:
            self.timestamp = datetime.now().strftime(self.timestamp_format)
        return self.timestamp

    @property
    def output_dir(self) -> Path:
        return Path(self.file_path)

    def create_directories(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class ExportConfig:
    """Top-level configuration for one export run."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    strict: bool = False             # Missing attribute raises instead of being omitted
    continue_on_error: bool = False  # Multi-geo: keep going after a failed endpoint
    log_config: str = ""
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "ExportConfig":
        """Load configuration from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "password")
            config.auth.client_id = auth_data.get("client_id", DEFAULT_PUBLIC_CLIENT_ID)
            config.auth.tenant_id = auth_data.get("tenant_id", DEFAULT_AUTHORITY_TENANT)
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                try:
                    config.auth.certificate = CertificateAuth(
                        tenant_id=c["tenant_id"],
                        client_id=c["client_id"],
                        certificate_path=c.get("certificate_path", "./base64.txt"),
                        certificate_password=c.get("certificate_password", ""),
                    )
                except KeyError as e:
                    raise ConfigurationError(
                        f"Certificate configuration in {path} is missing {e}"
                    ) from e
        if "output" in data:
            for k, v in data["output"].items():
                if hasattr(config.output, k):
                    setattr(config.output, k, v)
        config.strict = data.get("strict", False)
        config.continue_on_error = data.get("continue_on_error", False)
        config.log_config = data.get("log_config", "")
        config.verbose = data.get("verbose", False)
        return config
