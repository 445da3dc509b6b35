"""
M365 Export — command line entry point.

Usage:
    python -m m365_export azuread    --file-path ./out --include-users --include-guest-users
    python -m m365_export exchange   --file-path ./out --include-shared-mailboxes
    python -m m365_export teams      --file-path ./out --include-meeting-policies
    python -m m365_export sharepoint --file-path ./out --admin-url https://contoso-admin.sharepoint.com
    python -m m365_export sharepoint --file-path ./out --admin-centers Configuration/SharePoint_Multi-Geo_AdminCenter.csv
    python -m m365_export onedrive   --file-path ./out --admin-centers Configuration/OneDrive_Multi-Geo_AdminCenter.csv
    python -m m365_export introspect --file-path ./out --service Exchange --command Get-Mailbox

Account and password are prompted for when not supplied. All exports are
read-only; nothing in the tenant is modified.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .auth.authenticator import Authenticator
from .auth.credentials import resolve_credentials
from .collectors import ALL_COLLECTORS
from .config import CertificateAuth, ExportConfig
from .endpoints import EndpointDescriptor, load_endpoints
from .errors import ConfigurationError, ExportError, SinkWriteError
from .introspect import get_attributes_of_returned_object
from .logging_setup import setup_logging
from .pipeline import RunContext, run_exports
from .safety.guardian import SafetyGuardian, SafetyViolation

logger = logging.getLogger("m365_export")

# Inclusion flag (argparse dest) -> resource kind, per service command
INCLUDE_FLAGS = {
    "azuread": {
        "include_users": "Users",
        "include_guest_users": "GuestUsers",
    },
    "exchange": {
        "include_active_mailboxes": "ActiveMailboxes",
        "include_disabled_mailboxes": "DisabledMailboxes",
        "include_soft_deleted_mailboxes": "SoftDeletedMailboxes",
        "include_shared_mailboxes": "SharedMailboxes",
        "include_unified_groups": "UnifiedGroups",
    },
    "teams": {
        "include_teams_users": "Users",
        "include_calling_policies": "CallingPolicies",
        "include_meeting_policies": "MeetingPolicies",
        "include_messaging_policies": "MessagingPolicies",
    },
}

COMMAND_SERVICES = {
    "azuread": "AzureAD",
    "exchange": "Exchange",
    "teams": "Teams",
    "sharepoint": "SharePoint",
    "onedrive": "OneDrive",
}


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--account", "-a", help="Sign-in account (prompted if omitted)")
    common.add_argument("--password", help="Sign-in password (prompted if omitted)")
    common.add_argument("--file-path", "-f", type=Path, required=True,
                        help="Output directory for CSV and log files")
    common.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    common.add_argument("--config-dir", type=Path,
                        help="Directory holding the attribute tables (default: ./Configuration)")
    common.add_argument("--log-config", type=Path, help="Logging descriptor (INI, logging.config format)")
    common.add_argument("--auth-mode", choices=["password", "certificate"],
                        help="Sign in with account/password (default) or an app certificate")
    common.add_argument("--client-id", help="App registration client ID")
    common.add_argument("--tenant-id", help="Tenant ID or domain")
    common.add_argument("--cert-path", type=Path, help="Path to base64-encoded PFX (certificate mode)")
    common.add_argument("--strict", action="store_true",
                        help="Fail when a record lacks a selected attribute instead of leaving it blank")
    common.add_argument("--overwrite", action="store_true", help="Replace existing output files")
    common.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return common


def _add_site_arguments(parser: argparse.ArgumentParser, onedrive: bool = False):
    parser.add_argument("--admin-url", help="SharePoint admin center URL (single geo)")
    parser.add_argument("--admin-centers", type=Path,
                        help="Semicolon-delimited admin-center table (multi-geo)")
    parser.add_argument("--continue-on-error", action="store_true",
                        help="Multi-geo: keep exporting when an admin center fails")
    if onedrive:
        parser.add_argument("--personal-root-url",
                            help="Personal site root, e.g. https://contoso-my.sharepoint.com/personal/")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="m365_export",
        description="Export Microsoft 365 directory and service objects to CSV (READ-ONLY)",
    )
    common = _common_parser()
    subparsers = parser.add_subparsers(dest="command", required=True, help="Export to run")

    for command, flags in INCLUDE_FLAGS.items():
        sub = subparsers.add_parser(
            command, parents=[common],
            help=f"Export {COMMAND_SERVICES[command]} objects",
        )
        for dest in flags:
            sub.add_argument(f"--{dest.replace('_', '-')}", dest=dest, action="store_true")

    sp = subparsers.add_parser("sharepoint", parents=[common], help="Export SharePoint sites")
    _add_site_arguments(sp)
    od = subparsers.add_parser("onedrive", parents=[common], help="Export OneDrive sites")
    _add_site_arguments(od, onedrive=True)

    intro = subparsers.add_parser(
        "introspect", parents=[common],
        help="Write an attribute table from the first object a listing command returns",
    )
    intro.add_argument("--service", required=True, choices=sorted(ALL_COLLECTORS))
    intro.add_argument("--command", dest="listing_command", required=True,
                       help="Resource kind (e.g. Users) or Exchange Get-* cmdlet")
    intro.add_argument("--output", type=Path, help="Attribute table to write")
    intro.add_argument("--admin-url", help="Admin center URL (SharePoint/OneDrive)")
    intro.add_argument("--personal-root-url", help="Personal site root (OneDrive)")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ExportConfig:
    """Build configuration from the JSON file, then apply CLI overrides."""
    config = ExportConfig.from_file(args.config) if args.config else ExportConfig()

    if args.auth_mode:
        config.auth.mode = args.auth_mode
    if args.client_id:
        config.auth.client_id = args.client_id
    if args.tenant_id:
        config.auth.tenant_id = args.tenant_id

    if config.auth.mode == "certificate":
        cert = config.auth.certificate
        cert_path = str(args.cert_path) if args.cert_path else (cert.certificate_path if cert else "")
        if not cert_path:
            raise ConfigurationError("Certificate mode needs --cert-path or a certificate config")
        config.auth.certificate = CertificateAuth(
            tenant_id=args.tenant_id or (cert.tenant_id if cert else config.auth.tenant_id),
            client_id=args.client_id or (cert.client_id if cert else config.auth.client_id),
            certificate_path=cert_path,
            certificate_password=cert.certificate_password if cert else "",
        )

    config.output.file_path = str(args.file_path)
    if args.config_dir:
        config.output.config_dir = str(args.config_dir)
    if args.overwrite:
        config.output.overwrite = True
    if args.log_config:
        config.log_config = str(args.log_config)
    if args.strict:
        config.strict = True
    if getattr(args, "continue_on_error", False):
        config.continue_on_error = True
    if args.verbose:
        config.verbose = True
    return config


def selected_kinds(args: argparse.Namespace, collector_cls) -> list[str]:
    """Resource kinds switched on by inclusion flags; all of them when none are given."""
    flags = INCLUDE_FLAGS.get(args.command)
    if not flags:
        return list(collector_cls.resources)
    kinds = [kind for dest, kind in flags.items() if getattr(args, dest, False)]
    if not kinds:
        logger.info(f"No inclusion flag given, exporting every {collector_cls.name} resource kind")
        return list(collector_cls.resources)
    return kinds


def resolve_endpoints(args: argparse.Namespace) -> tuple[list[EndpointDescriptor], bool]:
    """Return the endpoints to visit and whether this is a multi-geo run."""
    onedrive = args.command == "onedrive"
    if getattr(args, "admin_centers", None):
        return load_endpoints(args.admin_centers, require_personal_root=onedrive), True
    if getattr(args, "admin_url", None):
        personal_root = getattr(args, "personal_root_url", None)
        if onedrive and not personal_root:
            raise ConfigurationError("OneDrive export needs --personal-root-url with --admin-url")
        return [EndpointDescriptor(args.admin_url.rstrip("/"), "", personal_root)], False
    if args.command in ("sharepoint", "onedrive"):
        raise ConfigurationError(f"{args.command} export needs --admin-url or --admin-centers")
    return [], False


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point. Returns the process exit status."""
    args = parse_args(argv)
    config = build_config(args)
    ctx = RunContext.from_config(config)

    # Settle what to export before touching the disk or prompting
    if args.command == "introspect":
        collector_cls = ALL_COLLECTORS[args.service]
        kinds, endpoints, multi_geo = [], [], False
        endpoint = None
        if args.admin_url:
            endpoint = EndpointDescriptor(args.admin_url.rstrip("/"), "", args.personal_root_url)
    else:
        collector_cls = ALL_COLLECTORS[COMMAND_SERVICES[args.command]]
        kinds = selected_kinds(args, collector_cls)
        endpoints, multi_geo = resolve_endpoints(args)

    try:
        config.output.create_directories()
    except OSError as e:
        raise SinkWriteError(f"Cannot create output directory {ctx.output_dir}: {e}") from e
    log_file = setup_logging(ctx.output_dir, config.log_config, config.verbose, ctx.timestamp)

    print("=" * 70)
    print(" M365 Export — READ-ONLY")
    print("=" * 70)
    print(f"\n📂 Output: {ctx.output_dir.resolve()}")
    if log_file:
        print(f"📝 Log:    {log_file}")

    credential = None
    if config.auth.mode == "password":
        credential = resolve_credentials(args.account, args.password)

    guardian = SafetyGuardian()
    authenticator = Authenticator(config.auth, credential)
    collector = collector_cls(authenticator, guardian)

    if args.command == "introspect":
        output = args.output or ctx.attribute_table(collector.name, args.listing_command)
        path = await get_attributes_of_returned_object(
            collector, args.listing_command, output, endpoint, overwrite=ctx.overwrite
        )
        print(f"\n  ✅ Attribute table written: {path}")
        return 0

    print(f"\n🔐 Exporting {collector.description}: {', '.join(kinds)}\n")
    results = await run_exports(collector, kinds, ctx, endpoints, multi_geo=multi_geo)

    exit_code = 0
    for result in results:
        if result.ok:
            print(f"  ✅ {result.resource_kind}: {result.rows_written} rows → {result.path}")
        else:
            exit_code = 1
            print(f"  ❌ {result.resource_kind}: {len(result.failures)} admin center(s) failed, "
                  f"{result.rows_written} rows → {result.path}")
            for failure in result.failures:
                print(f"      ⚠  {failure.endpoint.url if failure.endpoint else '-'}: {failure.error}")

    audit = guardian.get_audit_record()
    logger.info(f"Safety audit: {audit}")
    print(f"\n🛡  Safety: {audit['checks_performed']} checks, "
          f"{audit['violations_detected']} violation(s) ({audit['status']})\n")
    return exit_code


def main(argv: Optional[list[str]] = None):
    """Synchronous entry point for `python -m m365_export`."""
    try:
        exit_code = asyncio.run(main_async(argv))
    except (ExportError, SafetyViolation) as e:
        logger.error(f"Export failed: {type(e).__name__}: {e}")
        print(f"\n❌ {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
