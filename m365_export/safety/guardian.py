"""
Safety Guardian — Enforces read-only operation.
Every outbound request and every admin command is validated before it is sent.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("m365_export.safety")

# ─── Allowed Requests ───────────────────────────────────────────────────────

READ_METHODS = {"GET", "HEAD", "OPTIONS"}

# Exchange admin API runs every cmdlet through a POST to InvokeCommand
INVOKE_COMMAND_PATTERN = re.compile(r"/adminapi/[^/]+/[^/]+/InvokeCommand$", re.IGNORECASE)

# Only listing cmdlets may be invoked
READ_ONLY_COMMAND_PATTERN = re.compile(r"^Get-[A-Za-z]+$")


class SafetyViolation(Exception):
    """Raised when a write operation is attempted."""
    pass


class SafetyGuardian:
    """
    Validates every outbound HTTP request and admin command to ensure
    read-only operation. Keeps an audit trail of violations.
    """

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_command(self, command: str) -> bool:
        """Allow only Get-* cmdlets."""
        self.checks_performed += 1
        if not READ_ONLY_COMMAND_PATTERN.match(command or ""):
            self._record_violation("COMMAND", command, "Non read-only command blocked")
            raise SafetyViolation(f"SAFETY VIOLATION: Command is not read-only: {command}")
        return True

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """
        Validate that a request is read-only.
        Returns True if safe, raises SafetyViolation if not.
        """
        self.checks_performed += 1
        method_upper = method.upper()
        path = url.split("?", 1)[0]

        if method_upper in READ_METHODS:
            return True

        if method_upper == "POST" and INVOKE_COMMAND_PATTERN.search(path):
            cmdlet = ((body or {}).get("CmdletInput") or {}).get("CmdletName", "")
            return self.validate_command(cmdlet)

        self._record_violation(method_upper, url, "Write HTTP method blocked")
        raise SafetyViolation(f"SAFETY VIOLATION: Write method blocked: {method_upper} {url}")

    def _record_violation(self, method: str, target: str, reason: str):
        self.violations.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "target": target,
            "reason": reason,
        })
        logger.critical(f"SAFETY VIOLATION: {reason} — {method} {target}")

    def get_audit_record(self) -> dict:
        """Summarise the checks made during this run."""
        return {
            "started_at": self.started_at,
            "checks_performed": self.checks_performed,
            "violations_detected": len(self.violations),
            "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
        }
