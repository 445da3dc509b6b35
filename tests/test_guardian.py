"""
Tests for the read-only safety guardian.
"""
import pytest

from m365_export.safety.guardian import SafetyGuardian, SafetyViolation

INVOKE = "https://outlook.office365.com/adminapi/beta/tenant-guid/InvokeCommand"


def body(cmdlet):
    return {"CmdletInput": {"CmdletName": cmdlet, "Parameters": {}}}


def test_get_is_allowed():
    assert SafetyGuardian().validate_request("GET", "https://graph.microsoft.com/v1.0/users")


def test_invoke_command_allows_get_cmdlets():
    assert SafetyGuardian().validate_request("POST", INVOKE, body("Get-Mailbox"))


@pytest.mark.parametrize("cmdlet", ["Set-Mailbox", "Remove-Mailbox", "", "Get-Mailbox; Remove-Mailbox"])
def test_invoke_command_blocks_other_cmdlets(cmdlet):
    guardian = SafetyGuardian()
    with pytest.raises(SafetyViolation):
        guardian.validate_request("POST", INVOKE, body(cmdlet))
    assert len(guardian.violations) == 1


@pytest.mark.parametrize("method", ["POST", "PATCH", "PUT", "DELETE"])
def test_write_methods_blocked_elsewhere(method):
    with pytest.raises(SafetyViolation):
        SafetyGuardian().validate_request(method, "https://graph.microsoft.com/v1.0/users")


def test_audit_record_counts_checks_and_violations():
    guardian = SafetyGuardian()
    guardian.validate_request("GET", "https://graph.microsoft.com/v1.0/users")
    with pytest.raises(SafetyViolation):
        guardian.validate_command("Set-Mailbox")

    record = guardian.get_audit_record()
    assert record["checks_performed"] == 2
    assert record["violations_detected"] == 1
    assert record["status"] == "VIOLATIONS_DETECTED"
    assert record["started_at"] == guardian.started_at


def test_audit_record_clean_run():
    assert SafetyGuardian().get_audit_record()["status"] == "CLEAN"
