"""
Tests for credential resolution.
"""
from unittest.mock import Mock

import pytest

from m365_export.auth.credentials import Credential, resolve_credentials
from m365_export.errors import CredentialError


def test_supplied_credentials_never_prompt():
    prompt, secret_prompt = Mock(), Mock()
    cred = resolve_credentials("admin@contoso.com", "s3cret", prompt, secret_prompt)
    assert cred == Credential("admin@contoso.com", "s3cret")
    prompt.assert_not_called()
    secret_prompt.assert_not_called()


@pytest.mark.parametrize("principal,secret", [(None, None), ("", ""), ("admin@contoso.com", None), (None, "pw")])
def test_missing_value_prompts_for_both(principal, secret):
    prompt = Mock(return_value="typed@contoso.com")
    secret_prompt = Mock(return_value="typed-pw")
    cred = resolve_credentials(principal, secret, prompt, secret_prompt)
    assert cred.principal == "typed@contoso.com"
    assert cred.secret == "typed-pw"
    prompt.assert_called_once()
    secret_prompt.assert_called_once()


def test_cancelled_prompt_raises():
    prompt = Mock(side_effect=KeyboardInterrupt)
    with pytest.raises(CredentialError):
        resolve_credentials(None, None, prompt, Mock())


def test_eof_on_password_raises():
    with pytest.raises(CredentialError):
        resolve_credentials(None, None, Mock(return_value="a@b.c"), Mock(side_effect=EOFError))


def test_empty_answer_raises():
    with pytest.raises(CredentialError):
        resolve_credentials(None, None, Mock(return_value="a@b.c"), Mock(return_value=""))


def test_secret_is_not_in_repr():
    cred = Credential("admin@contoso.com", "s3cret")
    assert "s3cret" not in repr(cred)
