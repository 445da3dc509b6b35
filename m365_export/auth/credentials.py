"""
Resolve the sign-in account and password from parameters or an interactive prompt.
"""

from __future__ import annotations

import getpass
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..errors import CredentialError

logger = logging.getLogger("m365_export.auth.credentials")


@dataclass(frozen=True)
class Credential:
    """Resolved sign-in credential. Lives for one run and is never persisted."""
    principal: str
    secret: str = field(repr=False)


def resolve_credentials(
    principal: Optional[str] = None,
    secret: Optional[str] = None,
    prompt: Callable[[str], str] = input,
    secret_prompt: Callable[[str], str] = getpass.getpass,
) -> Credential:
    """
    Build a Credential from the given account and password.
    If either is empty, prompt for both (password entry masked).
    """
    if principal and secret:
        logger.info(f"Using supplied credentials for {principal}")
        return Credential(principal=principal, secret=secret)

    logger.warning("Account or password not supplied, prompting interactively")
    try:
        principal = prompt("Account: ").strip()
        secret = secret_prompt(f"Password for {principal}: ")
    except (EOFError, KeyboardInterrupt) as e:
        logger.error("Credential prompt cancelled")
        raise CredentialError("Credential prompt cancelled") from e

    if not principal or not secret:
        logger.error("No credential entered")
        raise CredentialError("Account and password are both required")

    return Credential(principal=principal, secret=secret)
