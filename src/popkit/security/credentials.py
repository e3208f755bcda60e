"""Password lookup for the popkit command line.

Passwords are handed straight to ``Pop3Session.authenticate`` and never
cached by popkit.
"""

import asyncio
import os
from typing import Optional

import keyring
from keyring.errors import KeyringError
from rich.prompt import Prompt

from popkit.utils.logging import get_logger

logger = get_logger(__name__)

KEYRING_SERVICE = "popkit"
PASSWORD_ENV_VAR = "POPKIT_PASSWORD"


async def retrieve_keyring_password(username: str) -> Optional[str]:
    """Retrieve a stored password from the system keyring.

    Args:
        username: Keyring key, the mailbox user name

    Returns:
        The password, or None if nothing is stored or the keyring is unusable
    """
    try:
        return await asyncio.to_thread(keyring.get_password, KEYRING_SERVICE, username)
    except KeyringError as e:
        logger.debug(f"Keyring retrieval failed: {e}")
        return None


async def store_keyring_password(username: str, password: str) -> None:
    """Store a password in the system keyring."""
    await asyncio.to_thread(keyring.set_password, KEYRING_SERVICE, username, password)


async def resolve_password(username: str, interactive: bool = True) -> Optional[str]:
    """Find the password for ``username``.

    Order: the POPKIT_PASSWORD environment variable, the system keyring,
    then an interactive prompt.
    """
    password = os.environ.get(PASSWORD_ENV_VAR)
    if password:
        return password

    password = await retrieve_keyring_password(username)
    if password:
        logger.debug("Password loaded from system keyring")
        return password

    if not interactive:
        return None

    return await asyncio.to_thread(
        Prompt.ask, f"Password for [bold]{username}[/]", password=True
    )
