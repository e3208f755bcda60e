"""POP3 client implementation.

Components:
- Pop3Transport: asyncio CRLF line stream with in-place TLS upgrade
- ResponseParser: status classification and multiline framing
- Pop3Session: RFC 1939 state machine and command surface

Usage
-----

    >>> from popkit.pop3 import Pop3Session
    >>> from popkit.utils.config import Pop3Config
    >>>
    >>> config = Pop3Config(host="pop.example.com", port=995,
    ...                     security_mode="implicit_tls")
    >>> async with Pop3Session(config) as pop:
    ...     await pop.authenticate("alice", "secret")
    ...     for message_id, size in (await pop.list_messages()).items():
    ...         raw = await pop.retrieve(message_id)
"""

from .constants import AuthMechanism, CapabilityFormat, SecurityMode, SessionState
from .models import MaildropStatus, ScanListing, TransportStats, UniqueIdListing
from .response import ResponseParser
from .session import Pop3Session
from .transport import Pop3Transport

__all__ = [
    "AuthMechanism",
    "CapabilityFormat",
    "MaildropStatus",
    "Pop3Session",
    "Pop3Transport",
    "ResponseParser",
    "ScanListing",
    "SecurityMode",
    "SessionState",
    "TransportStats",
    "UniqueIdListing",
]
