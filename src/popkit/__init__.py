"""popkit - an asyncio POP3 client with CAPA and STLS support."""

__version__ = "0.1.0"

from popkit.pop3 import (
    AuthMechanism,
    CapabilityFormat,
    MaildropStatus,
    Pop3Session,
    Pop3Transport,
    ResponseParser,
    ScanListing,
    SecurityMode,
    SessionState,
    UniqueIdListing,
)
from popkit.utils.config import AppConfig, ConfigManager, Pop3Config

__all__ = [
    "AppConfig",
    "AuthMechanism",
    "CapabilityFormat",
    "ConfigManager",
    "MaildropStatus",
    "Pop3Config",
    "Pop3Session",
    "Pop3Transport",
    "ResponseParser",
    "ScanListing",
    "SecurityMode",
    "SessionState",
    "UniqueIdListing",
]
