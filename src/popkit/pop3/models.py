"""Result types returned by POP3 session operations."""

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MaildropStatus:
    """Drop listing returned by STAT."""

    message_count: int
    mailbox_size_bytes: int


@dataclass(frozen=True)
class ScanListing:
    """Scan listing for a single message returned by ``LIST <id>``."""

    message_id: int
    size: int


@dataclass(frozen=True)
class UniqueIdListing:
    """Unique-id listing for a single message returned by ``UIDL <id>``."""

    message_id: int
    uid: str


@dataclass
class TransportStats:
    """Tracks POP3 transport metrics."""

    connections_created: int = 0
    tls_upgrades: int = 0
    commands_sent: int = 0
    lines_received: int = 0
    bytes_received: int = 0
    last_operation_time: Optional[float] = None

    def record_send(self) -> None:
        """Record a command written to the server."""
        self.commands_sent += 1
        self.last_operation_time = time.time()

    def record_receive(self, octets: int) -> None:
        """Record a line read from the server.

        Args:
            octets: Size of the line in bytes, terminator included
        """
        self.lines_received += 1
        self.bytes_received += octets
        self.last_operation_time = time.time()
