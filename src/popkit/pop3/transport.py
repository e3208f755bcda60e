"""POP3 transport - the CRLF line stream underneath a session."""

import asyncio
import ssl
from typing import Optional

from popkit.utils.errors import (
    NetworkTimeoutError,
    TLSHandshakeError,
    TransportError,
)
from popkit.utils.logging import get_logger

from .constants import CRLF, MAX_LINE_LENGTH, SecurityMode, Timeouts
from .models import TransportStats

logger = get_logger(__name__)


def create_ssl_context(verify_certificates: bool = True) -> ssl.SSLContext:
    """Build the client SSL context used for implicit TLS and STLS.

    Args:
        verify_certificates: Disable to accept self-signed test servers

    Returns:
        Configured SSLContext
    """
    context = ssl.create_default_context()
    if not verify_certificates:
        logger.warning("TLS certificate verification is disabled")
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class Pop3Transport:
    """Asyncio byte stream to a POP3 server.

    Sends and receives CRLF-terminated lines and can upgrade the
    existing stream to TLS in place. Every network wait is bounded by the
    configured timeout.
    """

    def __init__(
        self,
        encoding: str = "utf-8",
        ssl_context: Optional[ssl.SSLContext] = None,
        read_timeout: float = Timeouts.POP3_READ,
    ):
        """Initialise an unconnected transport.

        Args:
            encoding: Text encoding for the wire; undecodable bytes survive
                through surrogateescape
            ssl_context: Context for implicit TLS and STLS upgrades
            read_timeout: Per-operation timeout in seconds
        """
        self.encoding = encoding
        self.ssl_context = ssl_context
        self.timeout = read_timeout
        self._host: Optional[str] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._encrypted = False
        self._stats = TransportStats()

    async def connect(
        self,
        host: str,
        port: int,
        security_mode: SecurityMode = SecurityMode.PLAIN,
        timeout: Optional[float] = None,
    ) -> None:
        """Open the byte stream to host:port.

        Args:
            host: Server hostname
            port: Server port
            security_mode: IMPLICIT_TLS wraps the socket in TLS immediately;
                PLAIN and STARTTLS open a plaintext stream
            timeout: Overrides the transport timeout for this and later calls

        Raises:
            TransportError: If already connected or the connection fails
            NetworkTimeoutError: If the connection times out
        """
        if self.is_connected():
            raise TransportError(
                "Transport is already connected", details={"host": self._host}
            )

        if timeout is not None:
            self.timeout = timeout

        implicit_tls = SecurityMode(security_mode) == SecurityMode.IMPLICIT_TLS
        ssl_arg = None
        if implicit_tls:
            ssl_arg = self.ssl_context or create_ssl_context()
            self.ssl_context = ssl_arg

        logger.info(
            "Connecting to POP3 server",
            extra={"server": host, "port": port, "implicit_tls": implicit_tls},
        )

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host, port, ssl=ssl_arg, limit=MAX_LINE_LENGTH
                ),
                timeout=self.timeout,
            )

        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                "POP3 connection timeout", details={"server": host, "port": port}
            ) from e

        except ssl.SSLError as e:
            raise TLSHandshakeError(
                f"TLS negotiation failed: {str(e)}",
                details={"server": host, "port": port},
            ) from e

        except OSError as e:
            raise TransportError(
                f"Failed to connect to POP3 server: {str(e)}",
                details={"server": host, "port": port},
            ) from e

        self._host = host
        self._encrypted = implicit_tls
        self._stats.connections_created += 1

    def is_connected(self) -> bool:
        """Report whether the stream is open."""
        return self._writer is not None and not self._writer.is_closing()

    def is_encrypted(self) -> bool:
        """Report whether the stream is running over TLS."""
        return self.is_connected() and self._encrypted

    def _require_stream(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if self._reader is None or self._writer is None or not self.is_connected():
            raise TransportError("Not connected to a POP3 server")
        return self._reader, self._writer

    async def send(self, line: str) -> None:
        """Write one line followed by CRLF.

        Raises:
            TransportError: If the stream is closed or the write fails
            NetworkTimeoutError: If the write does not drain in time
        """
        _, writer = self._require_stream()
        data = (line + CRLF).encode(self.encoding, errors="surrogateescape")

        try:
            writer.write(data)
            await asyncio.wait_for(writer.drain(), timeout=self.timeout)

        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                "Timed out writing to POP3 server", details={"server": self._host}
            ) from e

        except OSError as e:
            raise TransportError(
                f"Failed to write to POP3 server: {str(e)}",
                details={"server": self._host},
            ) from e

        self._stats.record_send()

    async def _read_raw_line(self, reader: asyncio.StreamReader, raw: bool) -> bytes:
        """Read up to and including the next LF.

        Status lines are capped at MAX_LINE_LENGTH. Raw reads, used for
        multiline bodies, collect longer lines in limit-sized chunks.
        """
        chunks = []
        while True:
            try:
                chunks.append(await reader.readuntil(b"\n"))
                return b"".join(chunks)

            except asyncio.LimitOverrunError as e:
                if not raw:
                    raise TransportError(
                        "POP3 server sent an over-long line",
                        details={"server": self._host, "limit": MAX_LINE_LENGTH},
                    ) from e
                # The overrun data stays buffered; consume it and keep reading
                chunks.append(await reader.readexactly(e.consumed))

            except asyncio.IncompleteReadError as e:
                chunks.append(e.partial)
                return b"".join(chunks)

    async def receive_line(self, raw: bool = False) -> str:
        """Read the next line from the server.

        Args:
            raw: Return the line exactly as received, terminator included;
                otherwise the trailing CR/LF is stripped

        Raises:
            TransportError: On EOF, an over-long status line, or a read failure
            NetworkTimeoutError: If no line arrives in time
        """
        reader, _ = self._require_stream()

        try:
            data = await asyncio.wait_for(
                self._read_raw_line(reader, raw), timeout=self.timeout
            )

        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                "Timed out waiting for POP3 server", details={"server": self._host}
            ) from e

        except OSError as e:
            raise TransportError(
                f"Failed to read from POP3 server: {str(e)}",
                details={"server": self._host},
            ) from e

        if not data.endswith(b"\n"):
            raise TransportError(
                "Connection closed by POP3 server", details={"server": self._host}
            )

        self._stats.record_receive(len(data))
        line = data.decode(self.encoding, errors="surrogateescape")

        if raw:
            return line
        return line.rstrip("\r\n")

    async def start_tls(self) -> None:
        """Upgrade the open plaintext stream to TLS in place.

        Raises:
            TransportError: If not connected or already encrypted
            TLSHandshakeError: If the handshake fails or times out
        """
        _, writer = self._require_stream()
        if self._encrypted:
            raise TransportError(
                "Transport is already encrypted", details={"server": self._host}
            )

        if self.ssl_context is None:
            self.ssl_context = create_ssl_context()

        try:
            await asyncio.wait_for(
                writer.start_tls(self.ssl_context, server_hostname=self._host),
                timeout=Timeouts.POP3_STARTTLS,
            )

        except asyncio.TimeoutError as e:
            raise TLSHandshakeError(
                "TLS handshake timed out", details={"server": self._host}
            ) from e

        except (ssl.SSLError, OSError) as e:
            raise TLSHandshakeError(
                f"TLS handshake failed: {str(e)}", details={"server": self._host}
            ) from e

        self._encrypted = True
        self._stats.tls_upgrades += 1
        logger.info("POP3 stream upgraded to TLS", extra={"server": self._host})

    async def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        writer = self._writer
        self._reader = None
        self._writer = None
        self._encrypted = False

        if writer is None:
            return

        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=self.timeout)
        except (asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Error closing POP3 stream: {str(e)}")

        logger.debug("POP3 stream closed", extra={"server": self._host})

    def get_stats(self) -> TransportStats:
        """Get current transport statistics.

        Returns:
            TransportStats object with current metrics
        """
        return self._stats
