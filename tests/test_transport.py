"""
Tests for the asyncio POP3 transport

Tests cover:
- Line framing against a local server
- EOF and timeout handling
- Connection errors and close
- Transport statistics
"""
import asyncio
import ssl

import pytest

from popkit.pop3.constants import MAX_LINE_LENGTH, SecurityMode
from popkit.pop3.transport import Pop3Transport, create_ssl_context
from popkit.utils.errors import NetworkTimeoutError, TransportError


class LineServer:
    """Local TCP server that writes scripted bytes and records client data"""

    def __init__(self, payload=b"", close_after=False):
        self.payload = payload
        self.close_after = close_after
        self.received = bytearray()
        self.server = None
        self.port = None

    async def _handle(self, reader, writer):
        writer.write(self.payload)
        await writer.drain()
        if self.close_after:
            writer.close()
            return
        try:
            while True:
                data = await reader.read(1024)
                if not data:
                    break
                self.received.extend(data)
        finally:
            writer.close()

    async def __aenter__(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.server.close()
        await self.server.wait_closed()


async def open_transport(server, **kwargs):
    transport = Pop3Transport(**kwargs)
    await transport.connect("127.0.0.1", server.port, SecurityMode.PLAIN, timeout=2.0)
    return transport


class TestLineFraming:
    """Tests for sending and receiving lines"""

    @pytest.mark.asyncio
    async def test_receive_strips_terminator(self):
        async with LineServer(b"+OK ready\r\n") as server:
            transport = await open_transport(server)

            assert await transport.receive_line() == "+OK ready"

            await transport.close()

    @pytest.mark.asyncio
    async def test_raw_receive_keeps_terminator(self):
        async with LineServer(b"line one\r\nline two\n") as server:
            transport = await open_transport(server)

            assert await transport.receive_line(raw=True) == "line one\r\n"
            assert await transport.receive_line(raw=True) == "line two\n"

            await transport.close()

    @pytest.mark.asyncio
    async def test_send_appends_crlf(self):
        async with LineServer() as server:
            transport = await open_transport(server)

            await transport.send("NOOP")
            await transport.close()
            await asyncio.sleep(0.05)

        assert bytes(server.received) == b"NOOP\r\n"

    @pytest.mark.asyncio
    async def test_raw_line_longer_than_limit_is_read_whole(self):
        body = b"x" * (MAX_LINE_LENGTH * 2 + 100) + b"\r\n"
        async with LineServer(body + b".\r\n") as server:
            transport = await open_transport(server)

            line = await transport.receive_line(raw=True)

            assert line.encode() == body
            assert await transport.receive_line(raw=True) == ".\r\n"
            assert transport.get_stats().bytes_received == len(body) + 3
            await transport.close()

    @pytest.mark.asyncio
    async def test_overlong_status_line_rejected(self):
        async with LineServer(b"+OK " + b"x" * (MAX_LINE_LENGTH + 10) + b"\r\n") as server:
            transport = await open_transport(server)

            with pytest.raises(TransportError, match="over-long"):
                await transport.receive_line()

            await transport.close()

    @pytest.mark.asyncio
    async def test_undecodable_bytes_survive(self):
        async with LineServer(b"caf\xe9\r\n") as server:
            transport = await open_transport(server)

            line = await transport.receive_line(raw=True)

            assert line.encode("utf-8", "surrogateescape") == b"caf\xe9\r\n"
            await transport.close()


class TestConnectionErrors:
    """Tests for EOF, timeouts and refused connections"""

    @pytest.mark.asyncio
    async def test_eof_is_transport_error(self):
        async with LineServer(b"partial", close_after=True) as server:
            transport = await open_transport(server)

            with pytest.raises(TransportError, match="closed"):
                await transport.receive_line()

            await transport.close()

    @pytest.mark.asyncio
    async def test_silent_server_times_out(self):
        async with LineServer() as server:
            transport = Pop3Transport()
            await transport.connect("127.0.0.1", server.port, timeout=0.1)

            with pytest.raises(NetworkTimeoutError):
                await transport.receive_line()

            await transport.close()

    @pytest.mark.asyncio
    async def test_refused_connection(self):
        async with LineServer() as server:
            port = server.port

        transport = Pop3Transport()
        with pytest.raises(TransportError):
            await transport.connect("127.0.0.1", port, timeout=2.0)

        assert not transport.is_connected()

    @pytest.mark.asyncio
    async def test_second_connect_rejected(self):
        async with LineServer() as server:
            transport = await open_transport(server)

            with pytest.raises(TransportError, match="already connected"):
                await transport.connect("127.0.0.1", server.port)

            await transport.close()

    @pytest.mark.asyncio
    async def test_send_before_connect(self):
        transport = Pop3Transport()

        with pytest.raises(TransportError):
            await transport.send("NOOP")

    @pytest.mark.asyncio
    async def test_start_tls_on_encrypted_stream_rejected(self):
        async with LineServer() as server:
            transport = await open_transport(server)
            transport._encrypted = True

            with pytest.raises(TransportError):
                await transport.start_tls()

            await transport.close()


class TestCloseAndStats:
    """Tests for closing and statistics"""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        async with LineServer() as server:
            transport = await open_transport(server)
            assert transport.is_connected()
            assert not transport.is_encrypted()

            await transport.close()
            await transport.close()

            assert not transport.is_connected()

    @pytest.mark.asyncio
    async def test_stats_track_traffic(self):
        async with LineServer(b"+OK hi\r\n") as server:
            transport = await open_transport(server)

            await transport.receive_line()
            await transport.send("QUIT")
            stats = transport.get_stats()

            assert stats.connections_created == 1
            assert stats.commands_sent == 1
            assert stats.lines_received == 1
            assert stats.bytes_received == len(b"+OK hi\r\n")
            assert stats.last_operation_time is not None

            await transport.close()


class TestSslContext:
    """Tests for SSL context creation"""

    def test_verifying_context(self):
        context = create_ssl_context()
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname

    def test_insecure_context(self):
        context = create_ssl_context(verify_certificates=False)
        assert context.verify_mode == ssl.CERT_NONE
        assert not context.check_hostname
