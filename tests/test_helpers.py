"""
Test helpers: a scripted POP3 transport and session factories
"""
from collections import deque

from popkit.pop3 import Pop3Session
from popkit.utils.config import Pop3Config
from popkit.utils.errors import TLSHandshakeError, TransportError


GREETING = "+OK POP3 server ready <1896.697170952@dbc.mtview.ca.us>"


class FakeTransport:
    """Transport double that replays server lines and records client lines"""

    def __init__(self, *lines):
        self.incoming = deque()
        self.sent = []
        self.connect_calls = []
        self.connected = False
        self.encrypted = False
        self.tls_upgrades = 0
        self.close_calls = 0
        self.fail_tls = False
        self.queue(*lines)

    def queue(self, *lines):
        """Queue server lines; a CRLF is appended where missing"""
        for line in lines:
            self.incoming.append(line if line.endswith("\n") else line + "\r\n")

    @property
    def io_count(self):
        """Number of network interactions performed so far"""
        return len(self.connect_calls) + len(self.sent) + self.tls_upgrades

    async def connect(self, host, port, security_mode=None, timeout=None):
        self.connect_calls.append((host, port, security_mode, timeout))
        self.connected = True
        self.encrypted = getattr(security_mode, "value", security_mode) == "implicit_tls"

    def is_connected(self):
        return self.connected

    def is_encrypted(self):
        return self.connected and self.encrypted

    async def send(self, line):
        if not self.connected:
            raise TransportError("Not connected to a POP3 server")
        self.sent.append(line)

    async def receive_line(self, raw=False):
        if not self.connected or not self.incoming:
            raise TransportError("Connection closed by POP3 server")
        line = self.incoming.popleft()
        return line if raw else line.rstrip("\r\n")

    async def start_tls(self):
        if self.fail_tls:
            raise TLSHandshakeError("TLS handshake failed: bad certificate")
        self.tls_upgrades += 1
        self.encrypted = True

    async def close(self):
        self.close_calls += 1
        self.connected = False
        self.encrypted = False


class Pop3TestHelper:
    """Factories for sessions in a given state"""

    @staticmethod
    def create_config(**kwargs):
        defaults = {"host": "pop.test.com", "port": 110, "timeout": 5.0}
        defaults.update(kwargs)
        return Pop3Config(**defaults)

    @staticmethod
    async def connected_session(*server_lines, **config):
        """Session in AUTHORIZATION; server_lines are queued after the greeting"""
        transport = FakeTransport(GREETING, *server_lines)
        session = Pop3Session(Pop3TestHelper.create_config(**config), transport)
        await session.connect()
        return session, transport

    @staticmethod
    async def transaction_session(*server_lines, **config):
        """Session in TRANSACTION after a USER/PASS login"""
        session, transport = await Pop3TestHelper.connected_session(
            "+OK user accepted", "+OK maildrop locked and ready", **config
        )
        await session.authenticate("alice", "secret")
        transport.sent.clear()
        transport.queue(*server_lines)
        return session, transport
