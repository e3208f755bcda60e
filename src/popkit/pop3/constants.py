"""POP3 constants and configuration values."""

from enum import Enum


CRLF = "\r\n"

# RFC 1939 limits a response line to 512 octets including CRLF. Status lines
# longer than MAX_LINE_LENGTH are rejected; raw body lines (RETR, TOP) are read
# past it in chunks of this size.
MAX_LINE_LENGTH = 64 * 1024


class Pop3Response:
    """POP3 status indicators."""

    OK = "+OK"  # Positive status
    ERR = "-ERR"  # Negative status
    CONTINUATION = "+"  # SASL continuation prompt (AUTH)
    TERMINATION_OCTET = "."  # Ends a multiline response


class Pop3Commands:
    """Command keywords sent by the client."""

    CAPA = "CAPA"
    STLS = "STLS"
    USER = "USER"
    PASS = "PASS"
    AUTH = "AUTH"
    STAT = "STAT"
    LIST = "LIST"
    RETR = "RETR"
    DELE = "DELE"
    RSET = "RSET"
    NOOP = "NOOP"
    TOP = "TOP"
    UIDL = "UIDL"
    QUIT = "QUIT"


class Capabilities:
    """Capability names advertised through CAPA (RFC 2449)."""

    TOP = "TOP"
    UIDL = "UIDL"
    STLS = "STLS"


class Timeouts:
    """Timeout values for POP3 transport operations (in seconds)."""

    POP3_CONNECT = 30.0  # Initial connection timeout
    POP3_READ = 30.0  # Per-line read timeout
    POP3_STARTTLS = 30.0  # TLS handshake timeout


class Pop3Ports:
    """Standard POP3 port numbers."""

    POP3 = 110  # Plain, optionally upgraded with STLS
    POP3S = 995  # Implicit TLS


class SessionState(Enum):
    """POP3 session states from RFC 1939."""

    NOT_CONNECTED = "not_connected"
    AUTHORIZATION = "authorization"
    TRANSACTION = "transaction"
    UPDATE = "update"


class SecurityMode(str, Enum):
    """How the connection to the server is secured."""

    PLAIN = "plain"
    IMPLICIT_TLS = "implicit_tls"
    STARTTLS = "starttls"


class AuthMechanism(str, Enum):
    """Supported authentication mechanisms."""

    PLAIN = "plain"  # USER / PASS
    LOGIN = "login"  # AUTH LOGIN with base64 exchange


class CapabilityFormat(str, Enum):
    """Result shapes for the CAPA command."""

    LIST = "list"
    RAW = "raw"
