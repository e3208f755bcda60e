"""POP3 session - state machine and command surface of a POP3 client."""

import base64
from typing import Dict, FrozenSet, List, Optional, Union

from popkit.utils.config import Pop3Config
from popkit.utils.errors import (
    ArgumentError,
    AuthError,
    CapabilityError,
    ConfigError,
    PopKitError,
    ProtocolError,
    ProtocolStateError,
)
from popkit.utils.logging import async_log_call, get_logger

from .constants import (
    CRLF,
    AuthMechanism,
    Capabilities,
    CapabilityFormat,
    Pop3Commands,
    SecurityMode,
    SessionState,
)
from .models import MaildropStatus, ScanListing, UniqueIdListing
from .response import ResponseParser
from .transport import Pop3Transport, create_ssl_context

logger = get_logger(__name__)

_REDACTED = "[REDACTED]"

NOT_CONNECTED_ONLY: FrozenSet[SessionState] = frozenset({SessionState.NOT_CONNECTED})
AUTHORIZATION_ONLY: FrozenSet[SessionState] = frozenset({SessionState.AUTHORIZATION})
TRANSACTION_ONLY: FrozenSet[SessionState] = frozenset({SessionState.TRANSACTION})
AUTHORIZATION_OR_TRANSACTION: FrozenSet[SessionState] = frozenset(
    {SessionState.AUTHORIZATION, SessionState.TRANSACTION}
)


class Pop3Session:
    """A single POP3 conversation with one maildrop.

    The session owns its state, the server capability list and the
    transport. Commands are only sent from the states RFC 1939 allows;
    anything else fails with ProtocolStateError before touching the
    network.

    A session is not safe for concurrent use. Run one operation at a time,
    from one task.

    Example:
        >>> async with Pop3Session(Pop3Config(host="pop.example.com")) as pop:
        ...     await pop.authenticate("alice", "secret")
        ...     status = await pop.status()
    """

    def __init__(
        self,
        config: Optional[Pop3Config] = None,
        transport: Optional[Pop3Transport] = None,
    ):
        """Initialise an unconnected session.

        Args:
            config: Connection settings; defaults to localhost:110 plaintext
            transport: Stream to use instead of building a Pop3Transport
        """
        self.config = config or Pop3Config()
        self._transport = transport
        # Transports built here are rebuilt from the config on every connect
        self._owns_transport = transport is None
        self._state = SessionState.NOT_CONNECTED
        self._capabilities: List[str] = []
        self.greeting: Optional[str] = None

    ## Introspection

    @property
    def state(self) -> SessionState:
        """Current RFC 1939 session state."""
        return self._state

    @property
    def capabilities(self) -> List[str]:
        """Capabilities fetched so far, in server order."""
        return list(self._capabilities)

    @property
    def transport(self) -> Optional[Pop3Transport]:
        """Transport used by the current or most recent connection."""
        return self._transport

    def is_connected(self) -> bool:
        """Report whether the underlying transport is open."""
        return self._transport is not None and self._transport.is_connected()

    def has_capability(self, name: str) -> bool:
        """Check the fetched capability list for a command name.

        A capability line matches when its keyword (first token) equals
        ``name``, ignoring case, so ``SASL PLAIN LOGIN`` satisfies ``SASL``.
        """
        wanted = name.strip().upper()
        for line in self._capabilities:
            parts = line.split()
            if parts and parts[0].upper() == wanted:
                return True
        return False

    ## Gating

    def _validate_state(self, allowed: FrozenSet[SessionState], command: str) -> None:
        """Raise ProtocolStateError if the current state does not permit command."""
        if self._state not in allowed:
            required = ", ".join(sorted(state.name for state in allowed))
            raise ProtocolStateError(
                f"The {command} command is invalid in state {self._state.name} "
                f"(requires {required})",
                details={
                    "command": command,
                    "state": self._state.name,
                    "allowed_states": required,
                },
            )

    async def ensure_capabilities_loaded(self) -> List[str]:
        """Fetch capabilities with CAPA if none have been loaded yet."""
        if not self._capabilities:
            logger.debug("Capability list empty, issuing CAPA")
            await self.get_server_capabilities()
        return self.capabilities

    async def _require_capability(self, name: str, command: str) -> None:
        await self.ensure_capabilities_loaded()
        if not self.has_capability(name):
            raise CapabilityError(
                f"The server does not support the {command} command",
                details={"command": command, "capability": name},
            )

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            logger.debug(f"POP3 state {self._state.name} -> {state.name}")
        self._state = state

    ## Wire helpers

    def _require_transport(self) -> Pop3Transport:
        if self._transport is None:
            raise ProtocolStateError(
                "No transport is open for this session",
                details={"state": self._state.name},
            )
        return self._transport

    async def _send(self, line: str, display: Optional[str] = None) -> None:
        transport = self._require_transport()
        logger.debug(f"C: {display if display is not None else line}")
        await transport.send(line)

    async def _receive(self, raw: bool = False) -> str:
        line = await self._require_transport().receive_line(raw=raw)
        logger.debug(f"S: {line.rstrip()}")
        return line

    async def _exchange(self, line: str, display: Optional[str] = None) -> str:
        """Send one command and return its status line."""
        await self._send(line, display)
        return await self._receive()

    @staticmethod
    def _check_positive(response: str, command: str) -> None:
        if not ResponseParser.is_positive(response):
            raise ProtocolError(
                f"The server sent a negative response to the {command} command: "
                f"{response.rstrip()}",
                details={"command": command, "response": response.rstrip()},
            )

    async def _read_block(self) -> List[str]:
        return await ResponseParser.read_multiline(self._require_transport())

    ## Argument validation

    @staticmethod
    def _require_number(value, name: str, command: str, minimum: int) -> int:
        if value is None:
            raise ArgumentError(
                f"A {name} is required by the {command} command",
                details={"command": command, "argument": name},
            )
        if isinstance(value, bool):
            number = None
        elif isinstance(value, int):
            number = value
        elif isinstance(value, str) and value.strip().isdigit():
            number = int(value.strip())
        else:
            number = None

        if number is None or number < minimum:
            raise ArgumentError(
                f"Invalid {name} for the {command} command: {value!r}",
                details={"command": command, "argument": name},
            )
        return number

    @staticmethod
    def _require_text(value: Optional[str], name: str, command: str) -> str:
        if value is None or value == "":
            raise ArgumentError(
                f"A {name} is required by the {command} command",
                details={"command": command, "argument": name},
            )
        if "\r" in value or "\n" in value:
            raise ArgumentError(
                f"The {name} must not contain line breaks",
                details={"command": command, "argument": name},
            )
        return value

    @staticmethod
    def _resolve_mechanism(mechanism: Union[AuthMechanism, str]) -> AuthMechanism:
        if isinstance(mechanism, AuthMechanism):
            return mechanism
        if isinstance(mechanism, str):
            try:
                return AuthMechanism(mechanism.strip().lower())
            except ValueError:
                pass
        raise ConfigError(
            f"Invalid authentication mechanism: {mechanism!r}",
            details={"mechanism": str(mechanism)},
        )

    @staticmethod
    def _resolve_format(fmt: Union[CapabilityFormat, str]) -> CapabilityFormat:
        if isinstance(fmt, CapabilityFormat):
            return fmt
        if isinstance(fmt, str):
            value = fmt.strip().lower()
            if value == "array":
                return CapabilityFormat.LIST
            try:
                return CapabilityFormat(value)
            except ValueError:
                pass
        raise ConfigError(
            f"Invalid capability format: {fmt!r}", details={"format": str(fmt)}
        )

    ## Connection lifecycle

    @async_log_call
    async def connect(self, config: Optional[Pop3Config] = None) -> None:
        """Open the connection and enter the AUTHORIZATION state.

        Reads the server greeting. With ``SecurityMode.STARTTLS`` the stream
        is upgraded with STLS before returning.

        Args:
            config: Replaces the session's settings for this connection

        Raises:
            ProtocolStateError: If the session is already connected
            TransportError: If the connection or TLS negotiation fails
            ProtocolError: If the greeting or STLS reply is negative
            CapabilityError: If STARTTLS is requested but STLS is not offered
        """
        self._validate_state(NOT_CONNECTED_ONLY, "CONNECT")

        if config is not None:
            self.config = config
        cfg = self.config

        if self._owns_transport:
            ssl_context = None
            if cfg.security_mode != SecurityMode.PLAIN:
                ssl_context = create_ssl_context(cfg.verify_certificates)
            self._transport = Pop3Transport(
                encoding=cfg.encoding,
                ssl_context=ssl_context,
                read_timeout=cfg.timeout,
            )

        await self._transport.connect(
            cfg.host, cfg.port, cfg.security_mode, timeout=cfg.timeout
        )

        try:
            greeting = await self._receive()
            if not ResponseParser.is_positive(greeting):
                raise ProtocolError(
                    f"The server sent a negative greeting: {greeting}",
                    details={"response": greeting, "server": cfg.host},
                )

            self.greeting = ResponseParser.strip_status(greeting)
            self._set_state(SessionState.AUTHORIZATION)

            if cfg.security_mode == SecurityMode.STARTTLS:
                await self.starttls()

        except Exception:
            await self._teardown()
            raise

        logger.info(
            "POP3 session opened",
            extra={
                "server": cfg.host,
                "port": cfg.port,
                "security_mode": cfg.security_mode.value,
            },
        )

    async def starttls(self) -> bool:
        """Upgrade the connection to TLS with the STLS command.

        Raises:
            ProtocolStateError: Outside AUTHORIZATION, or already encrypted
            CapabilityError: If the server does not offer STLS
            ProtocolError: If the server rejects STLS
            TLSHandshakeError: If the handshake fails
        """
        self._validate_state(AUTHORIZATION_ONLY, Pop3Commands.STLS)

        transport = self._require_transport()
        if transport.is_encrypted():
            raise ProtocolStateError(
                "The connection is already encrypted",
                details={"command": Pop3Commands.STLS, "state": self._state.name},
            )

        await self._require_capability(Capabilities.STLS, Pop3Commands.STLS)

        response = await self._exchange(Pop3Commands.STLS)
        self._check_positive(response, Pop3Commands.STLS)

        await transport.start_tls()

        # Capabilities learned over plaintext are not trusted after the upgrade
        self._capabilities = []
        return True

    async def _teardown(self) -> None:
        if self._transport is not None:
            await self._transport.close()
        self._capabilities = []
        self._set_state(SessionState.NOT_CONNECTED)

    async def close(self) -> None:
        """Drop the connection without QUIT; pending deletions are discarded."""
        await self._teardown()

    async def __aenter__(self) -> "Pop3Session":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._state in AUTHORIZATION_OR_TRANSACTION and self.is_connected():
            try:
                await self.quit()
            except PopKitError as e:
                if exc_type is None:
                    raise
                logger.warning(f"QUIT failed while handling another error: {e}")
        else:
            await self.close()

    ## Authorization

    @async_log_call
    async def authenticate(
        self,
        username: str,
        password: str,
        mechanism: Union[AuthMechanism, str, None] = None,
    ) -> bool:
        """Authenticate and enter the TRANSACTION state.

        Credentials are used for this call only and never kept on the session.

        Args:
            username: Mailbox user
            password: Mailbox password
            mechanism: ``plain`` (USER/PASS) or ``login`` (AUTH LOGIN);
                defaults to the configured mechanism

        Raises:
            ProtocolStateError: Outside AUTHORIZATION
            ConfigError: For an unknown mechanism, before anything is sent
            ArgumentError: If username or password is missing
            AuthError: If the server rejects the credentials
        """
        self._validate_state(AUTHORIZATION_ONLY, "AUTHENTICATE")

        resolved = self._resolve_mechanism(
            mechanism if mechanism is not None else self.config.auth_mechanism
        )
        username = self._require_text(username, "username", "AUTHENTICATE")
        password = self._require_text(password, "password", "AUTHENTICATE")

        if resolved is AuthMechanism.LOGIN:
            await self._auth_login(username, password)
        else:
            await self._auth_plain(username, password)

        self._set_state(SessionState.TRANSACTION)
        logger.info(
            "POP3 authentication succeeded",
            extra={"username": username, "mechanism": resolved.value},
        )
        return True

    async def _auth_plain(self, username: str, password: str) -> None:
        response = await self._exchange(f"{Pop3Commands.USER} {username}")
        if not ResponseParser.is_positive(response):
            raise AuthError(
                f"The username is not valid: {response}",
                details={"reason": "invalid username", "response": response},
            )

        response = await self._exchange(
            f"{Pop3Commands.PASS} {password}", display=f"{Pop3Commands.PASS} {_REDACTED}"
        )
        if not ResponseParser.is_positive(response):
            raise AuthError(
                f"The password is not valid: {response}",
                details={"reason": "invalid password", "response": response},
            )

    async def _auth_login(self, username: str, password: str) -> None:
        encoding = self.config.encoding

        await self._send(f"{Pop3Commands.AUTH} LOGIN")
        response = await self._receive(raw=True)
        if not ResponseParser.is_continuation(response):
            raise AuthError(
                f"The server rejected AUTH LOGIN: {response.rstrip()}",
                details={"reason": "mechanism rejected", "response": response.rstrip()},
            )

        await self._send(
            base64.b64encode(username.encode(encoding)).decode("ascii"),
            display=_REDACTED,
        )
        response = await self._receive(raw=True)
        if not ResponseParser.is_continuation(response):
            raise AuthError(
                f"The username is not valid: {response.rstrip()}",
                details={"reason": "invalid username", "response": response.rstrip()},
            )

        await self._send(
            base64.b64encode(password.encode(encoding)).decode("ascii"),
            display=_REDACTED,
        )
        response = await self._receive(raw=True)
        if not ResponseParser.is_positive(response):
            raise AuthError(
                f"The password is not valid: {response.rstrip()}",
                details={"reason": "invalid password", "response": response.rstrip()},
            )

    ## Capabilities

    async def get_server_capabilities(
        self, format: Union[CapabilityFormat, str] = CapabilityFormat.LIST
    ) -> Union[List[str], str]:
        """Fetch the server capability list with CAPA.

        The stored list is replaced on every call, never appended to.

        Args:
            format: ``list`` for the capability lines, ``raw`` for the lines
                joined with CRLF

        Raises:
            ProtocolStateError: Outside AUTHORIZATION and TRANSACTION
            ConfigError: For an unknown format
            ProtocolError: If the server rejects CAPA
        """
        self._validate_state(AUTHORIZATION_OR_TRANSACTION, Pop3Commands.CAPA)
        fmt = self._resolve_format(format)

        response = await self._exchange(Pop3Commands.CAPA)
        self._check_positive(response, Pop3Commands.CAPA)

        self._capabilities = []
        for line in await self._read_block():
            capability = line.rstrip()
            if capability and capability not in self._capabilities:
                self._capabilities.append(capability)

        logger.debug(
            "Server capabilities loaded", extra={"capabilities": self._capabilities}
        )

        if fmt is CapabilityFormat.RAW:
            return CRLF.join(self._capabilities)
        return self.capabilities

    ## Transaction commands

    async def status(self) -> MaildropStatus:
        """Issue STAT and return the drop listing."""
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.STAT)

        response = await self._exchange(Pop3Commands.STAT)
        self._check_positive(response, Pop3Commands.STAT)

        count, size = ResponseParser.parse_status(response)
        return MaildropStatus(message_count=count, mailbox_size_bytes=size)

    async def list_messages(
        self, message_id: Optional[int] = None
    ) -> Union[Dict[int, int], ScanListing]:
        """Issue LIST and return scan listings.

        Args:
            message_id: Restrict the listing to one message

        Returns:
            ScanListing for one message, otherwise a mapping of message
            number to size in server order
        """
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.LIST)

        if message_id is not None:
            number = self._require_number(
                message_id, "message number", Pop3Commands.LIST, minimum=1
            )
            response = await self._exchange(f"{Pop3Commands.LIST} {number}")
            self._check_positive(response, Pop3Commands.LIST)
            msg_id, size = ResponseParser.parse_scan_line(response)
            return ScanListing(message_id=msg_id, size=size)

        response = await self._exchange(Pop3Commands.LIST)
        self._check_positive(response, Pop3Commands.LIST)

        listing: Dict[int, int] = {}
        for line in await self._read_block():
            msg_id, size = ResponseParser.parse_scan_line(line)
            listing[msg_id] = size
        return listing

    async def _fetch_block(self, command: str, line: str) -> str:
        response = await self._exchange(line)
        self._check_positive(response, command)
        return "".join(await self._read_block())

    async def retrieve(self, message_id: int) -> str:
        """Issue RETR and return the message exactly as received.

        Lines keep their original terminators. Undecodable bytes are kept
        as surrogate escapes, so ``text.encode(encoding, "surrogateescape")``
        returns the original octets.
        """
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.RETR)
        number = self._require_number(
            message_id, "message number", Pop3Commands.RETR, minimum=1
        )
        return await self._fetch_block(Pop3Commands.RETR, f"{Pop3Commands.RETR} {number}")

    async def delete(self, message_id: int) -> bool:
        """Mark a message for deletion; the server removes it at QUIT."""
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.DELE)
        number = self._require_number(
            message_id, "message number", Pop3Commands.DELE, minimum=1
        )

        response = await self._exchange(f"{Pop3Commands.DELE} {number}")
        self._check_positive(response, Pop3Commands.DELE)
        return True

    async def reset(self) -> bool:
        """Issue RSET, unmarking every message marked for deletion."""
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.RSET)

        response = await self._exchange(Pop3Commands.RSET)
        self._check_positive(response, Pop3Commands.RSET)
        return True

    async def noop(self) -> bool:
        """Issue NOOP to keep the connection alive."""
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.NOOP)

        response = await self._exchange(Pop3Commands.NOOP)
        self._check_positive(response, Pop3Commands.NOOP)
        return True

    async def top(self, message_id: int, lines: int) -> str:
        """Issue TOP and return the headers plus ``lines`` body lines.

        Raises:
            ArgumentError: If message_id or lines is missing
            CapabilityError: If the server does not offer TOP
        """
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.TOP)
        number = self._require_number(
            message_id, "message number", Pop3Commands.TOP, minimum=1
        )
        count = self._require_number(
            lines, "number of lines", Pop3Commands.TOP, minimum=0
        )
        await self._require_capability(Capabilities.TOP, Pop3Commands.TOP)

        return await self._fetch_block(
            Pop3Commands.TOP, f"{Pop3Commands.TOP} {number} {count}"
        )

    async def uidl(
        self, message_id: Optional[int] = None
    ) -> Union[Dict[int, str], UniqueIdListing]:
        """Issue UIDL and return unique-id listings.

        Raises:
            CapabilityError: If the server does not offer UIDL
        """
        self._validate_state(TRANSACTION_ONLY, Pop3Commands.UIDL)
        number = None
        if message_id is not None:
            number = self._require_number(
                message_id, "message number", Pop3Commands.UIDL, minimum=1
            )
        await self._require_capability(Capabilities.UIDL, Pop3Commands.UIDL)

        if number is not None:
            response = await self._exchange(f"{Pop3Commands.UIDL} {number}")
            self._check_positive(response, Pop3Commands.UIDL)
            msg_id, uid = ResponseParser.parse_unique_id_line(response)
            return UniqueIdListing(message_id=msg_id, uid=uid)

        response = await self._exchange(Pop3Commands.UIDL)
        self._check_positive(response, Pop3Commands.UIDL)

        listing: Dict[int, str] = {}
        for line in await self._read_block():
            msg_id, uid = ResponseParser.parse_unique_id_line(line)
            listing[msg_id] = uid
        return listing

    ## Update

    @async_log_call
    async def quit(self) -> bool:
        """Issue QUIT, entering UPDATE, then close the connection.

        The transport is closed and the state returns to NOT_CONNECTED
        whatever the server replies.

        Raises:
            ProtocolStateError: Outside AUTHORIZATION and TRANSACTION
            ProtocolError: If the server answered negatively (after cleanup)
        """
        self._validate_state(AUTHORIZATION_OR_TRANSACTION, Pop3Commands.QUIT)
        self._set_state(SessionState.UPDATE)

        try:
            response = await self._exchange(Pop3Commands.QUIT)
        finally:
            await self._teardown()

        self._check_positive(response, Pop3Commands.QUIT)
        logger.info("POP3 session closed", extra={"server": self.config.host})
        return True
