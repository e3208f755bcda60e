"""POP3 response classification and multiline framing."""

from typing import List, Protocol, Tuple

from popkit.utils.errors import ProtocolError

from .constants import Pop3Response


class LineSource(Protocol):
    """Anything that can hand out server lines, such as Pop3Transport."""

    async def receive_line(self, raw: bool = False) -> str: ...


class ResponseParser:
    """Stateless rules for reading POP3 server responses."""

    @staticmethod
    def is_positive(line: str) -> bool:
        """True if the line carries the ``+OK`` status indicator."""
        return line.startswith(Pop3Response.OK)

    @staticmethod
    def is_negative(line: str) -> bool:
        """True if the line carries the ``-ERR`` status indicator."""
        return line.startswith(Pop3Response.ERR)

    @staticmethod
    def is_continuation(line: str) -> bool:
        """True for a SASL continuation prompt (``+ ...``), not a ``+OK`` status."""
        return line.startswith(Pop3Response.CONTINUATION) and not line.startswith(
            Pop3Response.OK
        )

    @staticmethod
    def is_terminator(line: str) -> bool:
        """True only for a line that is exactly the termination octet.

        Body lines that merely start with a period, such as ``.signature``,
        are content.
        """
        return line.rstrip("\r\n") == Pop3Response.TERMINATION_OCTET

    @staticmethod
    def strip_status(line: str) -> str:
        """Return the text following the status indicator."""
        text = line.rstrip("\r\n")
        for marker in (Pop3Response.OK, Pop3Response.ERR):
            if text.startswith(marker):
                return text[len(marker) :].strip()
        return text.strip()

    @classmethod
    async def read_multiline(cls, source: LineSource) -> List[str]:
        """Read the lines of a multiline block up to the terminator.

        The status line must already have been consumed. Lines are returned
        as received, terminators included; the terminator line is dropped.
        """
        lines: List[str] = []
        while True:
            line = await source.receive_line(raw=True)
            if cls.is_terminator(line):
                return lines
            lines.append(line)

    @staticmethod
    def _split_pair(text: str, what: str) -> Tuple[int, str]:
        parts = text.split()
        if len(parts) < 2:
            raise ProtocolError(
                f"Malformed {what}", details={"response": text.rstrip("\r\n")}
            )
        try:
            return int(parts[0]), parts[1]
        except ValueError as e:
            raise ProtocolError(
                f"Malformed {what}", details={"response": text.rstrip("\r\n")}
            ) from e

    @classmethod
    def _split_numbers(cls, text: str, what: str) -> Tuple[int, int]:
        first, second = cls._split_pair(text, what)
        try:
            value = int(second)
        except ValueError as e:
            raise ProtocolError(
                f"Malformed {what}", details={"response": text.rstrip("\r\n")}
            ) from e
        if first < 0 or value < 0:
            raise ProtocolError(
                f"Malformed {what}", details={"response": text.rstrip("\r\n")}
            )
        return first, value

    @classmethod
    def parse_status(cls, line: str) -> Tuple[int, int]:
        """Parse ``+OK <count> <octets>`` into (count, octets)."""
        return cls._split_numbers(cls.strip_status(line), "drop listing")

    @classmethod
    def parse_scan_line(cls, line: str) -> Tuple[int, int]:
        """Parse ``<id> <size>``, with or without a leading ``+OK``."""
        return cls._split_numbers(cls.strip_status(line), "scan listing")

    @classmethod
    def parse_unique_id_line(cls, line: str) -> Tuple[int, str]:
        """Parse ``<id> <uid>``, with or without a leading ``+OK``."""
        return cls._split_pair(cls.strip_status(line), "unique-id listing")
