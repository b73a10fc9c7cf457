# =============================================================================
# IMAP Protocol Engine
# =============================================================================
# Turns commands into wire bytes and collects server output until the tagged
# completion line for that command shows up.
#
# Wire format:
#   C: a001 LOGIN user pass\r\n
#   S: * CAPABILITY ...\r\n          <- untagged payload
#   S: a001 OK LOGIN completed\r\n   <- tagged completion (OK / NO / BAD)
#
# Framing rules:
#   - A response may span any number of reads; nothing is trusted to arrive
#     in a single read.
#   - Only a complete line that *starts* with the tag counts as completion.
#   - Literals ("{123}\r\n" followed by 123 raw bytes) are skipped byte-exactly
#     so message content can never be mistaken for a completion line.
#   - Each wait is bounded by a wall-clock timeout and by a number of
#     consecutive empty reads.
#
# Tags are owned by the engine instance: two sessions never share a counter.
# =============================================================================

import logging
import re
import time
from dataclasses import dataclass

from imapcl.imap.errors import ProtocolTimeout, ServerNotReady, TransportError
from imapcl.imap.transport import Transport

logger = logging.getLogger(__name__)

STATUS_WORDS = ("OK", "NO", "BAD")

# "{123}" or "{123+}" at the very end of a line announces a literal
_LITERAL_RE = re.compile(rb"\{(\d+)\+?\}\r?\n$")


@dataclass
class TaggedResponse:
    """
    Everything the server sent for one command.

    Attributes:
        tag: Tag of the command this response completes.
        status: "OK", "NO" or "BAD".
        message: Text after the status word on the completion line.
        raw: All bytes up to and including the completion line.
    """
    tag: str
    status: str
    message: str
    raw: bytes

    @property
    def ok(self) -> bool:
        return self.status == "OK"

    @property
    def text(self) -> str:
        """The whole response decoded as UTF-8 (invalid bytes replaced)."""
        return self.raw.decode("utf-8", errors="replace")

    @property
    def lines(self) -> list[str]:
        return self.text.splitlines()

    @property
    def untagged(self) -> list[str]:
        """Lines starting with "* "."""
        return [line for line in self.lines if line.startswith("* ")]

    def __str__(self) -> str:
        return f"{self.tag} {self.status} {self.message}".rstrip()


class ProtocolEngine:
    """
    Tagged command/response engine over a Transport.

    Strictly one outstanding command: send_command() is always followed by
    await_completion() for the same tag before the next command goes out.

    Usage:
        >>> engine = ProtocolEngine(transport)
        >>> engine.read_greeting()
        >>> response = engine.execute("SELECT", "INBOX")
        >>> response.ok
        True

    Attributes:
        transport: The connection this engine reads and writes.
        timeout: Wall-clock seconds allowed per await_completion() call.
        max_idle_reads: Consecutive empty reads (or writes) tolerated.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        tag_prefix: str = "a",
        tag_width: int = 3,
        timeout: float = 60.0,
        max_idle_reads: int = 20,
        read_size: int = 16384,
    ) -> None:
        self.transport = transport
        self.timeout = timeout
        self.max_idle_reads = max_idle_reads
        self._tag_prefix = tag_prefix
        self._tag_width = tag_width
        self._tag_counter = 0
        self._read_size = read_size

        # Accumulated, not yet consumed server output
        self._buffer = bytearray()
        # Offset of the first byte not yet scanned for line endings
        self._scan_pos = 0
        # Bytes of an announced literal still to be skipped
        self._literal_remaining = 0

    # =========================================================================
    # Tags
    # =========================================================================

    def next_tag(self) -> str:
        """Return the next tag: a001, a002, ..."""
        self._tag_counter += 1
        return f"{self._tag_prefix}{self._tag_counter:0{self._tag_width}d}"

    # =========================================================================
    # Sending
    # =========================================================================

    def send_command(self, verb: str, args: str = "") -> str:
        """
        Frame and send one command.

        Args:
            verb: Command name, e.g. "SELECT" or "UID FETCH".
            args: Argument string, already quoted where needed.

        Returns:
            The tag assigned to the command.

        Raises:
            TransportError: If the command could not be written completely.
        """
        tag = self.next_tag()
        line = f"{tag} {verb} {args}" if args else f"{tag} {verb}"

        if verb.upper() == "LOGIN":
            logger.debug(f"C: {tag} LOGIN ****")
        else:
            logger.debug(f"C: {line}")

        self._write_all(f"{line}\r\n".encode("utf-8"))
        return tag

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        idle = 0
        while view:
            sent = self.transport.write(view)
            if sent <= 0:
                idle += 1
                if idle > self.max_idle_reads:
                    raise TransportError(
                        f"Write stalled after {len(data) - len(view)} of {len(data)} bytes"
                    )
                continue
            idle = 0
            view = view[sent:]

    # =========================================================================
    # Receiving
    # =========================================================================

    def await_completion(self, tag: str) -> TaggedResponse:
        """
        Read until the completion line for `tag` arrives.

        NO and BAD completions are returned like OK; the caller decides what
        they mean for the command it sent.

        Raises:
            ProtocolTimeout: If no completion line arrives within the bound.
            TransportError: If the connection fails while reading.
        """
        tag_prefix = f"{tag} ".encode("ascii")
        deadline = time.monotonic() + self.timeout
        idle = 0

        while True:
            for start, end in self._scan_lines():
                line = bytes(self._buffer[start:end])
                if not line.startswith(tag_prefix):
                    continue
                status, message = _split_status(line[len(tag_prefix):])
                if status is None:
                    continue
                return self._take_response(tag, status, message, end)

            if time.monotonic() >= deadline:
                raise ProtocolTimeout(
                    f"No completion for {tag} within {self.timeout:.0f}s"
                )
            if self._fill() == 0:
                idle += 1
                if idle >= self.max_idle_reads:
                    raise ProtocolTimeout(
                        f"No completion for {tag} after {idle} empty reads"
                    )
            else:
                idle = 0

    def read_greeting(self) -> str:
        """
        Read the untagged server greeting.

        Returns:
            The greeting line without its line terminator.

        Raises:
            ServerNotReady: If the greeting is not "* OK" / "* PREAUTH",
                            or never arrives.
        """
        deadline = time.monotonic() + self.timeout
        idle = 0

        while True:
            for start, end in self._scan_lines():
                line = bytes(self._buffer[start:end]).decode("utf-8", errors="replace")
                self._consume(end)
                greeting = line.rstrip("\r\n")
                logger.debug(f"S: {greeting}")
                words = greeting.split(None, 2)
                if len(words) >= 2 and words[0] == "*" and words[1].upper() in ("OK", "PREAUTH"):
                    return greeting
                raise ServerNotReady(f"Server is not ready: {greeting!r}")

            if time.monotonic() >= deadline or idle >= self.max_idle_reads:
                raise ServerNotReady("No greeting received from server")
            try:
                got = self._fill()
            except TransportError as e:
                raise ServerNotReady(f"No greeting received from server: {e}") from e
            idle = idle + 1 if got == 0 else 0

    def execute(self, verb: str, args: str = "") -> TaggedResponse:
        """Send a command and wait for its completion."""
        tag = self.send_command(verb, args)
        response = self.await_completion(tag)
        logger.debug(f"S: {response}")
        return response

    # -------------------------------------------------------------------------
    # Buffer management
    # -------------------------------------------------------------------------

    def _fill(self) -> int:
        chunk = bytearray(self._read_size)
        count = self.transport.read(chunk)
        if count > 0:
            self._buffer += chunk[:count]
        return count

    def _scan_lines(self):
        """
        Yield (start, end) offsets of complete, not yet scanned lines.

        Literal bytes are skipped and never yielded as lines. Scanning state
        survives between calls, so bytes are examined only once.
        """
        buf = self._buffer
        while True:
            if self._literal_remaining:
                available = len(buf) - self._scan_pos
                if available < self._literal_remaining:
                    self._scan_pos = len(buf)
                    self._literal_remaining -= available
                    return
                self._scan_pos += self._literal_remaining
                self._literal_remaining = 0

            newline = buf.find(b"\n", self._scan_pos)
            if newline == -1:
                return
            start, end = self._scan_pos, newline + 1
            self._scan_pos = end

            literal = _LITERAL_RE.search(buf, start, end)
            if literal:
                self._literal_remaining = int(literal.group(1))
                continue
            yield start, end

    def _consume(self, end: int) -> bytes:
        data = bytes(self._buffer[:end])
        del self._buffer[:end]
        self._scan_pos = 0
        self._literal_remaining = 0
        return data

    def _take_response(self, tag: str, status: str, message: str, end: int) -> TaggedResponse:
        raw = self._consume(end)
        if self._buffer:
            logger.debug(f"{len(self._buffer)} bytes buffered past completion of {tag}")
        return TaggedResponse(tag=tag, status=status, message=message, raw=raw)


def _split_status(rest: bytes) -> tuple[str | None, str]:
    """Split "OK text\r\n" into ("OK", "text"); (None, "") if not a status."""
    text = rest.decode("utf-8", errors="replace").rstrip("\r\n")
    word, _, message = text.partition(" ")
    word = word.upper()
    if word not in STATUS_WORDS:
        return None, ""
    return word, message
