# =============================================================================
# IMAP Response Parser
# =============================================================================
# Pure functions over response text that the protocol engine already
# collected. Nothing here does I/O or raises for missing data: absence is
# reported to the caller, who decides how bad it is.
#
# All scanning is line-oriented with explicit anchors (start of line, "* "
# prefix, field name before the first colon) rather than whole-buffer
# pattern matching. FETCH content is cut by the literal size the server
# announced, never by looking for the closing parenthesis.
# =============================================================================

import re
from dataclasses import dataclass, field

# Header fields kept in headers output, in the order they are written
CANONICAL_HEADERS = ("Date", "From", "To", "Subject", "Message-Id")

_UIDVALIDITY_RE = re.compile(r"\bUIDVALIDITY (\d+)", re.IGNORECASE)
_FETCH_RE = re.compile(r"^\* \d+ FETCH\b", re.IGNORECASE)
_FETCH_LINE_RE = re.compile(rb"^\* \d+ FETCH\b", re.IGNORECASE)
_LITERAL_RE = re.compile(rb"\{(\d+)\+?\}\r?\n$")
# BODY[...] or BODY[...]<origin> right before its literal, or its inline value
_BODY_LITERAL_RE = re.compile(rb"BODY\[[^\]]*\](?:<\d+>)?\s+\{(\d+)\+?\}\r?\n$", re.IGNORECASE)
_BODY_INLINE_RE = re.compile(rb'BODY\[[^\]]*\](?:<\d+>)?\s+(?:"((?:[^"\\]|\\.)*)"|(NIL)\b)', re.IGNORECASE)


@dataclass
class ParsedUIDs:
    """
    Result of parsing a UID SEARCH response.

    Attributes:
        uids: Identifiers in the order the server reported them.
        found: False if the response had no "* SEARCH" line at all.
    """
    uids: list[int] = field(default_factory=list)
    found: bool = True


def _split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").split("\n")


def parse_uidvalidity(text: str) -> int | None:
    """
    Find the UIDVALIDITY value in a SELECT response.

    Only untagged lines are looked at, e.g.
        * OK [UIDVALIDITY 3857529045] UIDs valid

    Returns:
        The value, or None if the response does not carry one.
    """
    for line in _split_lines(text):
        if not line.startswith("* "):
            continue
        match = _UIDVALIDITY_RE.search(line)
        if match:
            return int(match.group(1))
    return None


def parse_search_uids(text: str) -> ParsedUIDs:
    """
    Parse identifiers from a UID SEARCH response.

        * SEARCH 2 84 882
        a004 OK UID SEARCH completed

    Integers are read until the end of the "* SEARCH" line; any token that is
    not a number ends the list (e.g. a trailing "(MODSEQ ...)").
    """
    for line in _split_lines(text):
        words = line.split()
        if len(words) < 2 or words[0] != "*" or words[1].upper() != "SEARCH":
            continue
        uids = []
        for word in words[2:]:
            if not word.isdigit():
                break
            uids.append(int(word))
        return ParsedUIDs(uids=uids)
    return ParsedUIDs(uids=[], found=False)


def is_fetch_payload(text: str) -> bool:
    """True if the response holds at least one "* n FETCH" line."""
    return any(_FETCH_RE.match(line) for line in _split_lines(text))


def parse_inline_value(fetch_line: str) -> str | None:
    """
    Value of a BODY[...] item the server sent inline instead of as a literal:

        * 3 FETCH (UID 12 BODY[1] "short body")
        * 3 FETCH (UID 12 BODY[1] NIL)

    Returns:
        The unquoted string, "" for NIL, or None if the line carries neither.
    """
    match = _BODY_INLINE_RE.search(fetch_line.encode("utf-8"))
    if not match:
        return None
    if match.group(2):
        return ""
    return re.sub(rb"\\(.)", rb"\1", match.group(1)).decode("utf-8", errors="replace")


def extract_fetch_part(response: bytes | str) -> str | None:
    """
    Content of the BODY[...] item in a UID FETCH response.

    The response is walked segment by segment the way the protocol engine
    frames it: a segment ending in "{N}" is followed by exactly N literal
    bytes. Untagged lines other than the FETCH carrying the item (EXISTS,
    EXPUNGE, a FLAGS-only FETCH) are passed over, and whatever follows the
    item's literal (e.g. " FLAGS (\\Seen))") is not part of the content.

    Returns:
        The literal or inline value, "" for NIL, or None if no FETCH in the
        response carries the item.
    """
    raw = response.encode("utf-8") if isinstance(response, str) else bytes(response)

    pos = 0
    in_fetch = False
    while pos < len(raw):
        end = raw.find(b"\n", pos)
        end = len(raw) if end == -1 else end + 1
        segment = raw[pos:end]

        # A segment starts a new line unless it continues after a literal
        if not in_fetch:
            in_fetch = bool(_FETCH_LINE_RE.match(segment))

        literal = _LITERAL_RE.search(segment)
        if in_fetch:
            item = _BODY_LITERAL_RE.search(segment)
            if item:
                size = int(item.group(1))
                return raw[end:end + size].decode("utf-8", errors="replace")
            inline = parse_inline_value(segment.decode("utf-8", errors="replace"))
            if inline is not None:
                return inline

        if literal:
            end += int(literal.group(1))
        else:
            in_fetch = False
        pos = end

    return None


def select_canonical_headers(header_block: str) -> str:
    """
    Re-emit Date, From, To, Subject and Message-Id in that order.

    Field names match case-insensitively; folded continuation lines stay with
    their field. Fields that are absent are left out and every other field
    is dropped. Each emitted line ends with CRLF.
    """
    found: dict[str, list[str]] = {}
    wanted = {name.lower(): name for name in CANONICAL_HEADERS}
    current: list[str] | None = None

    for line in _split_lines(header_block):
        line = line.rstrip("\r")
        if not line:
            current = None
            continue
        if line[0] in " \t":
            if current is not None:
                current.append(line)
            continue
        name, colon, _ = line.partition(":")
        key = name.strip().lower()
        if colon and key in wanted and wanted[key] not in found:
            current = [line]
            found[wanted[key]] = current
        else:
            current = None

    return "".join(
        "\r\n".join(found[name]) + "\r\n"
        for name in CANONICAL_HEADERS
        if name in found
    )


def normalize_message_part(response: bytes | str, is_header: bool) -> str | None:
    """
    Turn a raw UID FETCH response into the text saved to disk.

    Args:
        response: Full response, from the first untagged line to the tagged
                  completion line. Raw bytes keep literal sizes exact.
        is_header: True for a header block; only the canonical header fields
                   are then kept, in canonical order.

    Returns:
        The normalized header block or body text, or None if the response
        carries no BODY[...] data.
    """
    content = extract_fetch_part(response)
    if content is None or not is_header:
        return content
    return select_canonical_headers(content)
