"""
Message text recovery

Messages keep their body either in the plain ``text`` column or, for most
rows written by recent macOS/iOS releases, only inside ``attributedBody``:
an NSAttributedString serialized with Apple's typedstream archiver.

This module does not parse typedstream. It scans the blob for printable
ASCII runs and picks the one most likely to be the user's message. That is
best-effort: text split across non-contiguous runs, or shorter than
unrelated archive tags, is not recoverable this way. Callers keep the raw
blob around (see ``ProcessedMessage.attributed_body``) so such rows can be
inspected offline with ``printable_runs``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from .errors import DecodeFailure

logger = logging.getLogger(__name__)

RICH_TEXT_PLACEHOLDER = "[Rich Text Message]"
ATTACHMENT_PLACEHOLDER = "[Attachment]"
EMPTY_PLACEHOLDER = "[Empty Message]"

PLACEHOLDERS = frozenset({RICH_TEXT_PLACEHOLDER, ATTACHMENT_PLACEHOLDER, EMPTY_PLACEHOLDER})

# Archive metadata, never user content
NOISE_TOKENS = ("NSString", "NSMutable", "CFString", "bplist", "__")

MIN_RUN_LENGTH = 4

_PRINTABLE_RUN = re.compile(rb"[\x20-\x7e]{%d,}" % MIN_RUN_LENGTH)
_NSSTRING_QUOTED = re.compile(r'NSString[^"]*"([^"]+)"')
_PLIST_STRING = re.compile(r"<string>([^<]+)</string>")


@dataclass
class PrintableRun:
    """A run of printable ASCII found in a blob"""
    offset: int
    text: str
    is_noise: bool


def _as_bytes(blob: Any) -> bytes:
    if isinstance(blob, bytes):
        return blob
    if isinstance(blob, (bytearray, memoryview)):
        return bytes(blob)
    if isinstance(blob, str):
        # One byte per character, the way a bridged binary string arrives
        return blob.encode("latin-1", errors="replace")
    raise TypeError(f"Unsupported attributedBody type: {type(blob).__name__}")


def _is_noise(run: str) -> bool:
    return any(token in run for token in NOISE_TOKENS)


def printable_runs(blob: Any) -> List[PrintableRun]:
    """List every printable run in the blob with its offset and noise classification"""
    data = _as_bytes(blob)
    runs = []
    for match in _PRINTABLE_RUN.finditer(data):
        text = match.group().decode("ascii")
        runs.append(PrintableRun(offset=match.start(), text=text, is_noise=_is_noise(text)))
    return runs


def extract_rich_text(blob: Any) -> str:
    """
    Pull readable text out of an attributedBody blob.

    Strategy, in order:

    1. Longest printable run that carries no archive noise token, if it is
       longer than four characters once stripped
    2. A quoted string following an ``NSString`` marker
    3. An XML ``<string>`` fragment (legacy plist encoding)

    Args:
        blob: Raw attributedBody column value

    Returns:
        Recovered text

    Raises:
        DecodeFailure: If the blob is empty or none of the strategies match
    """
    if blob is None:
        raise DecodeFailure("No attributedBody to decode")
    data = _as_bytes(blob)
    if not data:
        raise DecodeFailure("Empty attributedBody")

    best = None
    for match in _PRINTABLE_RUN.finditer(data):
        run = match.group().decode("ascii")
        if _is_noise(run) or len(run) <= MIN_RUN_LENGTH:
            continue
        # Later runs win ties
        if best is None or len(run) >= len(best):
            best = run

    if best is not None and len(best.strip()) > MIN_RUN_LENGTH:
        return best.strip()

    decoded = data.decode("latin-1")
    for pattern in (_NSSTRING_QUOTED, _PLIST_STRING):
        found = pattern.search(decoded)
        if found:
            return found.group(1)

    raise DecodeFailure("No readable text in attributedBody")


def recover_text(text: Optional[str], attributed_body: Any) -> str:
    """
    Return the message body from plain text or the rich-text blob.

    Raises:
        DecodeFailure: If neither source yields text
    """
    if isinstance(text, str) and text.strip():
        return text.strip()

    if attributed_body is None:
        raise DecodeFailure("Message has neither text nor attributedBody")

    try:
        return extract_rich_text(attributed_body)
    except (TypeError, ValueError, UnicodeError) as exc:
        raise DecodeFailure(f"attributedBody could not be scanned: {exc}") from exc


def decode_message_text(text: Optional[str], attributed_body: Any, has_attachments: bool = False) -> str:
    """Display text for a message, falling back to a placeholder. Never raises."""
    if isinstance(text, str) and text.strip():
        return text.strip()

    if attributed_body:
        try:
            return recover_text(None, attributed_body)
        except DecodeFailure as exc:
            logger.debug("attributedBody decode failed: %s", exc)
            return RICH_TEXT_PLACEHOLDER

    if has_attachments:
        return ATTACHMENT_PLACEHOLDER

    return EMPTY_PLACEHOLDER


def is_placeholder(text: Optional[str]) -> bool:
    return text in PLACEHOLDERS
