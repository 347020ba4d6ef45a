"""Nickname and message validation.

Pure functions with no state. Both normalizers return the trimmed value
on success and raise the matching ``ChatError`` subclass on failure.
"""
import re

from .errors import InvalidMessage, InvalidNickname

NICKNAME_MIN_LENGTH = 1
NICKNAME_MAX_LENGTH = 20
MESSAGE_MIN_LENGTH = 1
MESSAGE_MAX_LENGTH = 500

# ASCII alphanumerics, Hiragana, Katakana, CJK unified + extension A,
# space, hyphen, underscore.
_NICKNAME_PATTERN = re.compile(
    r"^[a-zA-Z0-9\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF\u3400-\u4DBF \-_]+$"
)

# Control characters except tab (0x09), LF (0x0A) and CR (0x0D)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
}


def normalize_nickname(raw: object, max_length: int = NICKNAME_MAX_LENGTH) -> str:
    """Trim and validate a nickname.

    Args:
        raw: Nickname as received from the client.
        max_length: Maximum allowed length after trimming.

    Returns:
        The trimmed nickname.

    Raises:
        InvalidNickname: If the nickname is not a string, has the wrong
            length, contains disallowed characters, or has double spaces.
    """
    if not isinstance(raw, str):
        raise InvalidNickname()

    trimmed = raw.strip()
    if not NICKNAME_MIN_LENGTH <= len(trimmed) <= max_length:
        raise InvalidNickname(
            f"Nickname must be {NICKNAME_MIN_LENGTH}-{max_length} characters"
        )

    if not _NICKNAME_PATTERN.match(trimmed):
        raise InvalidNickname()

    if "  " in trimmed:
        raise InvalidNickname("Nickname cannot contain consecutive spaces")

    return trimmed


def normalize_message(raw: object, max_length: int = MESSAGE_MAX_LENGTH) -> str:
    """Trim and validate a message body.

    Control characters are checked on the raw input, so a body padded with
    e.g. a NUL byte is rejected even though trimming would not remove it.

    Raises:
        InvalidMessage: On non-string input, bad length or control characters.
    """
    if not isinstance(raw, str):
        raise InvalidMessage()

    if _CONTROL_CHARS.search(raw):
        raise InvalidMessage("Message contains invalid control characters")

    trimmed = raw.strip()
    if not MESSAGE_MIN_LENGTH <= len(trimmed) <= max_length:
        raise InvalidMessage(
            f"Message must be {MESSAGE_MIN_LENGTH}-{max_length} characters"
        )
    return trimmed


def escape_html(text: str) -> str:
    """Escape the five HTML-significant characters."""
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)
