import re
import secrets
import string
import time

SLUG_PATTERN = r"^[a-zA-Z0-9_-]+$"
SLUG_RE = re.compile(SLUG_PATTERN)

_ALPHABET = string.digits + string.ascii_lowercase
_TIME_WIDTH = 9  # base36 milliseconds stay 9 chars wide until the year 5188


def _base36(value: int) -> str:
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = _ALPHABET[rem] + out
    return out or "0"


def generate_namespace(random_length: int = 15) -> str:
    """Return an opaque, URL-safe token that sorts by creation time.

    A leading letter keeps the token from ever looking like a number.
    """
    millis = int(time.time() * 1000)
    stamp = _base36(millis).rjust(_TIME_WIDTH, "0")
    tail = "".join(secrets.choice(_ALPHABET) for _ in range(random_length))
    return f"n{stamp}{tail}"


def is_valid_slug(slug: str) -> bool:
    # fullmatch: "$" alone would accept a trailing newline
    return bool(slug) and SLUG_RE.fullmatch(slug) is not None
