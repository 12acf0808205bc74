"""Short code codec and input normalisation helpers.

Short codes are the base62 rendering of the numeric primary key the database
assigns to a URL record, left padded with the zero symbol to a minimum length.
Nothing in here performs I/O.

Encoding Example
================
::
    id = 125
    125 = 2 * 62 + 1   ->  "21"
    pad to length 6     ->  "000021"

Functions:
    compute_content_hash():  SHA-256 hex digest used as the dedup key.
    encode():  Non-negative integer to padded base62 short code.
    decode():  Inverse of encode() (lenient, see docstring).
    parse_expires_in():  Duration strings such as "24h" or "7d".
    validate_destination_url():  Absolute http/https check.
"""

import datetime
import hashlib
import re
from urllib.parse import urlsplit

import validators

from shorturl.exceptions import ValidationError

__all__ = [
    "BASE62_ALPHABET",
    "compute_content_hash",
    "encode",
    "decode",
    "parse_expires_in",
    "validate_destination_url",
]

BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_BASE = len(BASE62_ALPHABET)
_SYMBOL_VALUES = {symbol: index for index, symbol in enumerate(BASE62_ALPHABET)}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h|d)")
_DURATION_FULL = re.compile(r"(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|ms|s|m|h|d))+")


def compute_content_hash(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def encode(number: int, min_length: int = 0) -> str:
    """Encode a non-negative integer as a base62 short code.

    Args:
        number: Value to encode, usually the record's primary key
        min_length: Pad with the zero symbol up to this many characters

    Returns:
        str: Most significant symbol first, ``encode(0) == "0"``

    Example:
        >>> encode(62)
        '10'
        >>> encode(125, min_length=6)
        '000021'
    """
    if number < 0:
        raise ValueError("Number must be non-negative")

    if number == 0:
        encoded = BASE62_ALPHABET[0]
    else:
        result = []
        while number > 0:
            number, remainder = divmod(number, _BASE)
            result.append(BASE62_ALPHABET[remainder])
        encoded = "".join(result[::-1])

    return encoded.rjust(min_length, BASE62_ALPHABET[0])


def decode(code: str) -> int:
    """Decode a short code back to its integer id.

    Symbols outside the alphabet count as the zero symbol instead of raising,
    so ``decode("1!") == decode("10") == 62``.
    """
    number = 0
    for symbol in code:
        number = number * _BASE + _SYMBOL_VALUES.get(symbol, 0)
    return number


def parse_expires_in(value: str) -> datetime.timedelta:
    """Parse a duration such as ``"90s"``, ``"1h30m"`` or ``"7d"``.

    Raises:
        ValidationError: If the string is empty, malformed or not positive
    """
    text = value.strip()
    if not text:
        raise ValidationError("Invalid expires_in format: empty duration", value)
    if not _DURATION_FULL.fullmatch(text):
        raise ValidationError(f"Invalid expires_in format: {value!r}", value)

    seconds = sum(float(amount) * _DURATION_UNITS[unit] for amount, unit in _DURATION_PART.findall(text))
    total = datetime.timedelta(seconds=seconds)

    if total <= datetime.timedelta():
        raise ValidationError("expires_in must be a positive duration", value)
    return total


def validate_destination_url(url: str) -> str:
    """Accept only absolute http/https URLs with a host."""
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValidationError("Invalid URL", url)
    if parsed.scheme.lower() not in ("http", "https"):
        raise ValidationError("Only http/https URLs are allowed", url)
    # Underscored hosts are accepted; they are checked as if hyphenated.
    candidate = url
    if "_" in parsed.netloc:
        candidate = url.replace(parsed.netloc, parsed.netloc.replace("_", "-"), 1)
    if not validators.url(candidate, simple_host=True, strict_query=False):
        raise ValidationError("Invalid URL", url)
    return url
