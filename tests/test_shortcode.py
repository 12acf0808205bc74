"""Short code codec, duration parsing and URL validation tests."""

import datetime

import pytest

from shorturl.exceptions import ValidationError
from shorturl.shortcode import (
    BASE62_ALPHABET,
    compute_content_hash,
    decode,
    encode,
    parse_expires_in,
    validate_destination_url,
)

# ============================================================================
# BASE62 CODEC
# ============================================================================


def test_alphabet_is_digits_then_upper_then_lower() -> None:
    assert len(BASE62_ALPHABET) == 62
    assert BASE62_ALPHABET[:10] == "0123456789"
    assert BASE62_ALPHABET[10] == "A"
    assert BASE62_ALPHABET[36] == "a"


def test_encode_zero() -> None:
    assert encode(0) == "0"


@pytest.mark.parametrize(
    "number,expected",
    [(1, "1"), (61, "z"), (62, "10"), (125, "21"), (3843, "zz"), (3844, "100")],
)
def test_encode_known_values(number: int, expected: str) -> None:
    assert encode(number) == expected


def test_encode_pads_with_zero_symbol() -> None:
    assert encode(125, min_length=6) == "000021"
    assert encode(0, min_length=6) == "000000"


def test_encode_longer_than_min_length_is_not_truncated() -> None:
    assert encode(62**7, min_length=6) == "10000000"


def test_encode_rejects_negative() -> None:
    with pytest.raises(ValueError, match="non-negative"):
        encode(-1)


def test_decode_inverts_encode() -> None:
    for number in (0, 1, 61, 62, 125, 99_999, 56_800_235_583, 2**53):
        assert decode(encode(number)) == number
        assert decode(encode(number, min_length=6)) == number


def test_decode_treats_unknown_symbols_as_zero() -> None:
    assert decode("1!") == 62
    assert decode("1-") == decode("10")


def test_compute_content_hash_is_sha256_hex() -> None:
    digest = compute_content_hash("https://example.com")
    assert len(digest) == 64
    assert digest == compute_content_hash("https://example.com")
    assert digest != compute_content_hash("https://example.com/")
    assert digest == "100680ad546ce6a577f42f52df33b4cfdca756859e664b8d7de329b150d09ce9"


# ============================================================================
# EXPIRES_IN DURATIONS
# ============================================================================


@pytest.mark.parametrize(
    "value,expected",
    [
        ("30m", datetime.timedelta(minutes=30)),
        ("24h", datetime.timedelta(hours=24)),
        ("7d", datetime.timedelta(days=7)),
        ("1h30m", datetime.timedelta(hours=1, minutes=30)),
        ("90s", datetime.timedelta(seconds=90)),
        ("1.5h", datetime.timedelta(minutes=90)),
        ("1d12h", datetime.timedelta(hours=36)),
        ("500ms", datetime.timedelta(milliseconds=500)),
    ],
)
def test_parse_expires_in(value: str, expected: datetime.timedelta) -> None:
    assert parse_expires_in(value) == expected


@pytest.mark.parametrize("value", ["", "   ", "abc", "10", "5 minutes", "-5m", "1w", "h1", "0s", "0m0s"])
def test_parse_expires_in_rejects_malformed_or_non_positive(value: str) -> None:
    with pytest.raises(ValidationError):
        parse_expires_in(value)


# ============================================================================
# DESTINATION URL VALIDATION
# ============================================================================


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com",
        "http://example.com/path?q=1#frag",
        "https://sub.domain.example.org:8443/a/b",
        "https://example.com/search?q",
        "https://example.com/?a&b=1",
        "https://my_host.example.com/x",
    ],
)
def test_validate_destination_url_accepts_http_and_https(url: str) -> None:
    assert validate_destination_url(url) == url


@pytest.mark.parametrize(
    "url",
    ["", "not-a-url", "example.com", "/relative/path", "ftp://example.com/file", "javascript:alert(1)", "https://"],
)
def test_validate_destination_url_rejects(url: str) -> None:
    with pytest.raises(ValidationError):
        validate_destination_url(url)
