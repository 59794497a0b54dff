from datetime import timedelta

import pytest

from redis_ttl.durations import format_ttl, parse_ttl
from redis_ttl.exceptions import ConfigurationError, InvalidTtlError


@pytest.mark.parametrize(
    "text, expected",
    [
        ("90s", timedelta(seconds=90)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5h", timedelta(minutes=90)),
        ("500ms", timedelta(milliseconds=500)),
        ("250us", timedelta(microseconds=250)),
        ("7d", timedelta(days=7)),
        ("2w", timedelta(weeks=2)),
        ("0", timedelta(0)),
        (" 24h ", timedelta(hours=24)),
    ],
)
def test_parse_ttl_accepts_supported_units(text, expected):
    assert parse_ttl(text) == expected


def test_parse_ttl_keeps_sign():
    assert parse_ttl("-1s") == timedelta(seconds=-1)


@pytest.mark.parametrize("text", ["", "abc", "10x", "1.5d", "0d", "d", "1h-2m"])
def test_parse_ttl_rejects_malformed_values(text):
    with pytest.raises(InvalidTtlError):
        parse_ttl(text)


def test_invalid_ttl_is_a_configuration_error():
    with pytest.raises(ConfigurationError) as exc:
        parse_ttl("7y")
    assert "unknown duration suffix y" in str(exc.value)


@pytest.mark.parametrize(
    "value, expected",
    [
        (timedelta(hours=1), "1h0m0s"),
        (timedelta(seconds=90), "1m30s"),
        (timedelta(seconds=1.5), "1.5s"),
        (timedelta(milliseconds=500), "500ms"),
        (timedelta(0), "0s"),
        (timedelta(days=7), "168h0m0s"),
        (timedelta(seconds=-2), "-2s"),
    ],
)
def test_format_ttl(value, expected):
    assert format_ttl(value) == expected
