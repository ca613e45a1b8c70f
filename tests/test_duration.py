from datetime import timedelta

import pytest

from core.duration import parse_duration, to_seconds


@pytest.mark.parametrize(
    "value, seconds",
    [
        ("500ms", 0.5),
        ("5s", 5),
        ("1.5m", 90),
        ("4h", 14400),
        ("1d", 86400),
        (" 45S ", 45),
        (12, 12),
        (2.5, 2.5),
    ],
)
def test_parse_duration(value, seconds):
    assert parse_duration(value) == timedelta(seconds=seconds)


@pytest.mark.parametrize("value", ["", "5", "five seconds", "5w", "-5s", -1])
def test_parse_duration_rejects(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_to_seconds():
    assert to_seconds("45s") == 45.0
