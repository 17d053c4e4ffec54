"""
Tests for age parsing and the cold-file gate.
"""

import pytest

from rotguard.errors import AgeFormatError
from rotguard.timegate import cutoff, format_age, is_cold, parse_age


@pytest.mark.parametrize("text,expected", [
    ("90s", 90),
    ("15m", 900),
    ("12h", 43200),
    ("7d", 604800),
    ("1y", 31536000),
    ("42", 42),
    ("0d", 0),
    (" 3D ", 259200),
])
def test_parse_age_units(text, expected):
    assert parse_age(text) == expected


@pytest.mark.parametrize("text", ["", "7w", "-1d", "d", "1.5h", "7 days"])
def test_parse_age_rejects_bad_input(text):
    with pytest.raises(AgeFormatError):
        parse_age(text)


def test_parse_age_names_bad_suffix():
    with pytest.raises(AgeFormatError, match="suffix 'w'"):
        parse_age("2w")


def test_format_age_picks_largest_unit():
    assert format_age(604800) == "7d"
    assert format_age(3600) == "1h"
    assert format_age(90) == "90s"
    assert format_age(31536000) == "1y"
    assert format_age(0) == "0s"


def test_age_boundary_is_strict():
    now = 1_700_000_000
    age = 7 * 86400
    assert cutoff(age, now) == now - age
    assert not is_cold(now - age, age, now)
    assert is_cold(now - age - 1, age, now)
    assert not is_cold(now, age, now)


def test_newer_files_never_cold():
    now = 1_700_000_000
    for age in (0, 1, 60, 86400, 604800):
        for delta in range(0, 5):
            assert not is_cold(now - age + delta, age, now)
