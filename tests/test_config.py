"""Settings validation at load time."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from geoattend.core.clock import parse_offset
from geoattend.core.config import Settings


@pytest.mark.parametrize("offset", ["+ab", "08:00", "+", "+8:xx", "+24:00", "+05:60", "+05:30:00", "+123"])
def test_bad_timezone_offset_fails_at_load(offset):
    with pytest.raises(ValidationError):
        Settings(SCAN_TIMEZONE_OFFSET=offset)


@pytest.mark.parametrize(
    "offset, expected",
    [("+08:00", timedelta(hours=8)), ("+05:30", timedelta(hours=5, minutes=30)), ("-03", timedelta(hours=-3))],
)
def test_good_timezone_offset(offset, expected):
    assert Settings(SCAN_TIMEZONE_OFFSET=offset).SCAN_TIMEZONE_OFFSET == offset
    assert parse_offset(offset).utcoffset(None) == expected


def test_window_bounds_are_normalised():
    s = Settings(CHECKIN_WINDOW_START="6:00")
    assert s.CHECKIN_WINDOW_START == "06:00"
    with pytest.raises(ValidationError):
        Settings(CHECKOUT_WINDOW_END="25:00")
