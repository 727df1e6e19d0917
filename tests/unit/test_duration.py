"""Tests for agent timeout parsing."""

from datetime import timedelta

import pytest

from testsys.model.duration import parse_duration
from testsys.model.exceptions import DurationParseError


class TestParseDuration:
    @pytest.mark.parametrize(
        "value,seconds",
        [
            ("1d2h3m4s", 93784),
            ("1d3m4s", 86584),
            ("500s", 500),
            ("1h5m", 3900),
            ("10m", 600),
            ("5123", 5123),
            ("0", 0),
        ],
    )
    def test_valid(self, value, seconds):
        assert parse_duration(value) == timedelta(seconds=seconds)

    @pytest.mark.parametrize("value", ["10d5m3h2s", "5y40s", "5hm4s", "1h1h", "-5", "h"])
    def test_invalid(self, value):
        with pytest.raises(DurationParseError):
            parse_duration(value)

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration("forever")
