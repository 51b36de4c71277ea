"""Tests for epoch-millisecond time helpers."""

from unittest.mock import patch

import pytest

from plan_tracker.utils.time import age_seconds, floor_to, iso_from_ms, now_ms, to_ms


class TestToMs:
    """Test timestamp coercion."""

    def test_milliseconds_pass_through(self):
        assert to_ms(1704198600000) == 1704198600000

    def test_seconds_are_scaled(self):
        assert to_ms(1704198600) == 1704198600000

    def test_numeric_string(self):
        assert to_ms("1704198600000") == 1704198600000

    def test_iso_string(self):
        assert to_ms("2024-01-02T12:30:00Z") == 1704198600000

    def test_naive_iso_is_utc(self):
        assert to_ms("2024-01-02T12:30:00") == 1704198600000

    @pytest.mark.parametrize("value", [None, "", "not a time", True, float("nan"), float("inf"), [1]])
    def test_invalid_values(self, value):
        assert to_ms(value) is None


class TestBuckets:
    def test_floor_to(self):
        assert floor_to(1704198723456, 300_000) == 1704198600000

    def test_floor_on_boundary(self):
        assert floor_to(1704198600000, 300_000) == 1704198600000


class TestFormatting:
    def test_iso_from_ms(self):
        assert iso_from_ms(1704198600000) == "2024-01-02T12:30:00Z"

    def test_iso_from_none(self):
        assert iso_from_ms(None) is None

    def test_age_seconds(self):
        assert age_seconds(1704198600000, 1704198660000) == 60

    def test_age_clamped_at_zero(self):
        assert age_seconds(1704198660000, 1704198600000) == 0

    def test_age_unknown(self):
        assert age_seconds(None, 1704198600000) is None

    def test_now_ms_uses_wall_clock(self):
        with patch("plan_tracker.utils.time.time.time", return_value=1704198600.5):
            assert now_ms() == 1704198600500
