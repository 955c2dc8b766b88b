"""Tests for DateResolver."""
from datetime import datetime, timedelta, timezone

import pytest

from aiexpense.services.date_resolver import DateResolver

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def resolver():
    return DateResolver()


class TestRelativePhrases:
    """Test English and Chinese relative date phrases."""

    @pytest.mark.parametrize("text,days", [
        ("coffee $5 yesterday", -1),
        ("Yesterday lunch 120", -1),
        ("昨天 午餐 120元", -1),
        ("day before yesterday taxi $30", -2),
        ("前天 計程車 300元", -2),
        ("tomorrow dinner $40", 1),
        ("明天 晚餐 400元", 1),
        ("day after tomorrow hotel $100", 2),
        ("後天 飯店 3000元", 2),
        ("last week groceries $80", -7),
        ("上週 超市 800元", -7),
    ])
    def test_phrase_shifts_now(self, resolver, text, days):
        assert resolver.resolve(text, NOW) == NOW + timedelta(days=days)

    def test_no_phrase_returns_now(self, resolver):
        assert resolver.resolve("lunch $12", NOW) == NOW

    def test_empty_text_returns_now(self, resolver):
        assert resolver.resolve("", NOW) == NOW

    def test_default_now_is_current_time(self, resolver):
        before = datetime.now(timezone.utc)
        resolved = resolver.resolve("lunch $12")
        assert before <= resolved <= datetime.now(timezone.utc)


class TestPhrasePriority:
    """Longer phrases win over phrases they contain."""

    def test_day_before_yesterday_beats_yesterday(self, resolver):
        text = "yesterday coffee $3, day before yesterday lunch $10"
        assert resolver.resolve(text, NOW) == NOW - timedelta(days=2)

    def test_chinese_day_before_yesterday_beats_yesterday(self, resolver):
        assert resolver.resolve("昨天 咖啡 50元 前天 午餐 100元", NOW) == NOW - timedelta(days=2)

    def test_yesterday_beats_tomorrow(self, resolver):
        assert resolver.resolve("tomorrow and yesterday", NOW) == NOW - timedelta(days=1)


class TestLastMonth:
    """Last month clamps to the end of the previous month."""

    def test_clamps_to_last_day(self, resolver):
        # March 31 -> February 29 (2024 is a leap year)
        assert resolver.resolve("last month rent $900", NOW) == datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)

    def test_january_wraps_to_december(self, resolver):
        now = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
        assert resolver.resolve("上個月 房租", now) == datetime(2023, 12, 15, 9, 30, tzinfo=timezone.utc)

    def test_short_form(self, resolver):
        now = datetime(2024, 5, 10, tzinfo=timezone.utc)
        assert resolver.resolve("上月 電費 900元", now) == datetime(2024, 4, 10, tzinfo=timezone.utc)
