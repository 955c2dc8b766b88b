"""
Relative date resolution for expense messages.

Maps the first relative-date phrase found in a message ("yesterday", "上週",
...) to a concrete datetime. Phrases that contain other phrases are checked
first, so "day before yesterday" never resolves as "yesterday".
"""
import calendar
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

# (phrases, shift) in match order
_RELATIVE_PHRASES: list[tuple[tuple[str, ...], Callable[[datetime], datetime]]] = [
    (("day before yesterday", "前天", "前日"), lambda now: now - timedelta(days=2)),
    (("yesterday", "昨天", "昨日"), lambda now: now - timedelta(days=1)),
    (("day after tomorrow", "後天", "后天"), lambda now: now + timedelta(days=2)),
    (("tomorrow", "明天", "明日"), lambda now: now + timedelta(days=1)),
    (("last week", "上週", "上周"), lambda now: now - timedelta(days=7)),
    (("last month", "上個月", "上个月", "上月"), lambda now: _previous_month(now)),
]


def _previous_month(now: datetime) -> datetime:
    """Same day of the previous month, clamped to that month's last day."""
    year, month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
    last_day = calendar.monthrange(year, month)[1]
    return now.replace(year=year, month=month, day=min(now.day, last_day))


class DateResolver:
    """Resolves relative date phrases against the current time."""

    def resolve(self, text: str, now: Optional[datetime] = None) -> datetime:
        """
        Return the date a message refers to.

        Args:
            text: Raw message text
            now: Reference time; defaults to the current UTC time

        Returns:
            `now` shifted by the first matching phrase, or `now` unchanged
        """
        if now is None:
            now = datetime.now(timezone.utc)
        lowered = (text or "").lower()
        for phrases, shift in _RELATIVE_PHRASES:
            if any(phrase in lowered for phrase in phrases):
                return shift(now)
        return now
