from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def month_key(value: date) -> date:
    return value.replace(day=1)


def month_period(year: int, month: int) -> Period:
    """Inclusive bounds of a calendar month; ``month`` is 1-based."""
    first = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return Period(f"{year:04d}-{month:02d}", first, next_month - date.resolution)


def period_for_date(value: date) -> Period:
    return month_period(value.year, value.month)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    return total // 12, total % 12 + 1


def previous_month_key(value: date) -> date:
    year, month = shift_month(value.year, value.month, -1)
    return date(year, month, 1)
