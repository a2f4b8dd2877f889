import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from errors import InvalidArgument

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class DateRange:
    """Half-open interval: ``start`` is included, ``end`` is not."""

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


def month_start(d: date) -> date:
    return d.replace(day=1)


def next_month(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def month_range(month: date) -> DateRange:
    first = month_start(month)
    return DateRange(first, next_month(first))


def current_month(today: Optional[date] = None) -> DateRange:
    return month_range(today or date.today())


def parse_date(value: str, field: str = "date") -> date:
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        raise InvalidArgument(f"{field} must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidArgument(f"{field} is not a valid calendar date") from exc


def parse_month(value: str, field: str = "month") -> date:
    parsed = parse_date(value, field)
    if parsed.day != 1:
        raise InvalidArgument(f"{field} must be the first day of a month")
    return parsed


def resolve_range(
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> DateRange:
    default = current_month(today)
    start_date = parse_date(start, "start_date") if start else default.start
    end_date = parse_date(end, "end_date") if end else default.end
    if start_date > end_date:
        raise InvalidArgument("start_date must not be after end_date")
    return DateRange(start_date, end_date)
