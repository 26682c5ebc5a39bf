"""Weekly recurrence: normalized rule type, legacy RRULE ingestion, date matching.

Weekday codes use the two-letter iCalendar convention (SU, MO, TU, WE, TH,
FR, SA).  Legacy RRULE text is parsed once with ``parse_rrule`` when a
template is ingested; only the normalized ``Recurrence`` is stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Iterator


# Index matches date.weekday(): 0=Mon ... 6=Sun.
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

DAY_NAMES = {
    "MO": "Monday",
    "TU": "Tuesday",
    "WE": "Wednesday",
    "TH": "Thursday",
    "FR": "Friday",
    "SA": "Saturday",
    "SU": "Sunday",
}

KNOWN_FREQS = ("DAILY", "WEEKLY", "MONTHLY")


def day_code(d: date) -> str:
    """Return the two-letter weekday code for a date."""
    return WEEKDAY_CODES[d.weekday()]


def normalize_byday(codes: Iterable[str]) -> frozenset[str]:
    """Validate an explicit weekday set supplied by a caller.

    Raises ValueError on any code outside the two-letter convention.
    """
    result = set()
    for raw in codes:
        code = (raw or "").strip().upper()
        if code not in WEEKDAY_CODES:
            raise ValueError(f"Unknown weekday code: {raw!r}")
        result.add(code)
    return frozenset(result)


def sort_codes(codes: Iterable[str]) -> list[str]:
    """Order weekday codes Monday-first."""
    return sorted(codes, key=WEEKDAY_CODES.index)


@dataclass(frozen=True)
class Recurrence:
    freq: str = "WEEKLY"
    byday: frozenset[str] = field(default_factory=frozenset)
    bymonthday: frozenset[int] = field(default_factory=frozenset)

    def includes(self, d: date) -> bool:
        """Decide whether the rule produces an occurrence on ``d``.

        An explicit weekday set always wins.  MONTHLY rules with a
        BYMONTHDAY match on day-of-month.  Everything else (DAILY, WEEKLY
        without days, MONTHLY without an anchor, unknown FREQ) is
        permissive and includes every date so templates never vanish from
        the calendar.
        """
        if self.byday:
            return day_code(d) in self.byday
        if self.freq == "MONTHLY" and self.bymonthday:
            return d.day in self.bymonthday
        return True

    def to_rrule(self) -> str:
        parts = [f"FREQ={self.freq}"]
        if self.byday:
            parts.append("BYDAY=" + ",".join(sort_codes(self.byday)))
        if self.bymonthday:
            parts.append("BYMONTHDAY=" + ",".join(str(n) for n in sorted(self.bymonthday)))
        return ";".join(parts)

    def describe(self) -> str:
        if self.byday:
            return describe_days(self.byday)
        if self.freq == "MONTHLY" and self.bymonthday:
            days = ", ".join(str(n) for n in sorted(self.bymonthday))
            return f"Monthly on day {days}"
        return "Every day"


def describe_days(codes: Iterable[str]) -> str:
    """Render a weekday set as 'Every Monday and Wednesday'."""
    labels = [DAY_NAMES[c] for c in sort_codes(codes) if c in DAY_NAMES]
    if not labels:
        return "Every day"
    if len(labels) == 1:
        return f"Every {labels[0]}"
    if len(labels) == 2:
        return f"Every {labels[0]} and {labels[1]}"
    return f"Every {', '.join(labels[:-1])}, and {labels[-1]}"


def parse_rrule(text: str | None) -> Recurrence:
    """Parse legacy RRULE text into a Recurrence.

    Never raises: unknown keys, bad day codes and malformed parts are
    dropped, and missing text yields the permissive every-day rule.
    """
    if not text:
        return Recurrence(freq="DAILY")

    freq = None
    byday: set[str] = set()
    bymonthday: set[int] = set()

    for part in text.split(";"):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key = key.strip().upper()
        if key.startswith("RRULE:"):
            key = key[len("RRULE:"):]
        value = value.strip().upper()

        if key == "FREQ" and value:
            freq = value
        elif key == "BYDAY":
            for token in value.split(","):
                # Drop ordinal prefixes such as "1MO" or "-1FR".
                code = token.strip().lstrip("+-0123456789")
                if code in WEEKDAY_CODES:
                    byday.add(code)
        elif key == "BYMONTHDAY":
            for token in value.split(","):
                try:
                    n = int(token)
                except ValueError:
                    continue
                if 1 <= n <= 31:
                    bymonthday.add(n)

    return Recurrence(
        freq=freq or "DAILY",
        byday=frozenset(byday),
        bymonthday=frozenset(bymonthday),
    )


def occurrences(recurrence: Recurrence, start: date, end: date) -> Iterator[date]:
    """Yield every included date in the inclusive range [start, end]."""
    current = start
    while current <= end:
        if recurrence.includes(current):
            yield current
        current += timedelta(days=1)


def add_months(d: date, months: int) -> date:
    """Shift a date by whole months, clamping to the last day of the month."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    for day in (d.day, 30, 29, 28):
        try:
            return date(year, month, min(d.day, day))
        except ValueError:
            continue
    raise ValueError(f"Cannot shift {d} by {months} months")
