"""Service for turning a human-readable recurrence into the dates a booking occupies."""

from __future__ import annotations

import re
from datetime import date

from dateutil.rrule import (
    DAILY,
    MONTHLY,
    WEEKLY,
    FR,
    MO,
    SA,
    SU,
    TH,
    TU,
    WE,
    rrulestr,
)

from greensync.domain.errors import BookingValidationError

MAX_OCCURRENCES = 366

_DAY_MAP = {
    "monday": MO,
    "tuesday": TU,
    "wednesday": WE,
    "thursday": TH,
    "friday": FR,
    "saturday": SA,
    "sunday": SU,
}


def compile_rrule(description: str | None) -> str | None:
    """Compile a recurrence phrase ("every other Friday", "daily") into an RRULE.

    Strings that already look like an RRULE (``FREQ=...``) are passed through.
    Returns ``None`` for an empty description.
    """
    if not description:
        return None

    desc = description.lower().strip()
    if desc.startswith("freq=") or desc.startswith("rrule:"):
        return description.strip().upper().removeprefix("RRULE:")

    freq = WEEKLY
    interval = 1

    if any(phrase in desc for phrase in ("every other", "biweekly", "bi-weekly")):
        interval = 2
    else:
        m = re.search(r"every\s+(\d+)\s+(week|day|month)", desc)
        if m:
            interval = int(m.group(1))
            unit = m.group(2)
            if unit == "day":
                freq = DAILY
            elif unit == "month":
                freq = MONTHLY

    if "daily" in desc or "every day" in desc:
        freq = DAILY
    elif "monthly" in desc or "every month" in desc:
        freq = MONTHLY

    by_day = [const for name, const in _DAY_MAP.items() if name in desc]
    if "weekday" in desc:
        by_day = [MO, TU, WE, TH, FR]

    parts = [f"FREQ={_freq_name(freq)}"]
    if interval > 1:
        parts.append(f"INTERVAL={interval}")
    if by_day and freq == WEEKLY:
        parts.append("BYDAY=" + ",".join(_day_abbr(d) for d in by_day))

    return ";".join(parts)


def expand_dates(first_date: str, recurrence: str | None, until: str | None) -> list[str]:
    """Return every ``YYYY-MM-DD`` the recurring booking occupies.

    The range runs from *first_date* to *until*, both inclusive. Without a
    recurrence the booking occupies *first_date* only.
    """
    rule = compile_rrule(recurrence)
    if rule is None:
        return [first_date]
    if not until:
        raise BookingValidationError("recurrence_until is required with a recurrence")

    try:
        start = date.fromisoformat(first_date)
        end = date.fromisoformat(until)
    except ValueError as exc:
        raise BookingValidationError(str(exc)) from None
    if end < start:
        raise BookingValidationError("recurrence_until must not be before the first date")

    try:
        recurrence_rule = rrulestr(
            f"DTSTART:{start.strftime('%Y%m%d')}T000000\n"
            f"RRULE:{rule};UNTIL={end.strftime('%Y%m%d')}T235959"
        )
    except ValueError as exc:
        raise BookingValidationError(f"invalid recurrence {recurrence!r}: {exc}") from None

    days: list[str] = []
    for occurrence in recurrence_rule:
        if len(days) >= MAX_OCCURRENCES:
            raise BookingValidationError(
                f"recurrence produces more than {MAX_OCCURRENCES} dates"
            )
        days.append(occurrence.date().isoformat())

    if not days:
        raise BookingValidationError("recurrence produces no dates")
    return days


def _freq_name(freq: int) -> str:
    return {DAILY: "DAILY", WEEKLY: "WEEKLY", MONTHLY: "MONTHLY"}[freq]


def _day_abbr(day_const) -> str:
    return {MO: "MO", TU: "TU", WE: "WE", TH: "TH", FR: "FR", SA: "SA", SU: "SU"}[
        day_const
    ]
