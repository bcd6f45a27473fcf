"""
Pure cron schedule evaluation.

Contract:
    ``parse_cron(expression)``, ``matches_cron(spec, dt)`` and
    ``next_cron_run(expression, after)`` are PURE -- no I/O, no side
    effects.  The scheduler supplies the current time from its clock.

Architecture: recurring_batch/domain.  ZERO I/O.

Invariants enforced:
    - All timestamps come from the caller (no datetime.now() calls).
    - The next-match search is bounded to 366 days.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from recurring_kernel.exceptions import InvalidCronExpressionError


# =============================================================================
# CronSpec (lightweight cron parser)
# =============================================================================


@dataclass(frozen=True)
class CronSpec:
    """Parsed cron expression (minute hour day_of_month month day_of_week).

    Each field is a frozenset of valid integer values.
    Supports: *, values, ranges (1-5), steps (*/5, 1-10/2), lists (1,15).

    ``dom_restricted`` / ``dow_restricted`` record whether the day fields
    were written as something other than a ``*`` wildcard; when both are
    restricted a day matches if EITHER field matches.
    """

    minutes: frozenset[int] = field(default_factory=lambda: frozenset(range(60)))
    hours: frozenset[int] = field(default_factory=lambda: frozenset(range(24)))
    days_of_month: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 32)))
    months: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 13)))
    days_of_week: frozenset[int] = field(default_factory=lambda: frozenset(range(7)))
    dom_restricted: bool = False
    dow_restricted: bool = False


def _parse_int(text: str) -> int:
    if not text.isdigit():
        raise ValueError(f"Not a number: '{text}'")
    return int(text)


def _check_bounds(v: int, min_val: int, max_val: int) -> None:
    if v < min_val or v > max_val:
        raise ValueError(f"Value {v} outside range [{min_val}, {max_val}]")


def _parse_cron_field(field_str: str, min_val: int, max_val: int) -> frozenset[int]:
    """Parse a single cron field into a frozenset of valid values.

    Supports:
        * -- all values
        N -- single value
        N-M -- range
        */N -- step from min
        N/S -- step from N to max
        N-M/S -- range with step

    Raises:
        ValueError: If the field is syntactically invalid or values out of range.
    """
    values: set[int] = set()

    for part in field_str.split(","):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty list element in '{field_str}'")

        step = 1
        stepped = "/" in part
        if stepped:
            part, step_str = part.split("/", 1)
            step = _parse_int(step_str)
            if step <= 0:
                raise ValueError(f"Step must be positive: {step}")

        if part == "*":
            start, end = min_val, max_val
        elif "-" in part:
            s, e = part.split("-", 1)
            start, end = _parse_int(s), _parse_int(e)
            if start > end:
                raise ValueError(f"Range start > end: {start}-{end}")
        else:
            start = _parse_int(part)
            end = max_val if stepped else start

        _check_bounds(start, min_val, max_val)
        _check_bounds(end, min_val, max_val)
        values.update(range(start, end + 1, step))

    return frozenset(values)


def parse_cron(expression: str) -> CronSpec:
    """Parse a 5-field cron expression into a CronSpec.

    Format: ``minute hour day_of_month month day_of_week``.  Day of week
    is 0-6 with 0 = Sunday; 7 is accepted as an alias for Sunday.

    Raises:
        InvalidCronExpressionError: If the expression is malformed.
    """
    if not isinstance(expression, str):
        raise InvalidCronExpressionError(str(expression), "expression must be a string")

    parts = expression.strip().split()
    if len(parts) != 5:
        raise InvalidCronExpressionError(
            expression, f"expected 5 fields, got {len(parts)}",
        )

    try:
        days_of_week = _parse_cron_field(parts[4], 0, 7)
        if 7 in days_of_week:
            days_of_week = (days_of_week - {7}) | {0}
        return CronSpec(
            minutes=_parse_cron_field(parts[0], 0, 59),
            hours=_parse_cron_field(parts[1], 0, 23),
            days_of_month=_parse_cron_field(parts[2], 1, 31),
            months=_parse_cron_field(parts[3], 1, 12),
            days_of_week=days_of_week,
            dom_restricted=not parts[2].startswith("*"),
            dow_restricted=not parts[4].startswith("*"),
        )
    except ValueError as exc:
        raise InvalidCronExpressionError(expression, str(exc)) from exc


def validate_cron(expression: str) -> None:
    """Raise InvalidCronExpressionError unless ``expression`` parses."""
    parse_cron(expression)


def _matches_day(spec: CronSpec, dt: datetime) -> bool:
    # Convert Python weekday (0=Mon) to cron weekday (0=Sun)
    cron_dow = (dt.weekday() + 1) % 7
    dom_ok = dt.day in spec.days_of_month
    dow_ok = cron_dow in spec.days_of_week
    if spec.dom_restricted and spec.dow_restricted:
        return dom_ok or dow_ok
    return dom_ok and dow_ok


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    """Check if a datetime (to the minute) matches a cron spec."""
    return (
        dt.minute in spec.minutes
        and dt.hour in spec.hours
        and dt.month in spec.months
        and _matches_day(spec, dt)
    )


# =============================================================================
# Next-run computation (pure)
# =============================================================================


def next_cron_match(spec: CronSpec, after: datetime) -> datetime:
    """Find the next datetime strictly after ``after`` matching the spec.

    Scans forward skipping whole days and hours that cannot match, bounded
    to 366 days.  tzinfo of ``after`` is preserved.

    Raises:
        ValueError: If no match is found within 366 days.
    """
    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = after + timedelta(days=366)

    while candidate <= limit:
        if candidate.month not in spec.months or not _matches_day(spec, candidate):
            candidate = candidate.replace(hour=0, minute=0) + timedelta(days=1)
            continue
        if candidate.hour not in spec.hours:
            candidate = candidate.replace(minute=0) + timedelta(hours=1)
            continue
        if candidate.minute in spec.minutes:
            return candidate
        candidate += timedelta(minutes=1)

    raise ValueError(f"No cron match found within 366 days after {after}")


def next_cron_run(expression: str, after: datetime) -> datetime:
    """Next firing time of ``expression`` strictly after ``after``.

    Raises:
        InvalidCronExpressionError: If the expression is malformed or can
            never fire (e.g. ``0 0 31 2 *``).
    """
    spec = parse_cron(expression)
    try:
        return next_cron_match(spec, after)
    except ValueError as exc:
        raise InvalidCronExpressionError(expression, str(exc)) from exc
