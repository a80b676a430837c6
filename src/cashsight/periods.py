# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for CashSight.

This module defines a Period value object and the resolver turning a
user-selected range into a concrete interval with a display label.

Two kinds of selection are supported:

- named presets, looking backward (today, last7Days, last30Days, last90Days,
  last3Months, last6Months, last12Months), forward (next30Days, next60Days,
  next90Days) or covering everything (allTime),
- custom ranges (CustomRange), clamped to day start / day end.

Resolution is a pure function of the selection and of ``now``: calling the
resolver twice with the same inputs returns an identical Period.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

import pandas as pd

from .errors import ValidationError

DateLike = Union[date, datetime]

PRESET_LABELS: dict[str, str] = {
    "today": "Today",
    "last7Days": "Last 7 days",
    "last30Days": "Last 30 days",
    "last90Days": "Last 90 days",
    "last3Months": "Last 3 months",
    "last6Months": "Last 6 months",
    "last12Months": "Last 12 months",
    "next30Days": "Next 30 days",
    "next60Days": "Next 60 days",
    "next90Days": "Next 90 days",
    "allTime": "All time",
}

# allTime falls back to this window when no explicit bounds are known.
ALL_TIME_MONTHS_BACK = 3
ALL_TIME_MONTHS_FORWARD = 12


@dataclass(frozen=True)
class Period:
    """Represents a reporting period with a human-readable label."""

    start: datetime
    end: datetime
    label: str

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(
                f"Period start ({self.start}) cannot be after its end ({self.end})."
            )

    @property
    def days(self) -> int:
        """Number of calendar days touched by the period (inclusive)."""
        return (self.end.date() - self.start.date()).days + 1


@dataclass(frozen=True)
class CustomRange:
    """User-supplied bounds, resolved with :func:`resolve_period`."""

    start: DateLike
    end: DateLike


def _now() -> datetime:
    """Return the current local time (isolated for easier testing)."""
    return datetime.now()


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_datetime(value).date(), time.min)


def end_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_datetime(value).date(), time.max)


def start_of_month(value: DateLike) -> datetime:
    return start_of_day(_as_datetime(value).replace(day=1))


def end_of_month(value: DateLike) -> datetime:
    dt = _as_datetime(value)
    last_day = monthrange(dt.year, dt.month)[1]
    return end_of_day(dt.replace(day=last_day))


def add_months(value: DateLike, months: int) -> DateLike:
    """
    Shift a date by a number of calendar months.

    The day of month is clamped to the last day of the target month, so
    2024-01-31 + 1 month is 2024-02-29 and 2023-01-31 + 1 month is
    2023-02-28. The input type (date or datetime) is preserved.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _custom_label(start: datetime, end: datetime) -> str:
    return f"{start:%d/%m/%Y} - {end:%d/%m/%Y}"


def resolve_period(
    selection: Union[str, CustomRange],
    now: Optional[datetime] = None,
    min_date: Optional[DateLike] = None,
    max_date: Optional[DateLike] = None,
) -> Period:
    """
    Turn a preset name or a CustomRange into a concrete Period.

    Parameters
    ----------
    selection:
        Either one of the names in PRESET_LABELS or a CustomRange.
    now:
        Reference time. Defaults to the current local time.
    min_date, max_date:
        Optional explicit bounds used by the ``allTime`` preset, typically
        the oldest and newest dates found in the data.

    Returns
    -------
    Period
        Start truncated to day start, end extended to day end.

    Raises
    ------
    ValidationError
        For an unknown preset name or a custom range whose start is after
        its end.
    """
    now = now or _now()

    if isinstance(selection, CustomRange):
        if _as_datetime(selection.start).date() > _as_datetime(selection.end).date():
            raise ValidationError("Custom period start date cannot be after end date.")
        start = start_of_day(selection.start)
        end = end_of_day(selection.end)
        return Period(start=start, end=end, label=_custom_label(start, end))

    if selection not in PRESET_LABELS:
        raise ValidationError(f"Unknown period: {selection!r}")

    label = PRESET_LABELS[selection]

    if selection == "today":
        return Period(start=start_of_day(now), end=end_of_day(now), label=label)

    if selection in {"last7Days", "last30Days", "last90Days"}:
        days = int(selection[len("last") : -len("Days")])
        start = start_of_day(now - timedelta(days=days - 1))
        return Period(start=start, end=end_of_day(now), label=label)

    if selection in {"last3Months", "last6Months", "last12Months"}:
        months = int(selection[len("last") : -len("Months")])
        start = start_of_month(add_months(now, -(months - 1)))
        return Period(start=start, end=end_of_month(now), label=label)

    if selection in {"next30Days", "next60Days", "next90Days"}:
        days = int(selection[len("next") : -len("Days")])
        return Period(
            start=start_of_day(now),
            end=end_of_day(now + timedelta(days=days)),
            label=label,
        )

    # allTime
    lower = min_date if min_date is not None else add_months(now, -ALL_TIME_MONTHS_BACK)
    upper = (
        max_date if max_date is not None else add_months(now, ALL_TIME_MONTHS_FORWARD)
    )
    return Period(start=start_of_day(lower), end=end_of_day(upper), label=label)


def determine_period_from_args(
    args,
    now: Optional[datetime] = None,
    default: str = "last30Days",
) -> Period:
    """
    Determine the reporting period to use based on CLI args.

    Priority (highest to lowest):

        1. args.from_date / args.to_date (custom period; a missing bound
           defaults to today)
        2. args.period (any preset name)
        3. ``default`` preset
    """
    now = now or _now()

    from_raw: Optional[str] = getattr(args, "from_date", None)
    to_raw: Optional[str] = getattr(args, "to_date", None)

    if from_raw or to_raw:
        try:
            start = date.fromisoformat(from_raw) if from_raw else now.date()
            end = date.fromisoformat(to_raw) if to_raw else now.date()
        except ValueError as exc:
            raise ValidationError(
                "Invalid custom period dates, expected YYYY-MM-DD format."
            ) from exc
        return resolve_period(CustomRange(start=start, end=end), now=now)

    preset = getattr(args, "period", None) or default
    return resolve_period(preset, now=now)


def filter_frame_by_period(
    frame: pd.DataFrame,
    period: Period,
    column: str = "date",
) -> pd.DataFrame:
    """
    Keep only the rows whose ``column`` falls within the period.

    The column is expected to be of type datetime64 (as produced by the
    readers in ``io.py`` and ``db.py``). Bounds are inclusive. An empty frame
    is returned unchanged.
    """
    if frame.empty:
        return frame.copy()

    mask = (frame[column] >= pd.Timestamp(period.start)) & (
        frame[column] <= pd.Timestamp(period.end)
    )
    return frame.loc[mask].copy()
