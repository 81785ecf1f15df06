"""Daily-average ridership summaries from hourly station logs."""

import logging
from typing import Iterable, Mapping, Optional, Union

import pandas as pd

from .feed import HOURS_PER_DAY, RidershipTotals
from .models import (
    DateRange,
    HourlyRidership,
    RidershipRecord,
    RidershipSummary,
    StationRidership,
)

logger = logging.getLogger(__name__)

TOP_STATIONS = 15
UNKNOWN_LINE = "unknown"


def aggregate_ridership(
    records: Iterable[Union[RidershipRecord, Mapping]],
    station_lines: Optional[Mapping[str, str]] = None,
    top_n: int = TOP_STATIONS,
) -> RidershipSummary:
    """
    Summarize ridership records in one pass.

    Args:
        records: RidershipRecord objects or mappings with date, hour,
            station and ridership keys. Rows with an out-of-range hour or a
            non-numeric ridership value are dropped.
        station_lines: Optional station name -> line key, used for the
            per-line breakdown.
        top_n: Number of busiest stations to keep.

    Returns:
        RidershipSummary with every figure expressed as a daily average.
    """
    totals = RidershipTotals()
    for record in records:
        if isinstance(record, Mapping):
            totals.add(record.get("date"), record.get("hour"), record.get("station"), record.get("ridership"))
        else:
            totals.add(record.date, record.hour, record.station, record.ridership)
    return summarize_ridership(totals, station_lines, top_n)


def summarize_ridership(
    totals: RidershipTotals,
    station_lines: Optional[Mapping[str, str]] = None,
    top_n: int = TOP_STATIONS,
) -> RidershipSummary:
    """Turn running totals into daily averages (totals divided by distinct dates)."""
    days = totals.day_count
    if days == 0:
        return RidershipSummary(
            total_daily_average=0,
            busiest_stations=[],
            ridership_by_line={},
            peak_hours=[HourlyRidership(hour=h, ridership=0) for h in range(HOURS_PER_DAY)],
            date_range=DateRange(start="", end=""),
        )

    stations = pd.Series(dict(totals.station_totals), dtype="float64") / days
    hours = (
        pd.Series(dict(totals.hour_totals), dtype="float64")
        .reindex(range(HOURS_PER_DAY), fill_value=0.0)
        / days
    )

    busiest = stations.sort_values(ascending=False, kind="stable").head(top_n)

    lookup = {name.lower(): key for name, key in (station_lines or {}).items()}
    line_keys = stations.index.map(lambda name: lookup.get(name.lower(), UNKNOWN_LINE))
    by_line = stations.groupby(line_keys).sum()

    dates = sorted(totals.dates)
    summary = RidershipSummary(
        total_daily_average=int(round(stations.sum())),
        busiest_stations=[
            StationRidership(name=name, ridership=int(round(value)))
            for name, value in busiest.items()
        ],
        ridership_by_line={key: int(round(value)) for key, value in by_line.items()},
        peak_hours=[HourlyRidership(hour=int(h), ridership=int(round(v))) for h, v in hours.items()],
        date_range=DateRange(start=dates[0], end=dates[-1]),
    )
    logger.debug(
        f"Ridership summary over {days} days: {summary.total_daily_average} average daily riders"
    )
    return summary
