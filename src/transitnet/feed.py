"""Delimited text parsing for scheduling feeds and ridership logs."""

import csv
import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)

BOM = "\ufeff"
HOURS_PER_DAY = 24


def _content_lines(text: str) -> List[str]:
    if text.startswith(BOM):
        text = text[len(BOM):]
    return [line for line in text.splitlines() if line.strip()]


def parse_delimited(text: str, delimiter: str = ",") -> List[Dict[str, str]]:
    """
    Parse headered delimited text into one dict per row.

    The first non-blank line holds the column names. Quoted fields are
    unwrapped and rows shorter than the header are padded with "".

    Args:
        text: File content, possibly starting with a byte-order mark.
        delimiter: Field separator.

    Returns:
        List of {header: value} records.
    """
    lines = _content_lines(text)
    if not lines:
        return []

    reader = csv.reader(lines, delimiter=delimiter)
    headers = [h.strip() for h in next(reader)]

    records = []
    for row in reader:
        records.append({
            header: row[i].strip() if i < len(row) else ""
            for i, header in enumerate(headers)
        })
    return records


def _parse_hour(value) -> Optional[int]:
    try:
        hour = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if 0 <= hour < HOURS_PER_DAY:
        return hour
    return None


def _parse_count(value) -> Optional[float]:
    try:
        count = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if math.isnan(count) or math.isinf(count):
        return None
    return count


class RidershipTotals:
    """Running per-station, per-hour and per-date accumulation of a ridership log."""

    def __init__(self):
        self.station_totals: Dict[str, float] = defaultdict(float)
        # Station names match ignoring case; the first spelling seen is kept.
        self._station_names: Dict[str, str] = {}
        self.hour_totals: Dict[int, float] = defaultdict(float)
        self.dates: Set[str] = set()
        self.rows = 0

    def add(self, date, hour, station, count) -> bool:
        """
        Add one observation. Returns False (and records nothing) when the
        hour is out of range, the count is not numeric, or a field is blank.
        """
        parsed_hour = _parse_hour(hour)
        parsed_count = _parse_count(count)
        date = str(date).strip() if date is not None else ""
        station = str(station).strip() if station is not None else ""
        if parsed_hour is None or parsed_count is None or not date or not station:
            return False

        station = self._station_names.setdefault(station.lower(), station)
        self.station_totals[station] += parsed_count
        self.hour_totals[parsed_hour] += parsed_count
        self.dates.add(date)
        self.rows += 1
        return True

    @property
    def day_count(self) -> int:
        return len(self.dates)


def parse_ridership_log(text: str, delimiter: str = ";") -> RidershipTotals:
    """
    Parse a headerless `date;hour;station;count` log in a single pass.

    Malformed rows are skipped silently.
    """
    totals = RidershipTotals()
    skipped = 0
    for row in csv.reader(_content_lines(text), delimiter=delimiter):
        if len(row) < 4 or not totals.add(row[0], row[1], row[2], row[3]):
            skipped += 1

    logger.debug(
        f"Parsed ridership log: {totals.rows} rows over {totals.day_count} days ({skipped} skipped)"
    )
    return totals
