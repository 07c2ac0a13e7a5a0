"""
Recurrence expansion for local calendar series.

A VEVENT carrying an RRULE is a series master. Only its occurrences that
overlap the fetch window are materialized, so a series that started long
before the window still contributes the instances the window covers.

Uses python-dateutil for RRULE parsing and expansion.
"""

import logging
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from dateutil.rrule import rrulestr, rruleset
from icalendar import vRecur

from calsync.integrations.base import DateRange

logger = logging.getLogger(__name__)

# Safety limit for a single series within one window
MAX_INSTANCES = 1000


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _series_zone(component) -> Optional[tzinfo]:
    """Zone of DTSTART; None for floating and all-day series."""
    start = component.get("dtstart").dt
    return start.tzinfo if isinstance(start, datetime) else None


def _align(value, zone: Optional[tzinfo]) -> datetime:
    """
    Bring a DATE or DATE-TIME into the series' time base.

    Floating and all-day series expand on naive UTC wall time. Zoned series
    expand in their own zone so occurrences keep their local time across
    DST changes.
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if zone is None:
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value.astimezone(zone)


def _rule_text(recur: vRecur, zone: Optional[tzinfo]) -> str:
    """RRULE text with UNTIL in the form dateutil accepts for this series."""
    recur = vRecur(dict(recur))
    until = _as_list(recur.get("UNTIL"))
    if until:
        value = _align(until[0], zone)
        if zone is not None:
            # dateutil requires UTC UNTIL for zoned DTSTART
            value = value.astimezone(timezone.utc)
        recur["UNTIL"] = [value]
    return recur.to_ical().decode("ascii")


def _property_dates(component, name: str) -> list:
    """Values of a multi-valued date property (EXDATE, RDATE)."""
    values = []
    for prop in _as_list(component.get(name)):
        for entry in getattr(prop, "dts", []):
            value = entry.dt
            if isinstance(value, tuple):
                # RDATE;VALUE=PERIOD -> (start, end or duration)
                value = value[0]
            values.append(value)
    return values


def format_recurrence_id(start: datetime) -> str:
    """Identifier of an occurrence, shared with its RECURRENCE-ID override."""
    return start.astimezone(timezone.utc).isoformat()


def build_ruleset(component) -> Optional[rruleset]:
    """
    Build the occurrence set of a series master.

    RRULEs and RDATEs add occurrences and EXDATEs remove them.

    Returns:
        rruleset over naive UTC wall time (floating or all-day series) or
        over aware datetimes in the DTSTART zone; None if the rule cannot
        be parsed
    """
    zone = _series_zone(component)
    dtstart = _align(component.get("dtstart").dt, zone)

    rules = rruleset()
    try:
        for recur in _as_list(component.get("rrule")):
            rules.rrule(rrulestr(_rule_text(recur, zone), dtstart=dtstart))
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring unparsable RRULE on {component.get('uid')}: {e}")
        return None

    # DTSTART is always the first instance, even when the rule would skip it
    rules.rdate(dtstart)
    for value in _property_dates(component, "rdate"):
        rules.rdate(_align(value, zone))
    for value in _property_dates(component, "exdate"):
        rules.exdate(_align(value, zone))
    return rules


def expand_occurrences(
    component,
    window: DateRange,
    duration: timedelta,
    max_instances: int = MAX_INSTANCES,
) -> Optional[list[datetime]]:
    """
    Expand a series master into the occurrence starts overlapping a window.

    Args:
        component: icalendar VEVENT with DTSTART and RRULE
        window: Fetch window
        duration: Length of each occurrence
        max_instances: Maximum occurrences to generate

    Returns:
        Aware UTC occurrence starts in order, or None if the series cannot
        be expanded
    """
    rules = build_ruleset(component)
    if rules is None:
        return None

    zone = _series_zone(component)
    lower = _align(window.start - duration, zone)
    upper = _align(window.end, zone)

    starts = []
    try:
        for occurrence in rules.xafter(lower, inc=True):
            if occurrence >= upper:
                break
            if zone is None:
                occurrence = occurrence.replace(tzinfo=timezone.utc)
            start = occurrence.astimezone(timezone.utc)
            if not window.overlaps(start, start + duration):
                continue
            starts.append(start)
            if len(starts) >= max_instances:
                logger.warning(
                    f"Series {component.get('uid')} has more than {max_instances} "
                    f"occurrences in the window; truncated"
                )
                break
    except (ValueError, OverflowError) as e:
        logger.warning(f"Failed to expand series {component.get('uid')}: {e}")
        return None

    return starts
