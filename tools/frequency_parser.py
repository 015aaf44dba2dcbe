"""
Frequency Parser Tool
Turns free-text prescription instructions into a dose cadence and end date
"""

import re
import logging
from typing import List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import date, timedelta

from models import ReminderFrequency


logger = logging.getLogger(__name__)


DEFAULT_DOSE_TIME = "08:00"
DEFAULT_DURATION_DAYS = 30

# Checked top to bottom, first hit wins. Four-times must come before
# three-times, and both before twice, so that overlapping phrases like
# "take three times daily" never fall through to a looser match.
FREQUENCY_RULES: List[Tuple[Tuple[str, ...], ReminderFrequency, Tuple[str, ...]]] = [
    (
        ("four times", "4 times", "qds", "qid"),
        ReminderFrequency.FOUR_TIMES_DAILY,
        ("08:00", "12:00", "16:00", "20:00"),
    ),
    (
        ("three times", "3 times", "tds", "tid"),
        ReminderFrequency.THREE_TIMES_DAILY,
        ("08:00", "14:00", "20:00"),
    ),
    (
        ("twice", "two times", "2 times", "bd", "bid"),
        ReminderFrequency.TWICE_DAILY,
        ("08:00", "20:00"),
    ),
    (
        ("every other day", "alternate day"),
        ReminderFrequency.EVERY_OTHER_DAY,
        (DEFAULT_DOSE_TIME,),
    ),
    (
        ("weekly", "once a week"),
        ReminderFrequency.WEEKLY,
        (DEFAULT_DOSE_TIME,),
    ),
]

# Approximate lengths: a month is 30 days and a year 365. Refill dates
# depend on this, so it is not calendar arithmetic.
DURATION_UNITS: List[Tuple[str, int]] = [
    ("month", 30),
    ("week", 7),
    ("day", 1),
    ("year", 365),
]

_NUMBER_RE = re.compile(r"(\d+)")


@dataclass
class ParsedSchedule:
    """Cadence derived from a prescription"""
    frequency: ReminderFrequency
    times_of_day: List[str] = field(default_factory=list)
    end_date: Optional[date] = None


def parse_frequency(text: Optional[str]) -> Tuple[ReminderFrequency, List[str]]:
    """
    Map a dosing instruction ("Twice daily", "BD", "3 times a day") to a cadence.

    Never raises; unknown text falls back to once daily at 08:00.
    """
    lower = (text or "").lower()

    for phrases, frequency, times in FREQUENCY_RULES:
        if any(phrase in lower for phrase in phrases):
            return frequency, list(times)

    return ReminderFrequency.ONCE_DAILY, [DEFAULT_DOSE_TIME]


def default_times_for(frequency: ReminderFrequency) -> List[str]:
    """Standard dose times for a cadence"""
    for _, rule_frequency, times in FREQUENCY_RULES:
        if rule_frequency == frequency:
            return list(times)
    return [DEFAULT_DOSE_TIME]


def parse_end_date(
    duration: Optional[str],
    start_date: date,
    default_days: int = DEFAULT_DURATION_DAYS
) -> date:
    """
    Compute an end date from a duration such as "3 months" or "10 days".

    The first integer in the text is the count (1 when only a unit is given).
    Missing text or an unrecognised unit yields ``default_days``.
    """
    if not duration:
        return start_date + timedelta(days=default_days)

    lower = duration.lower()
    match = _NUMBER_RE.search(lower)
    count = int(match.group(1)) if match else 1

    for unit, days_per_unit in DURATION_UNITS:
        if unit in lower:
            return start_date + timedelta(days=count * days_per_unit)

    return start_date + timedelta(days=default_days)


def parse_schedule(
    frequency_text: Optional[str],
    duration_text: Optional[str],
    start_date: date,
    default_days: int = DEFAULT_DURATION_DAYS
) -> ParsedSchedule:
    """Parse both prescription fields into a ParsedSchedule"""
    frequency, times = parse_frequency(frequency_text)
    end_date = parse_end_date(duration_text, start_date, default_days)

    logger.debug(
        f"Parsed '{frequency_text}' / '{duration_text}' as "
        f"{frequency.value} at {times} until {end_date}"
    )
    return ParsedSchedule(frequency=frequency, times_of_day=times, end_date=end_date)
