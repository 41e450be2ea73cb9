"""Small time grammar for reminder commands.

Accepted forms: ``in 30 minutes``, ``in 2 hours``, ``2:30pm today``,
``14:30``, ``2pm tomorrow`` and ``tomorrow at 9:15am``. A clock time that has
already passed today rolls over to tomorrow unless ``today`` is given
explicitly; the store then rejects it as a past time.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

RELATIVE_PATTERN = re.compile(
    r"\bin\s+(\d+)\s*(min(?:ute)?s?|hours?|hrs?|h)\b", re.IGNORECASE
)
CLOCK_PATTERN = re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)?", re.IGNORECASE)
HOUR_PATTERN = re.compile(r"(\d{1,2})\s*(am|pm)\b", re.IGNORECASE)

TIME_PHRASES = [
    re.compile(
        r"((?:today|tomorrow)\s+(?:at\s+)?\d{1,2}(?::\d{2}\s*(?:am|pm)?|\s*(?:am|pm)))\b",
        re.IGNORECASE,
    ),
    re.compile(r"(\bin\s+\d+\s*(?:min(?:ute)?s?|hours?|hrs?|h)\b)", re.IGNORECASE),
    re.compile(
        r"((?:\bat\s+)?\d{1,2}:\d{2}\s*(?:am|pm)?(?:\s*(?:today|tomorrow))?)",
        re.IGNORECASE,
    ),
    re.compile(
        r"((?:\bat\s+)?\b\d{1,2}\s*(?:am|pm)\b(?:\s*(?:today|tomorrow))?)",
        re.IGNORECASE,
    ),
]

COMMAND_PREFIX = re.compile(r"^(?:(?:beta|nero)[,\s]*)?remind\s+me\s*", re.IGNORECASE)
LEADING_FILLER = re.compile(r"^(?:to|about|for)\s+", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedReminder:
    message: str
    time_text: str
    time: datetime


def _to_24h(hours: int, period: Optional[str]) -> Optional[int]:
    period = (period or "").lower()
    if period:
        if not 1 <= hours <= 12:
            return None
        if period == "pm" and hours != 12:
            hours += 12
        elif period == "am" and hours == 12:
            hours = 0
    if not 0 <= hours <= 23:
        return None
    return hours


def _on_day(now: datetime, hours: int, minutes: int, lowered: str) -> datetime:
    target = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if "tomorrow" in lowered:
        target += timedelta(days=1)
    elif target <= now and "today" not in lowered:
        target += timedelta(days=1)
    return target


def parse_time(text: str, now: datetime) -> Optional[datetime]:
    """Resolve a time expression against ``now``; returns None when nothing matches."""
    lowered = (text or "").lower().strip()
    if not lowered:
        return None

    relative = RELATIVE_PATTERN.search(lowered)
    if relative:
        amount = int(relative.group(1))
        unit = relative.group(2)
        if unit.startswith("min"):
            return now + timedelta(minutes=amount)
        return now + timedelta(hours=amount)

    clock = CLOCK_PATTERN.search(lowered)
    if clock:
        hours = _to_24h(int(clock.group(1)), clock.group(3))
        minutes = int(clock.group(2))
        if hours is None or minutes > 59:
            return None
        return _on_day(now, hours, minutes, lowered)

    hour_only = HOUR_PATTERN.search(lowered)
    if hour_only:
        hours = _to_24h(int(hour_only.group(1)), hour_only.group(2))
        if hours is None:
            return None
        return _on_day(now, hours, 0, lowered)

    return None


def parse_reminder_input(text: str, now: datetime) -> Optional[ParsedReminder]:
    """Split ``remind me to call mom in 30 minutes`` into message and time."""
    cleaned = COMMAND_PREFIX.sub("", (text or "").strip())
    cleaned = LEADING_FILLER.sub("", cleaned).strip()

    time_text = None
    message = cleaned
    for pattern in TIME_PHRASES:
        match = pattern.search(cleaned)
        if match:
            time_text = re.sub(r"^at\s+", "", match.group(1).strip(), flags=re.IGNORECASE)
            message = cleaned[: match.start()] + " " + cleaned[match.end():]
            break
    if not time_text:
        return None

    when = parse_time(time_text, now)
    if when is None:
        return None

    message = " ".join(message.split())
    message = LEADING_FILLER.sub("", message).strip()
    if not message:
        message = "Reminder"
    return ParsedReminder(message=message, time_text=time_text, time=when)
