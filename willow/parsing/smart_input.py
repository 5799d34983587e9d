"""
Smart Input Parsing

Turns a line typed into the task box ("Call mum tomorrow") into a title
and a due date.

DESIGN DECISION: Parsing is a fixed list of patterns, tried in order.
The first pattern that matches wins, so "tomorrow" beats a weekday name
appearing later in the same text. Nothing here talks to storage.

Recognised (case-insensitive):
- tomorrow, today
- next week (+7 days), next month (+1 calendar month)
- weekday names (next occurrence, never today)
- "<month> <day>", e.g. "dec 31"
- numeric "MM/DD" or "MM-DD"

Month/day forms roll over to next year once the date has passed. Days past
the end of a month spill into the next one, so "feb 29" in a non-leap year
is March 1st.
All results are midnight of the day they name.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field

from willow.models.task import utc_now


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]

_TOMORROW = re.compile(r"\btomorrow\b", re.IGNORECASE)
_TODAY = re.compile(r"\btoday\b", re.IGNORECASE)
_NEXT_WEEK = re.compile(r"\bnext\s+week\b", re.IGNORECASE)
_NEXT_MONTH = re.compile(r"\bnext\s+month\b", re.IGNORECASE)
_WEEKDAY = re.compile(r"\b(" + "|".join(WEEKDAYS) + r")\b", re.IGNORECASE)
_MONTH_DAY = re.compile(
    r"\b(" + "|".join(MONTHS) + r")[a-z]*\s+(\d{1,2})\b",
    re.IGNORECASE,
)
_NUMERIC = re.compile(r"\b(\d{1,2})[/-](\d{1,2})\b")

# Keyword -> emoji, first match wins
EMOJI_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("coffee",), "☕"),
    (("gym", "yoga"), "🧘"),
    (("email", "finish"), "📝"),
]


class ParsedInput(BaseModel):
    """Result of parsing one line of task input."""

    title: str = Field(..., description="Text with the date phrase removed")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Midnight of the recognised day, if any"
    )
    matched_text: Optional[str] = Field(
        default=None,
        description="The exact phrase the date was read from"
    )


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _calendar_day(today: datetime, year: int, month: int, day: int) -> datetime:
    """`day` counted from the 1st, so an overflow spills into the next month."""
    return today.replace(year=year, month=month, day=1) + timedelta(days=day - 1)


def _upcoming(today: datetime, month: int, day: int) -> Optional[datetime]:
    """This year's month/day, or the same date next year if it already passed."""
    if not 1 <= day <= 31:
        return None
    candidate = _calendar_day(today, today.year, month, day)
    if candidate < today:
        candidate = _calendar_day(today, today.year + 1, candidate.month, candidate.day)
    return candidate


def _match_date(text: str, today: datetime) -> tuple[Optional[datetime], Optional[re.Match]]:
    match = _TOMORROW.search(text)
    if match:
        return today + timedelta(days=1), match

    match = _TODAY.search(text)
    if match:
        return today, match

    match = _NEXT_WEEK.search(text)
    if match:
        return today + timedelta(days=7), match

    match = _NEXT_MONTH.search(text)
    if match:
        return today + relativedelta(months=1), match

    match = _WEEKDAY.search(text)
    if match:
        target = WEEKDAYS.index(match.group(1).lower())
        days_ahead = (target - today.weekday()) % 7 or 7
        return today + timedelta(days=days_ahead), match

    match = _MONTH_DAY.search(text)
    if match:
        month = MONTHS.index(match.group(1).lower()[:3]) + 1
        found = _upcoming(today, month, int(match.group(2)))
        if found:
            return found, match

    match = _NUMERIC.search(text)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12:
            found = _upcoming(today, month, day)
            if found:
                return found, match

    return None, None


def parse_date_from_text(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Find a due date mentioned in `text`.

    Args:
        text: Free text typed by the user
        now: Reference time; defaults to the current UTC time

    Returns:
        Midnight of the recognised day, or None
    """
    today = _midnight(now or utc_now())
    found, _ = _match_date(text, today)
    return found


def parse_smart_input(text: str, now: Optional[datetime] = None) -> ParsedInput:
    """
    Split typed input into a title and an optional due date.

    The date phrase is cut out of the title. If nothing else is left the
    full text is kept as the title.
    """
    text = text.strip()
    today = _midnight(now or utc_now())
    found, match = _match_date(text, today)

    if match is None:
        return ParsedInput(title=text)

    title = (text[:match.start()] + " " + text[match.end():]).strip()
    title = re.sub(r"\s{2,}", " ", title)
    return ParsedInput(
        title=title or text,
        due_date=found,
        matched_text=match.group(0),
    )


def suggest_emoji(title: str) -> Optional[str]:
    """Pick an emoji from keywords in the title, if any."""
    lowered = title.lower()
    for keywords, emoji in EMOJI_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return emoji
    return None
