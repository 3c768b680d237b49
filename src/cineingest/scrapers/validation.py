"""Shared checks applied to every scraper's output."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from cineingest.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 2
MAX_TITLE_LENGTH = 200
MAX_DAYS_AHEAD = 90
EARLIEST_START = time(10, 0)
LATE_START = time(23, 30)

# (month, day) dates where listings are usually wrong or placeholder
HOLIDAY_DATES = {(12, 24), (12, 25), (12, 26), (1, 1)}


@dataclass
class ValidationSummary:
    """Valid screenings plus a count of rejections per reason."""

    valid: list[RawScreening] = field(default_factory=list)
    rejected: Counter[str] = field(default_factory=Counter)
    warnings: Counter[str] = field(default_factory=Counter)
    duplicates: int = 0

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values()) + self.duplicates


def _rejection_reason(
    screening: RawScreening, now: datetime, tz: ZoneInfo
) -> str | None:
    title = (screening.title or "").strip()
    if not title:
        return "empty_title"
    if len(title) < MIN_TITLE_LENGTH:
        return "title_too_short"
    if len(title) > MAX_TITLE_LENGTH:
        return "title_too_long"

    if screening.start_time is None:
        return "missing_start_time"
    if screening.start_time < now:
        return "past_start_time"
    if screening.start_time > now + timedelta(days=MAX_DAYS_AHEAD):
        return "too_far_ahead"
    if screening.start_time.astimezone(tz).time() < EARLIEST_START:
        return "implausible_start_time"

    url = (screening.booking_url or "").strip()
    if not url:
        return "empty_booking_url"
    if not url.startswith(("http://", "https://")):
        return "invalid_booking_url"
    if "undefined" in url or "null" in url:
        return "invalid_booking_url"

    return None


def validate_screenings(
    screenings: list[RawScreening],
    now: datetime | None = None,
    timezone_name: str = "Europe/London",
) -> ValidationSummary:
    """
    Filter out unusable screenings and drop duplicate ``source_id``s.

    The first screening seen for a ``source_id`` wins. Holiday dates and
    very late starts are logged as warnings but kept.
    """
    now = now or datetime.now(timezone.utc)
    tz = ZoneInfo(timezone_name)
    summary = ValidationSummary()
    seen: set[str] = set()

    for screening in screenings:
        reason = _rejection_reason(screening, now, tz)
        if reason:
            summary.rejected[reason] += 1
            logger.debug(f"Rejected {screening.title!r} ({reason})")
            continue

        if screening.source_id in seen:
            summary.duplicates += 1
            continue
        seen.add(screening.source_id)

        local = screening.start_time.astimezone(tz)
        if (local.month, local.day) in HOLIDAY_DATES:
            summary.warnings["holiday_date"] += 1
            logger.warning(f"Screening on a holiday: {screening.title!r} at {local}")
        if local.time() >= LATE_START:
            summary.warnings["late_start"] += 1

        summary.valid.append(screening)

    if summary.rejected_total:
        logger.info(
            f"Validation kept {len(summary.valid)}/{len(screenings)} screenings "
            f"(rejected: {dict(summary.rejected)}, duplicates: {summary.duplicates})"
        )
    return summary
