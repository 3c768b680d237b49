"""Scrape health checks against per-venue baselines."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from cineingest.config import settings
from cineingest.exceptions import BaselineConflictError
from cineingest.repositories.base import IngestStore
from cineingest.repositories.records import BaselineRecord

logger = logging.getLogger(__name__)

MAX_BASELINE_RETRIES = 3


@dataclass(frozen=True)
class AlertPayload:
    venue_id: str
    severity: str  # "warning" | "critical"
    message: str
    percent_change: float | None
    blocked: bool


AlertSink = Callable[[AlertPayload], Awaitable[None]]


@dataclass
class HealthReport:
    venue_id: str
    screening_count: int
    baseline: float | None
    tolerance_percent: float
    percent_change: float | None
    anomaly_detected: bool = False
    should_block: bool = False
    manual_override: bool = False
    issues: list[str] = field(default_factory=list)
    recommendation: str = ""
    alert: AlertPayload | None = None


def is_weekend(at: datetime) -> bool:
    return at.weekday() >= 5


def baseline_for(record: BaselineRecord | None, at: datetime) -> float | None:
    """Pick the weekend or weekday average for ``at``, else the other side."""
    if record is None:
        return None
    if is_weekend(at):
        primary, other = record.weekend_avg, record.weekday_avg
    else:
        primary, other = record.weekday_avg, record.weekend_avg
    return primary if primary is not None else other


class HealthMonitor:
    """
    Compares a run's screening count with the venue's baseline.

    A sharp drop usually means a scraper broke against a redesigned page
    rather than that a cinema stopped showing films, so blocked runs are
    not reconciled and never feed back into the baseline.
    """

    def __init__(
        self,
        store: IngestStore,
        default_tolerance: float | None = None,
        block_drop_percent: float | None = None,
        min_baseline_for_block: float | None = None,
        alpha: float | None = None,
    ) -> None:
        self.store = store
        self.default_tolerance = (
            settings.health_default_tolerance if default_tolerance is None else default_tolerance
        )
        self.block_drop_percent = (
            settings.health_block_drop_percent if block_drop_percent is None else block_drop_percent
        )
        self.min_baseline_for_block = (
            settings.health_min_baseline
            if min_baseline_for_block is None
            else min_baseline_for_block
        )
        self.alpha = settings.health_baseline_alpha if alpha is None else alpha

    async def evaluate(
        self, venue_id: str, count: int, at: datetime | None = None
    ) -> HealthReport:
        at = at or datetime.now(timezone.utc)
        record = await self.store.get_baseline(venue_id)
        baseline = baseline_for(record, at)
        tolerance = record.tolerance_percent if record else self.default_tolerance
        override = bool(record and record.manual_override)

        percent_change = None
        if baseline:
            percent_change = (count - baseline) / baseline * 100

        report = HealthReport(
            venue_id=venue_id,
            screening_count=count,
            baseline=baseline,
            tolerance_percent=tolerance,
            percent_change=percent_change,
            manual_override=override,
        )

        if count == 0:
            report.anomaly_detected = True
            report.should_block = True
            report.issues.append("Zero screenings found")
        elif percent_change is not None:
            if abs(percent_change) > tolerance:
                report.anomaly_detected = True
                direction = "drop" if percent_change < 0 else "increase"
                report.issues.append(
                    f"{abs(percent_change):.1f}% {direction} against baseline {baseline:.1f}"
                )
            if (
                percent_change <= -self.block_drop_percent
                and baseline >= self.min_baseline_for_block
            ):
                report.should_block = True

        if override and report.should_block:
            report.should_block = False
            report.issues.append("Blocking disabled by manual override")

        report.recommendation = self._recommend(report)
        if report.anomaly_detected:
            report.alert = AlertPayload(
                venue_id=venue_id,
                severity="critical" if report.should_block else "warning",
                message="; ".join(report.issues),
                percent_change=percent_change,
                blocked=report.should_block,
            )

        log = logger.warning if report.anomaly_detected else logger.info
        log(
            f"Health check {venue_id}: {count} screenings, baseline "
            f"{'n/a' if baseline is None else f'{baseline:.1f}'}, "
            f"anomaly={report.anomaly_detected}, block={report.should_block}",
            extra={"event": "health_check", "venue_id": venue_id},
        )
        return report

    def _recommend(self, report: HealthReport) -> str:
        if report.should_block:
            return "Results withheld: check the scraper against the venue's current site"
        if report.screening_count == 0:
            return "No screenings found: confirm the venue has no programme before overriding"
        if report.anomaly_detected and (report.percent_change or 0) < 0:
            return "Screening count well below baseline: spot-check the venue listings"
        if report.anomaly_detected:
            return "Screening count well above baseline: check for duplicate listings"
        if report.baseline is None:
            return "No baseline yet: this run will seed it"
        return ""

    async def record(
        self,
        venue_id: str,
        count: int,
        at: datetime | None = None,
        blocked: bool = False,
    ) -> BaselineRecord | None:
        """
        Fold ``count`` into the venue's weekday or weekend average.

        Uses an exponential moving average and an optimistic version check,
        retrying on conflicting writers.

        Returns:
            The stored baseline, or None if the run was blocked
        """
        if blocked:
            logger.info(f"Not updating baseline for {venue_id} from a blocked run")
            return None

        at = at or datetime.now(timezone.utc)
        weekend = is_weekend(at)

        for attempt in range(1, MAX_BASELINE_RETRIES + 1):
            current = await self.store.get_baseline(venue_id)
            if current is None:
                current = BaselineRecord(
                    venue_id=venue_id, tolerance_percent=self.default_tolerance
                )

            side = "weekend_avg" if weekend else "weekday_avg"
            previous = getattr(current, side)
            if previous is None:
                updated_avg = float(count)
            else:
                updated_avg = self.alpha * count + (1 - self.alpha) * previous

            updated = replace(current, sample_count=current.sample_count + 1)
            setattr(updated, side, round(updated_avg, 2))

            try:
                return await self.store.set_baseline(updated, expected_version=current.version)
            except BaselineConflictError:
                logger.info(
                    f"Baseline for {venue_id} changed concurrently "
                    f"(attempt {attempt}/{MAX_BASELINE_RETRIES})"
                )

        raise BaselineConflictError(venue_id, current.version)
