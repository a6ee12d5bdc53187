"""
FMCSA Hours of Service (HOS) Status Service.

Turns a driver's recorded duty-status entries into an actionable status:
current duty status, drive and on-duty minutes used and still available,
and a compliance verdict.

FMCSA HOS Rules Evaluated:
==========================
1. 11-Hour Driving Limit: Max 11 hours driving after 10 consecutive hours off-duty
2. 14-Hour On-Duty Window: Max 14 hours on-duty (driving + on duty not driving)

Reaching a limit exactly is compliant; only exceeding it is a violation.

The 70-Hour/8-Day cycle and the 30-minute break rules are not evaluated.
`ViolationEvaluator` is the seam where an evaluator for them plugs in.

References:
- https://www.fmcsa.dot.gov/regulations/hours-of-service
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from .time_windows import ranges_overlap

logger = logging.getLogger(__name__)


class DutyStatus(Enum):
    """Driver duty status as recorded on the log."""
    OFF_DUTY = "off_duty"
    SLEEPER_BERTH = "sleeper_berth"
    DRIVING = "driving"
    ON_DUTY = "on_duty"


class EntrySource(Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class HOSComplianceStatus(Enum):
    COMPLIANT = "compliant"
    VIOLATION = "violation"


ON_DUTY_STATUSES = (DutyStatus.DRIVING, DutyStatus.ON_DUTY)


class HOSValidationError(ValueError):
    """Raised when HOS entries cannot be evaluated (overlaps, negative durations)."""

    def __init__(self, message: str, driver_id: str = "", entries: Optional[List["HOSEntry"]] = None):
        super().__init__(message)
        self.driver_id = driver_id
        self.entries = entries or []


@dataclass
class HOSConfig:
    """
    Configuration for HOS limits.
    Values can be adjusted for different regulations or testing.
    """
    max_driving_hours: float = 11.0
    max_on_duty_hours: float = 14.0

    @property
    def max_driving_minutes(self) -> float:
        return self.max_driving_hours * 60

    @property
    def max_on_duty_minutes(self) -> float:
        return self.max_on_duty_hours * 60


@dataclass(frozen=True)
class HOSEntry:
    """One continuous duty-status interval."""
    status: DutyStatus
    start_time: datetime
    end_time: datetime
    location: str = ""
    source: EntrySource = EntrySource.MANUAL
    edited: bool = False

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> float:
        return self.duration.total_seconds() / 60


@dataclass
class HOSLog:
    """All entries recorded for one driver on one calendar day."""
    driver_id: str
    log_date: date
    entries: List[HOSEntry] = field(default_factory=list)
    edited: bool = False

    def _minutes(self, *statuses: DutyStatus) -> float:
        return sum(
            (e.duration for e in self.entries if e.status in statuses),
            timedelta()
        ).total_seconds() / 60

    @property
    def is_edited(self) -> bool:
        return self.edited or any(e.edited for e in self.entries)

    @property
    def total_drive_time(self) -> float:
        return self._minutes(DutyStatus.DRIVING)

    @property
    def total_on_duty_time(self) -> float:
        return self._minutes(*ON_DUTY_STATUSES)

    @property
    def total_off_duty_time(self) -> float:
        return self._minutes(DutyStatus.OFF_DUTY)

    @property
    def total_sleeper_berth_time(self) -> float:
        return self._minutes(DutyStatus.SLEEPER_BERTH)

    def compliance_status(self, config: Optional[HOSConfig] = None) -> "HOSComplianceStatus":
        """Day-level verdict against `config`, or the default 11/14-hour limits."""
        config = config or HOSConfig()
        if (self.total_drive_time > config.max_driving_minutes
                or self.total_on_duty_time > config.max_on_duty_minutes):
            return HOSComplianceStatus.VIOLATION
        return HOSComplianceStatus.COMPLIANT


@dataclass
class HOSStatusResult:
    """Outcome of evaluating a driver's HOS entries."""
    driver_id: str
    current_status: DutyStatus
    used_drive_time: float
    available_drive_time: float
    used_on_duty_time: float
    available_on_duty_time: float
    compliance_status: HOSComplianceStatus
    violations: List[str] = field(default_factory=list)

    @property
    def is_compliant(self) -> bool:
        return self.compliance_status == HOSComplianceStatus.COMPLIANT

    def to_dict(self) -> Dict:
        return {
            'driver_id': self.driver_id,
            'current_status': self.current_status.value,
            'used_drive_time': self.used_drive_time,
            'available_drive_time': self.available_drive_time,
            'used_on_duty_time': self.used_on_duty_time,
            'available_on_duty_time': self.available_on_duty_time,
            'compliance_status': self.compliance_status.value,
            'violations': list(self.violations),
        }


class HOSService:
    """
    Service for evaluating a driver's Hours of Service status.

    Used both for the live duty-status display and for violation detection.
    Accepts a single day or a multi-day window of logs; entries are
    evaluated in chronological order regardless of the order supplied.
    """

    def __init__(self, config: Optional[HOSConfig] = None):
        self.config = config or HOSConfig()

    def calculate_status(self, driver_id: str, logs: List[HOSLog]) -> HOSStatusResult:
        """
        Calculate current duty status and remaining drive/on-duty time.

        Args:
            driver_id: Driver the logs belong to
            logs: HOS logs to evaluate (usually the current day)

        Returns:
            HOSStatusResult with minutes used/available and the verdict

        Raises:
            HOSValidationError: if any entry has a negative duration or
                two entries overlap
        """
        entries = self._ordered_entries(driver_id, logs)

        used_drive = sum(
            (e.duration for e in entries if e.status == DutyStatus.DRIVING),
            timedelta()
        ).total_seconds() / 60
        used_on_duty = sum(
            (e.duration for e in entries if e.status in ON_DUTY_STATUSES),
            timedelta()
        ).total_seconds() / 60

        current_status = entries[-1].status if entries else DutyStatus.OFF_DUTY

        max_drive = self.config.max_driving_minutes
        max_on_duty = self.config.max_on_duty_minutes

        violations = []
        if used_drive > max_drive:
            violations.append(
                f"Driving time ({used_drive:g} min) exceeds {max_drive:g} min limit"
            )
        if used_on_duty > max_on_duty:
            violations.append(
                f"On-duty time ({used_on_duty:g} min) exceeds {max_on_duty:g} min limit"
            )

        compliance_status = (
            HOSComplianceStatus.VIOLATION if violations else HOSComplianceStatus.COMPLIANT
        )
        if violations:
            logger.info(f"HOS violation for driver {driver_id}: {'; '.join(violations)}")

        return HOSStatusResult(
            driver_id=driver_id,
            current_status=current_status,
            used_drive_time=used_drive,
            available_drive_time=max(0, max_drive - used_drive),
            used_on_duty_time=used_on_duty,
            available_on_duty_time=max(0, max_on_duty - used_on_duty),
            compliance_status=compliance_status,
            violations=violations,
        )

    def _ordered_entries(self, driver_id: str, logs: List[HOSLog]) -> List[HOSEntry]:
        """Flatten, validate and chronologically sort the entries of all logs."""
        entries = [entry for log in logs for entry in log.entries]

        for entry in entries:
            if (entry.start_time.tzinfo is None) != (entry.end_time.tzinfo is None):
                raise HOSValidationError(
                    f"Driver {driver_id}: entry starting {entry.start_time.isoformat()} "
                    f"mixes naive and timezone-aware timestamps",
                    driver_id=driver_id,
                    entries=[entry],
                )
            if entry.end_time < entry.start_time:
                raise HOSValidationError(
                    f"Driver {driver_id}: {entry.status.value} entry has negative duration "
                    f"({entry.start_time.isoformat()} -> {entry.end_time.isoformat()})",
                    driver_id=driver_id,
                    entries=[entry],
                )

        try:
            ordered = sorted(entries, key=lambda e: e.start_time)
        except TypeError as exc:
            raise HOSValidationError(
                f"Driver {driver_id}: entries mix naive and timezone-aware timestamps",
                driver_id=driver_id,
                entries=entries,
            ) from exc

        for previous, current in zip(ordered, ordered[1:]):
            if ranges_overlap(
                previous.start_time, previous.end_time,
                current.start_time, current.end_time
            ):
                raise HOSValidationError(
                    f"Driver {driver_id}: overlapping entries "
                    f"{previous.start_time.isoformat()}-{previous.end_time.isoformat()} and "
                    f"{current.start_time.isoformat()}-{current.end_time.isoformat()}",
                    driver_id=driver_id,
                    entries=[previous, current],
                )

        return ordered


# =============================================================================
# Violation evaluators
# =============================================================================

class ViolationEvaluator(ABC):
    """Counts HOS violations for a driver across a trailing window of log days."""

    name = "base"

    @abstractmethod
    def count_violations(self, driver_id: str, logs: List[HOSLog], since: date, until: date) -> int:
        """Number of violating log days with since <= log_date <= until."""

    @staticmethod
    def _in_window(logs: List[HOSLog], since: date, until: date) -> List[HOSLog]:
        return [log for log in logs if since <= log.log_date <= until]


class EditedLogHeuristic(ViolationEvaluator):
    """
    Treats every manually edited log day as a potential violation.

    A stand-in for the full multi-day rule set: edits are a strong signal
    that the recorded hours needed correcting.
    """

    name = "edited_log_heuristic"

    def count_violations(self, driver_id: str, logs: List[HOSLog], since: date, until: date) -> int:
        return sum(1 for log in self._in_window(logs, since, until) if log.is_edited)


class DailyLimitEvaluator(ViolationEvaluator):
    """Runs the 11/14-hour limits against each log day in the window."""

    name = "daily_limit"

    def __init__(self, hos_service: Optional[HOSService] = None):
        self.hos_service = hos_service or HOSService()

    def count_violations(self, driver_id: str, logs: List[HOSLog], since: date, until: date) -> int:
        count = 0
        for log in self._in_window(logs, since, until):
            result = self.hos_service.calculate_status(driver_id, [log])
            if not result.is_compliant:
                count += 1
        return count
