"""
Tests for the HOS Status Service.

Covers the 11-hour driving and 14-hour on-duty limits, boundary
behaviour and rejection of malformed entries.
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from compliance.services.hos_service import (
    DailyLimitEvaluator,
    DutyStatus,
    EditedLogHeuristic,
    HOSComplianceStatus,
    HOSConfig,
    HOSEntry,
    HOSLog,
    HOSService,
    HOSValidationError,
)


DAY = date(2025, 3, 3)
MIDNIGHT = datetime(2025, 3, 3, tzinfo=timezone.utc)


def make_log(*segments, log_date=DAY, edited=False, start=MIDNIGHT):
    """Build a log from consecutive (status, minutes) segments."""
    entries = []
    cursor = start
    for status, minutes in segments:
        end = cursor + timedelta(minutes=minutes)
        entries.append(HOSEntry(status=status, start_time=cursor, end_time=end))
        cursor = end
    return HOSLog(driver_id='drv-1', log_date=log_date, entries=entries, edited=edited)


class TestHOSConfig:
    """Test HOS configuration defaults."""

    def test_default_config(self):
        config = HOSConfig()

        assert config.max_driving_hours == 11.0
        assert config.max_on_duty_hours == 14.0
        assert config.max_driving_minutes == 660
        assert config.max_on_duty_minutes == 840


class TestHOSLog:

    def test_totals(self):
        log = make_log(
            (DutyStatus.OFF_DUTY, 360),
            (DutyStatus.ON_DUTY, 60),
            (DutyStatus.DRIVING, 240),
            (DutyStatus.SLEEPER_BERTH, 120),
        )

        assert log.total_drive_time == 240
        assert log.total_on_duty_time == 300
        assert log.total_off_duty_time == 360
        assert log.total_sleeper_berth_time == 120
        assert log.compliance_status() == HOSComplianceStatus.COMPLIANT

    def test_day_verdict_uses_supplied_limits(self):
        log = make_log((DutyStatus.DRIVING, 610))
        strict = HOSConfig(max_driving_hours=10.0)

        assert log.compliance_status() == HOSComplianceStatus.COMPLIANT
        assert log.compliance_status(strict) == HOSComplianceStatus.VIOLATION
        assert not HOSService(strict).calculate_status('drv-1', [log]).is_compliant

    def test_edited_entry_flags_log(self):
        log = make_log((DutyStatus.DRIVING, 60))
        log.entries.append(HOSEntry(
            status=DutyStatus.OFF_DUTY,
            start_time=MIDNIGHT + timedelta(hours=2),
            end_time=MIDNIGHT + timedelta(hours=3),
            edited=True,
        ))

        assert log.is_edited


class TestHOSService:
    """Test HOS status calculation."""

    def setup_method(self):
        self.service = HOSService()

    def test_off_duty_only(self):
        result = self.service.calculate_status('drv-1', [make_log((DutyStatus.OFF_DUTY, 600))])

        assert result.current_status == DutyStatus.OFF_DUTY
        assert result.used_drive_time == 0
        assert result.available_drive_time == 660
        assert result.available_on_duty_time == 840
        assert result.compliance_status == HOSComplianceStatus.COMPLIANT

    def test_no_entries(self):
        result = self.service.calculate_status('drv-1', [])

        assert result.current_status == DutyStatus.OFF_DUTY
        assert result.available_drive_time == 660
        assert result.is_compliant

    def test_mixed_day(self):
        log = make_log(
            (DutyStatus.ON_DUTY, 120),
            (DutyStatus.DRIVING, 300),
            (DutyStatus.ON_DUTY, 60),
        )
        result = self.service.calculate_status('drv-1', [log])

        assert result.used_drive_time == 300
        assert result.available_drive_time == 360
        assert result.used_on_duty_time == 480
        assert result.available_on_duty_time == 360
        assert result.current_status == DutyStatus.ON_DUTY
        assert result.is_compliant

    def test_near_violation(self):
        result = self.service.calculate_status('drv-1', [make_log((DutyStatus.DRIVING, 645))])

        assert result.available_drive_time == 15
        assert result.compliance_status == HOSComplianceStatus.COMPLIANT

    def test_exactly_at_driving_limit_is_compliant(self):
        result = self.service.calculate_status('drv-1', [make_log((DutyStatus.DRIVING, 660))])

        assert result.available_drive_time == 0
        assert result.is_compliant

    def test_one_minute_over_driving_limit(self):
        result = self.service.calculate_status('drv-1', [make_log((DutyStatus.DRIVING, 661))])

        assert result.compliance_status == HOSComplianceStatus.VIOLATION
        assert result.available_drive_time == 0
        assert len(result.violations) == 1
        assert 'Driving time' in result.violations[0]

    def test_long_driving_day(self):
        result = self.service.calculate_status('drv-1', [make_log((DutyStatus.DRIVING, 720))])

        assert result.compliance_status == HOSComplianceStatus.VIOLATION
        assert result.available_drive_time == 0

    def test_on_duty_limit_boundary(self):
        at_limit = make_log((DutyStatus.ON_DUTY, 300), (DutyStatus.DRIVING, 540))
        over_limit = make_log((DutyStatus.ON_DUTY, 301), (DutyStatus.DRIVING, 540))

        assert self.service.calculate_status('drv-1', [at_limit]).is_compliant
        result = self.service.calculate_status('drv-1', [over_limit])
        assert result.compliance_status == HOSComplianceStatus.VIOLATION
        assert result.available_on_duty_time == 0
        assert result.available_drive_time == 120

    def test_unsorted_entries_use_chronological_last(self):
        log = make_log((DutyStatus.DRIVING, 60), (DutyStatus.SLEEPER_BERTH, 60))
        log.entries.reverse()

        result = self.service.calculate_status('drv-1', [log])

        assert result.current_status == DutyStatus.SLEEPER_BERTH

    def test_multi_day_window_in_any_order(self):
        day_one = make_log((DutyStatus.DRIVING, 60))
        day_two = make_log(
            (DutyStatus.ON_DUTY, 30),
            log_date=DAY + timedelta(days=1),
            start=MIDNIGHT + timedelta(days=1),
        )

        result = self.service.calculate_status('drv-1', [day_two, day_one])

        assert result.current_status == DutyStatus.ON_DUTY
        assert result.used_on_duty_time == 90

    def test_negative_duration_rejected(self):
        entry = HOSEntry(
            status=DutyStatus.DRIVING,
            start_time=MIDNIGHT + timedelta(hours=2),
            end_time=MIDNIGHT,
        )
        log = HOSLog(driver_id='drv-1', log_date=DAY, entries=[entry])

        with pytest.raises(HOSValidationError) as exc_info:
            self.service.calculate_status('drv-1', [log])

        assert 'drv-1' in str(exc_info.value)
        assert exc_info.value.entries == [entry]

    def test_overlapping_entries_rejected(self):
        log = make_log((DutyStatus.DRIVING, 120))
        log.entries.append(HOSEntry(
            status=DutyStatus.ON_DUTY,
            start_time=MIDNIGHT + timedelta(hours=1),
            end_time=MIDNIGHT + timedelta(hours=3),
        ))

        with pytest.raises(HOSValidationError) as exc_info:
            self.service.calculate_status('drv-1', [log])

        assert len(exc_info.value.entries) == 2

    def test_adjacent_entries_accepted(self):
        log = make_log((DutyStatus.DRIVING, 120), (DutyStatus.OFF_DUTY, 60))

        assert self.service.calculate_status('drv-1', [log]).is_compliant

    def test_mixed_naive_and_aware_rejected(self):
        naive = HOSEntry(
            status=DutyStatus.DRIVING,
            start_time=datetime(2025, 3, 3, 5, 0),
            end_time=datetime(2025, 3, 3, 6, 0),
        )
        log = make_log((DutyStatus.OFF_DUTY, 60))
        log.entries.append(naive)

        with pytest.raises(HOSValidationError):
            self.service.calculate_status('drv-1', [log])

    def test_custom_limits(self):
        service = HOSService(HOSConfig(max_driving_hours=10.0))
        result = service.calculate_status('drv-1', [make_log((DutyStatus.DRIVING, 610))])

        assert result.compliance_status == HOSComplianceStatus.VIOLATION

    def test_to_dict(self):
        data = self.service.calculate_status('drv-1', [make_log((DutyStatus.DRIVING, 60))]).to_dict()

        assert data['current_status'] == 'driving'
        assert data['compliance_status'] == 'compliant'
        assert data['used_drive_time'] == 60


class TestViolationEvaluators:

    def setup_method(self):
        self.since = DAY - timedelta(days=30)
        self.until = DAY

    def test_edited_log_heuristic_counts_edited_days_in_window(self):
        logs = [
            make_log((DutyStatus.DRIVING, 60), edited=True),
            make_log((DutyStatus.DRIVING, 60), log_date=DAY - timedelta(days=5)),
            make_log((DutyStatus.DRIVING, 60), log_date=DAY - timedelta(days=40), edited=True),
        ]

        assert EditedLogHeuristic().count_violations('drv-1', logs, self.since, self.until) == 1

    def test_daily_limit_evaluator_counts_violating_days(self):
        logs = [
            make_log((DutyStatus.DRIVING, 700)),
            make_log(
                (DutyStatus.DRIVING, 600),
                log_date=DAY - timedelta(days=1),
                start=MIDNIGHT - timedelta(days=1),
            ),
        ]

        assert DailyLimitEvaluator().count_violations('drv-1', logs, self.since, self.until) == 1
