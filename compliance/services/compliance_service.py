"""
Compliance Aggregator Service.

Builds the compliance dashboard for one tenant from a snapshot of its
drivers, vehicles and documents:

Driver status (first match wins):
================================
1. License or medical card already expired -> Non-Compliant
2. Either expiring within the warning window (30 days) -> Warning
3. Otherwise -> Compliant

HOS violations are counted separately over a trailing window and are
not folded into the driver status.

Vehicle status (first match wins):
==================================
1. Vehicle not active (inactive or in maintenance) -> Non-Compliant
2. Latest inspection failed -> Non-Compliant
3. Never inspected, or last inspection older than 90 days -> Warning
4. Otherwise -> Compliant

Each entity is evaluated on its own. A record that cannot be evaluated is
logged and reported as skipped; it never blocks its siblings.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from ..records import (
    DateLike,
    DocumentRecord,
    DocumentStatus,
    DriverRecord,
    InspectionResult,
    VehicleRecord,
    VehicleStatus,
)
from .hos_service import (
    EditedLogHeuristic,
    HOSService,
    HOSStatusResult,
    ViolationEvaluator,
)
from .ifta_service import quarter_due_date
from .time_windows import (
    add_days,
    days_between,
    is_past,
    is_within_next_days,
    to_instant,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


class ComplianceStatus(Enum):
    COMPLIANT = "Compliant"
    WARNING = "Warning"
    NON_COMPLIANT = "Non-Compliant"


class DeadlineType(Enum):
    DRIVER_CDL = "Driver CDL"
    DRIVER_MEDICAL_CARD = "Driver Medical Card"
    DOCUMENT_EXPIRATION = "Document Expiration"
    IFTA_FILING = "IFTA Filing"


class DeadlineStatus(Enum):
    UPCOMING = "Upcoming"
    EXPIRING_SOON = "Expiring Soon"
    DUE_SOON = "Due Soon"
    EXPIRED = "Expired"


@dataclass
class ComplianceConfig:
    """Windows (in days) used by the aggregator."""
    expiration_warning_days: int = 30
    urgent_days: int = 15
    inspection_interval_days: int = 90
    deadline_horizon_days: int = 30
    hos_violation_window_days: int = 30


def _iso(value: Optional[DateLike]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# =============================================================================
# Derived records
# =============================================================================

@dataclass
class DriverCompliance:
    driver_id: str
    name: str
    license_expiration: Optional[DateLike]
    medical_card_expiration: Optional[DateLike]
    status: ComplianceStatus
    reason: str
    hos_status: Optional[HOSStatusResult] = None
    hos_violations: int = 0

    def to_dict(self) -> Dict:
        return {
            'driver_id': self.driver_id,
            'name': self.name,
            'license_expiration': _iso(self.license_expiration),
            'medical_card_expiration': _iso(self.medical_card_expiration),
            'status': self.status.value,
            'reason': self.reason,
            'hos_status': self.hos_status.to_dict() if self.hos_status else None,
            'hos_violations': self.hos_violations,
        }


@dataclass
class VehicleCompliance:
    vehicle_id: str
    unit_number: str
    vehicle_status: VehicleStatus
    last_inspection_date: Optional[DateLike]
    last_inspection_result: Optional[InspectionResult]
    status: ComplianceStatus
    next_inspection_date: DateLike
    defects: str
    reason: str

    def to_dict(self) -> Dict:
        return {
            'vehicle_id': self.vehicle_id,
            'unit_number': self.unit_number,
            'vehicle_status': self.vehicle_status.value,
            'last_inspection_date': _iso(self.last_inspection_date),
            'last_inspection_result': (
                self.last_inspection_result.value if self.last_inspection_result else None
            ),
            'status': self.status.value,
            'next_inspection_date': _iso(self.next_inspection_date),
            'defects': self.defects,
            'reason': self.reason,
        }


@dataclass
class DocumentCompliance:
    document_id: str
    name: str
    type: str
    document_status: DocumentStatus
    expiration_date: Optional[DateLike]
    assigned_to: str
    compliant: bool

    def to_dict(self) -> Dict:
        return {
            'document_id': self.document_id,
            'name': self.name,
            'type': self.type,
            'document_status': self.document_status.value,
            'expiration_date': _iso(self.expiration_date),
            'assigned_to': self.assigned_to,
            'compliant': self.compliant,
        }


@dataclass
class CategoryMetrics:
    rate: int
    total: int
    compliant: int
    need_attention: int

    @classmethod
    def from_counts(cls, compliant: int, total: int) -> 'CategoryMetrics':
        if total == 0:
            rate = 0
        else:
            rate = int(
                (Decimal(100 * compliant) / Decimal(total)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
            )
        return cls(rate=rate, total=total, compliant=compliant, need_attention=total - compliant)

    def to_dict(self) -> Dict:
        return {
            'rate': self.rate,
            'total': self.total,
            'compliant': self.compliant,
            'need_attention': self.need_attention,
        }


@dataclass
class SkippedRecord:
    """An entity the aggregator could not evaluate."""
    record_type: str
    record_id: str
    error: str

    def to_dict(self) -> Dict:
        return {
            'record_type': self.record_type,
            'record_id': self.record_id,
            'error': self.error,
        }


@dataclass
class ComplianceMetrics:
    driver_compliance: CategoryMetrics
    vehicle_compliance: CategoryMetrics
    document_compliance: CategoryMetrics
    hos_violations: int
    skipped: List[SkippedRecord] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'driver_compliance': self.driver_compliance.to_dict(),
            'vehicle_compliance': self.vehicle_compliance.to_dict(),
            'document_compliance': self.document_compliance.to_dict(),
            'hos_violations': self.hos_violations,
            'skipped': [s.to_dict() for s in self.skipped],
        }


@dataclass(frozen=True)
class DeadlineItem:
    type: DeadlineType
    name: str
    due_in: int
    status: DeadlineStatus

    @property
    def sort_key(self) -> Tuple[int, str, str]:
        return (self.due_in, self.type.value, self.name)

    def to_dict(self) -> Dict:
        return {
            'type': self.type.value,
            'name': self.name,
            'due_in': self.due_in,
            'status': self.status.value,
        }


@dataclass
class ComplianceSnapshot:
    """Everything the aggregator needs for one tenant."""
    tenant_id: str
    drivers: List[DriverRecord] = field(default_factory=list)
    vehicles: List[VehicleRecord] = field(default_factory=list)
    documents: List[DocumentRecord] = field(default_factory=list)


@dataclass
class ComplianceDashboard:
    tenant_id: str
    generated_at: datetime
    drivers: List[DriverCompliance]
    vehicles: List[VehicleCompliance]
    documents: List[DocumentCompliance]
    metrics: ComplianceMetrics
    deadlines: List[DeadlineItem]

    def to_dict(self) -> Dict:
        return {
            'tenant_id': self.tenant_id,
            'generated_at': self.generated_at.isoformat(),
            'drivers': [d.to_dict() for d in self.drivers],
            'vehicles': [v.to_dict() for v in self.vehicles],
            'documents': [d.to_dict() for d in self.documents],
            'metrics': self.metrics.to_dict(),
            'deadlines': [d.to_dict() for d in self.deadlines],
            'skipped': [s.to_dict() for s in self.metrics.skipped],
        }


# =============================================================================
# Service
# =============================================================================

class ComplianceService:
    """
    Computes per-entity compliance, summary rates and the deadline list.

    Stateless: every call receives the tenant's records and an explicit
    `now`. Identical inputs produce identical outputs.
    """

    def __init__(
        self,
        config: Optional[ComplianceConfig] = None,
        hos_service: Optional[HOSService] = None,
        violation_evaluator: Optional[ViolationEvaluator] = None
    ):
        self.config = config or ComplianceConfig()
        self.hos_service = hos_service or HOSService()
        self.violation_evaluator = violation_evaluator or EditedLogHeuristic()

    # -------------------------------------------------------------------------
    # Per-entity evaluation
    # -------------------------------------------------------------------------

    def evaluate_driver(self, driver: DriverRecord, now: datetime) -> DriverCompliance:
        """
        Classify one driver. Raises RecordValidationError, HOSValidationError
        or ValueError when the record cannot be evaluated.
        """
        driver.validate()

        documents = [
            ('License', driver.license_expiration),
            ('Medical card', driver.medical_card_expiration),
        ]
        expired = []
        expiring = []
        for label, expiration in documents:
            if expiration is None:
                continue
            instant = to_instant(expiration, now)
            if is_past(instant, now):
                expired.append(f"{label} expired on {expiration.isoformat()}")
            elif instant <= add_days(now, self.config.expiration_warning_days):
                expiring.append(f"{label} expires in {days_between(now, instant)} days")

        if expired:
            status = ComplianceStatus.NON_COMPLIANT
            reason = "; ".join(expired)
        elif expiring:
            status = ComplianceStatus.WARNING
            reason = "; ".join(expiring)
        else:
            status = ComplianceStatus.COMPLIANT
            reason = "License and medical card current"

        hos_status = None
        if driver.hos_logs:
            latest = max(driver.hos_logs, key=lambda log: log.log_date)
            hos_status = self.hos_service.calculate_status(driver.id, [latest])

        return DriverCompliance(
            driver_id=driver.id,
            name=driver.name,
            license_expiration=driver.license_expiration,
            medical_card_expiration=driver.medical_card_expiration,
            status=status,
            reason=reason,
            hos_status=hos_status,
            hos_violations=self.count_hos_violations(driver, now),
        )

    def count_hos_violations(self, driver: DriverRecord, now: datetime) -> int:
        since = (now - timedelta(days=self.config.hos_violation_window_days)).date()
        return self.violation_evaluator.count_violations(
            driver.id, driver.hos_logs, since, now.date()
        )

    def evaluate_vehicle(self, vehicle: VehicleRecord, now: datetime) -> VehicleCompliance:
        vehicle.validate()
        interval = self.config.inspection_interval_days
        last = vehicle.last_inspection_date
        result = vehicle.last_inspection_result

        if vehicle.status != VehicleStatus.ACTIVE:
            status = ComplianceStatus.NON_COMPLIANT
            reason = f"Vehicle is {vehicle.status.value}"
        elif result == InspectionResult.FAILED:
            status = ComplianceStatus.NON_COMPLIANT
            reason = f"Failed inspection on {last.isoformat()}"
        elif last is None:
            status = ComplianceStatus.WARNING
            reason = "No inspection on record"
        elif is_past(add_days(to_instant(last, now), interval), now):
            status = ComplianceStatus.WARNING
            reason = f"Last inspection older than {interval} days"
        else:
            status = ComplianceStatus.COMPLIANT
            reason = "Inspection current"

        if last is not None:
            next_inspection = last + timedelta(days=interval)
        else:
            next_inspection = add_days(now, interval)

        return VehicleCompliance(
            vehicle_id=vehicle.id,
            unit_number=vehicle.unit_number,
            vehicle_status=vehicle.status,
            last_inspection_date=last,
            last_inspection_result=result,
            status=status,
            next_inspection_date=next_inspection,
            defects="Major - Requires Attention" if result == InspectionResult.FAILED else "None",
            reason=reason,
        )

    def evaluate_document(self, document: DocumentRecord, now: datetime) -> DocumentCompliance:
        document.validate()
        compliant = document.status == DocumentStatus.ACTIVE
        if compliant and document.expiration_date is not None:
            compliant = not is_past(to_instant(document.expiration_date, now), now)

        return DocumentCompliance(
            document_id=document.id,
            name=document.name,
            type=document.type.value,
            document_status=document.status,
            expiration_date=document.expiration_date,
            assigned_to=document.assigned_to.value,
            compliant=compliant,
        )

    # -------------------------------------------------------------------------
    # Isolated collection evaluation
    # -------------------------------------------------------------------------

    def _evaluate_each(
        self,
        record_type: str,
        records: List[T],
        evaluate: Callable[[T, datetime], R],
        now: datetime,
        skipped: List[SkippedRecord]
    ) -> List[R]:
        results = []
        for record in records:
            try:
                results.append(evaluate(record, now))
            except (ValueError, TypeError) as e:
                record_id = str(getattr(record, 'id', '') or '')
                logger.warning(f"Skipping {record_type} {record_id or '<unknown>'}: {e}")
                skipped.append(SkippedRecord(record_type=record_type, record_id=record_id, error=str(e)))
        return results

    def get_driver_compliance(
        self, drivers: List[DriverRecord], now: datetime, skipped: Optional[List[SkippedRecord]] = None
    ) -> List[DriverCompliance]:
        skipped = skipped if skipped is not None else []
        return self._evaluate_each('driver', drivers, self.evaluate_driver, now, skipped)

    def get_vehicle_compliance(
        self, vehicles: List[VehicleRecord], now: datetime, skipped: Optional[List[SkippedRecord]] = None
    ) -> List[VehicleCompliance]:
        skipped = skipped if skipped is not None else []
        return self._evaluate_each('vehicle', vehicles, self.evaluate_vehicle, now, skipped)

    def get_document_compliance(
        self, documents: List[DocumentRecord], now: datetime, skipped: Optional[List[SkippedRecord]] = None
    ) -> List[DocumentCompliance]:
        skipped = skipped if skipped is not None else []
        return self._evaluate_each('document', documents, self.evaluate_document, now, skipped)

    # -------------------------------------------------------------------------
    # Summary metrics
    # -------------------------------------------------------------------------

    def get_compliance_summary_metrics(
        self,
        tenant_id: str,
        drivers: List[DriverRecord],
        vehicles: List[VehicleRecord],
        documents: List[DocumentRecord],
        now: datetime
    ) -> ComplianceMetrics:
        """
        Compliance rates and need-attention counts per category.

        Skipped records are excluded from the totals and listed in
        `ComplianceMetrics.skipped`.
        """
        skipped: List[SkippedRecord] = []
        driver_results = self.get_driver_compliance(drivers, now, skipped)
        vehicle_results = self.get_vehicle_compliance(vehicles, now, skipped)
        document_results = self.get_document_compliance(documents, now, skipped)
        metrics = self._metrics(driver_results, vehicle_results, document_results, skipped)

        logger.info(
            f"Compliance metrics for tenant {tenant_id}: drivers {metrics.driver_compliance.rate}%, "
            f"vehicles {metrics.vehicle_compliance.rate}%, documents {metrics.document_compliance.rate}%, "
            f"{len(skipped)} skipped"
        )
        return metrics

    @staticmethod
    def _metrics(
        driver_results: List[DriverCompliance],
        vehicle_results: List[VehicleCompliance],
        document_results: List[DocumentCompliance],
        skipped: List[SkippedRecord]
    ) -> ComplianceMetrics:
        return ComplianceMetrics(
            driver_compliance=CategoryMetrics.from_counts(
                sum(1 for d in driver_results if d.status == ComplianceStatus.COMPLIANT),
                len(driver_results),
            ),
            vehicle_compliance=CategoryMetrics.from_counts(
                sum(1 for v in vehicle_results if v.status == ComplianceStatus.COMPLIANT),
                len(vehicle_results),
            ),
            document_compliance=CategoryMetrics.from_counts(
                sum(1 for d in document_results if d.compliant),
                len(document_results),
            ),
            hos_violations=sum(d.hos_violations for d in driver_results),
            skipped=list(skipped),
        )

    # -------------------------------------------------------------------------
    # Deadlines
    # -------------------------------------------------------------------------

    def _upcoming_status(self, due_in: int, urgent: DeadlineStatus) -> DeadlineStatus:
        return urgent if due_in <= self.config.urgent_days else DeadlineStatus.UPCOMING

    def _driver_deadlines(self, driver: DriverRecord, now: datetime) -> List[DeadlineItem]:
        driver.validate()
        items = []
        for deadline_type, expiration in (
            (DeadlineType.DRIVER_CDL, driver.license_expiration),
            (DeadlineType.DRIVER_MEDICAL_CARD, driver.medical_card_expiration),
        ):
            if expiration is None:
                continue
            instant = to_instant(expiration, now)
            if is_within_next_days(instant, self.config.deadline_horizon_days, now):
                due_in = days_between(now, instant)
                items.append(DeadlineItem(
                    type=deadline_type,
                    name=driver.name or driver.id,
                    due_in=due_in,
                    status=self._upcoming_status(due_in, DeadlineStatus.EXPIRING_SOON),
                ))
        return items

    def _document_deadlines(self, document: DocumentRecord, now: datetime) -> List[DeadlineItem]:
        document.validate()
        if document.expiration_date is None:
            return []
        instant = to_instant(document.expiration_date, now)
        if is_past(instant, now):
            return [DeadlineItem(
                type=DeadlineType.DOCUMENT_EXPIRATION,
                name=document.name,
                due_in=0,
                status=DeadlineStatus.EXPIRED,
            )]
        if is_within_next_days(instant, self.config.deadline_horizon_days, now):
            due_in = days_between(now, instant)
            return [DeadlineItem(
                type=DeadlineType.DOCUMENT_EXPIRATION,
                name=document.name,
                due_in=due_in,
                status=self._upcoming_status(due_in, DeadlineStatus.EXPIRING_SOON),
            )]
        return []

    def ifta_deadlines(self, now: datetime) -> List[DeadlineItem]:
        """Quarterly IFTA filings due within the deadline horizon."""
        items = []
        for year in (now.year - 1, now.year):
            for quarter in (1, 2, 3, 4):
                due = to_instant(quarter_due_date(year, quarter), now)
                if is_within_next_days(due, self.config.deadline_horizon_days, now):
                    due_in = days_between(now, due)
                    items.append(DeadlineItem(
                        type=DeadlineType.IFTA_FILING,
                        name=f"{year} - Q{quarter}",
                        due_in=due_in,
                        status=self._upcoming_status(due_in, DeadlineStatus.DUE_SOON),
                    ))
        return items

    def get_upcoming_deadlines(
        self,
        tenant_id: str,
        drivers: List[DriverRecord],
        documents: List[DocumentRecord],
        now: datetime,
        skipped: Optional[List[SkippedRecord]] = None
    ) -> List[DeadlineItem]:
        """
        Flat deadline list sorted by due_in (ties by type, then name).
        """
        skipped = skipped if skipped is not None else []
        deadlines: List[DeadlineItem] = []
        for items in self._evaluate_each('driver', drivers, self._driver_deadlines, now, skipped):
            deadlines.extend(items)
        for items in self._evaluate_each('document', documents, self._document_deadlines, now, skipped):
            deadlines.extend(items)
        deadlines.extend(self.ifta_deadlines(now))

        deadlines.sort(key=lambda item: item.sort_key)
        logger.debug(f"{len(deadlines)} deadlines for tenant {tenant_id}")
        return deadlines

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    def build_dashboard(self, snapshot: ComplianceSnapshot, now: datetime) -> ComplianceDashboard:
        """Per-entity records, metrics and deadlines for one tenant in one pass."""
        skipped: List[SkippedRecord] = []
        driver_results = self.get_driver_compliance(snapshot.drivers, now, skipped)
        vehicle_results = self.get_vehicle_compliance(snapshot.vehicles, now, skipped)
        document_results = self.get_document_compliance(snapshot.documents, now, skipped)

        # Records already skipped above are not evaluated a second time.
        skipped_ids = {(s.record_type, s.record_id) for s in skipped}
        drivers = [d for d in snapshot.drivers if ('driver', str(d.id or '')) not in skipped_ids]
        documents = [d for d in snapshot.documents if ('document', str(d.id or '')) not in skipped_ids]
        deadlines = self.get_upcoming_deadlines(snapshot.tenant_id, drivers, documents, now, skipped)

        metrics = self._metrics(driver_results, vehicle_results, document_results, skipped)
        logger.info(
            f"Dashboard for tenant {snapshot.tenant_id}: {len(driver_results)} drivers, "
            f"{len(vehicle_results)} vehicles, {len(document_results)} documents, "
            f"{len(deadlines)} deadlines, {len(skipped)} skipped"
        )
        return ComplianceDashboard(
            tenant_id=snapshot.tenant_id,
            generated_at=now,
            drivers=driver_results,
            vehicles=vehicle_results,
            documents=document_results,
            metrics=metrics,
            deadlines=deadlines,
        )
