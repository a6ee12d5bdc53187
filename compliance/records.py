"""
Input records handed to the compliance engine.

These are flat, already tenant-scoped snapshots of what the data store
holds for drivers, vehicles, documents and IFTA trips/fuel purchases.
References between records are plain id fields; nothing here navigates
an object graph or touches the database.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Union

if TYPE_CHECKING:
    from .services.hos_service import HOSLog

DateLike = Union[date, datetime]


class RecordValidationError(ValueError):
    """Raised when a record is missing data the engine needs to evaluate it."""

    def __init__(self, message: str, record_type: str = "", record_id: str = ""):
        super().__init__(message)
        self.record_type = record_type
        self.record_id = record_id


class VehicleStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class InspectionResult(Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"


class DocumentType(Enum):
    REQUIRED = "Required"
    OPTIONAL = "Optional"


class DocumentStatus(Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class AssignedTo(Enum):
    DRIVER = "Driver"
    VEHICLE = "Vehicle"
    COMPANY = "Company"


def _check_date(value, field_name: str, record_type: str, record_id: str) -> None:
    if value is not None and not isinstance(value, (date, datetime)):
        raise RecordValidationError(
            f"{record_type} {record_id}: {field_name} must be a date, got {type(value).__name__}",
            record_type=record_type,
            record_id=record_id,
        )


@dataclass
class DriverRecord:
    id: str
    name: str = ""
    license_expiration: Optional[DateLike] = None
    medical_card_expiration: Optional[DateLike] = None
    hos_logs: List["HOSLog"] = field(default_factory=list)

    def validate(self) -> None:
        if not self.id:
            raise RecordValidationError("Driver record has no id", record_type="driver")
        _check_date(self.license_expiration, "license_expiration", "driver", self.id)
        _check_date(self.medical_card_expiration, "medical_card_expiration", "driver", self.id)
        for log in self.hos_logs:
            if log.driver_id != self.id:
                raise RecordValidationError(
                    f"driver {self.id}: HOS log for {log.log_date} belongs to driver {log.driver_id}",
                    record_type="driver",
                    record_id=self.id,
                )


@dataclass
class VehicleRecord:
    id: str
    unit_number: str = ""
    status: VehicleStatus = VehicleStatus.ACTIVE
    last_inspection_date: Optional[DateLike] = None
    last_inspection_result: Optional[InspectionResult] = None

    def validate(self) -> None:
        if not self.id:
            raise RecordValidationError("Vehicle record has no id", record_type="vehicle")
        if not isinstance(self.status, VehicleStatus):
            raise RecordValidationError(
                f"vehicle {self.id}: unknown status {self.status!r}",
                record_type="vehicle",
                record_id=self.id,
            )
        _check_date(self.last_inspection_date, "last_inspection_date", "vehicle", self.id)
        if self.last_inspection_result is not None and self.last_inspection_date is None:
            raise RecordValidationError(
                f"vehicle {self.id}: inspection result without an inspection date",
                record_type="vehicle",
                record_id=self.id,
            )


@dataclass
class DocumentRecord:
    id: str
    name: str
    type: DocumentType = DocumentType.REQUIRED
    status: DocumentStatus = DocumentStatus.ACTIVE
    expiration_date: Optional[DateLike] = None
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None

    @property
    def assigned_to(self) -> AssignedTo:
        # A vehicle reference wins over a driver reference.
        if self.vehicle_id:
            return AssignedTo.VEHICLE
        if self.driver_id:
            return AssignedTo.DRIVER
        return AssignedTo.COMPANY

    def validate(self) -> None:
        if not self.id:
            raise RecordValidationError("Document record has no id", record_type="document")
        if not isinstance(self.status, DocumentStatus):
            raise RecordValidationError(
                f"document {self.id}: unknown status {self.status!r}",
                record_type="document",
                record_id=self.id,
            )
        _check_date(self.expiration_date, "expiration_date", "document", self.id)


@dataclass
class IftaTripRecord:
    """Miles driven in one jurisdiction on one day."""
    jurisdiction: str
    miles: Decimal
    date: date
    vehicle_id: Optional[str] = None


@dataclass
class FuelPurchaseRecord:
    """Fuel bought in one jurisdiction; `amount` is the dollar cost."""
    jurisdiction: str
    gallons: Decimal
    amount: Decimal
    date: date
    vehicle_id: Optional[str] = None
