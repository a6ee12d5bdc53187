"""
Serializers for the Fleet Compliance API.

Validates incoming snapshots and turns them into the record dataclasses
the services work on. Output is produced by the services' `to_dict()`
methods, so these serializers are input-only.
"""

from decimal import Decimal
from typing import Dict, List, Tuple, Type

from rest_framework import serializers

from .records import (
    DocumentRecord,
    DocumentStatus,
    DocumentType,
    DriverRecord,
    FuelPurchaseRecord,
    IftaTripRecord,
    InspectionResult,
    VehicleRecord,
    VehicleStatus,
)
from .services.compliance_service import ComplianceSnapshot
from .services.hos_service import DutyStatus, EntrySource, HOSEntry, HOSLog
from .services.ifta_service import (
    IftaReport,
    IftaReportStatus,
    IftaTaxCalculation,
    money,
    quarter_due_date,
    resolve_jurisdiction,
)


def _choices(enum_cls) -> List[Tuple[str, str]]:
    return [(member.value, member.value) for member in enum_cls]


def _decimal(**kwargs) -> serializers.DecimalField:
    kwargs.setdefault('max_digits', 16)
    kwargs.setdefault('decimal_places', 4)
    return serializers.DecimalField(**kwargs)


class HealthCheckSerializer(serializers.Serializer):
    """
    Serializer for health check response.
    """
    status = serializers.CharField()
    message = serializers.CharField()
    version = serializers.CharField()
    timestamp = serializers.DateTimeField()


# =============================================================================
# HOS
# =============================================================================

class HOSEntrySerializer(serializers.Serializer):
    """
    One duty-status interval.
    """
    status = serializers.ChoiceField(choices=_choices(DutyStatus))
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    location = serializers.CharField(required=False, allow_blank=True, default='')
    source = serializers.ChoiceField(choices=_choices(EntrySource), default=EntrySource.MANUAL.value)
    edited = serializers.BooleanField(default=False)


class HOSLogSerializer(serializers.Serializer):
    """
    One driver-day of HOS entries.
    """
    log_date = serializers.DateField()
    entries = HOSEntrySerializer(many=True)
    edited = serializers.BooleanField(default=False)


class HOSStatusInputSerializer(serializers.Serializer):
    driver_id = serializers.CharField(max_length=100)
    logs = HOSLogSerializer(many=True)


def build_hos_logs(driver_id: str, logs_data: List[Dict]) -> List[HOSLog]:
    return [
        HOSLog(
            driver_id=driver_id,
            log_date=log['log_date'],
            edited=log.get('edited', False),
            entries=[
                HOSEntry(
                    status=DutyStatus(entry['status']),
                    start_time=entry['start_time'],
                    end_time=entry['end_time'],
                    location=entry.get('location', ''),
                    source=EntrySource(entry.get('source', EntrySource.MANUAL.value)),
                    edited=entry.get('edited', False),
                )
                for entry in log['entries']
            ],
        )
        for log in logs_data
    ]


# =============================================================================
# Compliance snapshot
# =============================================================================

class DriverSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=100)
    name = serializers.CharField(required=False, allow_blank=True, default='')
    license_expiration = serializers.DateField(required=False, allow_null=True, default=None)
    medical_card_expiration = serializers.DateField(required=False, allow_null=True, default=None)
    hos_logs = HOSLogSerializer(many=True, required=False, default=list)

    def to_record(self) -> DriverRecord:
        data = self.validated_data
        return DriverRecord(
            id=data['id'],
            name=data['name'],
            license_expiration=data['license_expiration'],
            medical_card_expiration=data['medical_card_expiration'],
            hos_logs=build_hos_logs(data['id'], data['hos_logs']),
        )


class VehicleSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=100)
    unit_number = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=_choices(VehicleStatus), default=VehicleStatus.ACTIVE.value)
    last_inspection_date = serializers.DateField(required=False, allow_null=True, default=None)
    last_inspection_result = serializers.ChoiceField(
        choices=_choices(InspectionResult), required=False, allow_null=True, default=None
    )

    def validate(self, data):
        if data['last_inspection_result'] and not data['last_inspection_date']:
            raise serializers.ValidationError({
                'last_inspection_date': 'Required when an inspection result is given.'
            })
        return data

    def to_record(self) -> VehicleRecord:
        data = self.validated_data
        result = data['last_inspection_result']
        return VehicleRecord(
            id=data['id'],
            unit_number=data['unit_number'],
            status=VehicleStatus(data['status']),
            last_inspection_date=data['last_inspection_date'],
            last_inspection_result=InspectionResult(result) if result else None,
        )


class DocumentSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=100)
    name = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=_choices(DocumentType), default=DocumentType.REQUIRED.value)
    status = serializers.ChoiceField(choices=_choices(DocumentStatus), default=DocumentStatus.ACTIVE.value)
    expiration_date = serializers.DateField(required=False, allow_null=True, default=None)
    driver_id = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    vehicle_id = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)

    def to_record(self) -> DocumentRecord:
        data = self.validated_data
        return DocumentRecord(
            id=data['id'],
            name=data['name'],
            type=DocumentType(data['type']),
            status=DocumentStatus(data['status']),
            expiration_date=data['expiration_date'],
            driver_id=data['driver_id'] or None,
            vehicle_id=data['vehicle_id'] or None,
        )


class SnapshotInputSerializer(serializers.Serializer):
    """
    A tenant's records. Each record is validated on its own afterwards so
    one bad record does not reject the whole snapshot.
    """
    tenant_id = serializers.CharField(max_length=100)
    now = serializers.DateTimeField(required=False)
    drivers = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    vehicles = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    documents = serializers.ListField(child=serializers.DictField(), required=False, default=list)


def _validate_each(serializer_class: Type[serializers.Serializer], record_type: str, items: List[Dict]):
    records = []
    rejected = []
    for index, item in enumerate(items):
        serializer = serializer_class(data=item)
        if serializer.is_valid():
            records.append(serializer.to_record())
        else:
            rejected.append({
                'record_type': record_type,
                'index': index,
                'id': item.get('id'),
                'errors': serializer.errors,
            })
    return records, rejected


def build_snapshot(validated_data: Dict) -> Tuple[ComplianceSnapshot, List[Dict]]:
    """Snapshot of the records that passed validation, plus the rejected ones."""
    drivers, rejected_drivers = _validate_each(DriverSerializer, 'driver', validated_data['drivers'])
    vehicles, rejected_vehicles = _validate_each(VehicleSerializer, 'vehicle', validated_data['vehicles'])
    documents, rejected_documents = _validate_each(DocumentSerializer, 'document', validated_data['documents'])
    snapshot = ComplianceSnapshot(
        tenant_id=validated_data['tenant_id'],
        drivers=drivers,
        vehicles=vehicles,
        documents=documents,
    )
    return snapshot, rejected_drivers + rejected_vehicles + rejected_documents


# =============================================================================
# IFTA
# =============================================================================

class IftaTripSerializer(serializers.Serializer):
    jurisdiction = serializers.CharField(max_length=10)
    county = serializers.CharField(required=False, allow_blank=True, default='')
    miles = _decimal(decimal_places=2, min_value=Decimal('0'))
    date = serializers.DateField()
    vehicle_id = serializers.CharField(required=False, allow_null=True, default=None)


class FuelPurchaseSerializer(serializers.Serializer):
    jurisdiction = serializers.CharField(max_length=10)
    county = serializers.CharField(required=False, allow_blank=True, default='')
    gallons = _decimal(decimal_places=3, min_value=Decimal('0'))
    amount = _decimal(decimal_places=2, min_value=Decimal('0'))
    date = serializers.DateField()
    vehicle_id = serializers.CharField(required=False, allow_null=True, default=None)


class IftaCalculateInputSerializer(serializers.Serializer):
    organization_id = serializers.CharField(max_length=100)
    year = serializers.IntegerField(min_value=2000, max_value=2100)
    quarter = serializers.IntegerField(min_value=1, max_value=4)
    trips = IftaTripSerializer(many=True)
    fuel_purchases = FuelPurchaseSerializer(many=True)
    tax_rates = serializers.DictField(child=_decimal(decimal_places=4), required=False)

    def to_records(self) -> Tuple[List[IftaTripRecord], List[FuelPurchaseRecord]]:
        data = self.validated_data
        trips = [
            IftaTripRecord(
                jurisdiction=resolve_jurisdiction(t['jurisdiction'], t['county']),
                miles=t['miles'],
                date=t['date'],
                vehicle_id=t['vehicle_id'],
            )
            for t in data['trips']
        ]
        fuel = [
            FuelPurchaseRecord(
                jurisdiction=resolve_jurisdiction(f['jurisdiction'], f['county']),
                gallons=f['gallons'],
                amount=f['amount'],
                date=f['date'],
                vehicle_id=f['vehicle_id'],
            )
            for f in data['fuel_purchases']
        ]
        return trips, fuel


class IftaCalculationSerializer(serializers.Serializer):
    """
    A jurisdiction calculation as returned by an earlier call.
    `tax_due` and `net_tax_due` are always recomputed and never taken from
    the client. A claimed `is_validated` is checked again on submission.
    """
    jurisdiction = serializers.CharField(max_length=10)
    total_miles = _decimal(decimal_places=2)
    taxable_miles = _decimal(decimal_places=2, required=False)
    fuel_purchased = _decimal()
    fuel_consumed = _decimal()
    tax_rate = _decimal()
    tax_due = _decimal(required=False)
    tax_credits = _decimal()
    adjustments = _decimal(default=Decimal('0'))
    is_validated = serializers.BooleanField(default=False)


def build_calculation(data: Dict) -> IftaTaxCalculation:
    tax_due = money(data['fuel_consumed'] * data['tax_rate'])
    tax_credits = money(data['tax_credits'])
    adjustments = money(data['adjustments'])
    return IftaTaxCalculation(
        jurisdiction=data['jurisdiction'],
        total_miles=data['total_miles'],
        taxable_miles=data.get('taxable_miles', data['total_miles']),
        fuel_purchased=data['fuel_purchased'],
        fuel_consumed=data['fuel_consumed'],
        tax_rate=data['tax_rate'],
        tax_due=tax_due,
        tax_credits=tax_credits,
        adjustments=adjustments,
        net_tax_due=money(tax_due + adjustments - tax_credits),
        is_validated=data['is_validated'],
    )


class IftaValidateInputSerializer(serializers.Serializer):
    calculation = IftaCalculationSerializer()


class IftaAdjustInputSerializer(serializers.Serializer):
    calculation = IftaCalculationSerializer()
    adjustments = _decimal(decimal_places=2, required=False, allow_null=True, default=None)
    tax_credits = _decimal(decimal_places=2, required=False, allow_null=True, default=None)

    def validate(self, data):
        if data['adjustments'] is None and data['tax_credits'] is None:
            raise serializers.ValidationError('Provide adjustments and/or tax_credits.')
        return data


class IftaReportSerializer(serializers.Serializer):
    organization_id = serializers.CharField(max_length=100)
    year = serializers.IntegerField(min_value=2000, max_value=2100)
    quarter = serializers.IntegerField(min_value=1, max_value=4)
    status = serializers.ChoiceField(choices=_choices(IftaReportStatus), default=IftaReportStatus.DRAFT.value)
    calculations = IftaCalculationSerializer(many=True)
    total_fuel_cost = _decimal(decimal_places=2, default=Decimal('0'))
    submitted_at = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def validate_calculations(self, value):
        jurisdictions = [c['jurisdiction'] for c in value]
        if len(jurisdictions) != len(set(jurisdictions)):
            raise serializers.ValidationError('Each jurisdiction may appear only once.')
        return value


def build_report(data: Dict) -> IftaReport:
    return IftaReport(
        organization_id=data['organization_id'],
        year=data['year'],
        quarter=data['quarter'],
        status=IftaReportStatus(data['status']),
        calculations=tuple(build_calculation(c) for c in data['calculations']),
        due_date=quarter_due_date(data['year'], data['quarter']),
        total_fuel_cost=money(data['total_fuel_cost']),
        submitted_at=data['submitted_at'],
    )


class IftaSubmitInputSerializer(serializers.Serializer):
    report = IftaReportSerializer()
    now = serializers.DateTimeField(required=False)


class IftaDueDateQuerySerializer(serializers.Serializer):
    year = serializers.IntegerField(min_value=2000, max_value=2100)
    quarter = serializers.IntegerField(min_value=1, max_value=4)
