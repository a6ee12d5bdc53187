"""
IFTA Quarterly Fuel Tax Service.

Computes per-jurisdiction fuel-tax liability for one organization and
quarter from trip mileage and fuel-purchase records.

Calculation per jurisdiction:
=============================
- taxable_miles   = total_miles (no exemptions modelled)
- fuel_consumed   = total_miles / fleet MPG for the quarter
- tax_due         = fuel_consumed x tax_rate
- tax_credits     = fuel_purchased x tax_rate (tax already paid at the pump)
- net_tax_due     = tax_due + adjustments - tax_credits

A calculation is only marked validated after passing every check
(fuel economy 3-12 MPG, non-negative fuel, rate 0.05-0.60 $/gal). Any
later manual edit clears the flag, and a report can only be submitted
while every jurisdiction is validated.

All amounts are Decimal. Money is rounded half-up to cents and gallons
to hundredths. Calculations and reports are never mutated; every
operation returns a new object.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..records import FuelPurchaseRecord, IftaTripRecord
from .time_windows import quarter_of

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]

CENTS = Decimal('0.01')
HUNDREDTHS = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def gallons(value: Decimal) -> Decimal:
    return value.quantize(HUNDREDTHS, rounding=ROUND_HALF_UP)


# =============================================================================
# Tax rates (USD per gallon)
# =============================================================================

FEDERAL_EXCISE_RATE = Decimal('0.184')
LUST_FEE = Decimal('0.001')  # Leaking Underground Storage Tank fee

STATE_EXCISE_RATES: Dict[str, Decimal] = {
    'NM': Decimal('0.17'),
    'TX': Decimal('0.20'),
    'NM-DA': Decimal('0.21'),  # Dona Ana County, NM
}


def compose_rate(state_rate: Number) -> Decimal:
    """Total per-gallon rate: state excise + federal excise + LUST fee."""
    return to_decimal(state_rate) + FEDERAL_EXCISE_RATE + LUST_FEE


def resolve_jurisdiction(state: str, county: Optional[str] = None) -> str:
    """Rate-table key for a state, using the county-specific key where one exists."""
    state = state.strip().upper()
    if state == 'NM' and county and county.strip().lower() in ('dona ana', 'doña ana'):
        return 'NM-DA'
    return state


DEFAULT_TAX_RATES: Dict[str, Decimal] = {
    jurisdiction: compose_rate(rate) for jurisdiction, rate in STATE_EXCISE_RATES.items()
}


def quarter_due_date(year: int, quarter: int) -> date:
    """
    Filing due date for a tax quarter.

    Q1 -> Apr 30, Q2 -> Jul 31, Q3 -> Oct 31, Q4 -> Jan 31 of the next year.
    """
    if quarter == 1:
        return date(year, 4, 30)
    if quarter == 2:
        return date(year, 7, 31)
    if quarter == 3:
        return date(year, 10, 31)
    if quarter == 4:
        return date(year + 1, 1, 31)
    raise ValueError(f"Invalid quarter: {quarter}")


# =============================================================================
# Errors
# =============================================================================

class IFTAInputError(ValueError):
    """Raised for records or arguments that cannot be used in a calculation."""

    def __init__(self, message: str, jurisdiction: Optional[str] = None):
        super().__init__(message)
        self.jurisdiction = jurisdiction


class IFTAPreconditionError(Exception):
    """Raised when a report operation is not allowed in the report's current state."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# =============================================================================
# Data classes
# =============================================================================

class IftaReportStatus(Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    FILED = "filed"


@dataclass
class IftaConfig:
    """Plausibility bounds used by validation."""
    min_mpg: Decimal = Decimal('3')
    max_mpg: Decimal = Decimal('12')
    min_tax_rate: Decimal = Decimal('0.05')
    max_tax_rate: Decimal = Decimal('0.60')

    def __post_init__(self):
        self.min_mpg = to_decimal(self.min_mpg)
        self.max_mpg = to_decimal(self.max_mpg)
        self.min_tax_rate = to_decimal(self.min_tax_rate)
        self.max_tax_rate = to_decimal(self.max_tax_rate)


@dataclass(frozen=True)
class IftaTaxCalculation:
    """Tax figures for one (report, jurisdiction) pair."""
    jurisdiction: str
    total_miles: Decimal
    taxable_miles: Decimal
    fuel_purchased: Decimal
    fuel_consumed: Decimal
    tax_rate: Decimal
    tax_due: Decimal
    tax_credits: Decimal
    adjustments: Decimal
    net_tax_due: Decimal
    is_validated: bool = False

    @property
    def mpg(self) -> Optional[Decimal]:
        if self.fuel_consumed <= 0:
            return None
        return self.total_miles / self.fuel_consumed

    def to_dict(self) -> Dict:
        return {
            'jurisdiction': self.jurisdiction,
            'total_miles': str(self.total_miles),
            'taxable_miles': str(self.taxable_miles),
            'fuel_purchased': str(self.fuel_purchased),
            'fuel_consumed': str(self.fuel_consumed),
            'tax_rate': str(self.tax_rate),
            'tax_due': str(self.tax_due),
            'tax_credits': str(self.tax_credits),
            'adjustments': str(self.adjustments),
            'net_tax_due': str(self.net_tax_due),
            'is_validated': self.is_validated,
        }


@dataclass(frozen=True)
class IftaValidationResult:
    success: bool
    calculation: IftaTaxCalculation
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'success': self.success,
            'warnings': list(self.warnings),
            'calculation': self.calculation.to_dict(),
        }


@dataclass(frozen=True)
class IftaReport:
    """One organization's quarterly return."""
    organization_id: str
    year: int
    quarter: int
    calculations: Tuple[IftaTaxCalculation, ...]
    due_date: date
    status: IftaReportStatus = IftaReportStatus.DRAFT
    total_fuel_cost: Decimal = ZERO
    submitted_at: Optional[datetime] = None
    filed_at: Optional[datetime] = None

    @property
    def total_miles(self) -> Decimal:
        return sum((c.total_miles for c in self.calculations), ZERO)

    @property
    def total_gallons(self) -> Decimal:
        return sum((c.fuel_purchased for c in self.calculations), ZERO)

    @property
    def total_net_tax_due(self) -> Decimal:
        return sum((c.net_tax_due for c in self.calculations), ZERO)

    @property
    def can_submit(self) -> bool:
        return (
            self.status == IftaReportStatus.DRAFT
            and all(c.is_validated for c in self.calculations)
        )

    @property
    def validation_progress(self) -> int:
        """Percentage of jurisdictions validated (0 when there are none)."""
        if not self.calculations:
            return 0
        validated = sum(1 for c in self.calculations if c.is_validated)
        return int((Decimal(100 * validated) / len(self.calculations)).quantize(
            Decimal('1'), rounding=ROUND_HALF_UP
        ))

    def get_calculation(self, jurisdiction: str) -> IftaTaxCalculation:
        for calc in self.calculations:
            if calc.jurisdiction == jurisdiction:
                return calc
        raise IFTAInputError(
            f"Report {self.year} Q{self.quarter} has no jurisdiction {jurisdiction}",
            jurisdiction=jurisdiction,
        )

    def to_dict(self) -> Dict:
        return {
            'organization_id': self.organization_id,
            'year': self.year,
            'quarter': self.quarter,
            'status': self.status.value,
            'due_date': self.due_date.isoformat(),
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
            'filed_at': self.filed_at.isoformat() if self.filed_at else None,
            'calculations': [c.to_dict() for c in self.calculations],
            'total_miles': str(self.total_miles),
            'total_gallons': str(self.total_gallons),
            'total_net_tax_due': str(self.total_net_tax_due),
            'total_fuel_cost': str(self.total_fuel_cost),
            'validation_progress': self.validation_progress,
            'can_submit': self.can_submit,
        }


@dataclass(frozen=True)
class IftaReportSummary:
    total_miles: Decimal
    total_gallons: Decimal
    total_net_tax_due: Decimal
    validation_progress: int
    can_submit: bool
    average_mpg: Decimal
    total_fuel_cost: Decimal
    due_date: date

    def to_dict(self) -> Dict:
        return {
            'total_miles': str(self.total_miles),
            'total_gallons': str(self.total_gallons),
            'total_net_tax_due': str(self.total_net_tax_due),
            'validation_progress': self.validation_progress,
            'can_submit': self.can_submit,
            'average_mpg': str(self.average_mpg),
            'total_fuel_cost': str(self.total_fuel_cost),
            'due_date': self.due_date.isoformat(),
        }


# =============================================================================
# Service
# =============================================================================

def _record_day(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


class IftaService:
    """
    Service for computing, validating and adjusting IFTA returns.
    """

    def __init__(self, config: Optional[IftaConfig] = None, tax_rates: Optional[Dict[str, Number]] = None):
        self.config = config or IftaConfig()
        rates = tax_rates if tax_rates is not None else DEFAULT_TAX_RATES
        self.tax_rates = {k: to_decimal(v) for k, v in rates.items()}

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    def calculate_report(
        self,
        organization_id: str,
        year: int,
        quarter: int,
        trips: Iterable[IftaTripRecord],
        fuel_purchases: Iterable[FuelPurchaseRecord],
        tax_rates: Optional[Dict[str, Number]] = None
    ) -> IftaReport:
        """
        Build a draft report for the quarter from trip and fuel records.

        Records outside the quarter are ignored.

        Raises:
            IFTAInputError: negative miles/gallons/amounts, a record with no
                jurisdiction, or a jurisdiction missing from the rate table
            ValueError: invalid quarter
        """
        due_date = quarter_due_date(year, quarter)
        rates = self.tax_rates if tax_rates is None else {k: to_decimal(v) for k, v in tax_rates.items()}

        quarter_trips = [t for t in trips if quarter_of(_record_day(t.date)) == (year, quarter)]
        quarter_fuel = [f for f in fuel_purchases if quarter_of(_record_day(f.date)) == (year, quarter)]
        for trip in quarter_trips:
            self._check_trip(trip)
        for purchase in quarter_fuel:
            self._check_purchase(purchase)

        miles_by_jurisdiction: Dict[str, Decimal] = {}
        for trip in quarter_trips:
            key = trip.jurisdiction
            miles_by_jurisdiction[key] = miles_by_jurisdiction.get(key, ZERO) + to_decimal(trip.miles)

        fuel_by_jurisdiction: Dict[str, Decimal] = {}
        for purchase in quarter_fuel:
            key = purchase.jurisdiction
            fuel_by_jurisdiction[key] = fuel_by_jurisdiction.get(key, ZERO) + to_decimal(purchase.gallons)

        fleet_miles = sum(miles_by_jurisdiction.values(), ZERO)
        fleet_gallons = sum(fuel_by_jurisdiction.values(), ZERO)
        fleet_mpg = fleet_miles / fleet_gallons if fleet_gallons > 0 else ZERO

        calculations = []
        for jurisdiction in sorted(set(miles_by_jurisdiction) | set(fuel_by_jurisdiction)):
            if jurisdiction not in rates:
                raise IFTAInputError(
                    f"No tax rate configured for jurisdiction {jurisdiction}",
                    jurisdiction=jurisdiction,
                )
            rate = rates[jurisdiction]
            miles = miles_by_jurisdiction.get(jurisdiction, ZERO)
            purchased = gallons(fuel_by_jurisdiction.get(jurisdiction, ZERO))
            consumed = gallons(miles / fleet_mpg) if fleet_mpg > 0 else gallons(ZERO)
            tax_due = money(consumed * rate)
            tax_credits = money(purchased * rate)

            calculations.append(IftaTaxCalculation(
                jurisdiction=jurisdiction,
                total_miles=miles,
                taxable_miles=miles,
                fuel_purchased=purchased,
                fuel_consumed=consumed,
                tax_rate=rate,
                tax_due=tax_due,
                tax_credits=tax_credits,
                adjustments=money(ZERO),
                net_tax_due=money(tax_due - tax_credits),
            ))

        report = IftaReport(
            organization_id=organization_id,
            year=year,
            quarter=quarter,
            calculations=tuple(calculations),
            due_date=due_date,
            total_fuel_cost=money(sum((to_decimal(f.amount) for f in quarter_fuel), ZERO)),
        )
        logger.info(
            f"IFTA {year} Q{quarter} for {organization_id}: {len(calculations)} jurisdictions, "
            f"{fleet_miles} miles, {fleet_gallons} gal, net tax due {report.total_net_tax_due}"
        )
        return report

    @staticmethod
    def _check_trip(trip: IftaTripRecord) -> None:
        if not trip.jurisdiction:
            raise IFTAInputError(f"Trip on {trip.date} has no jurisdiction")
        if to_decimal(trip.miles) < 0:
            raise IFTAInputError(
                f"Trip on {trip.date} in {trip.jurisdiction} has negative miles ({trip.miles})",
                jurisdiction=trip.jurisdiction,
            )

    @staticmethod
    def _check_purchase(purchase: FuelPurchaseRecord) -> None:
        if not purchase.jurisdiction:
            raise IFTAInputError(f"Fuel purchase on {purchase.date} has no jurisdiction")
        if to_decimal(purchase.gallons) < 0 or to_decimal(purchase.amount) < 0:
            raise IFTAInputError(
                f"Fuel purchase on {purchase.date} in {purchase.jurisdiction} has negative "
                f"gallons or amount ({purchase.gallons} gal, ${purchase.amount})",
                jurisdiction=purchase.jurisdiction,
            )

    # -------------------------------------------------------------------------
    # Validation and adjustment
    # -------------------------------------------------------------------------

    def validate_tax_calculation(self, calc: IftaTaxCalculation) -> IftaValidationResult:
        """
        Run every plausibility check. All checks must pass for the
        returned calculation to be marked validated.
        """
        config = self.config
        warnings = []

        if calc.total_miles > 0:
            if calc.fuel_consumed <= 0:
                warnings.append(
                    f"{calc.jurisdiction}: {calc.total_miles} miles with no fuel consumed; "
                    f"fuel efficiency cannot be determined"
                )
            else:
                mpg = calc.total_miles / calc.fuel_consumed
                if not config.min_mpg <= mpg <= config.max_mpg:
                    warnings.append(
                        f"{calc.jurisdiction}: fuel efficiency {mpg.quantize(HUNDREDTHS)} MPG is outside "
                        f"the {config.min_mpg}-{config.max_mpg} MPG range"
                    )

        if calc.fuel_purchased < 0:
            warnings.append(f"{calc.jurisdiction}: fuel purchased is negative ({calc.fuel_purchased})")
        if calc.fuel_consumed < 0:
            warnings.append(f"{calc.jurisdiction}: fuel consumed is negative ({calc.fuel_consumed})")

        if not config.min_tax_rate <= calc.tax_rate <= config.max_tax_rate:
            warnings.append(
                f"{calc.jurisdiction}: tax rate {calc.tax_rate} is outside the "
                f"{config.min_tax_rate}-{config.max_tax_rate} $/gal range"
            )

        if warnings:
            logger.warning(f"IFTA validation failed for {calc.jurisdiction}: {'; '.join(warnings)}")
            return IftaValidationResult(
                success=False,
                calculation=replace(calc, is_validated=False),
                warnings=warnings,
            )
        return IftaValidationResult(success=True, calculation=replace(calc, is_validated=True))

    def update_tax_calculation(
        self,
        calc: IftaTaxCalculation,
        adjustments: Optional[Number] = None,
        tax_credits: Optional[Number] = None
    ) -> IftaTaxCalculation:
        """
        Apply manual adjustments and/or credits.

        The net tax due is recomputed and the calculation must be
        validated again.
        """
        if adjustments is None and tax_credits is None:
            raise IFTAInputError(
                f"{calc.jurisdiction}: no adjustments or tax credits supplied",
                jurisdiction=calc.jurisdiction,
            )
        new_adjustments = money(to_decimal(adjustments)) if adjustments is not None else calc.adjustments
        new_credits = money(to_decimal(tax_credits)) if tax_credits is not None else calc.tax_credits
        if new_credits < 0:
            raise IFTAInputError(
                f"{calc.jurisdiction}: tax credits cannot be negative ({new_credits})",
                jurisdiction=calc.jurisdiction,
            )

        updated = replace(
            calc,
            adjustments=new_adjustments,
            tax_credits=new_credits,
            net_tax_due=money(calc.tax_due + new_adjustments - new_credits),
            is_validated=False,
        )
        logger.info(
            f"IFTA {calc.jurisdiction} adjusted: adjustments {new_adjustments}, credits {new_credits}, "
            f"net tax due {updated.net_tax_due}"
        )
        return updated

    # -------------------------------------------------------------------------
    # Report lifecycle
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_draft(report: IftaReport, action: str) -> None:
        if report.status != IftaReportStatus.DRAFT:
            raise IFTAPreconditionError(
                f"Cannot {action} report {report.year} Q{report.quarter}: "
                f"status is {report.status.value}, expected draft"
            )

    def validate_report(self, report: IftaReport) -> Tuple[IftaReport, List[IftaValidationResult]]:
        """Validate every jurisdiction of a draft report."""
        self._require_draft(report, "validate")
        results = [self.validate_tax_calculation(c) for c in report.calculations]
        updated = replace(report, calculations=tuple(r.calculation for r in results))
        return updated, results

    def update_report_calculation(
        self,
        report: IftaReport,
        jurisdiction: str,
        adjustments: Optional[Number] = None,
        tax_credits: Optional[Number] = None
    ) -> IftaReport:
        self._require_draft(report, "adjust")
        target = report.get_calculation(jurisdiction)
        updated_calc = self.update_tax_calculation(target, adjustments, tax_credits)
        return replace(report, calculations=tuple(
            updated_calc if c.jurisdiction == jurisdiction else c for c in report.calculations
        ))

    def submit_report(self, report: IftaReport, now: datetime) -> IftaReport:
        """
        Move a draft report to submitted. Irreversible.

        Jurisdictions flagged as validated are checked again, so a flag
        set outside `validate_tax_calculation` is not trusted.

        Raises:
            IFTAPreconditionError: report is not a draft, has unvalidated
                jurisdictions, or has flagged jurisdictions that fail validation
        """
        self._require_draft(report, "submit")
        pending = [c.jurisdiction for c in report.calculations if not c.is_validated]
        failing = [
            c.jurisdiction for c in report.calculations
            if c.is_validated and not self.validate_tax_calculation(c).success
        ]
        problems = []
        if pending:
            problems.append(f"jurisdictions not validated: {', '.join(pending)}")
        if failing:
            problems.append(f"jurisdictions failing validation: {', '.join(failing)}")
        if problems:
            raise IFTAPreconditionError(
                f"Cannot submit report {report.year} Q{report.quarter}: {'; '.join(problems)}"
            )
        logger.info(f"IFTA report {report.year} Q{report.quarter} submitted for {report.organization_id}")
        return replace(report, status=IftaReportStatus.SUBMITTED, submitted_at=now)

    def mark_filed(self, report: IftaReport, now: datetime) -> IftaReport:
        if report.status != IftaReportStatus.SUBMITTED:
            raise IFTAPreconditionError(
                f"Cannot file report {report.year} Q{report.quarter}: "
                f"status is {report.status.value}, expected submitted"
            )
        return replace(report, status=IftaReportStatus.FILED, filed_at=now)

    def summarize(self, report: IftaReport) -> IftaReportSummary:
        total_gallons = report.total_gallons
        average_mpg = (
            gallons(report.total_miles / total_gallons) if total_gallons > 0 else gallons(ZERO)
        )
        return IftaReportSummary(
            total_miles=report.total_miles,
            total_gallons=total_gallons,
            total_net_tax_due=money(report.total_net_tax_due),
            validation_progress=report.validation_progress,
            can_submit=report.can_submit,
            average_mpg=average_mpg,
            total_fuel_cost=report.total_fuel_cost,
            due_date=report.due_date,
        )
