"""
Fleet Compliance API Views.

Thin, stateless HTTP adapter over the compliance engine:
- Health check
- HOS status calculation
- Compliance summary, deadlines and dashboard
- IFTA report calculation, validation, adjustment and submission

Every request carries the full snapshot it needs; nothing is persisted.
"""

import logging
from datetime import datetime

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import (
    HealthCheckSerializer,
    HOSStatusInputSerializer,
    IftaAdjustInputSerializer,
    IftaCalculateInputSerializer,
    IftaDueDateQuerySerializer,
    IftaSubmitInputSerializer,
    IftaValidateInputSerializer,
    SnapshotInputSerializer,
    build_calculation,
    build_hos_logs,
    build_report,
    build_snapshot,
)
from .services import (
    ComplianceConfig,
    ComplianceService,
    HOSConfig,
    HOSService,
    IftaConfig,
    IftaService,
)
from .services.hos_service import DailyLimitEvaluator, EditedLogHeuristic, HOSValidationError
from .services.ifta_service import IFTAInputError, IFTAPreconditionError, quarter_due_date

logger = logging.getLogger(__name__)

API_VERSION = '1.0.0'


# =============================================================================
# Engine configuration from settings
# =============================================================================

def _engine_settings(section: str) -> dict:
    return dict(getattr(settings, 'COMPLIANCE_ENGINE', {}).get(section, {}))


def get_hos_service() -> HOSService:
    return HOSService(HOSConfig(**_engine_settings('HOS')))


def get_compliance_service() -> ComplianceService:
    options = _engine_settings('COMPLIANCE')
    evaluator_name = options.pop('VIOLATION_EVALUATOR', EditedLogHeuristic.name)
    hos_service = get_hos_service()
    if evaluator_name == DailyLimitEvaluator.name:
        evaluator = DailyLimitEvaluator(hos_service)
    elif evaluator_name == EditedLogHeuristic.name:
        evaluator = EditedLogHeuristic()
    else:
        raise ImproperlyConfigured(
            f"Unknown COMPLIANCE_ENGINE VIOLATION_EVALUATOR: {evaluator_name!r}"
        )
    return ComplianceService(
        config=ComplianceConfig(**options),
        hos_service=hos_service,
        violation_evaluator=evaluator,
    )


def get_ifta_service() -> IftaService:
    options = _engine_settings('IFTA')
    tax_rates = options.pop('TAX_RATES', None)
    return IftaService(IftaConfig(**options), tax_rates=tax_rates)


def _invalid(serializer, message='Invalid request data'):
    return Response(
        {'error': message, 'details': serializer.errors},
        status=status.HTTP_400_BAD_REQUEST
    )


class HealthCheckView(APIView):
    """
    Health check endpoint for monitoring and load balancers.

    GET /api/health/
    """

    def get(self, request):
        """Return health status of the API."""
        data = {
            'status': 'healthy',
            'message': 'Fleet Compliance API is running',
            'version': API_VERSION,
            'timestamp': timezone.now()
        }
        serializer = HealthCheckSerializer(data)
        return Response(serializer.data, status=status.HTTP_200_OK)


# =============================================================================
# HOS Service
# =============================================================================

class HOSStatusView(APIView):
    """
    POST /api/hos/status
    Current duty status and remaining drive/on-duty minutes for a driver.
    """

    def post(self, request):
        """
        Request:
        {
            "driver_id": "drv-1",
            "logs": [{
                "log_date": "2025-03-03",
                "entries": [{"status": "driving", "start_time": "...", "end_time": "..."}]
            }]
        }
        """
        serializer = HOSStatusInputSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)

        driver_id = serializer.validated_data['driver_id']
        logs = build_hos_logs(driver_id, serializer.validated_data['logs'])
        try:
            result = get_hos_service().calculate_status(driver_id, logs)
        except HOSValidationError as e:
            logger.warning(f"Rejected HOS entries for driver {driver_id}: {e}")
            return Response(
                {'error': 'Invalid HOS entries', 'details': str(e)},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response(result.to_dict(), status=status.HTTP_200_OK)


class HOSConfigView(APIView):
    """
    GET /api/config/hos - Effective HOS limits
    """

    def get(self, request):
        config = get_hos_service().config
        return Response({
            'daily_limits': {
                'max_driving_hours': config.max_driving_hours,
                'max_on_duty_hours': config.max_on_duty_hours,
                'max_driving_minutes': config.max_driving_minutes,
                'max_on_duty_minutes': config.max_on_duty_minutes,
                'description': '11 hours driving within 14-hour window'
            },
            'not_evaluated': [
                '70-hour/8-day cycle',
                '30-minute break after 8 hours driving',
            ]
        }, status=status.HTTP_200_OK)


# =============================================================================
# Compliance Aggregator
# =============================================================================

class SnapshotView(APIView):
    """
    Base view for endpoints taking a tenant snapshot.

    Records that fail validation are reported under `rejected_records`;
    the rest are still evaluated.
    """

    def post(self, request):
        serializer = SnapshotInputSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)

        snapshot, rejected = build_snapshot(serializer.validated_data)
        if rejected:
            logger.warning(f"Tenant {snapshot.tenant_id}: {len(rejected)} records rejected")
        now = serializer.validated_data.get('now') or timezone.now()

        data = self.compute(get_compliance_service(), snapshot, now)
        data.update({
            'tenant_id': snapshot.tenant_id,
            'now': now.isoformat(),
            'rejected_records': rejected,
        })
        return Response(data, status=status.HTTP_200_OK)

    def compute(self, service: ComplianceService, snapshot, now: datetime) -> dict:
        raise NotImplementedError


class ComplianceSummaryView(SnapshotView):
    """
    POST /api/compliance/summary
    Compliance rates and need-attention counts per category.
    """

    def compute(self, service, snapshot, now):
        metrics = service.get_compliance_summary_metrics(
            snapshot.tenant_id, snapshot.drivers, snapshot.vehicles, snapshot.documents, now
        )
        return {'metrics': metrics.to_dict()}


class ComplianceDeadlinesView(SnapshotView):
    """
    POST /api/compliance/deadlines
    Upcoming deadlines sorted by days remaining.
    """

    def compute(self, service, snapshot, now):
        skipped = []
        deadlines = service.get_upcoming_deadlines(
            snapshot.tenant_id, snapshot.drivers, snapshot.documents, now, skipped
        )
        return {
            'deadlines': [d.to_dict() for d in deadlines],
            'skipped': [s.to_dict() for s in skipped],
        }


class ComplianceDashboardView(SnapshotView):
    """
    POST /api/compliance/dashboard
    Per-entity records, metrics and deadlines in one response.
    """

    def compute(self, service, snapshot, now):
        return service.build_dashboard(snapshot, now).to_dict()


# =============================================================================
# IFTA
# =============================================================================

class IftaCalculateView(APIView):
    """
    POST /api/ifta/reports/calculate
    Build a draft quarterly report from trips and fuel purchases.
    """

    def post(self, request):
        serializer = IftaCalculateInputSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)

        data = serializer.validated_data
        trips, fuel_purchases = serializer.to_records()
        service = get_ifta_service()
        try:
            report = service.calculate_report(
                data['organization_id'], data['year'], data['quarter'],
                trips, fuel_purchases, tax_rates=data.get('tax_rates')
            )
        except IFTAInputError as e:
            logger.warning(f"IFTA calculation rejected for {data['organization_id']}: {e}")
            return Response(
                {'error': 'IFTA calculation failed', 'details': str(e)},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response({
            'report': report.to_dict(),
            'summary': service.summarize(report).to_dict(),
        }, status=status.HTTP_200_OK)


class IftaValidateView(APIView):
    """
    POST /api/ifta/calculations/validate
    Business-rule failures are returned with success=false, not as errors.
    """

    def post(self, request):
        serializer = IftaValidateInputSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)

        calc = build_calculation(serializer.validated_data['calculation'])
        result = get_ifta_service().validate_tax_calculation(calc)
        return Response(result.to_dict(), status=status.HTTP_200_OK)


class IftaAdjustView(APIView):
    """
    POST /api/ifta/calculations/adjust
    Apply manual adjustments/credits; the result must be validated again.
    """

    def post(self, request):
        serializer = IftaAdjustInputSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)

        data = serializer.validated_data
        calc = build_calculation(data['calculation'])
        try:
            updated = get_ifta_service().update_tax_calculation(
                calc, adjustments=data['adjustments'], tax_credits=data['tax_credits']
            )
        except IFTAInputError as e:
            return Response(
                {'error': 'Invalid adjustment', 'details': str(e)},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response({'calculation': updated.to_dict()}, status=status.HTTP_200_OK)


class IftaSubmitView(APIView):
    """
    POST /api/ifta/reports/submit
    Submit a draft report whose jurisdictions are all validated.
    """

    def post(self, request):
        serializer = IftaSubmitInputSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)

        report = build_report(serializer.validated_data['report'])
        now = serializer.validated_data.get('now') or timezone.now()
        try:
            submitted = get_ifta_service().submit_report(report, now)
        except IFTAPreconditionError as e:
            logger.info(f"IFTA submission refused: {e.reason}")
            return Response(
                {'error': 'Report cannot be submitted', 'details': e.reason},
                status=status.HTTP_409_CONFLICT
            )
        return Response({'report': submitted.to_dict()}, status=status.HTTP_200_OK)


class IftaDueDateView(APIView):
    """
    GET /api/ifta/due-date?year=2025&quarter=4
    """

    def get(self, request):
        serializer = IftaDueDateQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return _invalid(serializer, 'Invalid query parameters')

        year = serializer.validated_data['year']
        quarter = serializer.validated_data['quarter']
        return Response({
            'year': year,
            'quarter': quarter,
            'due_date': quarter_due_date(year, quarter).isoformat(),
        }, status=status.HTTP_200_OK)


# =============================================================================
# API Root
# =============================================================================

@api_view(['GET'])
def api_root(request):
    """
    GET /api/
    API documentation and endpoint listing.
    """
    return Response({
        'name': 'Fleet Compliance API',
        'version': API_VERSION,
        'description': 'HOS status, compliance aggregation and IFTA fuel-tax calculation',
        'endpoints': {
            'health': {
                'GET /api/health/': 'Health check'
            },
            'hos': {
                'POST /api/hos/status': 'Current duty status and available hours',
                'GET /api/config/hos': 'Effective HOS limits'
            },
            'compliance': {
                'POST /api/compliance/summary': 'Compliance rates per category',
                'POST /api/compliance/deadlines': 'Upcoming deadlines',
                'POST /api/compliance/dashboard': 'Full compliance dashboard'
            },
            'ifta': {
                'POST /api/ifta/reports/calculate': 'Calculate a quarterly report',
                'POST /api/ifta/calculations/validate': 'Validate a jurisdiction calculation',
                'POST /api/ifta/calculations/adjust': 'Apply manual adjustments',
                'POST /api/ifta/reports/submit': 'Submit a validated draft report',
                'GET /api/ifta/due-date': 'Filing due date for a quarter'
            }
        }
    })
