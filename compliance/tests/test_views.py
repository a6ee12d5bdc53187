"""
Tests for Fleet Compliance API Views.
"""

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.test import TestCase, override_settings
from rest_framework.test import APIClient
from rest_framework import status

from compliance.services.hos_service import DailyLimitEvaluator, EditedLogHeuristic
from compliance.views import get_compliance_service


NOW = '2025-03-10T12:00:00Z'


class TestHealthCheckEndpoint(TestCase):
    """Test health check endpoint."""

    def setUp(self):
        self.client = APIClient()

    def test_health_check_returns_200(self):
        response = self.client.get('/api/health/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'healthy'
        assert 'version' in response.data
        assert 'timestamp' in response.data


class TestApiRootEndpoint(TestCase):
    """Test API root endpoint."""

    def setUp(self):
        self.client = APIClient()

    def test_api_root_returns_endpoints(self):
        response = self.client.get('/api/')

        assert response.status_code == status.HTTP_200_OK
        assert set(response.data['endpoints']) == {'health', 'hos', 'compliance', 'ifta'}


class TestHOSEndpoints(TestCase):

    def setUp(self):
        self.client = APIClient()

    def _payload(self, *entries):
        return {
            'driver_id': 'drv-1',
            'logs': [{
                'log_date': '2025-03-10',
                'entries': [
                    {'status': s, 'start_time': start, 'end_time': end} for s, start, end in entries
                ],
            }],
        }

    def test_status(self):
        payload = self._payload(
            ('on_duty', '2025-03-10T06:00:00Z', '2025-03-10T08:00:00Z'),
            ('driving', '2025-03-10T08:00:00Z', '2025-03-10T13:00:00Z'),
        )

        response = self.client.post('/api/hos/status', payload, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['current_status'] == 'driving'
        assert response.data['used_drive_time'] == 300
        assert response.data['available_drive_time'] == 360
        assert response.data['compliance_status'] == 'compliant'

    def test_overlapping_entries_return_400(self):
        payload = self._payload(
            ('driving', '2025-03-10T06:00:00Z', '2025-03-10T09:00:00Z'),
            ('on_duty', '2025-03-10T08:00:00Z', '2025-03-10T10:00:00Z'),
        )

        response = self.client.post('/api/hos/status', payload, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'Invalid HOS entries'

    def test_invalid_status_value(self):
        payload = self._payload(('napping', '2025-03-10T06:00:00Z', '2025-03-10T07:00:00Z'))

        response = self.client.post('/api/hos/status', payload, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'details' in response.data

    def test_config(self):
        response = self.client.get('/api/config/hos')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['daily_limits']['max_driving_minutes'] == 660

    @override_settings(COMPLIANCE_ENGINE={'HOS': {'max_driving_hours': 10.0}})
    def test_config_from_settings(self):
        response = self.client.get('/api/config/hos')

        assert response.data['daily_limits']['max_driving_hours'] == 10.0


class TestComplianceEndpoints(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.snapshot = {
            'tenant_id': 'tenant-1',
            'now': NOW,
            'drivers': [
                {'id': 'd1', 'name': 'Ana Ruiz', 'license_expiration': '2025-03-20'},
                {'id': 'd2', 'name': 'Bo Chen', 'medical_card_expiration': '2026-01-01'},
                {'id': 'd3', 'name': 'Cy Park', 'license_expiration': '2025-01-01'},
            ],
            'vehicles': [
                {'id': 'v1', 'unit_number': '101', 'last_inspection_date': '2025-03-01',
                 'last_inspection_result': 'passed'},
                {'id': 'v2', 'unit_number': '102', 'status': 'inactive'},
            ],
            'documents': [
                {'id': 'doc-1', 'name': 'Insurance', 'expiration_date': '2025-03-05'},
                {'id': 'doc-2', 'name': 'IFTA License', 'vehicle_id': 'v1'},
            ],
        }

    def test_summary(self):
        response = self.client.post('/api/compliance/summary', self.snapshot, format='json')

        assert response.status_code == status.HTTP_200_OK
        metrics = response.data['metrics']
        assert metrics['driver_compliance'] == {
            'rate': 33, 'total': 3, 'compliant': 1, 'need_attention': 2
        }
        assert metrics['vehicle_compliance']['rate'] == 50
        assert metrics['document_compliance']['compliant'] == 1
        assert response.data['rejected_records'] == []

    def test_deadlines(self):
        response = self.client.post('/api/compliance/deadlines', self.snapshot, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['deadlines'] == [
            {'type': 'Document Expiration', 'name': 'Insurance', 'due_in': 0, 'status': 'Expired'},
            {'type': 'Driver CDL', 'name': 'Ana Ruiz', 'due_in': 10, 'status': 'Expiring Soon'},
        ]

    def test_invalid_record_rejected_others_aggregated(self):
        self.snapshot['drivers'].append({'id': 'd4', 'license_expiration': 'not-a-date'})

        response = self.client.post('/api/compliance/summary', self.snapshot, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['metrics']['driver_compliance']['total'] == 3
        rejected = response.data['rejected_records']
        assert len(rejected) == 1
        assert rejected[0]['record_type'] == 'driver'
        assert rejected[0]['id'] == 'd4'

    def test_dashboard(self):
        response = self.client.post('/api/compliance/dashboard', self.snapshot, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['tenant_id'] == 'tenant-1'
        assert len(response.data['drivers']) == 3
        vehicles = {v['vehicle_id']: v for v in response.data['vehicles']}
        assert vehicles['v1']['next_inspection_date'] == '2025-05-30'
        assert vehicles['v2']['status'] == 'Non-Compliant'
        documents = {d['document_id']: d for d in response.data['documents']}
        assert documents['doc-2']['assigned_to'] == 'Vehicle'

    def test_missing_tenant(self):
        response = self.client.post('/api/compliance/summary', {'drivers': []}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'error' in response.data


class TestIftaEndpoints(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.calculate_payload = {
            'organization_id': 'org-1',
            'year': 2025,
            'quarter': 1,
            'trips': [
                {'jurisdiction': 'NM', 'miles': '600', 'date': '2025-02-01'},
                {'jurisdiction': 'TX', 'miles': '400', 'date': '2025-02-03'},
            ],
            'fuel_purchases': [
                {'jurisdiction': 'NM', 'gallons': '100', 'amount': '350', 'date': '2025-02-01'},
                {'jurisdiction': 'TX', 'gallons': '60', 'amount': '200', 'date': '2025-02-03'},
            ],
        }

    def _calculate(self):
        response = self.client.post('/api/ifta/reports/calculate', self.calculate_payload, format='json')
        assert response.status_code == status.HTTP_200_OK
        return response.data['report']

    def test_calculate(self):
        response = self.client.post('/api/ifta/reports/calculate', self.calculate_payload, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['report']['total_net_tax_due'] == '0.12'
        assert response.data['summary']['average_mpg'] == '6.25'
        assert response.data['summary']['can_submit'] is False

    def test_dona_ana_county_rate(self):
        self.calculate_payload['trips'][0]['county'] = 'Dona Ana'
        self.calculate_payload['fuel_purchases'][0]['county'] = 'Dona Ana'

        report = self._calculate()

        assert [c['jurisdiction'] for c in report['calculations']] == ['NM-DA', 'TX']

    def test_unknown_jurisdiction(self):
        self.calculate_payload['trips'][0]['jurisdiction'] = 'ZZ'

        response = self.client.post('/api/ifta/reports/calculate', self.calculate_payload, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'ZZ' in response.data['details']

    def test_validate_and_adjust(self):
        calc = self._calculate()['calculations'][0]

        validated = self.client.post('/api/ifta/calculations/validate', {'calculation': calc}, format='json')
        assert validated.data['success'] is True
        assert validated.data['calculation']['is_validated'] is True

        adjusted = self.client.post('/api/ifta/calculations/adjust', {
            'calculation': validated.data['calculation'],
            'adjustments': '10.00',
        }, format='json')
        assert adjusted.status_code == status.HTTP_200_OK
        assert adjusted.data['calculation']['is_validated'] is False
        assert adjusted.data['calculation']['net_tax_due'] == '8.58'

    def test_validate_returns_warnings_not_errors(self):
        calc = self._calculate()['calculations'][0]
        calc['tax_rate'] = '0.90'

        response = self.client.post('/api/ifta/calculations/validate', {'calculation': calc}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is False
        assert len(response.data['warnings']) == 1

    def test_adjust_requires_a_value(self):
        calc = self._calculate()['calculations'][0]

        response = self.client.post('/api/ifta/calculations/adjust', {'calculation': calc}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_submit_unvalidated_report_conflicts(self):
        report = self._calculate()

        response = self.client.post('/api/ifta/reports/submit', {'report': report, 'now': NOW}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert 'not validated' in response.data['details']

    def _validated_report(self):
        report = self._calculate()
        calculations = []
        for calc in report['calculations']:
            response = self.client.post('/api/ifta/calculations/validate', {'calculation': calc}, format='json')
            assert response.data['success'] is True
            calculations.append(response.data['calculation'])
        report['calculations'] = calculations
        return report

    def test_submit_validated_report(self):
        report = self._validated_report()

        response = self.client.post('/api/ifta/reports/submit', {'report': report, 'now': NOW}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['report']['status'] == 'submitted'
        assert response.data['report']['submitted_at'].startswith('2025-03-10T12:00:00')

    def test_submit_rechecks_claimed_validation(self):
        report = self._validated_report()
        report['calculations'][0].update({'tax_rate': '5.00', 'fuel_consumed': '1', 'is_validated': True})

        response = self.client.post('/api/ifta/reports/submit', {'report': report, 'now': NOW}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert 'failing validation: NM' in response.data['details']

    def test_tax_due_recomputed_from_fuel_and_rate(self):
        calc = self._calculate()['calculations'][0]
        calc['tax_due'] = '0.01'

        response = self.client.post('/api/ifta/calculations/validate', {'calculation': calc}, format='json')

        assert response.data['calculation']['tax_due'] == '34.08'
        assert response.data['calculation']['net_tax_due'] == '-1.42'

    def test_due_date(self):
        response = self.client.get('/api/ifta/due-date', {'year': 2024, 'quarter': 4})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['due_date'] == '2025-01-31'

    def test_due_date_invalid_quarter(self):
        response = self.client.get('/api/ifta/due-date', {'year': 2024, 'quarter': 5})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestEngineSettings(TestCase):

    def test_default_evaluator(self):
        assert isinstance(get_compliance_service().violation_evaluator, EditedLogHeuristic)

    @override_settings(COMPLIANCE_ENGINE={'COMPLIANCE': {'VIOLATION_EVALUATOR': 'daily_limit'}})
    def test_daily_limit_evaluator_selected(self):
        assert isinstance(get_compliance_service().violation_evaluator, DailyLimitEvaluator)

    @override_settings(COMPLIANCE_ENGINE={'COMPLIANCE': {'VIOLATION_EVALUATOR': 'daily_limits'}})
    def test_unknown_evaluator_is_a_configuration_error(self):
        with pytest.raises(ImproperlyConfigured):
            get_compliance_service()
