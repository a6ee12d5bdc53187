"""
URL configuration for compliance app.
"""

from django.urls import path
from .views import (
    HealthCheckView,
    api_root,

    # HOS
    HOSStatusView,
    HOSConfigView,

    # Compliance Aggregator
    ComplianceSummaryView,
    ComplianceDeadlinesView,
    ComplianceDashboardView,

    # IFTA
    IftaCalculateView,
    IftaValidateView,
    IftaAdjustView,
    IftaSubmitView,
    IftaDueDateView,
)

app_name = 'compliance'

urlpatterns = [
    path('', api_root, name='api_root'),
    path('health/', HealthCheckView.as_view(), name='health_check'),

    # ==========================================================================
    # Hours of Service
    # ==========================================================================
    path('hos/status', HOSStatusView.as_view(), name='hos_status'),
    path('config/hos', HOSConfigView.as_view(), name='config_hos'),

    # ==========================================================================
    # Compliance Aggregator
    # ==========================================================================
    path('compliance/summary', ComplianceSummaryView.as_view(), name='compliance_summary'),
    path('compliance/deadlines', ComplianceDeadlinesView.as_view(), name='compliance_deadlines'),
    path('compliance/dashboard', ComplianceDashboardView.as_view(), name='compliance_dashboard'),

    # ==========================================================================
    # IFTA Fuel Tax
    # ==========================================================================
    path('ifta/reports/calculate', IftaCalculateView.as_view(), name='ifta_calculate'),
    path('ifta/calculations/validate', IftaValidateView.as_view(), name='ifta_validate'),
    path('ifta/calculations/adjust', IftaAdjustView.as_view(), name='ifta_adjust'),
    path('ifta/reports/submit', IftaSubmitView.as_view(), name='ifta_submit'),
    path('ifta/due-date', IftaDueDateView.as_view(), name='ifta_due_date'),
]
