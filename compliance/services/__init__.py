"""
Services package for the Fleet Compliance engine.

Contains the rule engine, separated from views: nothing in here touches
the database, the request or the system clock.
"""

from .hos_service import HOSService, HOSConfig
from .compliance_service import ComplianceService, ComplianceConfig
from .ifta_service import IftaService, IftaConfig

__all__ = [
    'HOSService', 'HOSConfig',
    'ComplianceService', 'ComplianceConfig',
    'IftaService', 'IftaConfig',
]
