"""
Compliance app configuration.
"""

from django.apps import AppConfig


class ComplianceAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'compliance'
    verbose_name = 'Fleet Compliance Engine'
