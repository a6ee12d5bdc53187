"""
URL configuration for Fleet Compliance project.

Complete API URL structure:
- /api/ - API root
- /api/health/ - Health check
- /api/hos/ - HOS status calculation
- /api/config/ - HOS configuration
- /api/compliance/ - Compliance summary, deadlines and dashboard
- /api/ifta/ - IFTA report calculation, validation and submission
"""

from django.urls import path, include

urlpatterns = [
    path('api/', include('compliance.urls', namespace='compliance')),
]
