"""
Dashboards

Time-windowed rollups over the event log, served through the dashboard
cache with role checks.
"""

from learnflow.dashboard.system_monitor import MonitorSnapshot, SystemMonitor
from learnflow.dashboard.data_service import DashboardDataService
from learnflow.dashboard.service import DashboardResult, DashboardService, Role, require_role, resolve_role

__all__ = [
    'MonitorSnapshot',
    'SystemMonitor',
    'DashboardDataService',
    'DashboardResult',
    'DashboardService',
    'Role',
    'require_role',
    'resolve_role',
]
