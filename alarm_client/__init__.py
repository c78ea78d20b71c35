"""
Sync Alarm Client Package
Eksportuje główne klasy i funkcje urządzenia (main / receiver)
"""

from .alarm_models import Alarm, Notification, PendingAction, PendingActionKind, DeviceRole
from .alarm_local_database import LocalDatabase
from .alarm_api_client import AlarmsAPIClient, create_api_client, APIResponse
from .alarm_reconciliation import ReconciliationEngine, FlushResult, MutationResult, apply_action
from .alarm_clock import AlarmState, NotificationCenter, compute_alarm_state, format_countdown
from .alarm_websocket_client import AlarmWebSocketClient, create_websocket_client
from .alarms_logic import AlarmManager

__all__ = [
    'Alarm',
    'Notification',
    'PendingAction',
    'PendingActionKind',
    'DeviceRole',
    'LocalDatabase',
    'AlarmsAPIClient',
    'create_api_client',
    'APIResponse',
    'ReconciliationEngine',
    'FlushResult',
    'MutationResult',
    'apply_action',
    'AlarmState',
    'NotificationCenter',
    'compute_alarm_state',
    'format_countdown',
    'AlarmWebSocketClient',
    'create_websocket_client',
    'AlarmManager',
]
