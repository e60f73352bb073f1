#!/usr/bin/env python3
"""
Monitoring system for Hell Let Loose geofences
Session polling, player evaluation, punishment scheduling and restart signaling
"""

from .geofence_worker import GeofenceWorker
from .idle_restart_manager import IdleRestartManager
from .player_evaluator import PlayerEvaluator
from .prometheus_integration import GeofenceMetrics, MetricsServer, get_metrics
from .punishment_scheduler import PunishmentScheduler
from .restart_signal import RestartSignal
from .session_poller import SessionPoller
from .tracking import OutsidePlayer, SyncMap, WorkerState

__all__ = [
    'GeofenceWorker',
    'IdleRestartManager',
    'PlayerEvaluator',
    'GeofenceMetrics',
    'MetricsServer',
    'get_metrics',
    'PunishmentScheduler',
    'RestartSignal',
    'SessionPoller',
    'OutsidePlayer',
    'SyncMap',
    'WorkerState',
]

__version__ = '1.0.0'
