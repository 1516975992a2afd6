"""
Actions Module
User-triggered transitions and alarm-time resolution
"""

from .reconciliation_actions import ReconciliationActions

from .alarm_reconciler import (
    AlarmDeliveryReconciler,
    AlarmResolution,
    ResolutionPath
)


__all__ = [
    # Reconciliation
    "ReconciliationActions",

    # Alarms
    "AlarmDeliveryReconciler",
    "AlarmResolution",
    "ResolutionPath"
]
