"""Spending notifications package."""

from bizledger.services.notifications.spending import (
    SpendingMonitor,
    detect_spending_anomalies,
)

__all__ = ["SpendingMonitor", "detect_spending_anomalies"]
