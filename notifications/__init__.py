"""
Fire-and-forget alert notifications.
"""

from notifications.service import AlertNotifier

__all__ = ["AlertNotifier"]
