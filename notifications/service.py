"""
Alert notifications for alert-worthy events.

Dispatch is fire-and-forget: ingestion schedules the delivery and returns
without waiting for it. Delivery failures are logged and never reach the
caller that ingested the event.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

import requests

from config.settings import get_settings

logger = logging.getLogger(__name__)


class AlertNotifier:
    """
    Posts alert-worthy event records to the configured webhook.

    When no webhook is configured, alerts are only logged.

    Attributes:
        webhook_url: Destination of the alert POST, or None
    """

    def __init__(self, webhook_url: Optional[str] = None):
        if webhook_url is None:
            webhook_url = get_settings().alert_webhook_url
        self.webhook_url = webhook_url
        # Strong references so pending deliveries aren't garbage collected
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, record: Dict[str, Any]) -> Optional[asyncio.Task]:
        """
        Schedule delivery of an alert and return immediately.

        Returns:
            The scheduled task, or None when no event loop is running
        """
        try:
            task = asyncio.get_running_loop().create_task(self.send(dict(record)))
        except RuntimeError:
            logger.warning(
                "No running event loop, alert notification dropped",
                extra={"extra_data": {"device_id": record.get("DEVICE_ID"), "type": record.get("Type")}}
            )
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _post(self, record: Dict[str, Any]) -> None:
        response = requests.post(self.webhook_url, json=record)
        response.raise_for_status()

    async def send(self, record: Dict[str, Any]) -> bool:
        """
        Deliver one alert. Never raises.

        Returns:
            True when the alert was delivered (or logged with no webhook configured)
        """
        context = {
            "device_id": record.get("DEVICE_ID"),
            "event_id": record.get("ID"),
            "event_name": record.get("Event_Name"),
        }

        if not self.webhook_url:
            logger.info(
                f"Alert {record.get('Event_Name')} for device {record.get('DEVICE_ID')} (no webhook configured)",
                extra={"extra_data": context}
            )
            return True

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._post, record)
        except Exception as e:
            logger.error(
                f"Failed to deliver alert notification: {e}",
                extra={"extra_data": {**context, "error": str(e)}}
            )
            return False

        logger.info("Alert notification delivered", extra={"extra_data": context})
        return True

    async def drain(self) -> None:
        """Wait for deliveries still in flight, used on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
