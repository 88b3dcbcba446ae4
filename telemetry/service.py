"""
Telemetry service for structured logging.

Installs a JSON formatter on the root logger so every log line carries a
timestamp, level, logger name and the current request ID. Module code keeps
using plain `logging.getLogger(__name__)`; structured context is passed as
`extra={"extra_data": {...}}`.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Optional, Dict

from middleware.request_id import request_id_var


class JSONFormatter(logging.Formatter):
    """
    Log formatter that renders each record as a single JSON object.

    Fields: timestamp, level, message, logger, request_id, module, function,
    line, plus anything attached under `extra_data` and the formatted
    exception when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class TelemetryService:
    """
    Centralized logging setup plus lightweight metric and audit records.

    Metrics are emitted as debug log lines; there is no metrics backend.
    """

    def __init__(self, settings: Optional[Any] = None):
        self.settings = settings
        self._logger: Optional[logging.Logger] = None
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Replace root handlers with a single stdout handler using JSONFormatter."""
        log_level_str = "INFO"
        if self.settings and hasattr(self.settings, "log_level"):
            log_level_str = self.settings.log_level

        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        self._logger = logging.getLogger("telemetry")
        self._logger.info("Telemetry service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record a custom metric as a structured debug log entry.

        Args:
            name: Name of the metric
            value: Metric value
            tags: Optional tags for metric dimensions
        """
        metric_data: Dict[str, Any] = {
            "metric_name": name,
            "metric_value": value,
        }
        if tags:
            metric_data["tags"] = tags

        self._logger.debug(
            f"Metric: {name}={value}",
            extra={"extra_data": metric_data}
        )

    def log_alert_event(self, record: Dict[str, Any]) -> None:
        """Audit trail entry for an alert-worthy event accepted by ingestion."""
        self._logger.info(
            f"Audit: alert {record.get('Event_Name')} from device {record.get('DEVICE_ID')}",
            extra={"extra_data": {
                "audit_event": True,
                "event_type": "device_alert",
                "device_id": record.get("DEVICE_ID"),
                "event_id": record.get("ID"),
                "type": record.get("Type"),
                "event_name": record.get("Event_Name"),
            }}
        )


_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """Return the global telemetry service, or None if not initialized."""
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """
    Initialize the global telemetry service.

    Args:
        settings: Application settings providing log_level

    Returns:
        The initialized telemetry service
    """
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service
