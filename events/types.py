"""
Event type registry.

Devices tag every event with an integer type code. The code determines the
symbolic name stored alongside the event and whether the event raises an
alert notification.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

LOCATION_EVENT_TYPE = 1

UNKNOWN_EVENT_NAME = "UNKNOWN_EVENT"

ALERT_MARKER = "generated"

EVENT_TYPE_NAMES = MappingProxyType({
    1: "LOCATION",
    2: "GUEST_REGISTRATION",
    3: "MEMBER_GUEST_DECLARATION",
    4: "CONFIGURATION",
    5: "TAMPER_ALARM",
    6: "SOS_ALARM",
    7: "BATTERY_ALARM",
    8: "METER_INSTALLATION",
    9: "VOLTAGE_STATS",
    10: "TEMPERATURE_STATS",
    11: "NTP_SYNC",
    12: "AUDIENCE_SESSION_CLOSE",
    13: "NETWORK_LATCH",
    14: "REMOTE_PAIRING",
    15: "REMOTE_ACTIVITY",
    16: "SIM_ALERT",
    17: "SYSTEM_ALARM",
    18: "SYSTEM_INFO",
    19: "CONFIG_UPDATE",
    20: "ALIVE",
    21: "METER_OTA",
    22: "BATTERY_VOLTAGE",
    23: "BOOT",
    24: "BOOT_V2",
    25: "STB",
    26: "DERIVED_TV_STATUS",
    27: "AUDIO_SOURCE",
    28: "AUDIO_FINGERPRINT",
    29: "LOGO_DETECTED",
})

# Tamper, SOS, battery, SIM and system alarms
ALERT_EVENT_TYPES = frozenset({5, 6, 7, 16, 17})


@dataclass(frozen=True)
class EventClassification:
    """Result of classifying a type code."""
    code: Any
    name: str
    is_alert: bool


def event_name(code: Any) -> str:
    """Symbolic name for a type code, UNKNOWN_EVENT when unregistered."""
    try:
        return EVENT_TYPE_NAMES.get(code, UNKNOWN_EVENT_NAME)
    except TypeError:
        # unhashable codes can't be registered
        return UNKNOWN_EVENT_NAME


def is_alert_type(code: Any) -> bool:
    try:
        return code in ALERT_EVENT_TYPES
    except TypeError:
        return False


def classify(code: Any) -> EventClassification:
    return EventClassification(code=code, name=event_name(code), is_alert=is_alert_type(code))
