"""
Payload models and device identifier handling.

Inbound events keep the field names devices send (DEVICE_ID, ID, TS, Type,
Details). Every field is optional at the schema level so that a payload with
missing required fields reaches the ingestion service and is rejected with a
single descriptive validation error.
"""

from typing import Annotated, Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt

# Bounds of an Elasticsearch long
LONG_MIN = -(2 ** 63)
LONG_MAX = 2 ** 63 - 1

# Integers only: JSON true/false, floats and numeric strings are rejected
StoredLong = Annotated[StrictInt, Field(ge=LONG_MIN, le=LONG_MAX)]


class EventPayload(BaseModel):
    """
    Event as sent by a device.

    Attributes:
        DEVICE_ID: Device identifier, numeric or alphanumeric
        ID: Event identifier assigned by the device
        TS: Event timestamp as epoch seconds or milliseconds, as reported
        Type: Integer event type code
        Details: Type-specific detail payload
    """

    model_config = ConfigDict(extra="ignore")

    DEVICE_ID: Optional[Union[int, str]] = None
    ID: Optional[Union[int, str]] = None
    TS: Optional[StoredLong] = None
    Type: Optional[StoredLong] = None
    Details: Optional[Dict[str, Any]] = None


REQUIRED_EVENT_FIELDS = ("DEVICE_ID", "ID", "TS", "Type")


def missing_required_fields(payload: EventPayload) -> list[str]:
    """
    Names of required fields that are absent.

    Null, empty and zero values count as absent; devices never send 0 as a
    device id, event id, timestamp or type code.
    """
    missing = []
    for field_name in REQUIRED_EVENT_FIELDS:
        value = getattr(payload, field_name)
        if isinstance(value, str):
            value = value.strip()
        if not value:
            missing.append(field_name)
    return missing


def canonical_device_id(value: Any) -> str:
    """
    Canonical string form of a device identifier.

    Values whose text is an integer are normalized to their decimal form
    ("0012" and 12 both become "12"); anything else is kept as trimmed text.
    """
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    try:
        return str(int(text))
    except ValueError:
        return text


def device_number(value: Any) -> Optional[int]:
    """
    Numeric form of a device identifier.

    None when the identifier is not numeric or does not fit in a long.
    """
    try:
        number = int(canonical_device_id(value))
    except ValueError:
        return None
    if not LONG_MIN <= number <= LONG_MAX:
        return None
    return number
