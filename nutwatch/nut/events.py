"""
Event detection for NUT integration.

Compares two consecutive readings and reports the power transitions an
operator cares about: mains lost, mains restored and low battery.
"""

from typing import Any, Dict, List, Optional

from .models import UPSData
from .status import LOW_BATTERY, ON_BATTERY, ONLINE, status_flags

EVENT_POWER_LOST = "power-lost"
EVENT_POWER_RESTORED = "power-restored"
EVENT_LOW_BATTERY = "low-battery"

EVENT_MESSAGES = {
    EVENT_POWER_LOST: "Power lost, UPS is running on battery",
    EVENT_POWER_RESTORED: "Power restored, UPS is back on mains",
    EVENT_LOW_BATTERY: "Battery is low",
}


def detect_events(previous: Optional[UPSData], current: UPSData) -> List[str]:
    """
    Detect power transitions between two readings.

    Nothing is reported for the first reading or when either status is
    unknown.

    Returns:
        Event names in the order they should be announced.
    """
    if previous is None or not previous.status or not current.status:
        return []

    before = status_flags(previous.status)
    after = status_flags(current.status)
    events: List[str] = []

    if ONLINE in before and ON_BATTERY in after:
        events.append(EVENT_POWER_LOST)
    if ON_BATTERY in before and ONLINE in after and ON_BATTERY not in after:
        events.append(EVENT_POWER_RESTORED)
    if LOW_BATTERY not in before and LOW_BATTERY in after:
        events.append(EVENT_LOW_BATTERY)

    return events


def event_payload(event: str, previous: UPSData, current: UPSData) -> Dict[str, Any]:
    return {
        "event": event,
        "message": f"{previous.status} → {current.status}: {EVENT_MESSAGES[event]}",
        "previous_status": previous.status,
        "status": current.status,
    }
