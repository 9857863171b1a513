"""
Helpers for interpreting NUT ``ups.status`` strings.

A status string is a space separated set of flags, e.g. ``"OL CHRG"`` or
``"OB LB"``.
"""

from typing import FrozenSet, Optional

ONLINE = "OL"
ON_BATTERY = "OB"
LOW_BATTERY = "LB"

# Any of these alongside OL means the UPS is not in its normal state.
ALARM_FLAGS: FrozenSet[str] = frozenset({
    "OB", "LB", "HB", "RB", "OVER", "FSD", "BYPASS", "OFF",
    "ALARM", "TRIM", "BOOST", "DISCHRG", "CAL",
})


def status_flags(status: Optional[str]) -> FrozenSet[str]:
    if not status:
        return frozenset()
    return frozenset(status.split())


def is_nominal(status: Optional[str]) -> bool:
    """True when the UPS is online on mains power with no alarm flag raised."""
    flags = status_flags(status)
    return ONLINE in flags and not (flags & ALARM_FLAGS)


def is_outage(status: Optional[str]) -> bool:
    """True when the UPS is not online or is running from its battery."""
    flags = status_flags(status)
    return ONLINE not in flags or ON_BATTERY in flags
