"""
Automatic host shutdown for nutwatch.

Provides the power-loss countdown and the host power actions it triggers.
"""

from nutwatch.shutdown.guard import ShutdownGuard, ShutdownPolicy, ShutdownTracker
from nutwatch.shutdown.host_control import (
    HostAction,
    HostActionResult,
    HostControl,
    SystemHostControl,
)

__all__ = [
    "HostAction",
    "HostActionResult",
    "HostControl",
    "ShutdownGuard",
    "ShutdownPolicy",
    "ShutdownTracker",
    "SystemHostControl",
]
