"""
Parsers for NUT list responses.

These functions are pure: they take the raw text of a ``LIST`` response and
never raise. Lines that do not match the expected shape are skipped and
values that fail numeric conversion are left unset.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .models import UPSData

logger = logging.getLogger(__name__)

# NUT variable name -> (UPSData field name, is_numeric)
_VOCABULARY: Dict[str, Tuple[str, bool]] = {
    field.alias: (name, float in getattr(field.annotation, "__args__", ()))
    for name, field in UPSData.model_fields.items()
    if field.alias
}


def _unquote(value: str) -> str:
    return value.strip().strip('"')


def _to_float(value: str) -> Optional[float]:
    try:
        return float(value)
    except ValueError:
        return None


def parse_list_vars(response: str, ups_name: Optional[str] = None) -> UPSData:
    """
    Parse a ``LIST VAR`` response into a UPSData snapshot.

    Args:
        response: Raw response text, envelope lines included.
        ups_name: When given, only variables for this device are read.

    Returns:
        A UPSData instance; fields not reported stay ``None``.
    """
    fields: Dict[str, Any] = {}
    extended: Dict[str, str] = {}

    for line in response.splitlines():
        # Format: VAR <ups> <key> "<value>"
        if not line.startswith("VAR "):
            continue
        parts = line.split(" ", 3)
        if len(parts) < 4:
            continue
        _, device, key, raw_value = parts
        if ups_name is not None and device != ups_name:
            continue
        value = _unquote(raw_value)

        known = _VOCABULARY.get(key)
        if known is None:
            extended[key] = value
            continue

        field_name, numeric = known
        if numeric:
            number = _to_float(value)
            if number is None:
                logger.debug("Ignoring non-numeric value %r for %s", value, key)
                continue
            fields[field_name] = number
        else:
            fields[field_name] = value

    return UPSData(**fields, extended_vars=extended)


def parse_list_ups(response: str) -> Dict[str, str]:
    """Parse ``UPS <name> "<description>"`` lines into a name -> description map."""
    devices: Dict[str, str] = {}
    for line in response.splitlines():
        if not line.startswith("UPS "):
            continue
        parts = line.split(" ", 2)
        if len(parts) >= 2 and parts[1]:
            devices[parts[1]] = _unquote(parts[2]) if len(parts) == 3 else ""
    return devices


def parse_list_cmd(response: str) -> List[str]:
    """Parse ``CMD <ups> <command>`` lines into a list of command names."""
    commands: List[str] = []
    for line in response.splitlines():
        if not line.startswith("CMD "):
            continue
        parts = line.split(" ", 2)
        if len(parts) == 3 and parts[2].strip():
            commands.append(parts[2].strip())
    return commands
