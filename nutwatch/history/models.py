"""
Pydantic models for persisted UPS history.
"""

from pydantic import BaseModel, ConfigDict

from ..nut.models import UPSData


class HistoryEntry(BaseModel):
    """A persisted projection of one telemetry record."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    timestamp: int
    input_voltage: float | None = None
    output_voltage: float | None = None
    load_percent: float | None = None
    battery_charge: float | None = None
    status: str = ""

    @classmethod
    def from_ups_data(cls, data: UPSData, timestamp: int) -> "HistoryEntry":
        return cls(
            timestamp=timestamp,
            input_voltage=data.input_voltage,
            output_voltage=data.output_voltage,
            load_percent=data.ups_load,
            battery_charge=data.battery_charge,
            status=data.status or "",
        )


class HistoryStats(BaseModel):
    """Aggregates over a lookback window. Averages and extremes are None without data."""

    min_input_voltage: float | None = None
    max_input_voltage: float | None = None
    avg_input_voltage: float | None = None
    min_output_voltage: float | None = None
    max_output_voltage: float | None = None
    avg_output_voltage: float | None = None
    max_load: float | None = None
    avg_load: float | None = None
    min_battery: float | None = None
    avg_battery: float | None = None
    data_points: int = 0
    outages: int = 0
