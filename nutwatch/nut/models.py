"""
Data models for NUT (Network UPS Tools) integration.

This module defines the Pydantic models for representing and validating
UPS data polled from the NUT server.
"""

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..config import settings


class NUTTarget(BaseModel):
    """
    Identity of a single NUT server.

    Immutable for the lifetime of the client that uses it.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = 3493
    username: str | None = None
    password: str | None = Field(None, repr=False)

    @classmethod
    def from_settings(cls) -> "NUTTarget":
        return cls(
            host=settings.NUT_HOST,
            port=settings.NUT_PORT,
            username=settings.NUT_USERNAME,
            password=settings.NUT_PASSWORD,
        )

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class UPSData(BaseModel):
    """
    Represents a snapshot of UPS data.

    All fields are optional as they may not be available from all UPS devices.
    Each field's alias is the NUT variable it is read from; variables without
    a field end up in ``extended_vars``.
    """

    model_config = ConfigDict(populate_by_name=True)

    status: str | None = Field(None, alias="ups.status")

    # Battery
    battery_charge: float | None = Field(None, alias="battery.charge")
    battery_runtime: float | None = Field(None, alias="battery.runtime")
    battery_voltage: float | None = Field(None, alias="battery.voltage")
    battery_current: float | None = Field(None, alias="battery.current")
    battery_type: str | None = Field(None, alias="battery.type")

    # Input / output
    input_voltage: float | None = Field(None, alias="input.voltage")
    input_voltage_fault: float | None = Field(None, alias="input.voltage.fault")
    input_frequency: float | None = Field(None, alias="input.frequency")
    output_voltage: float | None = Field(None, alias="output.voltage")
    output_voltage_nominal: float | None = Field(None, alias="output.voltage.nominal")
    output_frequency: float | None = Field(None, alias="output.frequency")
    output_frequency_nominal: float | None = Field(None, alias="output.frequency.nominal")
    output_current: float | None = Field(None, alias="output.current")

    # Load and power
    ups_load: float | None = Field(None, alias="ups.load")
    ups_realpower_nominal: float | None = Field(None, alias="ups.realpower.nominal")
    power_watts: float | None = Field(None, alias="ups.realpower")
    ambient_temp: float | None = Field(None, alias="ambient.temperature")

    # Identity
    ups_mfr: str | None = Field(None, alias="ups.mfr")
    ups_model: str | None = Field(None, alias="ups.model")
    ups_serial: str | None = Field(None, alias="ups.serial")
    ups_firmware: str | None = Field(None, alias="ups.firmware")
    ups_type: str | None = Field(None, alias="ups.type")
    ups_beeper_status: str | None = Field(None, alias="ups.beeper.status")
    driver_name: str | None = Field(None, alias="driver.name")
    driver_version: str | None = Field(None, alias="driver.version")

    extended_vars: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _derive_power(self) -> "UPSData":
        # Only derive when the device does not report real power itself.
        if (
            self.power_watts is None
            and self.ups_load is not None
            and self.ups_realpower_nominal is not None
        ):
            self.power_watts = self.ups_realpower_nominal * (self.ups_load / 100)
        return self
