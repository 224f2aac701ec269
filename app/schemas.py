"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, FiniteFloat

from models.records import Reading
from services.aggregator import DeviceSummary, HourlyRollup


class MetricValues(BaseModel):
    """The four environmental metrics; absent values are left out of the JSON."""

    model_config = ConfigDict(populate_by_name=True)

    humidity: Optional[float] = None
    pressure: Optional[float] = None
    temperature: Optional[float] = None
    gas_resistance: Optional[float] = Field(default=None, alias="gasResistance")


class RollupRow(MetricValues):
    """Averages for one hour of the trailing window."""

    hour: int = Field(..., ge=0, le=23)

    @classmethod
    def from_rollup(cls, rollup: HourlyRollup) -> "RollupRow":
        return cls.model_validate({"hour": rollup.hour, **rollup.averages})


class DeviceSummaryRow(BaseModel):
    """Latest raw values and hour-label keyed averages for one device."""

    model_config = ConfigDict(populate_by_name=True)

    device: Optional[str] = None
    latest: MetricValues
    humidity: Optional[Dict[str, float]] = None
    pressure: Optional[Dict[str, float]] = None
    temperature: Optional[Dict[str, float]] = None
    gas_resistance: Optional[Dict[str, float]] = Field(default=None, alias="gasResistance")

    @classmethod
    def from_summary(cls, summary: DeviceSummary) -> "DeviceSummaryRow":
        return cls.model_validate(
            {
                "device": summary.device,
                "latest": MetricValues.model_validate(summary.latest),
                **summary.history,
            }
        )


class ReadingCreate(BaseModel):
    """Request body for appending a reading.

    ``temp`` is accepted for ``temperature``. NaN and infinite values are rejected.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    humidity: Optional[FiniteFloat] = None
    pressure: Optional[FiniteFloat] = None
    temperature: Optional[FiniteFloat] = Field(
        default=None, validation_alias=AliasChoices("temperature", "temp")
    )
    gas_resistance: Optional[FiniteFloat] = Field(
        default=None, validation_alias=AliasChoices("gasResistance", "gas_resistance")
    )

    def metric_values(self) -> Dict[str, Optional[float]]:
        return {
            "humidity": self.humidity,
            "pressure": self.pressure,
            "temperature": self.temperature,
            "gasResistance": self.gas_resistance,
        }


class ReadingOut(MetricValues):
    """A stored raw reading."""

    id: str
    device_id: str = Field(..., alias="deviceId")
    created_at: datetime = Field(..., alias="createdAt")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls.model_validate(
            {
                "id": reading.id,
                "deviceId": reading.owner_device_id,
                "createdAt": reading.created_at,
                **reading.metric_values(),
            }
        )
