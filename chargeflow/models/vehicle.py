# chargeflow/models/vehicle.py
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from chargeflow.models.station import ConnectorType


class BatteryStatus(str, Enum):
    FULL = "FULL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    CRITICAL = "CRITICAL"


class VehicleChargingStatus(str, Enum):
    IDLE = "IDLE"
    CHARGING = "CHARGING"


class VehicleCreate(BaseModel):
    """Schema for registering a vehicle for the current user."""
    name: str = Field(min_length=1)
    connector_type: List[ConnectorType] = Field(min_length=1)
    min_power: float = Field(gt=0)
    active: bool = False
    batteryPercent: int = Field(default=100, ge=0, le=100)
    batteryCapacity: Optional[float] = Field(default=None, ge=0)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Vehicle name must not be blank')
        return v.strip()


class Vehicle(BaseModel):
    """Vehicle model representing a vehicle in the database."""
    id: str
    owner: str
    name: str
    connector_type: List[ConnectorType]
    min_power: float
    active: bool
    batteryPercent: int = Field(ge=0, le=100)
    batteryCapacity: Optional[float] = None
    batteryStatus: BatteryStatus
    chargingStatus: VehicleChargingStatus
    lastBatteryUpdatedAt: Optional[datetime] = None
