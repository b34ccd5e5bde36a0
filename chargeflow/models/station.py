# chargeflow/models/station.py
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field


class ConnectorType(str, Enum):
    CCS2 = "CCS2"
    TYPE2 = "Type2"
    CHADEMO = "CHAdeMO"


class Availability(str, Enum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"


class Connector(BaseModel):
    """A connector type offered by a station and its port pool."""
    type: ConnectorType
    powerKW: float
    ports: int = Field(ge=0)  # total ports of this connector type
    availablePorts: int = Field(ge=0)  # currently available ports


class StationPhoto(BaseModel):
    label: str
    gradient: str


class StationPricing(BaseModel):
    currency: str
    perKwh: float
    fastPerKwh: Optional[float] = Field(default=None, ge=0)
    ultraFastPerKwh: Optional[float] = Field(default=None, ge=0)
    perMinute: Optional[float] = None
    parkingFee: Optional[str] = None


class Station(BaseModel):
    """Station model representing a charging station in the database."""
    id: str
    name: str
    lat: float
    lng: float
    address: str
    connectors: List[Connector]
    status: Availability
    lastUpdatedISO: str
    photos: List[StationPhoto] = []
    pricing: StationPricing
    amenities: List[str] = []
    notes: Optional[str] = None
