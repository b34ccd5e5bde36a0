# chargeflow/models/ticket.py
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from chargeflow.models.station import ConnectorType


class TicketStatus(str, Enum):
    REQUESTED = "REQUESTED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class ChargingStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    # Only ever present in the snapshot broadcast for a cancelled session
    CANCELLED = "CANCELLED"


class ChargingOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_TICKET_STATUSES = (TicketStatus.REQUESTED.value, TicketStatus.PAID.value)


class TicketRequest(BaseModel):
    """Body of POST /stations/request-ticket."""
    stationId: str = Field(min_length=1)
    connectorType: ConnectorType
    vehicleId: Optional[str] = None


class StartChargingRequest(BaseModel):
    """Body of POST /stations/start-charging."""
    stationId: str = Field(min_length=1)
    connectorType: Optional[ConnectorType] = None
    vehicleId: Optional[str] = None


class UpdateProgressRequest(BaseModel):
    stationId: str = Field(min_length=1)


class CompleteChargingRequest(BaseModel):
    stationId: str = Field(min_length=1)
    cancel: bool = False
