# chargeflow/models/history.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from chargeflow.models.ticket import ChargingOutcome


class ChargingHistoryEntry(BaseModel):
    """A finished charging session, kept after its ticket is deleted."""
    id: str
    user: str
    ticketId: str
    station: Optional[str] = None
    stationName: Optional[str] = None
    stationAddress: Optional[str] = None
    vehicle: Optional[str] = None
    vehicleName: Optional[str] = None
    connectorType: Optional[str] = None
    startedAt: Optional[datetime] = None
    endedAt: datetime
    outcome: ChargingOutcome
    progressPercent: Optional[int] = None
    startingBatteryPercent: Optional[int] = None
    batteryPercentage: Optional[int] = None
    chargingDurationMs: Optional[int] = None
    createdAt: datetime
