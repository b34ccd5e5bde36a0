# chargeflow/api/station_routes.py
from fastapi import APIRouter, HTTPException, Depends, status
from typing import List
import logging

from chargeflow.models.auth import UserInToken
from chargeflow.models.station import Station
from chargeflow.models.ticket import (
    TicketRequest,
    StartChargingRequest,
    UpdateProgressRequest,
    CompleteChargingRequest,
)
from chargeflow.db.station_db import get_station, list_stations
from chargeflow.dependencies.auth import get_current_user
from chargeflow.dependencies.charging import get_charging_service
from chargeflow.services.charging_session_service import ChargingSessionService

router = APIRouter(prefix="/api/stations", tags=["STATIONS"])

logger = logging.getLogger("chargeflow.stations")

@router.get("", response_model=List[Station])
async def get_stations():
    """Get every charging station with live port availability."""
    try:
        return list_stations()
    except Exception as e:
        logger.error(f"❌ Error listing stations: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not load stations."
        )

@router.post("/request-ticket", status_code=status.HTTP_201_CREATED)
async def request_ticket(
    body: TicketRequest,
    user: UserInToken = Depends(get_current_user),
    service: ChargingSessionService = Depends(get_charging_service)
):
    """
    Request a charging ticket for a station and connector type.

    Returns:
        {"ticket": ticket snapshot}
    """
    try:
        ticket = await service.request_ticket(user.user_id, body.stationId, body.connectorType, body.vehicleId)
        return {"ticket": ticket}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error requesting ticket at {body.stationId}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create ticket."
        )

@router.post("/start-charging")
async def start_charging(
    body: StartChargingRequest,
    user: UserInToken = Depends(get_current_user),
    service: ChargingSessionService = Depends(get_charging_service)
):
    """
    Start charging on the active ticket, reserving one port.

    Raises:
        HTTPException: 404 no active ticket, 409 no free port,
            422 no connector type or vehicle
    """
    try:
        ticket = await service.start_charging(user.user_id, body.stationId, body.connectorType, body.vehicleId)
        return {"ticket": ticket}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error starting charging at {body.stationId}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not start charging."
        )

@router.post("/update-progress")
async def update_progress(
    body: UpdateProgressRequest,
    user: UserInToken = Depends(get_current_user),
    service: ChargingSessionService = Depends(get_charging_service)
):
    try:
        return await service.update_progress(user.user_id, body.stationId)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error updating progress at {body.stationId}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not update charging progress."
        )

@router.post("/complete-charging")
async def complete_charging(
    body: CompleteChargingRequest,
    user: UserInToken = Depends(get_current_user),
    service: ChargingSessionService = Depends(get_charging_service)
):
    """Complete, or with `cancel` set cancel, the active charging session."""
    try:
        ticket = await service.complete_charging(user.user_id, body.stationId, cancel=body.cancel)
        if body.cancel:
            return {"message": "Charging cancelled.", "cancelledTicket": ticket}
        return {"message": "Charging completed.", "completedTicket": ticket}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error completing charging at {body.stationId}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not complete charging."
        )

@router.get("/{station_id}", response_model=Station)
async def get_station_by_id(station_id: str):
    try:
        station = get_station(station_id)
    except Exception as e:
        logger.error(f"❌ Error getting station {station_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not load station."
        )

    if not station:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Could not find station."
        )
    return station

@router.get("/{station_id}/active-ticket")
async def get_active_ticket(
    station_id: str,
    user: UserInToken = Depends(get_current_user),
    service: ChargingSessionService = Depends(get_charging_service)
):
    """
    Get the user's active ticket at a station.

    Returns:
        {"ticket": ticket snapshot or null}
    """
    try:
        ticket = await service.get_active_ticket_payload(user.user_id, station_id)
        return {"ticket": ticket}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error getting active ticket at {station_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not load active ticket."
        )
