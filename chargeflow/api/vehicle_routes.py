# chargeflow/api/vehicle_routes.py
from fastapi import APIRouter, HTTPException, Depends, status
import logging

from chargeflow.models.auth import UserInToken
from chargeflow.models.vehicle import Vehicle, VehicleCreate
from chargeflow.db.vehicle_db import insert_vehicle, list_vehicles_for_owner
from chargeflow.dependencies.auth import get_current_user
from chargeflow.services.battery_service import battery_status, refresh_vehicle_snapshots

router = APIRouter(prefix="/api/vehicles", tags=["VEHICLES"])

logger = logging.getLogger("chargeflow.vehicles")

@router.post("/add-vehicle", status_code=status.HTTP_201_CREATED)
async def add_vehicle(vehicle: VehicleCreate, user: UserInToken = Depends(get_current_user)):
    """
    Register a vehicle for the current user.

    Returns:
        {"message", "vehicle"}
    """
    try:
        created = insert_vehicle(
            user.user_id,
            vehicle.name,
            [connector.value for connector in vehicle.connector_type],
            vehicle.min_power,
            active=vehicle.active,
            battery_percent=vehicle.batteryPercent,
            battery_capacity=vehicle.batteryCapacity,
            battery_status=battery_status(vehicle.batteryPercent),
        )
        return {"message": "New vehicle added successfully!", "vehicle": Vehicle(**created)}
    except Exception as e:
        logger.error(f"❌ Error adding vehicle for {user.user_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Adding vehicle failed, please try again."
        )

@router.get("")
async def get_vehicles(user: UserInToken = Depends(get_current_user)):
    """Get the current user's vehicles with their battery levels brought up to date."""
    try:
        vehicles = refresh_vehicle_snapshots(list_vehicles_for_owner(user.user_id))
        return {"vehicles": [Vehicle(**vehicle) for vehicle in vehicles]}
    except Exception as e:
        logger.error(f"❌ Error listing vehicles for {user.user_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not load vehicles."
        )
