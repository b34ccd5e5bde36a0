# chargeflow/api/profile_routes.py
from fastapi import APIRouter, HTTPException, Depends, Query, status
import logging

from chargeflow.models.auth import UserInToken, UserProfile
from chargeflow.models.history import ChargingHistoryEntry
from chargeflow.db.ticket_db import list_user_ticket_ids
from chargeflow.db.vehicle_db import list_vehicles_for_owner
from chargeflow.dependencies.auth import get_current_user
from chargeflow.services.auth_service import AuthService
from chargeflow.services.history_service import fetch_history_for_user

router = APIRouter(prefix="/api/profile", tags=["PROFILE"])

logger = logging.getLogger("chargeflow.profile")

@router.get("")
async def get_profile(user: UserInToken = Depends(get_current_user)):
    """
    Get the current user's profile with ticket and vehicle references.

    Returns:
        {"user": profile}
    """
    try:
        account = AuthService.get_user_by_id(user.user_id)
        if not account:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found."
            )

        profile = UserProfile(
            **account,
            tickets=list_user_ticket_ids(user.user_id),
            vehicles=[vehicle["id"] for vehicle in list_vehicles_for_owner(user.user_id)],
        )
        return {"user": profile}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error getting profile for {user.user_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not retrieve profile."
        )

@router.get("/charging-history")
async def get_charging_history(
    days: int = Query(30, ge=1, le=365, description="How many days back to look"),
    user: UserInToken = Depends(get_current_user)
):
    """Get the current user's finished charging sessions, newest first."""
    try:
        history = fetch_history_for_user(user.user_id, days=days)
        return {"history": [ChargingHistoryEntry(**entry) for entry in history]}
    except Exception as e:
        logger.error(f"❌ Error getting charging history for {user.user_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not retrieve charging history."
        )
