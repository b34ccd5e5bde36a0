# chargeflow/dependencies/charging.py
from fastapi import Request

from chargeflow.services.charging_session_service import ChargingSessionService


def get_charging_service(request: Request) -> ChargingSessionService:
    """Dependency returning the application's charging session service."""
    return request.app.state.charging_service
