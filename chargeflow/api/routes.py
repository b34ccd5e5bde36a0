# chargeflow/api/routes.py
from fastapi import APIRouter

from chargeflow.api.station_routes import router as station_router
from chargeflow.api.vehicle_routes import router as vehicle_router
from chargeflow.api.profile_routes import router as profile_router

router = APIRouter()

router.include_router(station_router)
router.include_router(vehicle_router)
router.include_router(profile_router)
