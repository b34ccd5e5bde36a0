# chargeflow/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from chargeflow.api.routes import router as api_router
from chargeflow.api.auth_routes import router as auth_router
from chargeflow.ws.websocket_handler import websocket_endpoint
from chargeflow.ws.session_hub import SessionHub
from chargeflow.db.database import init_db, utcnow
from chargeflow.config.auth_config import auth_settings
from chargeflow.config.charging_config import charging_settings
from chargeflow.services.auth_service import AuthService
from chargeflow.services.battery_service import ensure_vehicle_battery_defaults
from chargeflow.services.charging_session_service import ChargingSessionService
from chargeflow.services.effects import BestEffortDispatcher
from chargeflow.services.station_seed import ensure_stations_seeded

# Configure logger with explicit level
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("chargeflow")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle events."""
    logger.info("🚀 ChargeFlow starting up")

    try:
        init_db()

        if charging_settings.seed_stations:
            ensure_stations_seeded()

        AuthService.ensure_admin_user()
        ensure_vehicle_battery_defaults()
        logger.info(f"JWT token expiry: {auth_settings.jwt_access_token_expire_hours} hours")

        hub = SessionHub()
        effects = BestEffortDispatcher()
        app.state.session_hub = hub
        app.state.effects = effects
        app.state.charging_service = ChargingSessionService(hub, effects=effects)
        logger.info(f"✅ Progress hub ready | tick={charging_settings.progress_tick_ms}ms")

    except Exception as e:
        logger.error(f"❌ Error during application startup: {str(e)}", exc_info=True)
        raise

    yield

    logger.info("🛑 ChargeFlow shutting down")
    await app.state.session_hub.shutdown()
    await app.state.effects.drain()

def create_app() -> FastAPI:
    app = FastAPI(
        title="ChargeFlow Backend",
        description="EV charging station locator, ticketing and live charging progress",
        version="1.0",
        lifespan=lifespan
    )

    # CORS middleware configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify your frontend domains
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Authentication routes first (no auth required for login)
    app.include_router(auth_router)
    app.include_router(api_router)

    app.add_api_websocket_route(charging_settings.websocket_path, websocket_endpoint)

    @app.get("/")
    async def root():
        """Root endpoint for health checking."""
        return {
            "status": "running",
            "message": "ChargeFlow backend is running",
            "version": "1.0",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        hub = getattr(app.state, "session_hub", None)
        effects = getattr(app.state, "effects", None)
        return {
            "status": "healthy",
            "timestamp": utcnow(),
            "services": {
                "database": "connected",
                "progressTimers": len(hub.timers) if hub else 0,
                "subscribers": sum(len(channels) for channels in hub.subscribers.values()) if hub else 0,
                "pendingEffects": effects.pending if effects else 0,
            }
        }

    return app

app = create_app()
