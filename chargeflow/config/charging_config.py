# chargeflow/config/charging_config.py
from pydantic_settings import BaseSettings

class ChargingSettings(BaseSettings):
    """Charging simulation and storage settings."""
    
    # SQLite database file
    database_path: str = "chargeflow.db"
    database_timeout_seconds: float = 5.0
    
    # Progress simulation
    progress_tick_ms: int = 5000
    charge_interval_per_percent_ms: int = 30_000
    default_charging_duration_ms: int = 5 * 60 * 1000
    
    # Passive battery drain of idle, active vehicles
    battery_drain_tick_ms: int = 10 * 60_000
    battery_drain_step: int = 5
    battery_percent_default: int = 100
    
    # Live progress socket
    websocket_path: str = "/ws/charging-progress"
    
    # Seed the station catalogue on startup
    seed_stations: bool = True
    
    class Config:
        env_file = ".env"
        env_prefix = "CHARGING_"
        extra = "ignore"

# Global charging settings instance
charging_settings = ChargingSettings()
