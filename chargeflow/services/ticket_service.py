# chargeflow/services/ticket_service.py
"""
Ticket projection: the one formatting path for ticket snapshots.

HTTP responses and socket frames both render tickets through
`build_payload`, so the two transports always show the same shape.
"""
import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from chargeflow.config.charging_config import charging_settings
from chargeflow.db.database import utcnow
from chargeflow.db.station_db import get_station
from chargeflow.db.vehicle_db import get_active_vehicle, get_vehicle
from chargeflow.services.battery_service import refresh_vehicle_snapshot

logger = logging.getLogger("chargeflow.tickets")


def resolve_charging_duration_ms(ticket: Dict[str, Any]) -> int:
    """Stored duration of a ticket, or the default for tickets started without one."""
    duration = ticket.get("chargingDurationMs")
    if isinstance(duration, (int, float)) and not isinstance(duration, bool) and math.isfinite(duration):
        return max(0, round(duration))
    return charging_settings.default_charging_duration_ms


def calculate_progress_percent(started_at: Optional[datetime], now: datetime, duration_ms: int) -> int:
    """
    Progress from wall-clock time elapsed since the start.

    A non-positive duration means there is nothing to charge: 100 at once.
    """
    if not started_at:
        return 0
    if duration_ms <= 0:
        return 100

    elapsed_ms = (now - started_at).total_seconds() * 1000
    if elapsed_ms <= 0:
        return 0

    percent = elapsed_ms / duration_ms * 100
    return min(100, max(0, round(percent)))


def calculate_estimated_completion_at(started_at: Optional[datetime], duration_ms: int) -> Optional[datetime]:
    if not started_at:
        return None
    return started_at + timedelta(milliseconds=duration_ms)


def calculate_battery_percentage(starting_percent: Any, progress_percent: Any) -> Optional[int]:
    """Charge level reached after `progress_percent` of the way from the start to full."""
    if not isinstance(starting_percent, (int, float)) or not isinstance(progress_percent, (int, float)):
        return None
    start = min(100, max(0, starting_percent))
    progress = min(100, max(0, progress_percent))
    return min(100, max(0, round(start + (100 - start) * progress / 100)))


def append_battery_percentage(snapshot: Dict[str, Any], progress_percent: Any) -> Dict[str, Any]:
    """
    Add `batteryPercentage` to a snapshot.

    Before charging starts there is no starting level yet, so the vehicle's
    current level is shown instead.
    """
    battery = calculate_battery_percentage(snapshot.get("startingBatteryPercent"), progress_percent)
    if battery is None:
        vehicle_info = snapshot.get("vehicleInfo") or {}
        battery = vehicle_info.get("batteryPercent")
    if battery is None:
        return snapshot
    return {**snapshot, "batteryPercentage": battery}


async def fetch_station_snapshot(station_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not station_id:
        return None
    try:
        return get_station(station_id)
    except Exception as e:
        logger.warning(f"⚠️ Could not load station {station_id} for ticket snapshot: {str(e)}")
        return None


async def fetch_vehicle_snapshot(vehicle_id: Optional[str], user_id: Optional[str]) -> Optional[Dict[str, Any]]:
    """The ticket's own vehicle, else the user's active vehicle."""
    try:
        if vehicle_id:
            return get_vehicle(vehicle_id)
        return get_active_vehicle(user_id)
    except Exception as e:
        logger.warning(f"⚠️ Could not load vehicle for ticket snapshot: {str(e)}")
        return None


async def build_payload(
    ticket: Optional[Dict[str, Any]],
    user_id: Optional[str] = None,
    station_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """
    Render a ticket with station and vehicle information merged in.

    Reads only; the single write is the best-effort persistence of the
    vehicle's refreshed battery level.
    """
    if not ticket:
        return None

    now = now or utcnow()
    user_id = user_id or ticket.get("user")
    station_id = station_id or ticket.get("station")

    station_info, vehicle_info = await asyncio.gather(
        fetch_station_snapshot(station_id),
        fetch_vehicle_snapshot(ticket.get("vehicle"), user_id),
    )
    vehicle_info = refresh_vehicle_snapshot(vehicle_info, now)

    snapshot = dict(ticket)
    estimated_completion_at = calculate_estimated_completion_at(
        ticket.get("startedAt"), resolve_charging_duration_ms(ticket)
    )
    if estimated_completion_at:
        snapshot["estimatedCompletionAt"] = estimated_completion_at

    snapshot["stationInfo"] = station_info
    snapshot["vehicleInfo"] = vehicle_info
    return append_battery_percentage(snapshot, ticket.get("progressPercent"))
