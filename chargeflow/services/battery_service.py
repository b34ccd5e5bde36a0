# chargeflow/services/battery_service.py
"""
Vehicle battery model.

Idle vehicles that are marked active lose charge passively. Nothing runs in
the background for this: the drain is computed whenever a vehicle snapshot is
read, from the whole drain ticks elapsed since `lastBatteryUpdatedAt`.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from chargeflow.config.charging_config import charging_settings
from chargeflow.db.database import execute_query, execute_update, from_db_time, to_db_time, utcnow
from chargeflow.db.vehicle_db import update_battery_fields
from chargeflow.models.vehicle import BatteryStatus, VehicleChargingStatus

logger = logging.getLogger("chargeflow.battery")

_BATTERY_STATUSES = {status.value for status in BatteryStatus}


def battery_status(percent: float) -> str:
    """Map a battery percentage to its status tier."""
    if percent >= 80:
        return BatteryStatus.FULL.value
    if percent >= 60:
        return BatteryStatus.HIGH.value
    if percent >= 40:
        return BatteryStatus.MEDIUM.value
    if percent >= 20:
        return BatteryStatus.LOW.value
    return BatteryStatus.CRITICAL.value


def clamp_battery_percent(value: Any) -> int:
    """Round into [0, 100]; anything non-numeric becomes the default charge."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return charging_settings.battery_percent_default
    return min(100, max(0, round(value)))


def build_battery_update(
    snapshot: Dict[str, Any], now: datetime
) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """
    Apply passive drain to a vehicle snapshot.

    Returns:
        tuple: (updated snapshot, fields to persist or None when nothing changed)
    """
    current_percent = clamp_battery_percent(snapshot.get("batteryPercent"))
    current_status = snapshot.get("batteryStatus")
    if current_status not in _BATTERY_STATUSES:
        current_status = battery_status(current_percent)

    active = snapshot.get("active") is True
    charging = snapshot.get("chargingStatus") == VehicleChargingStatus.CHARGING.value
    last_updated_at = from_db_time(snapshot.get("lastBatteryUpdatedAt"))

    next_percent = current_percent
    next_status = battery_status(current_percent)
    next_last_updated_at = last_updated_at or now

    if active and not charging and last_updated_at:
        tick_ms = charging_settings.battery_drain_tick_ms
        elapsed_ms = (now - last_updated_at).total_seconds() * 1000
        if elapsed_ms >= tick_ms:
            steps = int(elapsed_ms // tick_ms)
            next_percent = clamp_battery_percent(current_percent - steps * charging_settings.battery_drain_step)
            next_status = battery_status(next_percent)
            # Advance by whole ticks only so the partial tick carries over
            next_last_updated_at = last_updated_at + timedelta(milliseconds=steps * tick_ms)

    update_needed = (
        next_percent != current_percent
        or next_status != current_status
        or last_updated_at is None
        or next_last_updated_at != last_updated_at
    )

    updated_snapshot = {
        **snapshot,
        "batteryPercent": next_percent,
        "batteryStatus": next_status,
        "lastBatteryUpdatedAt": next_last_updated_at,
    }

    update = None
    if update_needed:
        update = {
            "batteryPercent": next_percent,
            "batteryStatus": next_status,
            "lastBatteryUpdatedAt": next_last_updated_at,
        }

    return updated_snapshot, update


def refresh_vehicle_snapshots(
    snapshots: List[Dict[str, Any]], now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """
    Refresh a batch of vehicle snapshots and persist what changed.

    Persisting is best-effort: a failed write is logged and the refreshed
    snapshots are still returned.
    """
    if not snapshots:
        return []

    now = now or utcnow()
    updates = []
    refreshed = []
    for snapshot in snapshots:
        updated_snapshot, update = build_battery_update(snapshot, now)
        if update and snapshot.get("id"):
            updates.append((snapshot["id"], update))
        refreshed.append(updated_snapshot)

    if updates:
        try:
            update_battery_fields(updates)
        except Exception as e:
            logger.warning(f"⚠️ Could not persist battery refresh for {len(updates)} vehicle(s): {str(e)}")

    return refreshed


def refresh_vehicle_snapshot(
    snapshot: Optional[Dict[str, Any]], now: Optional[datetime] = None
) -> Optional[Dict[str, Any]]:
    if not snapshot:
        return None
    refreshed = refresh_vehicle_snapshots([snapshot], now)
    return refreshed[0] if refreshed else snapshot


def update_vehicle_battery_percentage(vehicle_id: str, percent: float, now: Optional[datetime] = None) -> bool:
    """
    Mirror a derived charge level onto the vehicle and restart its drain clock.

    Returns:
        bool: True if the vehicle exists
    """
    if not vehicle_id:
        return False

    next_percent = clamp_battery_percent(percent)
    updated = execute_update(
        """
        UPDATE Vehicles
        SET VehicleBatteryPercent = ?, VehicleBatteryStatus = ?, VehicleLastBatteryUpdatedAt = ?
        WHERE VehicleId = ?
        """,
        (next_percent, battery_status(next_percent), to_db_time(now or utcnow()), vehicle_id)
    )
    return updated > 0


def ensure_vehicle_battery_defaults() -> None:
    """Backfill battery columns on vehicles stored before they existed."""
    default_percent = charging_settings.battery_percent_default
    execute_update(
        "UPDATE Vehicles SET VehicleBatteryPercent = ? WHERE VehicleBatteryPercent IS NULL",
        (default_percent,)
    )
    execute_update(
        "UPDATE Vehicles SET VehicleLastBatteryUpdatedAt = ? WHERE VehicleLastBatteryUpdatedAt IS NULL",
        (to_db_time(utcnow()),)
    )

    missing_status = execute_query(
        "SELECT VehicleId, VehicleBatteryPercent FROM Vehicles WHERE VehicleBatteryStatus IS NULL"
    )
    if not missing_status:
        return

    for row in missing_status:
        percent = clamp_battery_percent(row["VehicleBatteryPercent"])
        execute_update(
            "UPDATE Vehicles SET VehicleBatteryPercent = ?, VehicleBatteryStatus = ? WHERE VehicleId = ?",
            (percent, battery_status(percent), row["VehicleId"])
        )
    logger.info(f"✅ Battery status backfilled for {len(missing_status)} vehicle(s)")
