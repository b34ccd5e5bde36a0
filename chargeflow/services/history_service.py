# chargeflow/services/history_service.py
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from chargeflow.db.database import from_db_time, utcnow
from chargeflow.db.history_db import list_history_for_user
from chargeflow.models.station import ConnectorType
from chargeflow.models.ticket import ChargingOutcome

logger = logging.getLogger("chargeflow.history")

_CONNECTOR_TYPES = {connector.value for connector in ConnectorType}


def _normalize_percent(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return min(100, max(0, round(value)))


def _normalize_duration_ms(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return max(0, round(value))


def _text(info: Optional[Dict[str, Any]], field: str) -> Optional[str]:
    value = (info or {}).get(field)
    return value if isinstance(value, str) else None


def build_history_entry(
    user_id: str, ticket_snapshot: Dict[str, Any], outcome: ChargingOutcome, ended_at: datetime
) -> Dict[str, Any]:
    """
    Flatten a final ticket snapshot into a history record.

    Station and vehicle names are copied so the record still reads well
    after either is renamed or removed.
    """
    station_info = ticket_snapshot.get("stationInfo") or None
    vehicle_info = ticket_snapshot.get("vehicleInfo") or None
    connector_type = ticket_snapshot.get("connectorType")

    return {
        "user": user_id,
        "ticketId": ticket_snapshot["id"],
        "station": ticket_snapshot.get("station") or (station_info or {}).get("id"),
        "stationName": _text(station_info, "name"),
        "stationAddress": _text(station_info, "address"),
        "vehicle": ticket_snapshot.get("vehicle") or (vehicle_info or {}).get("id"),
        "vehicleName": _text(vehicle_info, "name"),
        "connectorType": connector_type if connector_type in _CONNECTOR_TYPES else None,
        "startedAt": from_db_time(ticket_snapshot.get("startedAt")),
        "endedAt": ended_at or utcnow(),
        "outcome": ChargingOutcome(outcome).value,
        "progressPercent": _normalize_percent(ticket_snapshot.get("progressPercent")),
        "startingBatteryPercent": _normalize_percent(ticket_snapshot.get("startingBatteryPercent")),
        "batteryPercentage": _normalize_percent(ticket_snapshot.get("batteryPercentage")),
        "chargingDurationMs": _normalize_duration_ms(ticket_snapshot.get("chargingDurationMs")),
    }


def fetch_history_for_user(user_id: str, days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Finished sessions of the last `days` days, newest first."""
    if not user_id:
        return []
    since = (now or utcnow()) - timedelta(days=days)
    return list_history_for_user(user_id, since)
