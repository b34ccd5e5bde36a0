"""
Database operations for vehicles.
"""
import json
import logging
import uuid

from chargeflow.db.database import execute_many, execute_query, execute_update, from_db_time, to_db_time, utcnow

logger = logging.getLogger("chargeflow.db.vehicles")

VEHICLE_COLUMNS = """
    VehicleId, VehicleOwnerId, VehicleName, VehicleConnectorTypes, VehicleMinPower, VehicleActive,
    VehicleBatteryPercent, VehicleBatteryCapacity, VehicleBatteryStatus, VehicleChargingStatus,
    VehicleLastBatteryUpdatedAt
"""


def _vehicle_from_row(row):
    return {
        "id": row["VehicleId"],
        "owner": row["VehicleOwnerId"],
        "name": row["VehicleName"],
        "connector_type": json.loads(row["VehicleConnectorTypes"] or "[]"),
        "min_power": row["VehicleMinPower"],
        "active": bool(row["VehicleActive"]),
        "batteryPercent": row["VehicleBatteryPercent"],
        "batteryCapacity": row["VehicleBatteryCapacity"],
        "batteryStatus": row["VehicleBatteryStatus"],
        "chargingStatus": row["VehicleChargingStatus"],
        "lastBatteryUpdatedAt": from_db_time(row["VehicleLastBatteryUpdatedAt"]),
    }


def get_vehicle(vehicle_id):
    """
    Get a vehicle by ID.

    Returns:
        dict: Vehicle snapshot or None if not found
    """
    if not vehicle_id:
        return None

    rows = execute_query(f"SELECT {VEHICLE_COLUMNS} FROM Vehicles WHERE VehicleId = ?", (vehicle_id,))
    return _vehicle_from_row(rows[0]) if rows else None


def get_active_vehicle(owner_id):
    """
    Get the owner's default vehicle: the most recently added active one.

    Returns:
        dict: Vehicle snapshot or None if the owner has no active vehicle
    """
    if not owner_id:
        return None

    rows = execute_query(
        f"""
        SELECT {VEHICLE_COLUMNS} FROM Vehicles
        WHERE VehicleOwnerId = ? AND VehicleActive = 1
        ORDER BY rowid DESC LIMIT 1
        """,
        (owner_id,)
    )
    return _vehicle_from_row(rows[0]) if rows else None


def list_vehicles_for_owner(owner_id):
    rows = execute_query(
        f"SELECT {VEHICLE_COLUMNS} FROM Vehicles WHERE VehicleOwnerId = ? ORDER BY rowid",
        (owner_id,)
    )
    return [_vehicle_from_row(row) for row in rows]


def insert_vehicle(owner_id, name, connector_types, min_power, active=False,
                   battery_percent=100, battery_capacity=None, battery_status="FULL"):
    """
    Insert a vehicle for an owner.

    Returns:
        dict: The stored vehicle snapshot
    """
    vehicle_id = uuid.uuid4().hex
    execute_update(
        """
        INSERT INTO Vehicles (
            VehicleId, VehicleOwnerId, VehicleName, VehicleConnectorTypes, VehicleMinPower, VehicleActive,
            VehicleBatteryPercent, VehicleBatteryCapacity, VehicleBatteryStatus, VehicleChargingStatus,
            VehicleLastBatteryUpdatedAt
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'IDLE', ?)
        """,
        (
            vehicle_id,
            owner_id,
            name,
            json.dumps(list(connector_types)),
            min_power,
            1 if active else 0,
            battery_percent,
            battery_capacity,
            battery_status,
            to_db_time(utcnow()),
        )
    )
    logger.info(f"✅ Vehicle {vehicle_id} added for user {owner_id}")
    return get_vehicle(vehicle_id)


def update_battery_fields(updates):
    """
    Persist battery refresh results.

    Args:
        updates (list): (vehicle_id, {"batteryPercent", "batteryStatus", "lastBatteryUpdatedAt"}) pairs

    Returns:
        int: Number of rows updated
    """
    return execute_many(
        """
        UPDATE Vehicles
        SET VehicleBatteryPercent = ?, VehicleBatteryStatus = ?, VehicleLastBatteryUpdatedAt = ?
        WHERE VehicleId = ?
        """,
        (
            (
                fields["batteryPercent"],
                fields["batteryStatus"],
                to_db_time(fields["lastBatteryUpdatedAt"]),
                vehicle_id,
            )
            for vehicle_id, fields in updates
        )
    )


def set_vehicle_charging_status(cursor, vehicle_id, charging_status):
    """
    Set one vehicle's charging status inside an open transaction.

    Returns:
        bool: True if the vehicle exists
    """
    cursor.execute(
        "UPDATE Vehicles SET VehicleChargingStatus = ? WHERE VehicleId = ?",
        (charging_status, vehicle_id)
    )
    return cursor.rowcount > 0


def clear_charging_status_for_user_vehicles(cursor, owner_id):
    """Return every charging vehicle of an owner to IDLE inside an open transaction."""
    cursor.execute(
        "UPDATE Vehicles SET VehicleChargingStatus = 'IDLE' WHERE VehicleOwnerId = ? AND VehicleChargingStatus = 'CHARGING'",
        (owner_id,)
    )
    return cursor.rowcount
