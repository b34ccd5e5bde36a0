"""
Database operations for charging stations.
Rows are converted to plain dictionaries using the public field names, so
callers never see column names or driver types.
"""
import json
import logging

from chargeflow.db.database import execute_query, transaction

logger = logging.getLogger("chargeflow.db.stations")

STATION_COLUMNS = """
    StationId, StationName, StationLat, StationLng, StationAddress, StationStatus,
    StationLastUpdatedISO, StationPhotos, StationPricing, StationAmenities, StationNotes
"""


def _connector_from_row(row):
    return {
        "type": row["ConnectorType"],
        "powerKW": row["ConnectorPowerKW"],
        "ports": row["ConnectorPorts"],
        "availablePorts": row["ConnectorAvailablePorts"],
    }


def _station_from_row(row, connectors):
    return {
        "id": row["StationId"],
        "name": row["StationName"],
        "lat": row["StationLat"],
        "lng": row["StationLng"],
        "address": row["StationAddress"],
        "connectors": connectors,
        "status": row["StationStatus"],
        "lastUpdatedISO": row["StationLastUpdatedISO"],
        "photos": json.loads(row["StationPhotos"] or "[]"),
        "pricing": json.loads(row["StationPricing"] or "{}"),
        "amenities": json.loads(row["StationAmenities"] or "[]"),
        "notes": row["StationNotes"],
    }


def get_connectors(station_id):
    """
    Get the connectors of a station in their catalogue order.

    Args:
        station_id (str): The station ID

    Returns:
        list: Connector dictionaries (type, powerKW, ports, availablePorts)
    """
    rows = execute_query(
        """
        SELECT ConnectorType, ConnectorPowerKW, ConnectorPorts, ConnectorAvailablePorts
        FROM StationConnectors WHERE ConnectorStationId = ?
        ORDER BY ConnectorPosition
        """,
        (station_id,)
    )
    return [_connector_from_row(row) for row in rows]


def get_station(station_id):
    """
    Get a station with its connectors.

    Args:
        station_id (str): The station ID

    Returns:
        dict: Station snapshot or None if not found
    """
    if not station_id:
        return None

    rows = execute_query(
        f"SELECT {STATION_COLUMNS} FROM Stations WHERE StationId = ?",
        (station_id,)
    )
    if not rows:
        return None
    return _station_from_row(rows[0], get_connectors(station_id))


def list_stations():
    """Get every station with its connectors, ordered by name."""
    rows = execute_query(f"SELECT {STATION_COLUMNS} FROM Stations ORDER BY StationName")
    connector_rows = execute_query(
        """
        SELECT ConnectorStationId, ConnectorType, ConnectorPowerKW, ConnectorPorts, ConnectorAvailablePorts
        FROM StationConnectors ORDER BY ConnectorStationId, ConnectorPosition
        """
    )

    by_station = {}
    for row in connector_rows:
        by_station.setdefault(row["ConnectorStationId"], []).append(_connector_from_row(row))

    return [_station_from_row(row, by_station.get(row["StationId"], [])) for row in rows]


def get_connector(station_id, connector_type):
    """
    Get a single connector of a station.

    Returns:
        dict: Connector or None if the station does not define that type
    """
    rows = execute_query(
        """
        SELECT ConnectorType, ConnectorPowerKW, ConnectorPorts, ConnectorAvailablePorts
        FROM StationConnectors WHERE ConnectorStationId = ? AND ConnectorType = ?
        """,
        (station_id, connector_type)
    )
    return _connector_from_row(rows[0]) if rows else None


def insert_stations(stations):
    """
    Insert stations (and their connectors) that are not in the database yet.

    A station counts as present when another one with the same name and
    address exists, so re-running a seed never duplicates the catalogue.

    Args:
        stations (list): Station dictionaries in the public shape

    Returns:
        int: Number of stations inserted
    """
    existing = execute_query("SELECT StationName, StationAddress FROM Stations")
    existing_keys = {f"{row['StationName']}|{row['StationAddress']}" for row in existing}

    inserted = 0
    with transaction() as cursor:
        for station in stations:
            key = f"{station['name']}|{station['address']}"
            if key in existing_keys:
                continue

            cursor.execute(
                """
                INSERT INTO Stations (
                    StationId, StationName, StationLat, StationLng, StationAddress, StationStatus,
                    StationLastUpdatedISO, StationPhotos, StationPricing, StationAmenities, StationNotes
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    station["id"],
                    station["name"],
                    station["lat"],
                    station["lng"],
                    station["address"],
                    station["status"],
                    station["lastUpdatedISO"],
                    json.dumps(station.get("photos", [])),
                    json.dumps(station.get("pricing", {})),
                    json.dumps(station.get("amenities", [])),
                    station.get("notes"),
                )
            )
            for position, connector in enumerate(station["connectors"]):
                cursor.execute(
                    """
                    INSERT INTO StationConnectors (
                        ConnectorStationId, ConnectorType, ConnectorPowerKW, ConnectorPorts,
                        ConnectorAvailablePorts, ConnectorPosition
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        station["id"],
                        connector["type"],
                        connector["powerKW"],
                        connector["ports"],
                        connector["availablePorts"],
                        position,
                    )
                )
            existing_keys.add(key)
            inserted += 1

    return inserted
