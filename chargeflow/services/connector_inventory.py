# chargeflow/services/connector_inventory.py
"""
Connector port inventory.

This is the only module that writes `ConnectorAvailablePorts`. A reservation
is a single conditional UPDATE, so two concurrent reservations can never both
take the last free port.
"""
import logging
from enum import Enum

from chargeflow.db.database import get_db_connection

logger = logging.getLogger("chargeflow.inventory")


class ReserveResult(str, Enum):
    OK = "ok"
    NO_AVAILABLE_PORTS = "no_available_ports"
    NOT_FOUND = "not_found"


_RESERVE_SQL = """
    UPDATE StationConnectors
    SET ConnectorAvailablePorts = ConnectorAvailablePorts - 1
    WHERE ConnectorStationId = ? AND ConnectorType = ? AND ConnectorAvailablePorts > 0
"""

_RELEASE_SQL = """
    UPDATE StationConnectors
    SET ConnectorAvailablePorts = ConnectorAvailablePorts + 1
    WHERE ConnectorStationId = ? AND ConnectorType = ? AND ConnectorAvailablePorts < ConnectorPorts
"""


def reserve(station_id, connector_type):
    """
    Take one port of a station's connector type.

    Args:
        station_id (str): The station ID
        connector_type (str): Connector type to reserve

    Returns:
        ReserveResult: OK, NO_AVAILABLE_PORTS, or NOT_FOUND when the station
        does not define that connector type
    """
    if not station_id or not connector_type:
        return ReserveResult.NOT_FOUND

    with get_db_connection() as conn:
        cursor = conn.execute(_RESERVE_SQL, (station_id, connector_type))
        conn.commit()
        if cursor.rowcount > 0:
            logger.info(f"🔌 Port reserved | station={station_id} | connector={connector_type}")
            return ReserveResult.OK

        exists = conn.execute(
            "SELECT 1 FROM StationConnectors WHERE ConnectorStationId = ? AND ConnectorType = ?",
            (station_id, connector_type)
        ).fetchone()

    if exists:
        logger.warning(f"⚠️ No available ports | station={station_id} | connector={connector_type}")
        return ReserveResult.NO_AVAILABLE_PORTS

    logger.warning(f"⚠️ Connector not found | station={station_id} | connector={connector_type}")
    return ReserveResult.NOT_FOUND


def release(station_id, connector_type, cursor=None):
    """
    Give one port back, never above the connector's total.

    Args:
        station_id (str): The station ID
        connector_type (str): Connector type to release
        cursor: Optional cursor of an open transaction to run in

    Returns:
        bool: True if a port was returned to the pool
    """
    if not station_id or not connector_type:
        return False

    if cursor is not None:
        cursor.execute(_RELEASE_SQL, (station_id, connector_type))
        released = cursor.rowcount > 0
    else:
        with get_db_connection() as conn:
            released = conn.execute(_RELEASE_SQL, (station_id, connector_type)).rowcount > 0
            conn.commit()

    if released:
        logger.info(f"🔌 Port released | station={station_id} | connector={connector_type}")
    else:
        logger.warning(f"⚠️ Release ignored, pool already full or missing | station={station_id} | connector={connector_type}")
    return released
