"""
Database operations for charging history.
"""
import logging
import uuid

from chargeflow.db.database import execute_query, from_db_time, to_db_time

logger = logging.getLogger("chargeflow.db.history")


def _history_from_row(row):
    return {
        "id": row["HistoryId"],
        "user": row["HistoryUserId"],
        "ticketId": row["HistoryTicketId"],
        "station": row["HistoryStationId"],
        "stationName": row["HistoryStationName"],
        "stationAddress": row["HistoryStationAddress"],
        "vehicle": row["HistoryVehicleId"],
        "vehicleName": row["HistoryVehicleName"],
        "connectorType": row["HistoryConnectorType"],
        "startedAt": from_db_time(row["HistoryStartedAt"]),
        "endedAt": from_db_time(row["HistoryEndedAt"]),
        "outcome": row["HistoryOutcome"],
        "progressPercent": row["HistoryProgressPercent"],
        "startingBatteryPercent": row["HistoryStartingBatteryPercent"],
        "batteryPercentage": row["HistoryBatteryPercentage"],
        "chargingDurationMs": row["HistoryChargingDurationMs"],
        "createdAt": from_db_time(row["HistoryCreated"]),
    }


def insert_history(cursor, entry, now):
    """
    Record a finished session inside an open transaction.

    A second record for the same ticket is silently dropped by the unique
    ticket constraint.

    Returns:
        bool: True if a new row was written
    """
    cursor.execute(
        """
        INSERT INTO ChargingHistory (
            HistoryId, HistoryUserId, HistoryTicketId, HistoryStationId, HistoryStationName,
            HistoryStationAddress, HistoryVehicleId, HistoryVehicleName, HistoryConnectorType,
            HistoryStartedAt, HistoryEndedAt, HistoryOutcome, HistoryProgressPercent,
            HistoryStartingBatteryPercent, HistoryBatteryPercentage, HistoryChargingDurationMs, HistoryCreated
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (HistoryTicketId) DO NOTHING
        """,
        (
            uuid.uuid4().hex,
            entry["user"],
            entry["ticketId"],
            entry.get("station"),
            entry.get("stationName"),
            entry.get("stationAddress"),
            entry.get("vehicle"),
            entry.get("vehicleName"),
            entry.get("connectorType"),
            to_db_time(entry.get("startedAt")),
            to_db_time(entry["endedAt"]),
            entry["outcome"],
            entry.get("progressPercent"),
            entry.get("startingBatteryPercent"),
            entry.get("batteryPercentage"),
            entry.get("chargingDurationMs"),
            to_db_time(now),
        )
    )
    return cursor.rowcount > 0


def get_history_for_ticket(ticket_id):
    rows = execute_query("SELECT * FROM ChargingHistory WHERE HistoryTicketId = ?", (ticket_id,))
    return _history_from_row(rows[0]) if rows else None


def list_history_for_user(user_id, since):
    """
    Get the user's finished sessions that ended at or after `since`, newest first.
    """
    rows = execute_query(
        """
        SELECT * FROM ChargingHistory
        WHERE HistoryUserId = ? AND HistoryEndedAt >= ?
        ORDER BY HistoryEndedAt DESC
        """,
        (user_id, to_db_time(since))
    )
    return [_history_from_row(row) for row in rows]
