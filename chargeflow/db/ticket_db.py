"""
Database operations for charging tickets.

Only the charging session service calls the writers in this module; they are
the single path that changes a ticket's charging sub-status.
"""
import logging
import uuid

from chargeflow.db.database import execute_query, execute_transaction, execute_update, from_db_time, to_db_time
from chargeflow.models.ticket import ACTIVE_TICKET_STATUSES, ChargingStatus, TicketStatus

logger = logging.getLogger("chargeflow.db.tickets")

TICKET_COLUMNS = """
    TicketId, TicketUserId, TicketStationId, TicketVehicleId, TicketConnectorType,
    TicketReservedConnectorType, TicketStatus, TicketChargingStatus, TicketProgressPercent,
    TicketStartedAt, TicketCompletedAt, TicketStartingBatteryPercent, TicketChargingDurationMs,
    TicketCreated, TicketUpdated
"""


def _ticket_from_row(row):
    return {
        "id": row["TicketId"],
        "user": row["TicketUserId"],
        "station": row["TicketStationId"],
        "vehicle": row["TicketVehicleId"],
        "connectorType": row["TicketConnectorType"],
        "reservedConnectorType": row["TicketReservedConnectorType"],
        "status": row["TicketStatus"],
        "chargingStatus": row["TicketChargingStatus"],
        "progressPercent": row["TicketProgressPercent"],
        "startedAt": from_db_time(row["TicketStartedAt"]),
        "completedAt": from_db_time(row["TicketCompletedAt"]),
        "startingBatteryPercent": row["TicketStartingBatteryPercent"],
        "chargingDurationMs": row["TicketChargingDurationMs"],
        "createdAt": from_db_time(row["TicketCreated"]),
        "updatedAt": from_db_time(row["TicketUpdated"]),
    }


def get_ticket(ticket_id):
    rows = execute_query(f"SELECT {TICKET_COLUMNS} FROM ChargingTickets WHERE TicketId = ?", (ticket_id,))
    return _ticket_from_row(rows[0]) if rows else None


def find_active_ticket(user_id, station_id):
    """
    Get the user's newest REQUESTED or PAID ticket at a station.

    Returns:
        dict: Ticket or None
    """
    rows = execute_query(
        f"""
        SELECT {TICKET_COLUMNS} FROM ChargingTickets
        WHERE TicketUserId = ? AND TicketStationId = ? AND TicketStatus IN (?, ?)
        ORDER BY TicketCreated DESC, rowid DESC
        LIMIT 1
        """,
        (user_id, station_id, *ACTIVE_TICKET_STATUSES)
    )
    return _ticket_from_row(rows[0]) if rows else None


def insert_ticket(user_id, station_id, connector_type, vehicle_id, now):
    """
    Create a REQUESTED ticket and add it to the user's ticket list.

    Returns:
        dict: The stored ticket
    """
    ticket_id = uuid.uuid4().hex
    created = to_db_time(now)
    execute_transaction([
        (
            """
            INSERT INTO ChargingTickets (
                TicketId, TicketUserId, TicketStationId, TicketVehicleId, TicketConnectorType,
                TicketStatus, TicketChargingStatus, TicketProgressPercent, TicketCreated, TicketUpdated
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (
                ticket_id,
                user_id,
                station_id,
                vehicle_id,
                connector_type,
                TicketStatus.REQUESTED.value,
                ChargingStatus.NOT_STARTED.value,
                created,
                created,
            )
        ),
        (
            "INSERT OR IGNORE INTO UserTickets (UserTicketUserId, UserTicketTicketId) VALUES (?, ?)",
            (user_id, ticket_id)
        ),
    ])
    logger.info(f"✅ Ticket {ticket_id} requested | user={user_id} | station={station_id} | connector={connector_type}")
    return get_ticket(ticket_id)


def mark_started(ticket_id, vehicle_id, connector_type, reserved_connector_type, started_at,
                 starting_battery_percent, duration_ms, now):
    """
    Move a ticket to IN_PROGRESS and flag its vehicle as charging, atomically.

    Returns:
        bool: True if the ticket still existed
    """
    ticket_updated, _ = execute_transaction([
        (
            """
            UPDATE ChargingTickets
            SET TicketChargingStatus = ?, TicketStartedAt = ?, TicketCompletedAt = NULL,
                TicketProgressPercent = 0, TicketConnectorType = ?, TicketReservedConnectorType = ?,
                TicketVehicleId = ?, TicketStartingBatteryPercent = ?, TicketChargingDurationMs = ?,
                TicketUpdated = ?
            WHERE TicketId = ?
            """,
            (
                ChargingStatus.IN_PROGRESS.value,
                to_db_time(started_at),
                connector_type,
                reserved_connector_type,
                vehicle_id,
                starting_battery_percent,
                duration_ms,
                to_db_time(now),
                ticket_id,
            )
        ),
        (
            "UPDATE Vehicles SET VehicleChargingStatus = 'CHARGING' WHERE VehicleId = ?",
            (vehicle_id,)
        ),
    ])
    return ticket_updated > 0


def update_progress(ticket_id, progress_percent, started_at, now):
    """
    Store recomputed progress of an in-progress ticket.

    Returns:
        int: Rows matched (0 once the ticket has been finalized)
    """
    return execute_update(
        """
        UPDATE ChargingTickets
        SET TicketChargingStatus = ?, TicketProgressPercent = ?, TicketStartedAt = ?, TicketUpdated = ?
        WHERE TicketId = ?
        """,
        (ChargingStatus.IN_PROGRESS.value, progress_percent, to_db_time(started_at), to_db_time(now), ticket_id)
    )


def delete_ticket(cursor, ticket_id):
    """
    Delete a ticket inside an open transaction.

    Returns:
        bool: True if this call removed the row
    """
    cursor.execute("DELETE FROM ChargingTickets WHERE TicketId = ?", (ticket_id,))
    return cursor.rowcount > 0


def remove_user_ticket(cursor, user_id, ticket_id):
    cursor.execute(
        "DELETE FROM UserTickets WHERE UserTicketUserId = ? AND UserTicketTicketId = ?",
        (user_id, ticket_id)
    )


def list_user_ticket_ids(user_id):
    rows = execute_query(
        "SELECT UserTicketTicketId FROM UserTickets WHERE UserTicketUserId = ? ORDER BY rowid",
        (user_id,)
    )
    return [row["UserTicketTicketId"] for row in rows]
