# chargeflow/services/charging_session_service.py
"""
Charging session state machine.

    NOT_STARTED --start--> IN_PROGRESS --progress 100 / complete--> COMPLETED
                                   \\----------------cancel---------> CANCELLED

Terminal states are not stored: the ticket row is deleted and a history
record is written in the same transaction. The delete is the gate that makes
finalization happen once; a second attempt finds no row and does nothing, so
the reserved port is released at most once.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import HTTPException, status

from chargeflow.config.charging_config import charging_settings
from chargeflow.db.database import transaction, utcnow
from chargeflow.db.history_db import insert_history
from chargeflow.db.station_db import get_station
from chargeflow.db.ticket_db import (
    delete_ticket,
    find_active_ticket,
    get_ticket,
    insert_ticket,
    mark_started,
    remove_user_ticket,
    update_progress as store_progress,
)
from chargeflow.db.vehicle_db import (
    clear_charging_status_for_user_vehicles,
    get_active_vehicle,
    get_vehicle,
    set_vehicle_charging_status,
)
from chargeflow.models.station import ConnectorType
from chargeflow.models.ticket import ChargingOutcome, ChargingStatus, TicketStatus
from chargeflow.models.vehicle import VehicleChargingStatus
from chargeflow.services import connector_inventory
from chargeflow.services.battery_service import (
    clamp_battery_percent,
    refresh_vehicle_snapshot,
    update_vehicle_battery_percentage,
)
from chargeflow.services.connector_inventory import ReserveResult
from chargeflow.services.effects import BestEffortDispatcher
from chargeflow.services.history_service import build_history_entry
from chargeflow.services.ticket_service import (
    build_payload,
    calculate_progress_percent,
    resolve_charging_duration_ms,
)
from chargeflow.ws.session_hub import SessionHub

logger = logging.getLogger("chargeflow.session")


def normalize_connector_type(value: Any) -> Optional[str]:
    """Return the connector type's value, or None if it is not a known type."""
    if isinstance(value, ConnectorType):
        return value.value
    try:
        return ConnectorType(value).value
    except ValueError:
        return None


def is_in_progress(ticket: Optional[Dict[str, Any]]) -> bool:
    return bool(
        ticket
        and ticket.get("startedAt")
        and ticket.get("chargingStatus") == ChargingStatus.IN_PROGRESS.value
    )


class ChargingSessionService:
    """Owns every transition of a ticket's charging sub-state."""

    def __init__(
        self,
        hub: SessionHub,
        clock: Optional[Callable[[], datetime]] = None,
        effects: Optional[BestEffortDispatcher] = None,
    ):
        self.hub = hub
        self.clock = clock or utcnow
        self.effects = effects or BestEffortDispatcher()

    # ---- lookups ----

    def _require_active_ticket(self, user_id: str, station_id: str) -> Dict[str, Any]:
        ticket = find_active_ticket(user_id, station_id)
        if not ticket:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No active ticket found for this station."
            )
        return ticket

    def _get_owned_vehicle(self, user_id: str, vehicle_id: str) -> Dict[str, Any]:
        vehicle = get_vehicle(vehicle_id)
        if not vehicle:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Could not find vehicle {vehicle_id}."
            )
        if vehicle["owner"] != user_id:
            logger.warning(f"⚠️ User {user_id} tried to use vehicle {vehicle_id} owned by {vehicle['owner']}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not allowed to use this vehicle."
            )
        return vehicle

    def _resolve_vehicle(self, user_id: str, ticket: Dict[str, Any], vehicle_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Explicit vehicle, else the one bound to the ticket, else the user's active vehicle."""
        if vehicle_id:
            return self._get_owned_vehicle(user_id, vehicle_id)
        if ticket.get("vehicle"):
            vehicle = get_vehicle(ticket["vehicle"])
            if vehicle:
                return vehicle
        return get_active_vehicle(user_id)

    # ---- transitions ----

    async def request_ticket(
        self, user_id: str, station_id: str, connector_type: Any, vehicle_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a REQUESTED ticket. No port is reserved until charging starts.

        Raises:
            HTTPException: 422 unknown or unsupported connector type,
                404 station or vehicle not found, 403 vehicle not owned
        """
        resolved_connector = normalize_connector_type(connector_type)
        if not resolved_connector:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Invalid connector type."
            )

        station = get_station(station_id)
        if not station:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Could not find station."
            )

        if resolved_connector not in {connector["type"] for connector in station["connectors"]}:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Station does not offer {resolved_connector} connectors."
            )

        if vehicle_id:
            self._get_owned_vehicle(user_id, vehicle_id)

        # TODO: duplicate concurrent requests for one (user, station) both succeed; decide between a partial unique index and a per-key lock
        ticket = insert_ticket(user_id, station_id, resolved_connector, vehicle_id, self.clock())
        return await build_payload(ticket, user_id, station_id, self.clock())

    async def get_active_ticket_payload(self, user_id: str, station_id: str) -> Optional[Dict[str, Any]]:
        """
        Current ticket for a station, completing it first if its time is up.

        Returns:
            dict: Ticket snapshot, or None when there is no active ticket
        """
        ticket = find_active_ticket(user_id, station_id)
        if not ticket:
            return None

        now = self.clock()
        if is_in_progress(ticket):
            progress = calculate_progress_percent(ticket["startedAt"], now, resolve_charging_duration_ms(ticket))
            if progress >= 100:
                await self.finalize(ticket, user_id, station_id, ChargingOutcome.COMPLETED)
                return None
            ticket = {**ticket, "progressPercent": progress}
            self.ensure_progress_timer(ticket)

        return await build_payload(ticket, user_id, station_id, now)

    async def start_charging(
        self,
        user_id: str,
        station_id: str,
        connector_type: Any = None,
        vehicle_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Move the active ticket to IN_PROGRESS, reserving one port.

        Starting a ticket that is already in progress keeps its reservation,
        start time, starting battery level and duration.

        Raises:
            HTTPException: 404 no active ticket / connector gone, 409 no free
                port, 422 no connector type or no vehicle, 403 vehicle not owned
        """
        ticket = self._require_active_ticket(user_id, station_id)
        now = self.clock()
        already_started = is_in_progress(ticket)

        if already_started and ticket.get("reservedConnectorType"):
            resolved_connector = ticket["reservedConnectorType"]
            requested = normalize_connector_type(connector_type) if connector_type else None
            if requested and requested != resolved_connector:
                logger.warning(
                    f"⚠️ Ignoring connector override {requested} for ticket {ticket['id']} already charging on {resolved_connector}"
                )
        else:
            resolved_connector = normalize_connector_type(connector_type or ticket.get("connectorType"))
            if not resolved_connector:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="A valid connector type is required to start charging."
                )

        if already_started and ticket.get("vehicle"):
            if vehicle_id and str(vehicle_id) != ticket["vehicle"]:
                logger.warning(
                    f"⚠️ Ignoring vehicle override {vehicle_id} for ticket {ticket['id']} already charging vehicle {ticket['vehicle']}"
                )
            vehicle_id = ticket["vehicle"]

        vehicle = self._resolve_vehicle(user_id, ticket, vehicle_id)
        if not vehicle:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Select a vehicle before starting to charge."
            )
        vehicle = refresh_vehicle_snapshot(vehicle, now)

        if already_started and ticket.get("startingBatteryPercent") is not None and ticket.get("chargingDurationMs") is not None:
            starting_battery_percent = ticket["startingBatteryPercent"]
            duration_ms = ticket["chargingDurationMs"]
        else:
            starting_battery_percent = clamp_battery_percent(vehicle.get("batteryPercent"))
            duration_ms = (100 - starting_battery_percent) * charging_settings.charge_interval_per_percent_ms

        reserved_connector = ticket.get("reservedConnectorType")
        took_reservation = False
        if not already_started:
            result = connector_inventory.reserve(station_id, resolved_connector)
            if result == ReserveResult.NO_AVAILABLE_PORTS:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"No available {resolved_connector} ports at this station."
                )
            if result == ReserveResult.NOT_FOUND:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Station does not offer {resolved_connector} connectors."
                )
            reserved_connector = resolved_connector
            took_reservation = True

        started_at = ticket.get("startedAt") or now
        try:
            updated = mark_started(
                ticket["id"],
                vehicle["id"],
                resolved_connector,
                reserved_connector,
                started_at,
                starting_battery_percent,
                duration_ms,
                now,
            )
        except Exception:
            if took_reservation:
                self._compensate_reservation(station_id, resolved_connector, ticket["id"])
            raise

        if not updated:
            # Finalized by another request between the lookup and the update
            if took_reservation:
                self._compensate_reservation(station_id, resolved_connector, ticket["id"])
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No active ticket found for this station."
            )

        logger.info(
            f"✅ Charging started | ticket={ticket['id']} | vehicle={vehicle['id']} | connector={resolved_connector} "
            f"| battery={starting_battery_percent}% | duration={duration_ms}ms"
        )

        ticket = get_ticket(ticket["id"]) or {
            **ticket,
            "chargingStatus": ChargingStatus.IN_PROGRESS.value,
            "startedAt": started_at,
            "completedAt": None,
            "progressPercent": 0,
            "connectorType": resolved_connector,
            "reservedConnectorType": reserved_connector,
            "vehicle": vehicle["id"],
            "startingBatteryPercent": starting_battery_percent,
            "chargingDurationMs": duration_ms,
        }
        payload = await build_payload(ticket, user_id, station_id, now)
        await self.hub.broadcast(self.hub.build_key(user_id, station_id), {"type": "started", "ticket": payload})

        # The first tick runs as soon as the timer is scheduled
        self.ensure_progress_timer(ticket)
        return payload

    def _compensate_reservation(self, station_id: str, connector_type: str, ticket_id: str) -> None:
        try:
            connector_inventory.release(station_id, connector_type)
            logger.warning(f"⚠️ Reservation rolled back | ticket={ticket_id} | connector={connector_type}")
        except Exception as e:
            logger.error(
                f"❌ Could not roll back reservation | ticket={ticket_id} | station={station_id} | connector={connector_type} | {str(e)}",
                exc_info=True
            )

    async def update_progress(self, user_id: str, station_id: str) -> Dict[str, Any]:
        """
        Recompute and store progress of the active ticket (polling path).

        Returns:
            dict: {"ticket": snapshot}, or {"message", "completedTicket"} when
            this check completed the session
        """
        ticket = self._require_active_ticket(user_id, station_id)
        if not is_in_progress(ticket):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Charging has not started for this ticket."
            )

        now = self.clock()
        progress = calculate_progress_percent(ticket["startedAt"], now, resolve_charging_duration_ms(ticket))
        if progress >= 100:
            completed = await self.finalize(ticket, user_id, station_id, ChargingOutcome.COMPLETED)
            return {"message": "Charging completed.", "completedTicket": completed}

        if not store_progress(ticket["id"], progress, ticket["startedAt"], now):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No active ticket found for this station."
            )

        previous_progress = ticket.get("progressPercent")
        ticket = {**ticket, "progressPercent": progress, "chargingStatus": ChargingStatus.IN_PROGRESS.value}
        payload = await build_payload(ticket, user_id, station_id, now)

        if progress != previous_progress:
            self._mirror_battery(ticket.get("vehicle"), payload.get("batteryPercentage"))
        self.ensure_progress_timer(ticket)
        await self.hub.broadcast(self.hub.build_key(user_id, station_id), {"type": "progress", "ticket": payload})
        return {"ticket": payload}

    async def complete_charging(self, user_id: str, station_id: str, cancel: bool = False) -> Dict[str, Any]:
        """
        Finish the active ticket on request, completing or cancelling it.

        Returns:
            dict: The final ticket snapshot
        """
        ticket = self._require_active_ticket(user_id, station_id)
        outcome = ChargingOutcome.CANCELLED if cancel else ChargingOutcome.COMPLETED
        final_snapshot = await self.finalize(ticket, user_id, station_id, outcome)
        if final_snapshot is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No active ticket found for this station."
            )
        return final_snapshot

    async def finalize(
        self, ticket: Dict[str, Any], user_id: str, station_id: str, outcome: ChargingOutcome
    ) -> Optional[Dict[str, Any]]:
        """
        Delete the ticket, release its port, idle its vehicle and record history.

        Completion reports 100% progress; cancellation keeps what had accrued.

        Returns:
            dict: Final snapshot, or None if the ticket was already finalized
        """
        ticket_id = ticket["id"]
        outcome = ChargingOutcome(outcome)
        now = self.clock()

        if outcome == ChargingOutcome.COMPLETED:
            progress = 100
        elif is_in_progress(ticket):
            progress = calculate_progress_percent(ticket["startedAt"], now, resolve_charging_duration_ms(ticket))
        else:
            progress = ticket.get("progressPercent") or 0

        payload = await build_payload({**ticket, "progressPercent": progress}, user_id, station_id, now)
        final_snapshot = {
            **payload,
            "progressPercent": progress,
            "chargingStatus": outcome.value,
            "completedAt": now,
        }
        if outcome == ChargingOutcome.CANCELLED:
            final_snapshot["status"] = TicketStatus.CANCELLED.value

        history_entry = build_history_entry(user_id, final_snapshot, outcome, now)
        reserved_connector = ticket.get("reservedConnectorType")
        vehicle_id = ticket.get("vehicle")
        # A ticket that never started does not own its vehicle's charging status
        holds_vehicle = bool(reserved_connector) or is_in_progress(ticket)

        with transaction() as cursor:
            finalized = delete_ticket(cursor, ticket_id)
            if finalized:
                remove_user_ticket(cursor, user_id, ticket_id)
                if reserved_connector:
                    connector_inventory.release(station_id, reserved_connector, cursor=cursor)
                if vehicle_id and holds_vehicle:
                    set_vehicle_charging_status(cursor, vehicle_id, VehicleChargingStatus.IDLE.value)
                elif reserved_connector:
                    clear_charging_status_for_user_vehicles(cursor, user_id)
                if not insert_history(cursor, history_entry, now):
                    logger.info(f"History for ticket {ticket_id} already recorded")

        self.hub.clear_timer(ticket_id)

        if not finalized:
            logger.info(f"Ticket {ticket_id} was already finalized; nothing to do")
            return None

        logger.info(f"✅ Charging {outcome.value.lower()} | ticket={ticket_id} | progress={progress}%")

        if is_in_progress(ticket):
            self._mirror_battery(vehicle_id, final_snapshot.get("batteryPercentage"))

        event = "completed" if outcome == ChargingOutcome.COMPLETED else "cancelled"
        await self.hub.broadcast(
            self.hub.build_key(user_id, station_id),
            {"type": event, "ticket": None, f"{event}Ticket": final_snapshot},
        )
        return final_snapshot

    # ---- progress timer ----

    def ensure_progress_timer(self, ticket: Dict[str, Any]) -> bool:
        """Start the recurring progress tick for an in-progress ticket (once per ticket)."""
        user_id = ticket.get("user")
        station_id = ticket.get("station")
        if not ticket.get("id") or not user_id or not station_id:
            return False
        return self.hub.ensure_timer(ticket, self._make_tick(ticket))

    def _make_tick(self, ticket: Dict[str, Any]):
        ticket_id = ticket["id"]
        user_id = ticket["user"]
        station_id = ticket["station"]
        started_at = ticket["startedAt"]
        duration_ms = resolve_charging_duration_ms(ticket)
        key = self.hub.build_key(user_id, station_id)
        state = {"progress": ticket.get("progressPercent")}

        async def tick() -> bool:
            now = self.clock()
            progress = calculate_progress_percent(started_at, now, duration_ms)

            if progress >= 100:
                await self.finalize(ticket, user_id, station_id, ChargingOutcome.COMPLETED)
                return True

            if not store_progress(ticket_id, progress, started_at, now):
                logger.info(f"Ticket {ticket_id} no longer exists; stopping its timer")
                return True

            live_ticket = {**ticket, "progressPercent": progress, "chargingStatus": ChargingStatus.IN_PROGRESS.value}
            payload = await build_payload(live_ticket, user_id, station_id, now)
            if progress != state["progress"]:
                self._mirror_battery(ticket.get("vehicle"), payload.get("batteryPercentage"))
            state["progress"] = progress

            await self.hub.broadcast(key, {"type": "progress", "ticket": payload})
            return False

        return tick

    def _mirror_battery(self, vehicle_id: Optional[str], battery_percentage: Any) -> None:
        if not vehicle_id or not isinstance(battery_percentage, (int, float)):
            return
        self.effects.dispatch(
            f"battery update for vehicle {vehicle_id}",
            update_vehicle_battery_percentage,
            vehicle_id,
            battery_percentage,
            self.clock(),
        )
