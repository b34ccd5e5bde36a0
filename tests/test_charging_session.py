import asyncio

import pytest
from fastapi import HTTPException

from chargeflow.db.history_db import get_history_for_ticket
from chargeflow.db.station_db import get_connector, insert_stations
from chargeflow.db.ticket_db import find_active_ticket, get_ticket, list_user_ticket_ids
from chargeflow.db.vehicle_db import get_vehicle
from chargeflow.models.ticket import ChargingOutcome
from chargeflow.services.charging_session_service import ChargingSessionService
from chargeflow.ws.session_hub import SessionHub

from conftest import STATION_ID, FakeChannel, make_station


async def _start(service, user, vehicle, **kwargs):
    await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])
    return await service.start_charging(user["user_id"], STATION_ID, **kwargs)


@pytest.mark.asyncio
async def test_request_ticket_creates_a_requested_ticket(service, user, make_vehicle):
    vehicle = make_vehicle()

    ticket = await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])

    assert ticket["status"] == "REQUESTED"
    assert ticket["chargingStatus"] == "NOT_STARTED"
    assert ticket["progressPercent"] == 0
    assert ticket["stationInfo"]["id"] == STATION_ID
    assert ticket["vehicleInfo"]["id"] == vehicle["id"]
    assert ticket["batteryPercentage"] == 40
    assert list_user_ticket_ids(user["user_id"]) == [ticket["id"]]
    # No port is taken until charging starts
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("station_id,connector_type,status_code", [
    ("st-missing", "CCS2", 404),
    (STATION_ID, "CHAdeMO", 422),
    (STATION_ID, "Schuko", 422),
])
async def test_request_ticket_rejects_bad_targets(service, user, station_id, connector_type, status_code):
    with pytest.raises(HTTPException) as exc:
        await service.request_ticket(user["user_id"], station_id, connector_type)
    assert exc.value.status_code == status_code


@pytest.mark.asyncio
async def test_request_ticket_rejects_someone_elses_vehicle(service, user, other_user, make_vehicle):
    vehicle = make_vehicle(owner_id=other_user["user_id"])

    with pytest.raises(HTTPException) as exc:
        await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_start_charging_reserves_a_port_and_sets_duration(service, hub, channel, user, make_vehicle):
    vehicle = make_vehicle(battery_percent=40)

    ticket = await _start(service, user, vehicle)

    assert ticket["chargingStatus"] == "IN_PROGRESS"
    assert ticket["startingBatteryPercent"] == 40
    assert ticket["chargingDurationMs"] == 1_800_000
    assert ticket["reservedConnectorType"] == "CCS2"
    assert (ticket["estimatedCompletionAt"] - ticket["startedAt"]).total_seconds() == 1800
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 1
    assert get_vehicle(vehicle["id"])["chargingStatus"] == "CHARGING"
    assert hub.has_timer(ticket["id"])
    assert len(channel.of_type("started")) == 1


@pytest.mark.asyncio
async def test_starting_twice_keeps_the_single_reservation(service, clock, user, make_vehicle):
    vehicle = make_vehicle(battery_percent=40)
    first = await _start(service, user, vehicle)

    clock.advance(minutes=3)
    second = await service.start_charging(user["user_id"], STATION_ID, connector_type="Type2")

    assert second["id"] == first["id"]
    assert second["startedAt"] == first["startedAt"]
    assert second["chargingDurationMs"] == 1_800_000
    assert second["reservedConnectorType"] == "CCS2"
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 1
    assert get_connector(STATION_ID, "Type2")["availablePorts"] == 1


@pytest.mark.asyncio
async def test_start_without_free_port_is_a_conflict(service, user, make_vehicle):
    insert_stations([make_station("st-busy", ports=1, available_ports=0)])
    vehicle = make_vehicle()
    await service.request_ticket(user["user_id"], "st-busy", "CCS2", vehicle["id"])

    with pytest.raises(HTTPException) as exc:
        await service.start_charging(user["user_id"], "st-busy")

    assert exc.value.status_code == 409
    ticket = find_active_ticket(user["user_id"], "st-busy")
    assert ticket["chargingStatus"] == "NOT_STARTED"
    assert ticket["reservedConnectorType"] is None


@pytest.mark.asyncio
async def test_start_requires_an_active_ticket(service, user):
    with pytest.raises(HTTPException) as exc:
        await service.start_charging(user["user_id"], STATION_ID)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_start_requires_a_vehicle(service, user):
    await service.request_ticket(user["user_id"], STATION_ID, "CCS2")

    with pytest.raises(HTTPException) as exc:
        await service.start_charging(user["user_id"], STATION_ID)

    assert exc.value.status_code == 422
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2


@pytest.mark.asyncio
async def test_start_falls_back_to_the_active_vehicle(service, user, make_vehicle):
    make_vehicle(battery_percent=90, active=False, name="Spare")
    active = make_vehicle(battery_percent=70, active=True, name="Daily")
    await service.request_ticket(user["user_id"], STATION_ID, "CCS2")

    ticket = await service.start_charging(user["user_id"], STATION_ID)

    assert ticket["vehicle"] == active["id"]
    assert ticket["chargingDurationMs"] == 900_000


@pytest.mark.asyncio
async def test_full_battery_completes_on_the_next_progress_check(service, channel, user, make_vehicle, effects):
    vehicle = make_vehicle(battery_percent=100)
    ticket = await _start(service, user, vehicle)
    assert ticket["chargingDurationMs"] == 0

    result = await service.update_progress(user["user_id"], STATION_ID)
    await effects.drain()

    assert result["completedTicket"]["chargingStatus"] == "COMPLETED"
    assert result["completedTicket"]["progressPercent"] == 100
    assert find_active_ticket(user["user_id"], STATION_ID) is None
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2
    assert len(channel.of_type("completed")) == 1


@pytest.mark.asyncio
async def test_update_progress_before_start_is_rejected(service, user, make_vehicle):
    vehicle = make_vehicle()
    await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])

    with pytest.raises(HTTPException) as exc:
        await service.update_progress(user["user_id"], STATION_ID)
    assert exc.value.status_code == 422


@pytest.mark.asyncio
async def test_update_progress_follows_wall_clock(service, clock, channel, user, make_vehicle, effects):
    vehicle = make_vehicle(battery_percent=40)
    ticket = await _start(service, user, vehicle)

    clock.advance(minutes=15)
    result = await service.update_progress(user["user_id"], STATION_ID)
    await effects.drain()

    assert result["ticket"]["progressPercent"] == 50
    assert result["ticket"]["batteryPercentage"] == 70
    assert get_ticket(ticket["id"])["progressPercent"] == 50
    assert get_vehicle(vehicle["id"])["batteryPercent"] == 70
    assert channel.of_type("progress")[-1]["ticket"]["progressPercent"] == 50


@pytest.mark.asyncio
async def test_double_completion_finalizes_once(service, hub, channel, user, make_vehicle):
    vehicle = make_vehicle(battery_percent=40)
    await _start(service, user, vehicle)
    ticket = find_active_ticket(user["user_id"], STATION_ID)

    results = await asyncio.gather(
        service.finalize(ticket, user["user_id"], STATION_ID, ChargingOutcome.COMPLETED),
        service.finalize(ticket, user["user_id"], STATION_ID, ChargingOutcome.COMPLETED),
    )

    assert sum(result is not None for result in results) == 1
    assert len(channel.of_type("completed")) == 1
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2
    assert get_history_for_ticket(ticket["id"])["outcome"] == "COMPLETED"
    assert not hub.has_timer(ticket["id"])

    with pytest.raises(HTTPException) as exc:
        await service.complete_charging(user["user_id"], STATION_ID)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes,progress", [(0, 0), (15, 50), (30, 100)])
async def test_cancel_releases_port_and_idles_vehicle(service, clock, channel, user, make_vehicle, minutes, progress):
    vehicle = make_vehicle(battery_percent=40)
    ticket = await _start(service, user, vehicle)

    clock.advance(minutes=minutes)
    cancelled = await service.complete_charging(user["user_id"], STATION_ID, cancel=True)

    assert cancelled["status"] == "CANCELLED"
    assert cancelled["chargingStatus"] == "CANCELLED"
    assert cancelled["progressPercent"] == progress
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2
    assert get_vehicle(vehicle["id"])["chargingStatus"] == "IDLE"
    assert get_history_for_ticket(ticket["id"])["outcome"] == "CANCELLED"

    frame = channel.of_type("cancelled")[0]
    assert frame["ticket"] is None
    assert frame["cancelledTicket"]["id"] == ticket["id"]


@pytest.mark.asyncio
async def test_cancel_before_start_releases_nothing(service, user, make_vehicle):
    vehicle = make_vehicle()
    await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])

    cancelled = await service.complete_charging(user["user_id"], STATION_ID, cancel=True)

    assert cancelled["progressPercent"] == 0
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2
    assert find_active_ticket(user["user_id"], STATION_ID) is None


@pytest.mark.asyncio
async def test_active_ticket_read_completes_an_expired_session(service, clock, user, make_vehicle):
    vehicle = make_vehicle(battery_percent=80)
    ticket = await _start(service, user, vehicle)

    clock.advance(minutes=11)

    assert await service.get_active_ticket_payload(user["user_id"], STATION_ID) is None
    assert get_history_for_ticket(ticket["id"])["outcome"] == "COMPLETED"


@pytest.mark.asyncio
async def test_timer_tick_broadcasts_and_then_completes(service, hub, clock, channel, user, make_vehicle, effects):
    vehicle = make_vehicle(battery_percent=90)
    ticket = await _start(service, user, vehicle)
    tick = hub.ticks[ticket["id"]]

    clock.advance(minutes=2, seconds=30)
    assert await tick() is False
    assert channel.of_type("progress")[-1]["ticket"]["progressPercent"] == 50

    clock.advance(minutes=3)
    assert await tick() is True
    await effects.drain()

    assert len(channel.of_type("completed")) == 1
    assert not hub.has_timer(ticket["id"])
    assert get_vehicle(vehicle["id"])["batteryPercent"] == 100


@pytest.mark.asyncio
async def test_tick_stops_when_the_ticket_is_gone(service, hub, user, make_vehicle):
    vehicle = make_vehicle(battery_percent=40)
    ticket = await _start(service, user, vehicle)
    tick = hub.ticks[ticket["id"]]

    await service.complete_charging(user["user_id"], STATION_ID, cancel=True)

    assert await tick() is True


@pytest.mark.asyncio
async def test_end_to_end_session(service, clock, channel, user, make_vehicle, effects):
    vehicle = make_vehicle(battery_percent=40)

    requested = await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])
    started = await service.start_charging(user["user_id"], STATION_ID)
    assert started["id"] == requested["id"]
    assert started["chargingDurationMs"] == 1_800_000

    clock.advance(milliseconds=1_800_000)
    result = await service.update_progress(user["user_id"], STATION_ID)
    await effects.drain()

    completed = result["completedTicket"]
    assert completed["progressPercent"] == 100
    assert completed["batteryPercentage"] == 100
    assert find_active_ticket(user["user_id"], STATION_ID) is None
    assert list_user_ticket_ids(user["user_id"]) == []

    history = get_history_for_ticket(requested["id"])
    assert history["outcome"] == "COMPLETED"
    assert history["batteryPercentage"] == 100
    assert history["startingBatteryPercent"] == 40
    assert history["stationName"] == f"Test Station {STATION_ID}"

    stored_vehicle = get_vehicle(vehicle["id"])
    assert stored_vehicle["chargingStatus"] == "IDLE"
    assert stored_vehicle["batteryPercent"] == 100
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2


@pytest.mark.asyncio
async def test_restart_keeps_the_bound_vehicle(service, user, make_vehicle):
    first = make_vehicle(battery_percent=40, name="Ioniq 5")
    second = make_vehicle(battery_percent=90, active=False, name="Kona")
    ticket = await _start(service, user, first)

    restarted = await service.start_charging(user["user_id"], STATION_ID, vehicle_id=second["id"])

    assert restarted["vehicle"] == first["id"]
    assert restarted["startingBatteryPercent"] == 40
    assert restarted["chargingDurationMs"] == 1_800_000
    assert get_vehicle(second["id"])["chargingStatus"] == "IDLE"

    await service.complete_charging(user["user_id"], STATION_ID, cancel=True)

    assert get_vehicle(first["id"])["chargingStatus"] == "IDLE"
    assert get_vehicle(second["id"])["chargingStatus"] == "IDLE"
    assert get_history_for_ticket(ticket["id"])["vehicle"] == first["id"]


@pytest.mark.asyncio
async def test_cancelling_an_unstarted_ticket_leaves_a_charging_vehicle_alone(service, user, make_vehicle):
    insert_stations([make_station("st-2")])
    vehicle = make_vehicle(battery_percent=40)
    await _start(service, user, vehicle)
    await service.request_ticket(user["user_id"], "st-2", "CCS2", vehicle["id"])

    await service.complete_charging(user["user_id"], "st-2", cancel=True)

    assert get_vehicle(vehicle["id"])["chargingStatus"] == "CHARGING"
    assert find_active_ticket(user["user_id"], STATION_ID)["chargingStatus"] == "IN_PROGRESS"
    assert get_connector("st-2", "CCS2")["availablePorts"] == 2
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 1


@pytest.mark.asyncio
async def test_failed_start_rolls_back_the_reservation(service, user, make_vehicle, monkeypatch):
    def broken_mark_started(*args, **kwargs):
        raise RuntimeError("disk I/O error")

    monkeypatch.setattr("chargeflow.services.charging_session_service.mark_started", broken_mark_started)
    vehicle = make_vehicle()
    await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])

    with pytest.raises(RuntimeError):
        await service.start_charging(user["user_id"], STATION_ID)

    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2
    ticket = find_active_ticket(user["user_id"], STATION_ID)
    assert ticket["chargingStatus"] == "NOT_STARTED"
    assert ticket["reservedConnectorType"] is None


@pytest.mark.asyncio
async def test_start_racing_a_finalize_rolls_back_the_reservation(service, user, make_vehicle, monkeypatch):
    monkeypatch.setattr("chargeflow.services.charging_session_service.mark_started", lambda *args: False)
    vehicle = make_vehicle()
    await service.request_ticket(user["user_id"], STATION_ID, "CCS2", vehicle["id"])

    with pytest.raises(HTTPException) as exc:
        await service.start_charging(user["user_id"], STATION_ID)

    assert exc.value.status_code == 404
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2


@pytest.mark.asyncio
async def test_completion_survives_a_failed_battery_update(service, clock, user, make_vehicle, effects, monkeypatch, caplog):
    def broken_battery_update(*args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(
        "chargeflow.services.charging_session_service.update_vehicle_battery_percentage", broken_battery_update
    )
    vehicle = make_vehicle(battery_percent=40)
    ticket = await _start(service, user, vehicle)

    clock.advance(minutes=30)
    result = await service.update_progress(user["user_id"], STATION_ID)
    await effects.drain()

    assert result["completedTicket"]["progressPercent"] == 100
    assert find_active_ticket(user["user_id"], STATION_ID) is None
    assert get_history_for_ticket(ticket["id"])["outcome"] == "COMPLETED"
    assert get_vehicle(vehicle["id"])["chargingStatus"] == "IDLE"
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2
    assert "database is locked" in caplog.text


@pytest.mark.asyncio
async def test_started_frame_precedes_the_first_progress_frame(clock, user, make_vehicle, effects):
    hub = SessionHub(tick_interval_ms=60_000)
    service = ChargingSessionService(hub, clock=clock, effects=effects)
    channel = FakeChannel()
    hub.subscribe(hub.build_key(user["user_id"], STATION_ID), channel)
    vehicle = make_vehicle(battery_percent=40)

    await _start(service, user, vehicle)
    for _ in range(100):
        if channel.of_type("progress"):
            break
        await asyncio.sleep(0.01)
    await hub.shutdown()

    assert [frame["type"] for frame in channel.frames] == ["started", "progress"]
