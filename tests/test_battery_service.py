from datetime import timedelta

import pytest

from chargeflow.db.database import utcnow
from chargeflow.db.vehicle_db import get_vehicle
from chargeflow.services.battery_service import (
    battery_status,
    build_battery_update,
    clamp_battery_percent,
    refresh_vehicle_snapshot,
    update_vehicle_battery_percentage,
)


@pytest.mark.parametrize("percent,expected", [
    (100, "FULL"),
    (80, "FULL"),
    (79, "HIGH"),
    (60, "HIGH"),
    (59, "MEDIUM"),
    (40, "MEDIUM"),
    (39, "LOW"),
    (20, "LOW"),
    (19, "CRITICAL"),
    (0, "CRITICAL"),
])
def test_battery_status_tiers(percent, expected):
    assert battery_status(percent) == expected


def test_clamp_battery_percent():
    assert clamp_battery_percent(104.6) == 100
    assert clamp_battery_percent(-3) == 0
    assert clamp_battery_percent(41.6) == 42
    assert clamp_battery_percent(None) == 100
    assert clamp_battery_percent(float("nan")) == 100
    assert clamp_battery_percent(True) == 100


def _snapshot(**overrides):
    now = utcnow()
    snapshot = {
        "id": "v1",
        "active": True,
        "chargingStatus": "IDLE",
        "batteryPercent": 50,
        "batteryStatus": "MEDIUM",
        "lastBatteryUpdatedAt": now,
    }
    snapshot.update(overrides)
    return snapshot


def test_drain_counts_whole_ticks_and_carries_the_remainder():
    snapshot = _snapshot()
    started = snapshot["lastBatteryUpdatedAt"]

    updated, update = build_battery_update(snapshot, started + timedelta(minutes=25))

    assert updated["batteryPercent"] == 40
    assert updated["batteryStatus"] == "MEDIUM"
    assert updated["lastBatteryUpdatedAt"] == started + timedelta(minutes=20)
    assert update["batteryPercent"] == 40


def test_no_drain_before_a_full_tick():
    snapshot = _snapshot()
    updated, update = build_battery_update(snapshot, snapshot["lastBatteryUpdatedAt"] + timedelta(minutes=9))

    assert updated["batteryPercent"] == 50
    assert update is None


@pytest.mark.parametrize("overrides", [{"active": False}, {"chargingStatus": "CHARGING"}])
def test_inactive_or_charging_vehicles_do_not_drain(overrides):
    snapshot = _snapshot(**overrides)
    updated, update = build_battery_update(snapshot, snapshot["lastBatteryUpdatedAt"] + timedelta(hours=5))

    assert updated["batteryPercent"] == 50
    assert update is None


def test_drain_stops_at_zero():
    snapshot = _snapshot(batteryPercent=7, batteryStatus="CRITICAL")
    updated, _ = build_battery_update(snapshot, snapshot["lastBatteryUpdatedAt"] + timedelta(hours=2))

    assert updated["batteryPercent"] == 0
    assert updated["batteryStatus"] == "CRITICAL"


def test_refresh_persists_the_drained_level(make_vehicle):
    vehicle = make_vehicle(battery_percent=62)

    refreshed = refresh_vehicle_snapshot(vehicle, vehicle["lastBatteryUpdatedAt"] + timedelta(minutes=10))

    assert refreshed["batteryPercent"] == 57
    assert refreshed["batteryStatus"] == "MEDIUM"
    stored = get_vehicle(vehicle["id"])
    assert stored["batteryPercent"] == 57
    assert stored["batteryStatus"] == "MEDIUM"


def test_update_vehicle_battery_percentage(make_vehicle):
    vehicle = make_vehicle(battery_percent=30)

    assert update_vehicle_battery_percentage(vehicle["id"], 85.4) is True
    stored = get_vehicle(vehicle["id"])
    assert stored["batteryPercent"] == 85
    assert stored["batteryStatus"] == "FULL"

    assert update_vehicle_battery_percentage("missing", 50) is False
