import json
from datetime import timedelta

import pytest
import pytest_asyncio

from chargeflow.config.auth_config import auth_settings
from chargeflow.config.charging_config import charging_settings
from chargeflow.db.database import init_db, utcnow
from chargeflow.db.station_db import insert_stations
from chargeflow.db.vehicle_db import insert_vehicle
from chargeflow.models.ticket import ChargingStatus
from chargeflow.services.auth_service import AuthService
from chargeflow.services.charging_session_service import ChargingSessionService
from chargeflow.services.effects import BestEffortDispatcher
from chargeflow.ws.session_hub import SessionHub

STATION_ID = "st-1"


class FakeClock:
    """Settable clock handed to the session service."""

    def __init__(self, now=None):
        self.now = now or utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeChannel:
    """Socket stand-in recording every frame it is sent."""

    def __init__(self, fail=False):
        self.frames = []
        self.fail = fail

    async def send_text(self, message):
        if self.fail:
            raise RuntimeError("connection reset")
        self.frames.append(json.loads(message))

    def of_type(self, frame_type):
        return [frame for frame in self.frames if frame["type"] == frame_type]


class ManualHub(SessionHub):
    """Hub that keeps timer ticks for the test to run instead of scheduling them."""

    def __init__(self):
        super().__init__(tick_interval_ms=60_000)
        self.ticks = {}

    def ensure_timer(self, ticket, tick):
        if self.closed or not ticket or not ticket.get("startedAt"):
            return False
        if ticket.get("chargingStatus") != ChargingStatus.IN_PROGRESS.value:
            return False
        if ticket["id"] in self.ticks:
            return False
        self.ticks[ticket["id"]] = tick
        return True

    def has_timer(self, ticket_id):
        return ticket_id in self.ticks

    def clear_timer(self, ticket_id):
        self.ticks.pop(ticket_id, None)


def make_station(station_id=STATION_ID, ports=2, available_ports=None):
    return {
        "id": station_id,
        "name": f"Test Station {station_id}",
        "lat": -6.2,
        "lng": 106.8,
        "address": f"{station_id} Test Street",
        "connectors": [
            {"type": "CCS2", "powerKW": 100, "ports": ports,
             "availablePorts": ports if available_ports is None else available_ports},
            {"type": "Type2", "powerKW": 22, "ports": 1, "availablePorts": 1},
        ],
        "status": "AVAILABLE",
        "lastUpdatedISO": "2025-01-06T08:00:00+00:00",
        "photos": [{"label": "Entrance", "gradient": "linear-gradient(135deg, #000, #fff)"}],
        "pricing": {"currency": "IDR", "perKwh": 2700},
        "amenities": ["Restroom"],
        "notes": None,
    }


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    """Fresh SQLite file per test with one station offering 2 CCS2 ports."""
    monkeypatch.setattr(charging_settings, "database_path", str(tmp_path / "chargeflow-test.db"))
    monkeypatch.setattr(auth_settings, "password_bcrypt_rounds", 4)
    init_db()
    insert_stations([make_station()])
    return charging_settings.database_path


@pytest.fixture
def user():
    return AuthService.create_user("Driver One", "driver1@example.com", "secret123", region="Jakarta")


@pytest.fixture
def other_user():
    return AuthService.create_user("Driver Two", "driver2@example.com", "secret123")


@pytest.fixture
def make_vehicle(user):
    def factory(battery_percent=40, active=True, owner_id=None, name="Ioniq 5"):
        return insert_vehicle(
            owner_id or user["user_id"],
            name,
            ["CCS2", "Type2"],
            50,
            active=active,
            battery_percent=battery_percent,
        )
    return factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hub():
    return ManualHub()


@pytest_asyncio.fixture
async def effects():
    dispatcher = BestEffortDispatcher()
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def service(hub, clock, effects):
    return ChargingSessionService(hub, clock=clock, effects=effects)


@pytest.fixture
def channel(hub, user):
    """Socket subscribed to the test user's progress at the test station."""
    subscriber = FakeChannel()
    hub.subscribe(hub.build_key(user["user_id"], STATION_ID), subscriber)
    return subscriber
