from concurrent.futures import ThreadPoolExecutor

from chargeflow.db.station_db import get_connector, insert_stations
from chargeflow.services.connector_inventory import ReserveResult, release, reserve

from conftest import STATION_ID, make_station


def test_reserve_then_release_restores_available_ports():
    assert reserve(STATION_ID, "CCS2") == ReserveResult.OK
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 1

    assert release(STATION_ID, "CCS2") is True
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2


def test_reserve_with_no_free_port():
    insert_stations([make_station("st-full", ports=1, available_ports=0)])

    assert reserve("st-full", "CCS2") == ReserveResult.NO_AVAILABLE_PORTS
    assert get_connector("st-full", "CCS2")["availablePorts"] == 0


def test_reserve_unknown_connector_or_station():
    assert reserve(STATION_ID, "CHAdeMO") == ReserveResult.NOT_FOUND
    assert reserve("st-missing", "CCS2") == ReserveResult.NOT_FOUND


def test_release_never_exceeds_total_ports():
    assert release(STATION_ID, "CCS2") is False
    assert get_connector(STATION_ID, "CCS2")["availablePorts"] == 2


def test_concurrent_reservations_take_the_last_port_once():
    insert_stations([make_station("st-last", ports=3, available_ports=1)])

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda _: reserve("st-last", "CCS2"), range(4)))

    assert results.count(ReserveResult.OK) == 1
    assert results.count(ReserveResult.NO_AVAILABLE_PORTS) == 3
    assert get_connector("st-last", "CCS2")["availablePorts"] == 0
