# chargeflow/services/station_seed.py
"""
Station catalogue loaded into an empty (or partial) database on startup.
"""
import logging
from datetime import timedelta

from chargeflow.db.database import to_db_time, utcnow
from chargeflow.db.station_db import insert_stations

logger = logging.getLogger("chargeflow.seed")

VIOLET_CYAN = "linear-gradient(135deg, rgba(124,92,255,0.55), rgba(0,229,255,0.35))"
CYAN_AMBER = "linear-gradient(135deg, rgba(0,229,255,0.45), rgba(255,193,7,0.28))"
AMBER_RED = "linear-gradient(135deg, rgba(255,193,7,0.34), rgba(244,67,54,0.22))"
INK_VIOLET = "linear-gradient(135deg, rgba(10,10,16,0.08), rgba(124,92,255,0.35))"
CYAN_INK = "linear-gradient(135deg, rgba(0,229,255,0.34), rgba(10,10,16,0.06))"
AMBER_INK = "linear-gradient(135deg, rgba(255,193,7,0.32), rgba(10,10,16,0.06))"


def _photos(*labels):
    gradients = (VIOLET_CYAN, CYAN_AMBER, AMBER_RED, INK_VIOLET, CYAN_INK, AMBER_INK)
    return [{"label": label, "gradient": gradients[i % len(gradients)]} for i, label in enumerate(labels)]


def _connector(connector_type, power_kw, ports, available_ports):
    return {"type": connector_type, "powerKW": power_kw, "ports": ports, "availablePorts": available_ports}


def _pricing(per_kwh, **extra):
    return {"currency": "IDR", "perKwh": per_kwh, **extra}


# (station, minutes since its last status update)
MOCK_STATIONS = [
    ({
        "id": "st-001",
        "name": "Central Plaza Fast Charge",
        "lat": -6.2009,
        "lng": 106.8167,
        "address": "Jl. MH Thamrin, Jakarta",
        "connectors": [_connector("CCS2", 100, 4, 2), _connector("Type2", 22, 6, 5)],
        "status": "AVAILABLE",
        "photos": _photos("Entrance", "Bays", "Payment"),
        "pricing": _pricing(2700, fastPerKwh=3000, ultraFastPerKwh=3300, parkingFee="Free 1 hour"),
        "amenities": ["Restroom", "Coffee", "24/7 Security", "Wi-Fi"],
        "notes": "Best access from the basement entrance. Signal is strong near the payment kiosk.",
    }, 7),
    ({
        "id": "st-002",
        "name": "Sudirman Hub",
        "lat": -6.2146,
        "lng": 106.8227,
        "address": "Jl. Jend. Sudirman, Jakarta",
        "connectors": [_connector("CCS2", 60, 2, 0), _connector("CHAdeMO", 50, 1, 0)],
        "status": "BUSY",
        "photos": _photos("Hub", "Signage", "Queue"),
        "pricing": _pricing(3000, fastPerKwh=3300, ultraFastPerKwh=3600, perMinute=150),
        "amenities": ["Food court", "Restroom", "ATM"],
        "notes": "Peak time 5-7pm. Queue usually moves every ~15 minutes.",
    }, 18),
    ({
        "id": "st-003",
        "name": "Gandaria City Charger",
        "lat": -6.2446,
        "lng": 106.783,
        "address": "Kebayoran Lama, Jakarta",
        "connectors": [_connector("Type2", 11, 2, 0)],
        "status": "OFFLINE",
        "photos": _photos("Mall entrance", "Parking", "Bay"),
        "pricing": _pricing(2600, fastPerKwh=2900, ultraFastPerKwh=3200, parkingFee="Parking rate applies"),
        "amenities": ["Restroom", "Coffee", "Shopping"],
        "notes": "Reported offline since morning. Consider nearby alternatives.",
    }, 120),
    ({
        "id": "st-004",
        "name": "Kelapa Gading Supercharge",
        "lat": -6.1577,
        "lng": 106.905,
        "address": "Kelapa Gading, Jakarta",
        "connectors": [_connector("CCS2", 150, 6, 4), _connector("Type2", 22, 4, 3)],
        "status": "AVAILABLE",
        "photos": _photos("Drive-in", "Bays", "Night"),
        "pricing": _pricing(3200, fastPerKwh=3500, ultraFastPerKwh=3800, parkingFee="Free with validation"),
        "amenities": ["24/7", "Restroom", "Coffee", "Kids area"],
    }, 4),
    ({
        "id": "st-005",
        "name": "Bogor Botanical Charge Hub",
        "lat": -6.5972,
        "lng": 106.8059,
        "address": "Jl. Ir. H. Juanda, Bogor, West Java",
        "connectors": [_connector("CCS2", 120, 4, 2), _connector("Type2", 22, 4, 4)],
        "status": "AVAILABLE",
        "photos": _photos("Entrance", "Garden view", "Plaza"),
        "pricing": _pricing(2800, fastPerKwh=3100, ultraFastPerKwh=3400, parkingFee="Paid parking"),
        "amenities": ["Restroom", "Coffee", "Wi-Fi", "Green park"],
        "notes": "Main gate access; closest to the north parking area.",
    }, 6),
    ({
        "id": "st-006",
        "name": "Pajajaran Avenue Fast Charge",
        "lat": -6.5907,
        "lng": 106.8075,
        "address": "Jl. Pajajaran, Bogor, West Java",
        "connectors": [_connector("CCS2", 90, 3, 1), _connector("CHAdeMO", 50, 1, 1)],
        "status": "BUSY",
        "photos": _photos("Canopy", "Queue", "Retail"),
        "pricing": _pricing(2950, fastPerKwh=3250, ultraFastPerKwh=3550, perMinute=120),
        "amenities": ["Food court", "ATM", "Restroom"],
        "notes": "Peak after 5pm; short queue on weekdays.",
    }, 14),
    ({
        "id": "st-007",
        "name": "Cibinong City Charge Point",
        "lat": -6.485,
        "lng": 106.845,
        "address": "Jl. Raya Bogor KM 46, Cibinong, Bogor, West Java",
        "connectors": [_connector("CCS2", 80, 3, 2), _connector("Type2", 22, 4, 3)],
        "status": "AVAILABLE",
        "photos": _photos("Drop-off", "Parking row", "Retail strip"),
        "pricing": _pricing(2750, fastPerKwh=3050, ultraFastPerKwh=3350, perMinute=100),
        "amenities": ["Mini market", "Restroom", "Coffee"],
        "notes": "Easy access from the main boulevard; best spot near the south gate.",
    }, 9),
    ({
        "id": "st-008",
        "name": "Bogor Trade Center EV Station",
        "lat": -6.595,
        "lng": 106.799,
        "address": "Jl. Ir. H. Juanda No. 68, Bogor, West Java",
        "connectors": [_connector("Type2", 22, 6, 4), _connector("CHAdeMO", 50, 1, 1)],
        "status": "BUSY",
        "photos": _photos("Lobby", "Signage", "Mall lane"),
        "pricing": _pricing(3100, fastPerKwh=3400, ultraFastPerKwh=3700, perMinute=140),
        "amenities": ["Food court", "Restroom", "ATM"],
        "notes": "Queue moves fast before lunch; avoid after 6pm.",
    }, 16),
    ({
        "id": "st-009",
        "name": "Sentul Highlands Charge Stop",
        "lat": -6.536,
        "lng": 106.839,
        "address": "Sentul City, Bogor, West Java",
        "connectors": [_connector("CCS2", 150, 4, 1), _connector("Type2", 11, 2, 2)],
        "status": "AVAILABLE",
        "photos": _photos("Hillside", "Canopy", "Night view"),
        "pricing": _pricing(3300, fastPerKwh=3600, ultraFastPerKwh=3900, parkingFee="Free with validation"),
        "amenities": ["Cafe", "Restroom", "Scenic view"],
        "notes": "Steady availability in the morning; best signal near the kiosk.",
    }, 5),
    ({
        "id": "st-010",
        "name": "Dramaga Campus Charger",
        "lat": -6.558,
        "lng": 106.724,
        "address": "Dramaga, Bogor, West Java",
        "connectors": [_connector("Type2", 7, 4, 2)],
        "status": "OFFLINE",
        "photos": _photos("Campus gate", "Parking lot", "Library"),
        "pricing": _pricing(2500, fastPerKwh=2800, ultraFastPerKwh=3100),
        "amenities": ["Restroom", "Campus shuttle"],
        "notes": "Maintenance scheduled; check again later today.",
    }, 180),
    ({
        "id": "st-011",
        "name": "Tajur Trade Park Charge",
        "lat": -6.6356,
        "lng": 106.8048,
        "address": "Tajur, Bogor, West Java",
        "connectors": [_connector("CCS2", 100, 4, 2), _connector("Type2", 22, 4, 3)],
        "status": "AVAILABLE",
        "photos": _photos("Entrance", "Shops", "Bays"),
        "pricing": _pricing(2900, fastPerKwh=3200, ultraFastPerKwh=3500, perMinute=120),
        "amenities": ["Restroom", "Coffee", "Wi-Fi"],
        "notes": "Close to the main entrance; best access from the south gate.",
    }, 8),
    ({
        "id": "st-012",
        "name": "Ciawi Gateway Fast Charge",
        "lat": -6.6452,
        "lng": 106.8056,
        "address": "Ciawi, Bogor, West Java",
        "connectors": [_connector("CCS2", 120, 3, 1), _connector("CHAdeMO", 50, 1, 1)],
        "status": "BUSY",
        "photos": _photos("Canopy", "Queue", "Signage"),
        "pricing": _pricing(3050, fastPerKwh=3350, ultraFastPerKwh=3650, perMinute=140),
        "amenities": ["Food court", "ATM", "Restroom"],
        "notes": "Peak on weekends; queue moves every 10-15 minutes.",
    }, 12),
    ({
        "id": "st-013",
        "name": "Katulampa Riverside Charger",
        "lat": -6.6318,
        "lng": 106.8112,
        "address": "Katulampa, Bogor, West Java",
        "connectors": [_connector("Type2", 11, 4, 4), _connector("CCS2", 60, 2, 2)],
        "status": "AVAILABLE",
        "photos": _photos("Riverside", "Shelter", "Cafe"),
        "pricing": _pricing(2650, fastPerKwh=2950, ultraFastPerKwh=3250, parkingFee="Paid parking"),
        "amenities": ["Cafe", "Restroom", "Scenic view"],
        "notes": "Quiet during weekdays; shaded bays near the river.",
    }, 5),
    ({
        "id": "st-014",
        "name": "Baranangsiang Transit EV Bay",
        "lat": -6.6399,
        "lng": 106.7965,
        "address": "Baranangsiang, Bogor, West Java",
        "connectors": [_connector("CCS2", 150, 2, 0), _connector("Type2", 22, 2, 1)],
        "status": "BUSY",
        "photos": _photos("Transit hub", "Drop-off", "Platform"),
        "pricing": _pricing(3200, fastPerKwh=3500, ultraFastPerKwh=3800, perMinute=150),
        "amenities": ["Retail", "Restroom", "ATM"],
        "notes": "Next to the transit hub; short stays recommended.",
    }, 17),
]


def build_seed_stations(now=None):
    """Catalogue stations with `lastUpdatedISO` relative to `now`."""
    now = now or utcnow()
    return [
        {**station, "lastUpdatedISO": to_db_time(now - timedelta(minutes=minutes_ago))}
        for station, minutes_ago in MOCK_STATIONS
    ]


def ensure_stations_seeded():
    """
    Insert catalogue stations missing from the database.

    Returns:
        int: Number of stations inserted
    """
    try:
        inserted = insert_stations(build_seed_stations())
    except Exception as e:
        logger.error(f"❌ Failed to seed stations: {str(e)}", exc_info=True)
        return 0

    if inserted:
        logger.info(f"✅ Seeded {inserted} stations")
    else:
        logger.info("Stations already seeded")
    return inserted
