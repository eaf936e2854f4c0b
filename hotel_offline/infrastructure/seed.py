from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from hotel_offline.infrastructure.repository import SQLiteRepository
from hotel_offline.infrastructure.settings_repository import LocalSettingsRepository

logger = logging.getLogger(__name__)

_STANDARD = ["WiFi", "TV", "AC"]
_SUPERIOR = [*_STANDARD, "Mini Bar"]
_EXECUTIVE = [*_SUPERIOR, "Jacuzzi", "Room Service"]

DEFAULT_ROOMS: tuple[dict[str, Any], ...] = (
    {"id": 101, "room_number": "Mint", "type": "Standard", "status": "Available", "price": 500.0, "capacity": 2, "amenities": _STANDARD},
    {"id": 102, "room_number": "Cinnamon", "type": "Standard", "status": "Available", "price": 500.0, "capacity": 2, "amenities": _STANDARD},
    {"id": 103, "room_number": "Basil", "type": "Standard", "status": "Available", "price": 500.0, "capacity": 2, "amenities": _STANDARD},
    {"id": 104, "room_number": "Licorice", "type": "Superior", "status": "Available", "price": 750.0, "capacity": 3, "amenities": _SUPERIOR},
    {"id": 105, "room_number": "Marigold", "type": "Superior", "status": "Available", "price": 750.0, "capacity": 3, "amenities": _SUPERIOR},
    {"id": 106, "room_number": "Lotus", "type": "Superior", "status": "Available", "price": 750.0, "capacity": 3, "amenities": _SUPERIOR},
    {"id": 107, "room_number": "Jasmine", "type": "Superior", "status": "Available", "price": 750.0, "capacity": 3, "amenities": _SUPERIOR},
    {"id": 108, "room_number": "Private", "type": "Superior", "status": "Available", "price": 750.0, "capacity": 3, "amenities": _SUPERIOR},
    {"id": 109, "room_number": "Chamomile", "type": "Executive", "status": "Available", "price": 1250.0, "capacity": 4, "amenities": _EXECUTIVE},
)

DEFAULT_INVENTORY_CATEGORIES: tuple[dict[str, Any], ...] = (
    {"id": 1, "name": "Room Supplies", "description": "Items for room maintenance and guest comfort"},
    {"id": 2, "name": "Kitchen Supplies", "description": "Food and beverage items"},
    {"id": 3, "name": "Cleaning Supplies", "description": "Cleaning materials and equipment"},
    {"id": 4, "name": "Office Supplies", "description": "Administrative and office materials"},
    {"id": 5, "name": "Maintenance", "description": "Tools and materials for facility maintenance"},
)

DEFAULT_SERVICES: tuple[dict[str, Any], ...] = (
    {"id": 1, "name": "Room Service", "description": "Food delivery to guest rooms", "price": 25.0, "category": "Food & Beverage", "available": True},
    {"id": 2, "name": "Laundry Service", "description": "Washing and cleaning of guest clothes", "price": 15.0, "category": "Personal Care", "available": True},
    {"id": 3, "name": "Airport Transfer", "description": "Transportation to/from airport", "price": 50.0, "category": "Transportation", "available": True},
    {"id": 4, "name": "Spa Treatment", "description": "Relaxation and wellness services", "price": 100.0, "category": "Wellness", "available": True},
    {"id": 5, "name": "Extra Towels", "description": "Additional towels for guest room", "price": 5.0, "category": "Room Amenities", "available": True},
    {"id": 6, "name": "Late Checkout", "description": "Extended stay beyond checkout time", "price": 30.0, "category": "Room Services", "available": True},
)

DEFAULT_SETTINGS: tuple[dict[str, Any], ...] = (
    {"key": "hotel_name", "value": "Lavimac Royal Hotel", "type": "string"},
    {"key": "currency", "value": "GHS", "type": "string"},
    {"key": "timezone", "value": "GMT", "type": "string"},
    {"key": "auto_sync_interval", "value": "300", "type": "number"},
    {"key": "offline_mode", "value": "true", "type": "boolean"},
    {"key": "last_sync_timestamp", "value": "", "type": "string"},
    {"key": "sync_on_startup", "value": "true", "type": "boolean"},
    {"key": "encrypt_local_data", "value": "true", "type": "boolean"},
    {"key": "database_version", "value": "1.0.0", "type": "string"},
    {"key": "first_setup_completed", "value": "true", "type": "boolean"},
)

_REFERENCE_DATA: tuple[tuple[str, tuple[dict[str, Any], ...]], ...] = (
    ("rooms", DEFAULT_ROOMS),
    ("inventory_categories", DEFAULT_INVENTORY_CATEGORIES),
    ("services", DEFAULT_SERVICES),
)


def seed_if_empty(repositories: Mapping[str, SQLiteRepository]) -> dict[str, int]:
    """Inserts the reference data mirrored from the server into empty tables.

    Reference rows already exist remotely, so they are stored as synced and
    produce no outbox entries.
    """
    inserted: dict[str, int] = {}
    for table_name, rows in _REFERENCE_DATA:
        repository = repositories[table_name]
        if repository.count():
            continue
        logger.info("Seeding default %s", table_name)
        repository.bulk_create([dict(row) for row in rows], mark_as_already_synced=True)
        inserted[table_name] = len(rows)

    settings = repositories["local_settings"]
    if isinstance(settings, LocalSettingsRepository):
        added = settings.seed_defaults([dict(row) for row in DEFAULT_SETTINGS])
        if added:
            inserted["local_settings"] = added
    return inserted
