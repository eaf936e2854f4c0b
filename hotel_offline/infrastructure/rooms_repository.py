from __future__ import annotations

from typing import Any

from hotel_offline.infrastructure.query_builder import Condition
from hotel_offline.infrastructure.repository import Record, SQLiteRepository

STATUS_AVAILABLE = "Available"
STATUS_OCCUPIED = "Occupied"


class RoomsRepository(SQLiteRepository):
    def get_all_rooms(self) -> list[Record]:
        return self.find_all(order_by="id ASC")

    def get_rooms_by_status(self, status: str) -> list[Record]:
        return self.find_all({"status": status}, order_by="room_number ASC")

    def get_available_rooms(self) -> list[Record]:
        return self.get_rooms_by_status(STATUS_AVAILABLE)

    def get_occupied_rooms(self) -> list[Record]:
        return self.get_rooms_by_status(STATUS_OCCUPIED)

    def get_rooms_by_type(self, room_type: str) -> list[Record]:
        return self.find_all({"type": room_type}, order_by="room_number ASC")

    def get_room_by_number(self, room_number: str) -> Record | None:
        rooms = self.find_all({"room_number": room_number}, limit=1)
        return rooms[0] if rooms else None

    def update_room_status(self, room_id: Any, status: str) -> Record:
        return self.update(room_id, {"status": status})

    def update_room_amenities(self, room_id: Any, amenities: list[str]) -> Record:
        return self.update(room_id, {"amenities": list(amenities)})

    def get_rooms_by_capacity(self, min_capacity: int, max_capacity: int | None = None) -> list[Record]:
        conditions = [Condition("capacity", ">=", min_capacity)]
        if max_capacity is not None:
            conditions.append(Condition("capacity", "<=", max_capacity))
        return self.find_all(conditions, order_by=["capacity ASC", "room_number ASC"])

    def get_rooms_by_price_range(self, min_price: float, max_price: float) -> list[Record]:
        conditions = [Condition("price", ">=", min_price), Condition("price", "<=", max_price)]
        return self.find_all(conditions, order_by=["price ASC", "room_number ASC"])

    def search_rooms_by_amenities(self, amenities: list[str]) -> list[Record]:
        wanted = set(amenities)
        return [
            room
            for room in self.find_all(order_by="room_number ASC")
            if wanted.issubset(set(room.get("amenities") or []))
        ]

    def get_occupancy_rate(self) -> dict[str, Any]:
        total = self.count()
        occupied = self.count({"status": STATUS_OCCUPIED})
        rate = (occupied / total) * 100 if total else 0.0
        return {
            "total_rooms": total,
            "occupied_rooms": occupied,
            "available_rooms": total - occupied,
            "occupancy_rate": round(rate, 2),
        }

    def get_room_statistics(self) -> dict[str, Any]:
        status_rows = self._engine.query("SELECT status, COUNT(*) AS count FROM rooms GROUP BY status ORDER BY status")
        type_rows = self._engine.query(
            """
            SELECT type, COUNT(*) AS count, AVG(price) AS avg_price,
                   SUM(CASE WHEN status = ? THEN price ELSE 0 END) AS current_revenue
            FROM rooms
            GROUP BY type
            ORDER BY count DESC, type ASC
            """,
            (STATUS_OCCUPIED,),
        )
        return {
            "total_rooms": self.count(),
            "status_counts": {row["status"]: int(row["count"]) for row in status_rows},
            "type_distribution": type_rows,
            "current_revenue": sum(float(row["current_revenue"] or 0) for row in type_rows),
        }
