"""
Append-only booking stores.
"""

import sqlite3
import threading
from typing import List, Optional

import pendulum

from ..domain.models import Booking, RequesterDetails


class InMemoryBookingStore:
    """List-backed booking log."""

    def __init__(self) -> None:
        self._bookings: List[Booking] = []
        self._lock = threading.Lock()

    def append(self, booking: Booking) -> Booking:
        with self._lock:
            self._bookings.append(booking)
        return booking

    def list(self, page_ref: Optional[str] = None) -> List[Booking]:
        with self._lock:
            return [b for b in self._bookings if page_ref is None or b.page_ref == page_ref]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bookings)


class SqliteBookingStore:
    """SQLite booking log; rows are inserted and never updated."""

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS bookings (
            id TEXT PRIMARY KEY,
            page_ref TEXT NOT NULL,
            requester TEXT NOT NULL,
            start_iso TEXT NOT NULL,
            end_iso TEXT NOT NULL,
            created_iso TEXT NOT NULL
        )
    """

    def __init__(self, database: str = ":memory:"):
        self._conn = sqlite3.connect(database, check_same_thread=False, isolation_level=None)
        self._lock = threading.Lock()
        with self._lock:
            self._conn.execute(self._SCHEMA)

    def append(self, booking: Booking) -> Booking:
        with self._lock:
            self._conn.execute(
                "INSERT INTO bookings (id, page_ref, requester, start_iso, end_iso, created_iso) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    booking.id,
                    booking.page_ref,
                    booking.requester.model_dump_json(),
                    booking.start.to_iso8601_string(),
                    booking.end.to_iso8601_string(),
                    booking.created_at.to_iso8601_string(),
                ),
            )
        return booking

    def list(self, page_ref: Optional[str] = None) -> List[Booking]:
        query = "SELECT id, page_ref, requester, start_iso, end_iso, created_iso FROM bookings"
        params: tuple = ()
        if page_ref is not None:
            query += " WHERE page_ref = ?"
            params = (page_ref,)
        query += " ORDER BY rowid"

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()

        return [
            Booking(
                id=row[0],
                page_ref=row[1],
                requester=RequesterDetails.model_validate_json(row[2]),
                start=pendulum.parse(row[3]),
                end=pendulum.parse(row[4]),
                created_at=pendulum.parse(row[5]),
            )
            for row in rows
        ]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __len__(self) -> int:
        with self._lock:
            (count,) = self._conn.execute("SELECT COUNT(*) FROM bookings").fetchone()
        return count
