"""
Stores for pending (unconfirmed) appointment requests.

Both implementations offer ``take``: a single indivisible fetch-and-remove,
so two concurrent confirmations of one token can never both succeed.
"""

import sqlite3
import threading
from typing import Dict, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import PendingRequest, RequesterDetails


class InMemoryPendingRequestStore:
    """Dict-backed store guarded by a mutex."""

    def __init__(self) -> None:
        self._requests: Dict[str, PendingRequest] = {}
        self._lock = threading.Lock()

    def add(self, request: PendingRequest) -> None:
        with self._lock:
            if request.token in self._requests:
                raise ValueError("Duplicate pending request token")
            self._requests[request.token] = request

    def take(self, token: str) -> Optional[PendingRequest]:
        """Remove and return the request for ``token``, or None."""
        with self._lock:
            return self._requests.pop(token, None)

    def purge_expired(self, now: DateTime, ttl_minutes: int) -> int:
        """Drop requests older than the TTL; returns how many were removed."""
        with self._lock:
            expired = [
                token for token, request in self._requests.items()
                if request.is_expired(now, ttl_minutes)
            ]
            for token in expired:
                del self._requests[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)


class SqlitePendingRequestStore:
    """
    SQLite-backed store; survives restarts and works across processes.

    ``take`` is one ``DELETE ... RETURNING`` statement.
    """

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS pending_requests (
            token TEXT PRIMARY KEY,
            page_ref TEXT NOT NULL,
            requester TEXT NOT NULL,
            start_iso TEXT NOT NULL,
            end_iso TEXT NOT NULL,
            created_iso TEXT NOT NULL,
            created_epoch REAL NOT NULL
        )
    """

    def __init__(self, database: str = ":memory:"):
        self._conn = sqlite3.connect(database, check_same_thread=False, isolation_level=None)
        self._lock = threading.Lock()
        with self._lock:
            self._conn.execute(self._SCHEMA)

    def add(self, request: PendingRequest) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO pending_requests "
                    "(token, page_ref, requester, start_iso, end_iso, created_iso, created_epoch) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        request.token,
                        request.page_ref,
                        request.requester.model_dump_json(),
                        request.start.to_iso8601_string(),
                        request.end.to_iso8601_string(),
                        request.created_at.to_iso8601_string(),
                        request.created_at.timestamp(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise ValueError("Duplicate pending request token") from e

    def take(self, token: str) -> Optional[PendingRequest]:
        """Remove and return the request for ``token``, or None."""
        with self._lock:
            rows = self._conn.execute(
                "DELETE FROM pending_requests WHERE token = ? "
                "RETURNING token, page_ref, requester, start_iso, end_iso, created_iso",
                (token,),
            ).fetchall()
        if not rows:
            return None
        return self._row_to_request(rows[0])

    def purge_expired(self, now: DateTime, ttl_minutes: int) -> int:
        cutoff = now.subtract(minutes=ttl_minutes).timestamp()
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM pending_requests WHERE created_epoch < ?", (cutoff,)
            )
            return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __len__(self) -> int:
        with self._lock:
            (count,) = self._conn.execute("SELECT COUNT(*) FROM pending_requests").fetchone()
        return count

    @staticmethod
    def _row_to_request(row) -> PendingRequest:
        token, page_ref, requester, start_iso, end_iso, created_iso = row
        return PendingRequest(
            token=token,
            page_ref=page_ref,
            requester=RequesterDetails.model_validate_json(requester),
            start=pendulum.parse(start_iso),
            end=pendulum.parse(end_iso),
            created_at=pendulum.parse(created_iso),
        )
