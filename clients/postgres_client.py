"""
PostgreSQL client with connection pooling and actor attribution.

Uses psycopg2 with ThreadedConnectionPool. Each checked-out connection gets
app.current_actor_id set from the actor contextvar so that database triggers
and audit columns can attribute writes to the staff member behind them. An
empty value means a system job.
"""

import logging
import threading
from contextlib import contextmanager
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.actor_context import _current_actor_id

logger = logging.getLogger(__name__)

_jsonb_registered = False


class PostgresClient:
    """
    PostgreSQL client that tags every connection with the current actor.

    Usage:
        db = PostgresClient(database_url)

        with actor_context(staff_id):
            db.execute("UPDATE invoices SET ... WHERE invoice_number = %s", (number,))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, minconn: int = 1, maxconn: int = 10):
        self._database_url = database_url
        self._minconn = minconn
        self._maxconn = maxconn
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                return

            pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=self._minconn,
                maxconn=self._maxconn,
                dsn=self._database_url,
                connect_timeout=30,
            )

            global _jsonb_registered
            if not _jsonb_registered:
                psycopg2.extras.register_default_jsonb(globally=True)
                _jsonb_registered = True

            self._connection_pools[self._database_url] = pool
            logger.info("Connection pool created (max %d)", self._maxconn)

    @contextmanager
    def get_connection(self):
        """Check out a connection tagged with the current actor."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            actor_id = _current_actor_id.get()
            with conn.cursor() as cur:
                cur.execute(
                    "SET app.current_actor_id = %s",
                    (str(actor_id) if actor_id is not None else "",),
                )

            yield conn

        finally:
            if conn:
                pool.putconn(conn)

    @staticmethod
    def _convert_params(params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUIDs and enums to plain values; Decimal passes through."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, Enum):
                return value.value
            if isinstance(value, Decimal):
                return value
            if isinstance(value, dict):
                return psycopg2.extras.Json(value)
            if isinstance(value, (list, tuple)):
                return [convert(v) for v in value]
            return value

        if isinstance(params, dict):
            return {k: convert(v) for k, v in params.items()}
        return tuple(convert(v) for v in params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
                conn.commit()
                return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def close(self) -> None:
        """Close this URL's connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
