"""
psycopg3 connection pool for the Postgres pipeline store

Rows come back as dictionaries (dict_row) so they validate straight into the
pydantic models. Every store operation runs as one `transaction()` block:
the source row lock, the one-active-run check and the run/artifact writes
commit together or not at all.
"""
import os
import time
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from dataprep.observability.logger import get_logger

logger = get_logger(__name__)


class DatabaseConnectionPool:
    """
    Pooled connections to the pipeline database

    Settings come from the constructor, then DB_HOST, DB_PORT, DB_NAME,
    DB_USER and DB_PASSWORD. A full `conninfo` string bypasses all of them.
    The pool is created closed; `open()` connects with retries so the CLI
    can start alongside a database container that is still booting.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 30.0,
        conninfo: str | None = None,
    ) -> None:
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self._pool: ConnectionPool | None = None

        if conninfo:
            self.conninfo = conninfo
            return

        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "dataprep")
        self.user = user or os.getenv("DB_USER", "pipeline")
        password = password or os.getenv("DB_PASSWORD")
        if not password:
            raise ValueError("Database password must be provided via DB_PASSWORD or the password argument")

        self.conninfo = (
            f"host={self.host} port={self.port} dbname={self.database} "
            f"user={self.user} password={password} connect_timeout={int(self.timeout)}"
        )

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Connect the pool, retrying while the server is unreachable.

        Raises:
            OperationalError: If the server is still unreachable after max_retries attempts
        """
        if self._pool is not None:
            return

        pool = ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

        for attempt in range(1, max_retries + 1):
            try:
                pool.open(wait=True, timeout=self.timeout)
            except (OperationalError, TimeoutError) as e:
                if attempt == max_retries:
                    pool.close()
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e
                logger.warning(
                    "Database not reachable, retrying",
                    extra={"attempt": attempt, "max_retries": max_retries, "retry_delay": retry_delay},
                )
                time.sleep(retry_delay)
            else:
                self._pool = pool
                logger.info("Database pool open", extra={"min_size": self.min_size, "max_size": self.max_size})
                return

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self):
        """
        Borrow a connection; it commits on clean exit and rolls back on error.

        Raises:
            RuntimeError: If the pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def transaction(self):
        """Yield a cursor whose statements commit as one unit when the block exits cleanly."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                yield cur

    def execute_query(self, query: str, params: tuple | dict | None = None) -> list[dict]:
        with self.transaction() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def execute_command(self, command: str, params: tuple | dict | None = None) -> int:
        """Run an INSERT, UPDATE or DELETE and return the affected row count."""
        with self.transaction() as cur:
            cur.execute(command, params)
            return cur.rowcount

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
