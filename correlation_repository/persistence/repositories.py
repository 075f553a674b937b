"""
Repository implementation for correlation data access.

CorrelationRepository is the only component that reads or writes the
correlation table. It converts rows into Correlation records and raises
NotFoundError for keyed lookups that match nothing.

All public methods are coroutines. The blocking psycopg2 calls run in a
worker thread so the event loop is never held up by database I/O.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

from correlation_repository.config import Config, get_config
from correlation_repository.domain import (
    Correlation, CorrelationError, CorrelationState, Identity, NotFoundError
)
from .codec import decode_error, decode_identity, encode_error, encode_identity
from .database import ConnectionManager, Database, get_connection_manager
from .schema import CorrelationTable, register_schema

module_logger = logging.getLogger(__name__)


class CorrelationRepository:
    """
    Repository for correlation persistence.

    The connection is acquired lazily from the connection manager on first
    use and shared by all calls until dispose().
    """

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager] = None,
        config: Optional[Config] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or get_config()
        self._connection_manager = connection_manager or get_connection_manager()
        self._logger = logger or module_logger
        self._db: Optional[Database] = None
        self._table: Optional[CorrelationTable] = None
        self._init_lock = asyncio.Lock()

    def _is_connected(self) -> bool:
        # The pool can be closed underneath us, e.g. by ConnectionManager.close_all()
        return self._db is not None and self._db.is_initialized

    async def initialize(self) -> None:
        """Acquire the shared connection and register the correlation table."""
        if self._is_connected():
            return

        async with self._init_lock:
            # Another caller may have finished while we waited for the lock
            if self._is_connected():
                return

            self._logger.debug("Initializing database connection and loading schema...")
            db = await asyncio.to_thread(self._connection_manager.get_connection, self.config)
            try:
                table = await asyncio.to_thread(register_schema, db, self.config.CORRELATION_TABLE)
            except Exception:
                await asyncio.to_thread(self._connection_manager.destroy_connection, self.config)
                raise
            self._db = db
            self._table = table
            self._logger.debug("Done.")

    async def dispose(self) -> None:
        """Release the shared connection. A no-op when none is held."""
        if self._db is None:
            self._logger.debug("No connection held. Done.")
            return

        self._logger.debug("Disposing connection")
        self._db = None
        self._table = None
        await asyncio.to_thread(self._connection_manager.destroy_connection, self.config)
        self._logger.debug("Done.")

    async def health_check(self) -> bool:
        """Check that the held connection answers; False when none is held."""
        if not self._is_connected():
            return False
        return await asyncio.to_thread(self._db.health_check)

    async def create_entry(
        self,
        identity: Optional[Identity],
        correlation_id: str,
        process_instance_id: str,
        process_model_id: str,
        process_model_hash: str,
        parent_process_instance_id: Optional[str] = None,
    ) -> None:
        """
        Store a new running correlation entry for a process instance.

        The caller is responsible for process_instance_id being unique; a
        duplicate surfaces as the driver's unique violation.
        """
        await self.initialize()
        now = datetime.now(timezone.utc)
        query = f"""
            INSERT INTO {self._table.name}
            (correlation_id, process_instance_id, process_model_id, process_model_hash,
             parent_process_instance_id, identity, state, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            correlation_id,
            process_instance_id,
            process_model_id,
            process_model_hash,
            parent_process_instance_id,
            encode_identity(identity),
            CorrelationState.RUNNING.value,
            now,
            now,
        )
        await self._execute(query, params)

    async def get_all(self) -> List[Correlation]:
        """Get every correlation entry."""
        await self.initialize()
        rows = await self._execute(f"SELECT {self._table.select_columns} FROM {self._table.name}")
        return [self._row_to_correlation(row) for row in rows]

    async def get_by_correlation_id(self, correlation_id: str) -> List[Correlation]:
        """Get all entries of a correlation, oldest first."""
        rows = await self._find_ordered("correlation_id", correlation_id)
        if not rows:
            raise NotFoundError(f'Correlation with id "{correlation_id}" not found.')
        return [self._row_to_correlation(row) for row in rows]

    async def get_by_process_model_id(self, process_model_id: str) -> List[Correlation]:
        """Get all entries for a process model, oldest first."""
        rows = await self._find_ordered("process_model_id", process_model_id)
        if not rows:
            raise NotFoundError(f'No correlations for ProcessModel with ID "{process_model_id}" found.')
        return [self._row_to_correlation(row) for row in rows]

    async def get_by_process_instance_id(self, process_instance_id: str) -> Correlation:
        """Get the entry for a single process instance."""
        await self.initialize()
        query = f"""
            SELECT {self._table.select_columns} FROM {self._table.name}
            WHERE process_instance_id = %s
        """
        row = await self._execute_one(query, (process_instance_id,))
        if not row:
            raise NotFoundError(f'No correlations for ProcessInstance with ID "{process_instance_id}" found.')
        return self._row_to_correlation(row)

    async def get_subprocesses_for_process_instance(self, process_instance_id: str) -> List[Correlation]:
        """Get the direct subprocesses of a process instance, oldest first. May be empty."""
        rows = await self._find_ordered("parent_process_instance_id", process_instance_id)
        return [self._row_to_correlation(row) for row in rows]

    async def delete_correlation_by_process_model_id(self, process_model_id: str) -> None:
        """Delete every entry belonging to a process model."""
        await self.initialize()
        query = f"DELETE FROM {self._table.name} WHERE process_model_id = %s"
        await self._execute(query, (process_model_id,))

    async def get_correlations_by_state(self, state: Union[CorrelationState, str]) -> List[Correlation]:
        """Get all entries in the given state. May be empty."""
        state = CorrelationState(state)
        await self.initialize()
        query = f"""
            SELECT {self._table.select_columns} FROM {self._table.name}
            WHERE state = %s
        """
        rows = await self._execute(query, (state.value,))
        return [self._row_to_correlation(row) for row in rows]

    async def finish_correlation(self, correlation_id: str) -> None:
        """Mark the first entry of a correlation as finished."""
        row_id = await self._find_first_row_id(correlation_id)
        self._logger.info(f"Finishing correlation {correlation_id}")
        await self._update_state(row_id, CorrelationState.FINISHED)

    async def finish_with_error(
        self,
        correlation_id: str,
        error: Union[BaseException, CorrelationError],
    ) -> None:
        """Mark the first entry of a correlation as failed and store the error."""
        if isinstance(error, BaseException):
            error = CorrelationError.from_exception(error)

        row_id = await self._find_first_row_id(correlation_id)
        self._logger.info(f"Finishing correlation {correlation_id} with error: {error.message}")
        await self._update_state(row_id, CorrelationState.ERROR, error)

    async def _find_ordered(self, column: str, value: str) -> list:
        await self.initialize()
        query = f"""
            SELECT {self._table.select_columns} FROM {self._table.name}
            WHERE {column} = %s
            ORDER BY created_at ASC, id ASC
        """
        return await self._execute(query, (value,))

    async def _find_first_row_id(self, correlation_id: str) -> int:
        await self.initialize()
        query = f"""
            SELECT id FROM {self._table.name}
            WHERE correlation_id = %s
            ORDER BY created_at ASC, id ASC
            LIMIT 1
        """
        row = await self._execute_one(query, (correlation_id,))
        if not row:
            raise NotFoundError(f"No matching correlation with ID {correlation_id} found!")
        return row["id"]

    async def _update_state(
        self,
        row_id: int,
        state: CorrelationState,
        error: Optional[CorrelationError] = None,
    ) -> None:
        # Plain read-then-write: concurrent finalizers race and the last write wins.
        updates = ["state = %s", "updated_at = %s"]
        params = [state.value, datetime.now(timezone.utc)]

        if error is not None:
            updates.append("error = %s")
            params.append(encode_error(error))

        params.append(row_id)

        query = f"""
            UPDATE {self._table.name}
            SET {', '.join(updates)}
            WHERE id = %s
        """
        await self._execute(query, tuple(params))

    async def _execute(self, query: str, params: tuple = None) -> list:
        return await asyncio.to_thread(self._db.execute, query, params)

    async def _execute_one(self, query: str, params: tuple = None) -> Optional[dict]:
        return await asyncio.to_thread(self._db.execute_one, query, params)

    def _row_to_correlation(self, row: dict) -> Correlation:
        """
        Convert a database row into the Correlation record used by the runtime.

        identity and error are decoded from JSON. An empty or NULL parent id
        becomes None.
        """
        return Correlation(
            id=row["correlation_id"],
            process_instance_id=row["process_instance_id"],
            process_model_id=row["process_model_id"],
            process_model_hash=row["process_model_hash"],
            parent_process_instance_id=row.get("parent_process_instance_id") or None,
            identity=decode_identity(row.get("identity")),
            state=CorrelationState(row["state"]),
            error=decode_error(row.get("error")),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
