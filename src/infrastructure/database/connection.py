"""MongoDB connection lifecycle with self-healing reconnection.

The ``ConnectionManager`` owns the one database handle shared by the whole
process. It opens the client at startup, hands the handle to repositories,
watches the driver's monitoring events for lost connectivity, and rebuilds
the client with exponential backoff until it succeeds or the retry ceiling
is reached.

State machine::

    Disconnected -> Connecting -> Connected
         ^                           |
         +------- (failure) ---------+
    Connecting (retry) -> ... -> Connected | PermanentlyFailed

Only one connection attempt is ever in flight. Callers that arrive while
one is running wait for it and observe its result.

Driver monitoring events are delivered on pymongo's background threads.
They are marshalled onto the event loop before touching any state, and each
listener is tagged with the generation of the client it was created for so
events from a client the manager already released are ignored.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import monitoring
from pymongo.errors import PyMongoError

from src.core.config import Settings, get_settings
from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.error_context import redact_uri
from src.core.exceptions import DatabaseConnectionError, DatabaseNotInitializedError
from src.core.observability import trace_operation
from src.infrastructure.constants import DEFAULT_DATABASE_NAME, PING_COMMAND

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

type ClientFactory = Callable[..., AsyncIOMotorClient]
type Sleeper = Callable[[float], Awaitable[None]]


def backoff_delay_ms(retry_count: int, base_ms: int = 1000, max_ms: int = 30000) -> int:
    """Delay before the reconnection attempt following ``retry_count`` failures.

    Args:
        retry_count: Consecutive failed attempts so far.
        base_ms: Delay before the first attempt.
        max_ms: Upper bound for the delay.

    Returns:
        int: The delay in milliseconds.

    Examples:
        >>> [backoff_delay_ms(n) for n in range(6)]
        [1000, 2000, 4000, 8000, 16000, 30000]
    """
    return min(base_ms * 2**retry_count, max_ms)


@dataclass
class ConnectionState:
    """Mutable connection state owned by a ``ConnectionManager``."""

    client: AsyncIOMotorClient | None = None
    handle: AsyncIOMotorDatabase | None = None
    is_connecting: bool = False
    retry_count: int = 0
    max_retries: int = 5
    ever_connected: bool = False
    permanently_failed: bool = False
    generation: int = 0


class _HeartbeatFailureListener(monitoring.ServerHeartbeatListener):
    """Reports failed server heartbeats to the manager."""

    def __init__(self, manager: ConnectionManager, generation: int) -> None:
        self._manager = manager
        self._generation = generation

    def started(self, event: monitoring.ServerHeartbeatStartedEvent) -> None:
        pass

    def succeeded(self, event: monitoring.ServerHeartbeatSucceededEvent) -> None:
        pass

    def failed(self, event: monitoring.ServerHeartbeatFailedEvent) -> None:
        self._manager.notify_driver_event(
            self._generation, "heartbeat_failed", str(event.reply)
        )


class _TopologyClosedListener(monitoring.TopologyListener):
    """Reports the client topology being closed to the manager."""

    def __init__(self, manager: ConnectionManager, generation: int) -> None:
        self._manager = manager
        self._generation = generation

    def opened(self, event: monitoring.TopologyOpenedEvent) -> None:
        pass

    def description_changed(
        self, event: monitoring.TopologyDescriptionChangedEvent
    ) -> None:
        pass

    def closed(self, event: monitoring.TopologyClosedEvent) -> None:
        self._manager.notify_driver_event(self._generation, "topology_closed", None)


class ConnectionManager:
    """Owns the shared MongoDB client and database handle.

    Args:
        settings: Application settings. Defaults to ``get_settings()``.
        client_factory: Callable building the motor client from a URI and
            keyword options.
        sleep: Coroutine used for backoff and poll waits.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client_factory: ClientFactory = AsyncIOMotorClient,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._client_factory = client_factory
        self._sleep = sleep
        self._state = ConnectionState(
            max_retries=self._settings.mongo_config.max_retries
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        """The current connection state. Read-only by convention."""
        return self._state

    @property
    def _poll_interval(self) -> float:
        interval_ms = self._settings.mongo_config.connect_poll_interval_ms
        return interval_ms / MILLISECONDS_PER_SECOND

    async def connect(self) -> AsyncIOMotorDatabase | None:
        """Open the connection, or join the attempt already in flight.

        Returns:
            The database handle. When joining another caller's attempt, the
            handle that attempt produced, which is ``None`` if it failed.

        Raises:
            DatabaseConnectionError: If this call's attempt fails. A
                background reconnection has been scheduled by then.
        """
        self._loop = asyncio.get_running_loop()
        state = self._state

        if state.is_connecting:
            logger.debug("Connection attempt in progress, waiting for it")
            while state.is_connecting:
                await self._sleep(self._poll_interval)
            return state.handle

        state.is_connecting = True
        try:
            return await self._open()
        except PyMongoError as e:
            uri = redact_uri(self._settings.mongo_uri)
            logger.error("Failed to connect to MongoDB at {}: {}", uri, e)
            self._schedule_reconnect()
            msg = "Failed to connect to MongoDB"
            raise DatabaseConnectionError(msg, context={"uri": uri}, cause=e) from e
        finally:
            state.is_connecting = False

    async def reconnect(self) -> None:
        """Rebuild the client with exponential backoff.

        Gives up after ``max_retries`` consecutive failures, marking the
        manager permanently failed. Never raises on connection failure.
        """
        state = self._state
        config = self._settings.mongo_config

        while state.retry_count < state.max_retries:
            await self._release_client()

            delay_ms = backoff_delay_ms(
                state.retry_count, config.backoff_base_ms, config.backoff_max_ms
            )
            state.retry_count += 1
            logger.warning(
                "Reconnecting to MongoDB in {} ms (attempt {}/{})",
                delay_ms,
                state.retry_count,
                state.max_retries,
                retry_count=state.retry_count,
            )
            await self._sleep(delay_ms / MILLISECONDS_PER_SECOND)

            while state.is_connecting:
                await self._sleep(self._poll_interval)
            if state.handle is not None:
                logger.info("MongoDB connection restored by another caller")
                return

            state.is_connecting = True
            try:
                with trace_operation("mongodb.reconnect", attempt=state.retry_count):
                    await self._open()
            except PyMongoError as e:
                logger.error(
                    "Reconnection attempt {} failed: {}",
                    state.retry_count,
                    e,
                    retry_count=state.retry_count,
                )
                continue
            finally:
                state.is_connecting = False

            logger.info("Reconnected to MongoDB")
            return

        state.permanently_failed = True
        await self._release_client()
        logger.critical(
            "Giving up on MongoDB after {} consecutive failed attempts",
            state.max_retries,
        )

    def get_handle(self) -> AsyncIOMotorDatabase:
        """Return the current database handle.

        If the client has lost every readable server the stale handle is
        still returned, and a background reconnection is scheduled.

        Raises:
            DatabaseNotInitializedError: If ``connect()`` never succeeded, or
                the handle is absent while reconnecting or after giving up.
        """
        state = self._state
        if not state.ever_connected:
            raise DatabaseNotInitializedError

        if state.handle is None:
            raise DatabaseNotInitializedError(
                "Database connection is not available",
                context={"permanently_failed": state.permanently_failed},
            )

        if (
            state.client is not None
            and not state.client.topology_description.has_readable_server()
        ):
            logger.warning("MongoDB has no readable server, scheduling reconnection")
            self._schedule_reconnect()

        return state.handle

    def get_collection(self, name: str | None = None) -> AsyncIOMotorCollection:
        """Return a collection from the current handle.

        Args:
            name: Collection name. Defaults to the configured users collection.
        """
        return self.get_handle()[name or self._settings.mongo_config.users_collection]

    async def close(self) -> None:
        """Stop reconnecting, close the client and clear all state."""
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        client = self._state.client
        self._state = ConnectionState(
            max_retries=self._settings.mongo_config.max_retries,
            generation=self._state.generation + 1,
        )
        if client is not None:
            client.close()
            logger.info("MongoDB connection closed")

    async def check_health(self) -> bool:
        """Ping the database.

        Returns:
            bool: True if the ping succeeded, False without a handle or on
                any driver error.
        """
        handle = self._state.handle
        if handle is None:
            return False

        try:
            await handle.command(PING_COMMAND)
        except PyMongoError as e:
            logger.warning("Database health check failed: {}", e)
            return False
        return True

    def notify_driver_event(
        self, generation: int, kind: str, detail: str | None
    ) -> None:
        """Hand a driver monitoring event over to the event loop.

        Called from pymongo's monitor threads.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        with contextlib.suppress(RuntimeError):
            # Raised when the loop closes between the check and the call
            loop.call_soon_threadsafe(
                self._handle_driver_event, generation, kind, detail
            )

    def _handle_driver_event(
        self, generation: int, kind: str, detail: str | None
    ) -> None:
        state = self._state
        if generation != state.generation or state.client is None:
            logger.debug("Ignoring {} from a released client", kind)
            return

        if kind == "heartbeat_failed":
            # pymongo publishes this event before it marks the server unknown,
            # so the first failure may still see a readable server. The
            # reconnect then starts one heartbeat interval later, on the next failure.
            if state.client.topology_description.has_readable_server():
                return
            logger.warning("MongoDB heartbeat failed: {}", detail)
        else:
            logger.warning("MongoDB topology closed unexpectedly")

        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._state.permanently_failed or self._loop is None:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return

        self._reconnect_task = self._loop.create_task(
            self.reconnect(), name="mongodb-reconnect"
        )
        self._reconnect_task.add_done_callback(_log_reconnect_failure)

    async def _open(self) -> AsyncIOMotorDatabase:
        state = self._state
        if state.client is None:
            state.client = self._create_client()

        await state.client.admin.command(PING_COMMAND)

        database_name = self._settings.mongo_config.database_name
        if database_name:
            handle = state.client[database_name]
        else:
            handle = state.client.get_default_database(default=DEFAULT_DATABASE_NAME)

        state.handle = handle
        state.retry_count = 0
        state.ever_connected = True
        state.permanently_failed = False
        logger.info(
            "Connected to MongoDB at {} (database {})",
            redact_uri(self._settings.mongo_uri),
            handle.name,
        )
        return handle

    def _create_client(self) -> AsyncIOMotorClient:
        state = self._state
        state.generation += 1
        listeners: list[Any] = [
            _HeartbeatFailureListener(self, state.generation),
            _TopologyClosedListener(self, state.generation),
        ]
        return self._client_factory(
            self._settings.mongo_uri,
            event_listeners=listeners,
            **self._settings.mongo_client_options,
        )

    async def _release_client(self) -> None:
        state = self._state
        client, state.client, state.handle = state.client, None, None
        state.generation += 1
        if client is None:
            return
        try:
            client.close()
        except PyMongoError as e:
            logger.warning("Error closing previous MongoDB client: {}", e)


def _log_reconnect_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    if (exc := task.exception()) is not None:
        logger.opt(exception=exc).error("Background MongoDB reconnection crashed")


class _ManagerRegistry:
    """Holds the process-wide manager without a global statement."""

    def __init__(self) -> None:
        self._manager: ConnectionManager | None = None

    def get(self) -> ConnectionManager:
        if self._manager is None:
            self._manager = ConnectionManager()
        return self._manager

    def reset(self) -> None:
        self._manager = None


_registry = _ManagerRegistry()


def get_connection_manager() -> ConnectionManager:
    """Get or create the process-wide connection manager."""
    return _registry.get()


def reset_connection_manager() -> None:
    """Forget the process-wide manager. Used primarily for testing."""
    _registry.reset()
