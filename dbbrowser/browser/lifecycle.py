"""Connection lifecycle: Idle -> Connecting -> Ready, or Failed on timeout.

While connecting, the controller probes the backend with a table-list
request at a fixed interval. Probe failures are expected during the
handshake and are only logged. The first of a successful probe or the
backend's ready signal wins; the other becomes a no-op. If neither
arrives before the timeout the controller fails with
``"connection timeout"`` and reports it.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set

from ..database.errors import BackendError
from ..database.gateway import BackendGateway
from ..database.models import ConnectionParams
from .notifications import NotificationQueue
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "connection timeout"
DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_CONNECT_TIMEOUT = 5.0


class ConnectionPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionStatus:
    """Current phase plus the failure reason when the phase is FAILED."""

    phase: ConnectionPhase
    reason: Optional[str] = None

    @classmethod
    def idle(cls) -> "ConnectionStatus":
        return cls(ConnectionPhase.IDLE)

    @classmethod
    def connecting(cls) -> "ConnectionStatus":
        return cls(ConnectionPhase.CONNECTING)

    @classmethod
    def ready(cls) -> "ConnectionStatus":
        return cls(ConnectionPhase.READY)

    @classmethod
    def failed(cls, reason: str) -> "ConnectionStatus":
        return cls(ConnectionPhase.FAILED, reason)

    @property
    def is_ready(self) -> bool:
        return self.phase is ConnectionPhase.READY

    def __str__(self) -> str:
        if self.reason:
            return f"{self.phase.value} ({self.reason})"
        return self.phase.value


StatusListener = Callable[[ConnectionStatus], None]
ReadyHook = Callable[[], Awaitable[None]]


class ConnectionLifecycle:
    """Drives the handshake and owns the connection status.

    ``start()`` must be called from a running event loop because probes
    and the connect request run as tasks on it.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        scheduler: Scheduler,
        notifications: NotificationQueue,
        on_ready: Optional[ReadyHook] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.gateway = gateway
        self.scheduler = scheduler
        self.notifications = notifications
        self.on_ready = on_ready
        self.poll_interval = poll_interval
        self.connect_timeout = connect_timeout
        self.connect_error: Optional[str] = None
        self.probe_error: Optional[str] = None

        self._status = ConnectionStatus.idle()
        self._listeners: List[StatusListener] = []
        self._poll_token: Optional[int] = None
        self._timeout_token: Optional[int] = None
        self._attempt = 0
        self._probe_in_flight = False
        self._tasks: Set[asyncio.Task] = set()
        self._ready_task: Optional[asyncio.Task] = None
        self._settled = asyncio.Event()

        gateway.add_ready_listener(self.notify_backend_ready)

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def phase(self) -> ConnectionPhase:
        return self._status.phase

    @property
    def last_error(self) -> Optional[str]:
        """Most telling handshake failure: a refused connect request beats probe errors."""
        return self.connect_error or self.probe_error

    def _clear_errors(self) -> None:
        self.connect_error = None
        self.probe_error = None

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def _transition(self, status: ConnectionStatus) -> ConnectionStatus:
        if status == self._status:
            return status
        logger.info(f"Connection state: {self._status} -> {status}")
        self._status = status
        if status.phase in (ConnectionPhase.READY, ConnectionPhase.FAILED):
            self._settled.set()
        else:
            self._settled.clear()
        for listener in list(self._listeners):
            listener(status)
        return status

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_timers(self) -> None:
        self.scheduler.cancel(self._poll_token)
        self.scheduler.cancel(self._timeout_token)
        self._poll_token = None
        self._timeout_token = None

    def start(self, params: Optional[ConnectionParams] = None) -> ConnectionStatus:
        """Begin the handshake, replacing any handshake already running."""
        self._cancel_timers()
        self._attempt += 1
        self._probe_in_flight = False
        self._clear_errors()
        status = self._transition(ConnectionStatus.connecting())

        attempt = self._attempt
        if params is not None:
            logger.info(f"Connecting to {params.user}@{params.host}:{params.port}/{params.db_name}")
            self._spawn(self._connect(params, attempt))
        self._timeout_token = self.scheduler.call_later(self.connect_timeout, self._on_timeout)
        self._poll()
        return status

    async def _connect(self, params: ConnectionParams, attempt: int) -> None:
        try:
            await self.gateway.connect(params)
        except BackendError as e:
            if attempt == self._attempt:
                self.connect_error = str(e)
                logger.debug(f"Connect request failed, still polling: {e}")

    def _poll(self) -> None:
        self._poll_token = None
        if self.phase is not ConnectionPhase.CONNECTING:
            return
        self._poll_token = self.scheduler.call_later(self.poll_interval, self._poll)
        if not self._probe_in_flight:
            self._probe_in_flight = True
            self._spawn(self._probe(self._attempt))

    async def _probe(self, attempt: int) -> None:
        try:
            tables = await self.gateway.list_tables()
        except BackendError as e:
            if attempt == self._attempt:
                self._probe_in_flight = False
                self.probe_error = str(e)
                logger.debug(f"Handshake probe failed: {e}")
            return
        if attempt != self._attempt:
            return
        self._probe_in_flight = False
        logger.debug(f"Handshake probe succeeded with {len(tables)} tables")
        self._succeed()

    def notify_backend_ready(self) -> ConnectionStatus:
        """Handle the backend's push signal; a no-op unless connecting."""
        return self._succeed()

    def _succeed(self) -> ConnectionStatus:
        if self.phase is not ConnectionPhase.CONNECTING:
            return self._status
        self._cancel_timers()
        self._attempt += 1
        self._probe_in_flight = False
        self._clear_errors()
        status = self._transition(ConnectionStatus.ready())
        if self.on_ready is not None:
            self._ready_task = self._spawn(self._run_on_ready())
        return status

    async def _run_on_ready(self) -> None:
        try:
            await self.on_ready()
        except BackendError as e:
            logger.error(f"Initial load failed: {e}")
            self.notifications.error(f"Failed to load tables: {e}")

    def _on_timeout(self) -> None:
        self._timeout_token = None
        if self.phase is not ConnectionPhase.CONNECTING:
            return
        self._cancel_timers()
        self._attempt += 1
        self._probe_in_flight = False
        self._transition(ConnectionStatus.failed(TIMEOUT_REASON))
        detail = f": {self.last_error}" if self.last_error else ""
        self.notifications.error(f"Could not connect ({TIMEOUT_REASON}){detail}")

    def connection_lost(self, reason: str) -> ConnectionStatus:
        """Report a drop of an established connection."""
        if self.phase is not ConnectionPhase.READY:
            return self._status
        status = self._transition(ConnectionStatus.failed(reason))
        self.notifications.error(f"Connection lost: {reason}")
        return status

    async def disconnect(self) -> ConnectionStatus:
        """Stop any handshake, close the backend connection and go idle."""
        self._cancel_timers()
        self._attempt += 1
        self._probe_in_flight = False
        try:
            await self.gateway.disconnect()
        except BackendError as e:
            logger.warning(f"Disconnect failed: {e}")
        return self._transition(ConnectionStatus.idle())

    async def wait_settled(self, timeout: Optional[float] = None) -> ConnectionStatus:
        """Wait until Ready or Failed; when Ready, also wait for the initial load."""
        await asyncio.wait_for(self._settled.wait(), timeout)
        if self._status.is_ready and self._ready_task is not None:
            await self._ready_task
        return self._status

    def close(self) -> None:
        """Teardown: cancel timers and in-flight tasks, detach from the gateway."""
        self._cancel_timers()
        self._attempt += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self.gateway.remove_ready_listener(self.notify_backend_ready)
