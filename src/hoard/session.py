"""Gateway connection lifecycle for Hoard.

The session manager connects to the gateway websocket, feeds frames to the
dispatcher one at a time in arrival order, and reconnects as soon as the
connection fails or closes. It runs for the lifetime of the process.

Each connection gets a fresh ``SessionToken``. The gateway sends the token
in a handshake frame right after connecting; it can be set exactly once,
and every outbound REST call made on behalf of that connection reads it.
"""

from __future__ import annotations

import asyncio
import signal
from contextlib import asynccontextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncContextManager, AsyncIterator, Callable

import aiohttp

from hoard.api import GatewayClient
from hoard.exceptions import (
    DuplicateHandshakeError,
    GatewayConnectionError,
    HoardError,
)
from hoard.logging import get_logger
from hoard.models import Handshake

if TYPE_CHECKING:
    from hoard.config import Config, GatewayConfig
    from hoard.events import EventDispatcher

log = get_logger("session")


class SessionToken:
    """Write-once session token shared by everything that calls the gateway."""

    def __init__(self) -> None:
        self._value: str | None = None
        self._ready = asyncio.Event()

    @property
    def is_set(self) -> bool:
        return self._value is not None

    def set(self, token: str) -> None:
        """Store the token.

        Raises:
            DuplicateHandshakeError: If a token is already stored; the
                stored value is left unchanged.
        """
        if self._value is not None:
            raise DuplicateHandshakeError("session token already set for this connection")
        self._value = token
        self._ready.set()

    def get(self) -> str:
        """Return the token.

        Raises:
            HoardError: If no handshake has been received yet.
        """
        if self._value is None:
            raise HoardError("session token not set")
        return self._value

    async def wait(self) -> str:
        """Wait for the handshake, then return the token."""
        await self._ready.wait()
        return self.get()


class ConnectionState(str, Enum):
    """Where the manager is in the connect/authenticate cycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


Connector = Callable[[], AsyncContextManager[Any]]


class SessionManager:
    """Owns the gateway socket and the per-connection session token.

    Attributes:
        state: Current connection state.
        session: Token handle of the current (or last) connection.
        connect_attempts: Connection attempts made so far.
    """

    def __init__(
        self,
        config: GatewayConfig,
        dispatcher: EventDispatcher,
        connector: Connector | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Gateway host, credentials and reconnect settings.
            dispatcher: Receives every text frame in arrival order.
            connector: Opens one websocket connection; defaults to aiohttp.
        """
        self.config = config
        self.dispatcher = dispatcher
        self._connector = connector or self._open_socket
        self.state = ConnectionState.DISCONNECTED
        self.session = SessionToken()
        self.connect_attempts = 0
        self._stop_requested = False

    def stop(self) -> None:
        """Stop reconnecting once the current connection ends."""
        self._stop_requested = True

    async def run(self) -> None:
        """Connect, read, and reconnect until ``stop`` is called."""
        while not self._stop_requested:
            await self.run_once()
            if self._stop_requested:
                break

            log.info("gateway_reconnecting", attempts=self.connect_attempts)
            if self.config.reconnect_delay_seconds > 0:
                await asyncio.sleep(self.config.reconnect_delay_seconds)

    async def run_once(self) -> None:
        """Run a single connection from connect to disconnect.

        Socket failures are logged, never raised.
        """
        self.session = SessionToken()
        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        log.info(
            "gateway_connecting",
            url=self.config.ws_url,
            attempt=self.connect_attempts,
        )

        try:
            async with self._connector() as ws:
                self.state = ConnectionState.CONNECTED
                log.info("gateway_connected")
                await self._read_loop(ws)
            log.info("gateway_closed")
        except (aiohttp.ClientError, GatewayConnectionError, OSError, asyncio.TimeoutError) as e:
            log.warning(
                "gateway_connection_failed",
                state=self.state.value,
                error_type=type(e).__name__,
                error=str(e),
            )
        except Exception as e:
            log.error(
                "gateway_unexpected_error",
                state=self.state.value,
                error=str(e),
                exc_info=e,
            )
        finally:
            self.state = ConnectionState.DISCONNECTED
            self._end_connection()

    async def _read_loop(self, ws: Any) -> None:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self.handle_frame(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise GatewayConnectionError(f"websocket error: {ws.exception()}")

    def handle_frame(self, frame: str) -> None:
        """Pass one text frame to the dispatcher and track authentication."""
        event = self.dispatcher.dispatch(frame, self.session)
        if (
            isinstance(event, Handshake)
            and self.session.is_set
            and self.state == ConnectionState.CONNECTED
        ):
            self.state = ConnectionState.AUTHENTICATED
            log.info("gateway_authenticated")

    def _end_connection(self) -> None:
        if not self.config.cancel_on_reconnect:
            return
        cancelled = self.dispatcher.supervisor.cancel_all()
        if cancelled:
            log.info("message_tasks_cancelled", count=cancelled)

    @asynccontextmanager
    async def _open_socket(self) -> AsyncIterator[aiohttp.ClientWebSocketResponse]:
        async with aiohttp.ClientSession(trust_env=False) as http:
            async with http.ws_connect(
                self.config.ws_url,
                params=self.config.connect_params,
            ) as ws:
                yield ws


def build_manager(config: Config) -> tuple[SessionManager, GatewayClient]:
    """Wire up the client from configuration.

    Args:
        config: Validated application configuration.

    Returns:
        Tuple of (session manager, shared gateway REST client).
    """
    from hoard.collector import MediaCollector
    from hoard.events import EventDispatcher
    from hoard.notifier import ReplyNotifier
    from hoard.store import MediaStore

    gateway = config.gateway
    client = GatewayClient(gateway.http_base)
    notifier = ReplyNotifier(
        client,
        allowed_group_id=gateway.allowed_group_id if config.notify.allowed_group_only else None,
        enabled=config.notify.enabled,
    )
    collector = MediaCollector(
        client,
        MediaStore(config.storage.root, client),
        notifier,
        allowed_group_id=gateway.allowed_group_id,
    )
    return SessionManager(gateway, EventDispatcher(collector)), client


def setup_signal_handlers(
    task: asyncio.Task[Any],
    manager: SessionManager,
    loop: asyncio.AbstractEventLoop,
) -> None:
    """Stop the manager and cancel its task on SIGINT/SIGTERM.

    Args:
        task: Task running ``manager.run()``.
        manager: The session manager to stop.
        loop: The event loop to add signal handlers to.
    """

    def handle_signal(sig: signal.Signals) -> None:
        log.info("signal_received", signal=sig.name)
        manager.stop()
        task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    log.debug("signal_handlers_registered", signals=["SIGINT", "SIGTERM"])


async def run_client(config: Config) -> None:
    """Run the client until a shutdown signal arrives.

    Args:
        config: Validated application configuration.
    """
    manager, client = build_manager(config)
    loop = asyncio.get_running_loop()
    task = asyncio.create_task(manager.run(), name="gateway")
    setup_signal_handlers(task, manager, loop)

    try:
        log.info("client_starting", host=config.gateway.host)
        await task
    except asyncio.CancelledError:
        log.debug("client_cancelled")
    finally:
        supervisor = manager.dispatcher.supervisor
        supervisor.cancel_all()
        await supervisor.join()
        await client.close()
        log.info("shutdown_complete")
