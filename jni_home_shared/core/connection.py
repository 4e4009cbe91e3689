"""
Connection manager for the shared MQTT server connection.
"""
import asyncio
import inspect
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from ..utils.exceptions import (
    ConnectTimeoutError,
    ConstructionError,
    NotConnectedError,
    NotInitializedError,
    PublishError,
    PublishTimeoutError,
    SubscribeError,
)
from ..utils.logger import ExtendedLogger, get_logger
from .transport import (
    CONNECT_TIMEOUT_MS,
    KEEPALIVE_SEC,
    ConnectOptions,
    Payload,
    Transport,
    connect_transport,
)

UNDEFINED_STRING = "undefined"
THREE_SECS_MS = 3000
POLL_INTERVAL_MS = 100
SUBSCRIBE_ACK_TIMEOUT_MS = 10000
DEFAULT_MAX_LISTENERS = 15

MessageHandler = Callable[[str, str], Any]
TransportFactory = Callable[[str, ConnectOptions], Transport]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


def describe_error(error: BaseException) -> str:
    """Readable text for an exception, even when it carries no message."""
    return str(error) or type(error).__name__


class ConnectionManager:
    """
    Owns one MQTT server connection and tracks its lifecycle.

    Publish and subscribe wait a bounded time for the connection to come up.
    Connection drops never raise; they show up in `connected` and the logs.
    """

    def __init__(self, broker_url: str,
                 logger: Optional[ExtendedLogger] = None,
                 transport_factory: TransportFactory = connect_transport,
                 max_listeners: int = DEFAULT_MAX_LISTENERS,
                 ready_timeout_ms: int = THREE_SECS_MS,
                 poll_interval_ms: int = POLL_INTERVAL_MS):
        self.log = logger or get_logger(__name__)
        if not broker_url or broker_url == UNDEFINED_STRING:
            error_message = "MQTT server URL is not defined!"
            self.log.error(error_message)
            self.log.trace()
            raise ConstructionError(error_message)

        self._broker_url = broker_url
        self._transport_factory = transport_factory
        self._max_listeners = max_listeners
        self._ready_timeout_ms = ready_timeout_ms
        self._poll_interval = poll_interval_ms / 1000

        self._transport: Optional[Transport] = None
        self._state = ConnectionState.DISCONNECTED
        self._first_attempt = True
        self._reconnecting = False
        self._connection_losses = 0
        self._connection_lost_timestamp: Optional[float] = None
        self._exit_requested = False

        self._handlers: Dict[str, MessageHandler] = {}
        self._handler_tasks: Set[asyncio.Task] = set()

    # Read-only state

    @property
    def broker_url(self) -> str:
        return self._broker_url

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def first_attempt(self) -> bool:
        return self._first_attempt

    @property
    def reconnecting(self) -> bool:
        return self._reconnecting

    @property
    def connection_loss_count(self) -> int:
        return self._connection_losses

    @property
    def last_loss_timestamp(self) -> Optional[float]:
        return self._connection_lost_timestamp

    @property
    def exit_requested(self) -> bool:
        return self._exit_requested

    @property
    def max_listeners(self) -> int:
        return self._max_listeners

    @property
    def subscriptions(self) -> List[str]:
        return sorted(self._handlers)

    # Connecting

    def connect(self) -> None:
        """Start connecting without waiting for the result."""
        self.log.info(f'Connecting to MQTT server via "{self._broker_url}"...')
        try:
            options = ConnectOptions(connect_timeout_ms=CONNECT_TIMEOUT_MS,
                                     keepalive_sec=KEEPALIVE_SEC)
            self._transport = self._transport_factory(self._broker_url, options)
            self._transport.on("connect", self._on_connect)
            self._transport.on("reconnect", self._on_reconnect)
            self._transport.on("error", self._on_error)
            self._transport.on("end", self._on_end)
            self._transport.on("message", self._on_message)
            self._transport.set_max_listeners(self._max_listeners)
        except Exception as e:
            self.log.error(f"Error connecting to MQTT server: {describe_error(e)}")
            self.log.trace()

    async def connect_and_wait(self, wait_time_ms: int) -> None:
        """
        Connect and wait until the server accepted the connection.

        Raises:
            ConnectTimeoutError: If not connected within wait_time_ms
        """
        self.connect()
        self.log.info(f"Waiting {wait_time_ms / 1000 / 60} minutes for connection...")
        if not await self._wait_for_connection(wait_time_ms):
            if self._transport is not None:
                self._transport.end()
            raise ConnectTimeoutError(f"Client not connected within {wait_time_ms} milliseconds")

    async def _wait_for_connection(self, budget_ms: int) -> bool:
        """Poll until connected. Returns False once the budget is used up."""
        start = time.monotonic()
        while not self.connected:
            await asyncio.sleep(self._poll_interval)
            if (time.monotonic() - start) * 1000 > budget_ms:
                return False
        return True

    # Transport events

    def _on_connect(self) -> None:
        # Also called after every successful reconnection
        self._state = ConnectionState.CONNECTED
        self._first_attempt = False
        if self._reconnecting:
            seconds = time.monotonic() - self._connection_lost_timestamp
            self.log.warning(f"Reestablished connection to MQTT server after {seconds:.0f} second(s).")
            self._reconnecting = False
        else:
            self.log.info("Connected to MQTT server!")

    def _on_reconnect(self) -> None:
        # Retries of the very first connection are not losses
        if self._first_attempt:
            return
        if not self._reconnecting:
            self._connection_losses += 1
            self.log.error(f"Connection loss No. {self._connection_losses}")
            self.log.warning("Reconnecting to MQTT...")
            self._reconnecting = True
            # Each loss is counted twice
            self._connection_losses += 1
            self._connection_lost_timestamp = time.monotonic()

    def _on_error(self, error: Optional[BaseException] = None) -> None:
        if error is not None:
            self.log.debug(f"MQTT transport error: {describe_error(error)}")
        if self._first_attempt:
            self._state = ConnectionState.DISCONNECTED
        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED
            self.log.error("Connection to MQTT server lost!")
            self.log.trace()

    def _on_end(self) -> None:
        self.log.warning("Actively closed connection to MQTT server!")
        self._state = ConnectionState.DISCONNECTED

    def _on_message(self, topic: str, payload: Payload) -> None:
        handler = self._handlers.get(topic)
        if handler is None:
            return
        if isinstance(payload, (bytes, bytearray)):
            message = bytes(payload).decode("utf-8", errors="replace")
        else:
            message = str(payload)
        try:
            result = handler(message, topic)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._handler_tasks.add(task)
                task.add_done_callback(self._handler_done)
        except Exception as e:
            self.log.error(f"Error in message handler for {topic}: {describe_error(e)}")
            self.log.trace()

    def _handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.log.error(f"Error in message handler: {describe_error(task.exception())}")

    # Publish / subscribe

    async def publish(self, topic: str, message: Payload) -> None:
        """
        Publish a message to a topic.

        Waits up to three seconds for a connection. Does nothing once
        exit() was called.

        Raises:
            PublishError: If the client is not available or publishing fails
        """
        if self._exit_requested:
            return
        try:
            if not await self._wait_for_connection(self._ready_timeout_ms):
                raise PublishTimeoutError(
                    f"Client not available for {self._ready_timeout_ms / 1000:g} seconds.")
            self._publish(topic, message)
        except PublishError as e:
            self.log.error(f"Error publishing: {e}")
            self.log.trace()
            raise
        except Exception as e:
            error_message = f"Error publishing: {describe_error(e)}"
            self.log.error(error_message)
            self.log.trace()
            raise PublishError(error_message) from e

    def _publish(self, topic: str, message: Payload) -> None:
        transport = self._check_client_and_connection()
        transport.publish(topic, message)

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """
        Subscribe a handler to a topic.

        Waits up to three seconds for a connection, then tries anyway.
        A later subscribe for the same topic replaces the handler.
        Errors are not raised once exit() was called.

        Raises:
            SubscribeError: If the subscription could not be made
        """
        try:
            await self._wait_for_connection(self._ready_timeout_ms)
            await self._subscribe(topic, handler)
        except SubscribeError:
            if not self._exit_requested:
                raise
        except Exception as e:
            error_message = f"Error subscribing: {describe_error(e)}"
            self.log.error(error_message)
            self.log.trace()
            if not self._exit_requested:
                raise SubscribeError(error_message) from e

    async def _subscribe(self, topic: str, handler: MessageHandler) -> None:
        transport = self._check_client_and_connection()
        acknowledged = asyncio.get_running_loop().create_future()

        def on_subscribed(error: Optional[Exception]) -> None:
            if not acknowledged.done():
                acknowledged.set_result(error)

        transport.subscribe(topic, on_subscribed)
        try:
            error = await asyncio.wait_for(acknowledged, SUBSCRIBE_ACK_TIMEOUT_MS / 1000)
        except asyncio.TimeoutError:
            error = TimeoutError(f"No subscription acknowledgement for {topic} "
                                 f"within {SUBSCRIBE_ACK_TIMEOUT_MS} milliseconds")
        if error is not None:
            error_message = f"Error subscribing: {describe_error(error)}"
            self.log.error(error_message)
            self.log.trace()
            raise SubscribeError(error_message) from error

        self._check_client_and_connection()
        self._handlers[topic] = handler
        self.log.debug(f"Subscribed to {topic}")

    def set_max_listeners(self, limit: int) -> None:
        """Raise the listener ceiling of the transport (default 15)."""
        self._max_listeners = limit
        if self._transport is not None:
            self._transport.set_max_listeners(limit)

    # Shutdown

    def exit(self) -> None:
        """Close the connection. The manager is not usable afterwards."""
        self.log.warning("Shutdown for MQTT Server Connection requested...")
        self._exit_requested = True
        try:
            self._check_client_and_connection()
        except Exception as e:
            self.log.error(f"Errors detected before exiting MQTT server connection: {describe_error(e)}")
            self.log.trace()
        if self._transport is not None:
            self._state = ConnectionState.DISCONNECTED
            try:
                self._transport.end()
            except Exception as e:
                self.log.error(f'Error calling "end" on MQTT client: {describe_error(e)}')
                self.log.trace()

    def _check_client_and_connection(self) -> Transport:
        if not self.connected:
            error_message = "There is no active connection!"
            self.log.error(error_message)
            self.log.trace()
            raise NotConnectedError(error_message)
        if self._transport is None:
            error_message = "Client was not yet initialized!"
            self.log.error(error_message)
            self.log.trace()
            raise NotInitializedError(error_message)
        return self._transport
