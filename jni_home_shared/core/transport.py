"""
Broker transport built on paho-mqtt.

paho runs its network loop on a background thread. Every paho callback is
handed over to the asyncio loop that opened the transport, so listeners
only ever run on the event loop thread.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union
from urllib.parse import unquote, urlparse

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from ..utils.exceptions import TransportError
from ..utils.validators import BROKER_SCHEMES, validate_broker_url

CONNECT_TIMEOUT_MS = 10000
KEEPALIVE_SEC = 60
DEFAULT_MAX_LISTENERS = 10

EVENTS = ('connect', 'reconnect', 'error', 'end', 'message')

Payload = Union[str, bytes]
SubscribeCallback = Callable[[Optional[Exception]], None]


@dataclass(frozen=True)
class ConnectOptions:
    """Connection level settings handed to the transport factory."""
    connect_timeout_ms: int = CONNECT_TIMEOUT_MS
    keepalive_sec: int = KEEPALIVE_SEC


@dataclass(frozen=True)
class BrokerAddress:
    """Broker location parsed from a URL."""
    scheme: str
    host: str
    port: int
    transport: str = 'tcp'
    tls: bool = False
    path: str = '/'
    username: Optional[str] = None
    password: Optional[str] = None


class Transport(Protocol):
    """Capabilities the connection manager needs from a broker client."""

    def on(self, event: str, listener: Callable[..., Any]) -> None: ...

    def publish(self, topic: str, payload: Payload) -> None: ...

    def subscribe(self, topic: str, callback: SubscribeCallback) -> None: ...

    def end(self) -> None: ...

    def set_max_listeners(self, limit: int) -> None: ...


def parse_broker_url(url: str) -> BrokerAddress:
    """Parse mqtt://, mqtts://, tcp://, ssl://, ws:// and wss:// URLs."""
    validate_broker_url(url)
    parsed = urlparse(url)
    default_port, transport, tls = BROKER_SCHEMES[parsed.scheme]
    return BrokerAddress(
        scheme=parsed.scheme,
        host=parsed.hostname,
        port=parsed.port or default_port,
        transport=transport,
        tls=tls,
        path=parsed.path or '/',
        username=unquote(parsed.username) if parsed.username else None,
        password=unquote(parsed.password) if parsed.password else None,
    )


class PahoTransport:
    """One paho-mqtt connection exposed as an event source."""

    def __init__(self, url: str, options: ConnectOptions = None, client_id: str = ""):
        self.url = url
        self.options = options or ConnectOptions()
        self.address = parse_broker_url(url)
        self.logger = logging.getLogger(__name__)

        self._listeners: Dict[str, List[Callable[..., Any]]] = defaultdict(list)
        self._max_listeners = DEFAULT_MAX_LISTENERS
        self._leak_warned = set()
        self._pending_subscriptions: Dict[int, Tuple[str, Optional[SubscribeCallback]]] = {}
        # Topics restored after a reconnect without a broker session
        self._topics: Dict[str, None] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ending = False

        self.client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=client_id,
            transport=self.address.transport,
        )
        self.client.on_connect = self._on_connect
        self.client.on_connect_fail = self._on_connect_fail
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self.client.on_subscribe = self._on_subscribe

    def open(self) -> None:
        """Start connecting in the background. paho retries on its own."""
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        if self.address.username:
            self.client.username_pw_set(self.address.username, self.address.password)
        if self.address.tls:
            self.client.tls_set()
        if self.address.transport == 'websockets':
            self.client.ws_set_options(path=self.address.path)
        self.client.connect_timeout = self.options.connect_timeout_ms / 1000

        self.logger.debug(f"Opening {self.address.transport} connection to "
                          f"{self.address.host}:{self.address.port}")
        self.client.connect_async(self.address.host, self.address.port,
                                  keepalive=self.options.keepalive_sec)
        self.client.loop_start()

    # Listener registry

    def on(self, event: str, listener: Callable[..., Any]) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown transport event: {event}")
        listeners = self._listeners[event]
        listeners.append(listener)
        limit = self._max_listeners
        if limit > 0 and len(listeners) > limit and event not in self._leak_warned:
            self._leak_warned.add(event)
            self.logger.warning(
                f"Possible listener leak: {len(listeners)} '{event}' listeners "
                f"exceed the limit of {limit}. Use set_max_listeners() to raise it."
            )

    def set_max_listeners(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("Listener limit cannot be negative")
        self._max_listeners = limit

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def _call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        loop = self._loop
        if loop is None:
            func(*args)
            return
        try:
            loop.call_soon_threadsafe(func, *args)
        except RuntimeError:
            # Loop already closed, nobody is left to notify
            self.logger.debug(f"Dropped transport callback {func!r} after loop shutdown")

    def _emit(self, event: str, *args: Any) -> None:
        self._call_soon(self._dispatch, event, args)

    def _dispatch(self, event: str, args: tuple) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception:
                self.logger.exception(f"Error in '{event}' listener")

    # paho callbacks, running on the paho network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            # paho follows a refused CONNACK with on_disconnect, which emits reconnect
            self._emit('error', TransportError(f"Connection refused: {reason_code}"))
            return
        if not flags.session_present:
            self._resubscribe()
        self._emit('connect')

    def _resubscribe(self) -> None:
        with self._lock:
            topics = list(self._topics)
            for topic in topics:
                result, mid = self.client.subscribe(topic)
                if result == mqtt.MQTT_ERR_SUCCESS:
                    self._pending_subscriptions[mid] = (topic, None)
                else:
                    self.logger.warning(f"Resubscribe to {topic} failed: {mqtt.error_string(result)}")
        if topics:
            self.logger.debug(f"Resubscribed to {len(topics)} topic(s)")

    def _on_connect_fail(self, client, userdata):
        if self._ending:
            return
        self._emit('error', TransportError(f"Could not connect to {self.address.host}:{self.address.port}"))
        self._emit('reconnect')

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if self._ending:
            return
        self._emit('error', TransportError(f"Connection lost: {reason_code}"))
        self._emit('reconnect')

    def _on_message(self, client, userdata, message):
        self._emit('message', message.topic, message.payload)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        failures = [code for code in reason_code_list if code.is_failure]
        with self._lock:
            topic, callback = self._pending_subscriptions.pop(mid, (None, None))
            if failures and topic is not None:
                self._topics.pop(topic, None)
        if failures and topic is not None and callback is None:
            self.logger.warning(f"Resubscribe to {topic} refused: {failures[0]}")
        if callback is None:
            return
        error = TransportError(f"Subscription refused: {failures[0]}") if failures else None
        self._call_soon(callback, error)

    # Operations

    def publish(self, topic: str, payload: Payload) -> None:
        info = self.client.publish(topic, payload)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Publish to {topic} failed: {mqtt.error_string(info.rc)}")

    def subscribe(self, topic: str, callback: SubscribeCallback) -> None:
        with self._lock:
            result, mid = self.client.subscribe(topic)
            if result == mqtt.MQTT_ERR_SUCCESS:
                self._pending_subscriptions[mid] = (topic, callback)
                self._topics[topic] = None
                return
        self._call_soon(callback, TransportError(
            f"Subscribe to {topic} failed: {mqtt.error_string(result)}"))

    def end(self) -> None:
        """Close the connection for good. Safe to call more than once."""
        if self._ending:
            return
        self._ending = True
        try:
            self.client.disconnect()
        finally:
            self.client.loop_stop()
            self._emit('end')


def connect_transport(url: str, options: ConnectOptions) -> PahoTransport:
    """Create a paho-mqtt transport and start connecting."""
    transport = PahoTransport(url, options)
    transport.open()
    return transport
