"""
Shared fixtures for unit tests.

This module provides a fake broker transport and loggers for testing the
connection manager without a broker.
"""

import asyncio
import logging
from collections import defaultdict

import pytest

from jni_home_shared.core.connection import ConnectionManager
from jni_home_shared.utils.logger import ExtendedLogger

BROKER_URL = "mqtt://broker.test:1883"


class FakeTransport:
    """Records calls and lets tests fire transport events by hand."""

    def __init__(self, url, options):
        self.url = url
        self.options = options
        self.listeners = defaultdict(list)
        self.published = []
        self.subscribed = []
        self.end_calls = 0
        self.max_listeners = None
        self.subscribe_error = None
        self.ack_subscriptions = True
        self.publish_error = None
        self.end_error = None

    def on(self, event, listener):
        self.listeners[event].append(listener)

    def emit(self, event, *args):
        for listener in list(self.listeners[event]):
            listener(*args)

    def publish(self, topic, payload):
        if self.publish_error:
            raise self.publish_error
        self.published.append((topic, payload))

    def subscribe(self, topic, callback):
        self.subscribed.append(topic)
        if self.ack_subscriptions:
            callback(self.subscribe_error)

    def end(self):
        self.end_calls += 1
        if self.end_error:
            raise self.end_error
        self.emit('end')

    def set_max_listeners(self, limit):
        self.max_listeners = limit


class FakeTransportFactory:
    """Transport factory handing out FakeTransports."""

    def __init__(self):
        self.created = []
        self.connect_delay = None

    def __call__(self, url, options):
        transport = FakeTransport(url, options)
        self.created.append(transport)
        if self.connect_delay is not None:
            asyncio.get_running_loop().call_later(self.connect_delay, transport.emit, 'connect')
        return transport

    @property
    def transport(self):
        return self.created[-1]


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def log():
    """ExtendedLogger that propagates to pytest's caplog."""
    return ExtendedLogger(logging.getLogger("tests.connection"))


@pytest.fixture
def manager(transport_factory, log):
    """
    ConnectionManager on a fake transport.

    Uses short waits (300 ms budget, 10 ms polling) to keep tests fast.
    """
    return ConnectionManager(
        BROKER_URL,
        logger=log,
        transport_factory=transport_factory,
        ready_timeout_ms=300,
        poll_interval_ms=10,
    )


@pytest.fixture
def connected_manager(manager, transport_factory):
    manager.connect()
    transport_factory.transport.emit('connect')
    return manager


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo handler and level changes made by create_logger()."""
    logger = logging.getLogger("jni_home_shared")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate
