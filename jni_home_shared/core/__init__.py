"""
Core MQTT connection handling.
"""
from .connection import ConnectionManager, ConnectionState
from .transport import ConnectOptions, PahoTransport, Transport, connect_transport

__all__ = [
    'ConnectionManager',
    'ConnectionState',
    'ConnectOptions',
    'PahoTransport',
    'Transport',
    'connect_transport'
]
