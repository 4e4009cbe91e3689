"""
Validation utilities for broker settings.
"""
from urllib.parse import urlparse
from .exceptions import MQTTValidationError

# scheme -> (default port, transport, tls)
BROKER_SCHEMES = {
    'mqtt': (1883, 'tcp', False),
    'tcp': (1883, 'tcp', False),
    'mqtts': (8883, 'tcp', True),
    'ssl': (8883, 'tcp', True),
    'ws': (80, 'websockets', False),
    'wss': (443, 'websockets', True),
}

def validate_broker_url(broker_url: str) -> None:
    """Validate MQTT broker URL format."""
    if not broker_url:
        raise MQTTValidationError("Broker URL cannot be empty")
    try:
        parsed = urlparse(broker_url)
        hostname = parsed.hostname
        # Accessing .port raises ValueError for out of range values
        parsed.port
    except ValueError as e:
        raise MQTTValidationError(f"Invalid broker URL: {str(e)}")
    if parsed.scheme not in BROKER_SCHEMES:
        allowed = ', '.join(f"{scheme}://" for scheme in BROKER_SCHEMES)
        raise MQTTValidationError(f"Broker URL must start with one of {allowed}")
    if not hostname:
        raise MQTTValidationError("Broker URL must include a hostname")

def validate_timeout(timeout: int) -> None:
    """Validate timeout value."""
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout < 0:
        raise MQTTValidationError("Timeout must be a positive integer")
