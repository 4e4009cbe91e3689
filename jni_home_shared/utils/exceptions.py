"""
Custom exceptions for JNI Home Automation shared code.
"""

class HomeAutomationError(Exception):
    """Base exception for shared home automation errors."""
    pass

class ConfigurationError(HomeAutomationError):
    """Exception raised for missing or unsupported configuration."""
    pass

class ConstructionError(ConfigurationError):
    """Exception raised when a component is built from unresolved configuration."""
    pass

class MQTTValidationError(ConfigurationError):
    """Exception raised for validation errors."""
    pass

class TimingError(HomeAutomationError):
    """Exception raised when a bounded wait runs out."""
    pass

class ConnectTimeoutError(TimingError):
    """Exception raised when the broker is not reached in time."""
    pass

class PublishError(HomeAutomationError):
    """Exception raised for MQTT publishing errors."""
    pass

class PublishTimeoutError(PublishError, TimingError):
    """Exception raised when a publish gives up waiting for a connection."""
    pass

class StateError(HomeAutomationError):
    """Exception raised when an operation needs a live connection."""
    pass

class NotConnectedError(StateError):
    """Exception raised when there is no active connection."""
    pass

class NotInitializedError(StateError):
    """Exception raised when the client was never created."""
    pass

class TransportError(HomeAutomationError):
    """Exception raised for errors reported by the broker client."""
    pass

class SubscribeError(TransportError):
    """Exception raised for MQTT subscription errors."""
    pass
