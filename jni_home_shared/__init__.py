"""
JNI Home Automation shared code - resilient MQTT connection handling and
logging setup used across the home automation projects.
"""

import logging

from .core.connection import ConnectionManager
from .utils.logger import LogSetup, create_logger

__version__ = "2.1.0"

# Library logging stays silent unless the application configures it
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ['__version__', 'ConnectionManager', 'LogSetup', 'create_logger']
