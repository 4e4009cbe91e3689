"""
Utility functions for JNI Home Automation shared code.
"""
from .config_manager import ConfigManager, parse_env_variable
from .exceptions import HomeAutomationError
from .logger import ExtendedLogger, LogSetup, create_logger

__all__ = [
    'ConfigManager',
    'parse_env_variable',
    'HomeAutomationError',
    'ExtendedLogger',
    'LogSetup',
    'create_logger'
]
