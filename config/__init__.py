"""
Configuration module for Image Optimizer.
"""
from .constants import *
from .logging_config import setup_logger, get_logger
from .settings import Settings, get_settings, parse_memory_limit

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    # Settings
    'Settings',
    'get_settings',
    'parse_memory_limit',
    # Constants (all exported via *)
]
