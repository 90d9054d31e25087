"""
Structured logging for authentication events
"""
from authcore.logging.custom_logger import CustomLogger, get_logger
from authcore.logging.log_levels import LogLevel

__all__ = [
    'CustomLogger',
    'LogLevel',
    'get_logger',
]
