"""
Custom log levels for auth events
"""
from enum import Enum


class LogLevel(str, Enum):
    WARNING = "warning"
    INFO = "info"
    ERROR = "error"
    SECURITY = "security"  # rejected authentication attempt
    GREAT = "great"        # security-relevant state change completed
