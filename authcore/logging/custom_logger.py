"""
Custom logger for authentication events
Levels: info, warning, error, security, great
"""
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any

from authcore.logging.log_levels import LogLevel
from authcore.logging.formatters import get_formatter_for_level


class CustomLogger:
    """
    Logger with structured context for auth events

    Usage:
        logger = get_logger("auth.biometric")
        logger.security("Challenge rejected", reason="expired", device_id="abc")
        logger.great("MFA enabled", user_id=42)
    """

    _LEVEL_MAP = {
        LogLevel.WARNING: logging.WARNING,
        LogLevel.INFO: logging.INFO,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.SECURITY: logging.WARNING,
        LogLevel.GREAT: logging.INFO,
    }

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _log(
        self,
        level: LogLevel,
        message: str,
        exc_info: bool = False,
        **context: Any
    ) -> None:
        log_data = {
            "level": level.value,
            "module": self.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **context
        }
        if exc_info:
            log_data["traceback"] = self._get_clean_traceback()

        record = logging.LogRecord(
            name=self.name,
            level=self._LEVEL_MAP[level],
            pathname="",
            lineno=0,
            msg=message,
            args=(),
            exc_info=None
        )
        record.context = " ".join(f"{key}={value}" for key, value in context.items())
        formatted_message = get_formatter_for_level(level).format(record)

        self.logger.log(
            self._LEVEL_MAP[level],
            formatted_message,
            extra={"custom_data": log_data},
        )

    def _get_clean_traceback(self) -> str:
        """Current traceback without blank lines, duplicates or site-packages frames"""
        seen = set()
        clean_lines = []
        for line in traceback.format_exc().split('\n'):
            if line.strip() and line not in seen and 'site-packages' not in line:
                seen.add(line)
                clean_lines.append(line)
        return '\n'.join(clean_lines)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, **context)

    def error(self, message: str, exc_info: bool = True, **context: Any) -> None:
        """
        Failures that need attention

        Example:
            except Exception:
                logger.error("Challenge cleanup failed", exc_info=True)
        """
        self._log(LogLevel.ERROR, message, exc_info=exc_info, **context)

    def security(self, message: str, **context: Any) -> None:
        """
        Rejected authentication attempt. The caller only ever sees a generic
        error, so the precise reason goes here.

        Example:
            logger.security("Biometric authentication rejected", reason="challenge_used")
        """
        self._log(LogLevel.SECURITY, message, **context)

    def great(self, message: str, **context: Any) -> None:
        self._log(LogLevel.GREAT, message, **context)


_loggers: Dict[str, CustomLogger] = {}


def get_logger(name: str) -> CustomLogger:
    """
    Usage:
        from authcore.logging import get_logger
        logger = get_logger(__name__)
    """
    if name not in _loggers:
        _loggers[name] = CustomLogger(name)
    return _loggers[name]
