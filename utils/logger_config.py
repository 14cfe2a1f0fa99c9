"""
Logging setup shared by the photogrammetric measurement core.

Every module obtains a child of the single ``photogrammetry_core`` logger via
``get_logger(__name__)`` so that level and handlers are controlled in one place.
The root is configured with a stdout handler on first import; applications may
reconfigure the level later with ``LoggerConfig.set_level``.
"""

import logging
import sys
from typing import Optional, Dict, Any, Union
from pathlib import Path


class LoggerConfig:
    """Owns the ``photogrammetry_core`` logger and its handlers."""

    _configured = False
    _root_logger_name = 'photogrammetry_core'
    _default_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @classmethod
    def setup_root_logger(
        cls,
        level: Union[int, str] = logging.INFO,
        format_string: Optional[str] = None,
        log_file: Optional[Path] = None
    ) -> logging.Logger:
        """
        Attach handlers to the package logger. Later calls return it unchanged.

        Args:
            level: Numeric level or a name such as "DEBUG"
            format_string: Record format; a timestamped default is used if None
            log_file: Also write records to this file, creating its directory

        Returns:
            logging.Logger: The package logger
        """
        if cls._configured:
            return logging.getLogger(cls._root_logger_name)

        level = cls.resolve_level(level)
        package_logger = logging.getLogger(cls._root_logger_name)
        package_logger.setLevel(level)
        package_logger.handlers.clear()

        formatter = logging.Formatter(format_string or cls._default_format)
        handlers = [logging.StreamHandler(sys.stdout)]
        if log_file is not None:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))

        for handler in handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
            package_logger.addHandler(handler)

        # Records stop here; the host application's root logger stays untouched
        package_logger.propagate = False
        cls._configured = True

        package_logger.debug(f"Package logger ready at {logging.getLevelName(level)}")
        if log_file:
            package_logger.info(f"Also logging to {log_file}")

        return package_logger

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Child of the package logger for ``name``.

        Names already under ``photogrammetry_core`` are used as given.
        """
        if not cls._configured:
            cls.setup_root_logger()

        if name.startswith(cls._root_logger_name):
            full_name = name
        else:
            full_name = f"{cls._root_logger_name}.{name}"
        logger = logging.getLogger(full_name)
        logger.propagate = True

        return logger

    @classmethod
    def set_level(cls, level: Union[int, str]) -> None:
        """Set the level of the package logger and each of its handlers."""
        level = cls.resolve_level(level)
        package_logger = logging.getLogger(cls._root_logger_name)
        package_logger.setLevel(level)

        for handler in package_logger.handlers:
            handler.setLevel(level)

        package_logger.info(f"Log level set to {logging.getLevelName(level)}")

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def get_configuration_info(cls) -> Dict[str, Any]:
        """
        Describe the package logger.

        Returns:
            Dict[str, Any]: ``configured`` flag and, once configured, the
                logger name, its level and the type and level of each handler
        """
        if not cls._configured:
            return {'configured': False}

        package_logger = logging.getLogger(cls._root_logger_name)
        handlers = [
            {'type': type(handler).__name__, 'level': logging.getLevelName(handler.level)}
            for handler in package_logger.handlers
        ]
        return {
            'configured': True,
            'root_logger_name': cls._root_logger_name,
            'level': logging.getLevelName(package_logger.level),
            'handlers': handlers
        }

    @staticmethod
    def resolve_level(level: Union[int, str]) -> int:
        """Map a level name such as "DEBUG" or a numeric level to its integer value."""
        if isinstance(level, int):
            return level
        resolved = logging.getLevelName(str(level).upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown logging level: {level}")
        return resolved


def get_logger(name: str = None) -> logging.Logger:
    """
    Module-level shortcut for ``LoggerConfig.get_logger``.

    Args:
        name: Usually ``__name__``; the caller's module name when omitted
    """
    if name is None:
        import inspect
        frame = inspect.currentframe().f_back
        name = frame.f_globals.get('__name__', 'unknown')

    return LoggerConfig.get_logger(name)


def initialize_default_logger():
    if not LoggerConfig.is_configured():
        LoggerConfig.setup_root_logger()


initialize_default_logger()
