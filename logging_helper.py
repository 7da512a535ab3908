"""
Unified logging helper for consistent logging across the datatables service.

This module provides a centralized logging system so every component
(query factory, pipeline stages, legacy processor, routes) logs through the
same named loggers with the same formatting.

Usage:
    from logging_helper import LoggingHelper, LogType

    # Get a logger instance
    logger = LoggingHelper.get_logger(LogType.MAIN)
    logger.info("Standard logging")

    # Use helper methods for common patterns
    LoggingHelper.log_error_with_trace("Stage failed", exception, LogType.PIPELINE)
    LoggingHelper.log_debug("Context created", {'table': 'orders'})
"""

import logging
import os
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


# Environments in which debug/warning diagnostics are emitted
DEBUG_ENVIRONMENTS = ('local', 'testing')


class LogType(Enum):
    """Enum for the named loggers of the application."""
    MAIN = "canvastack_tables"
    PIPELINE = "canvastack_tables.pipeline"
    SECURITY = "canvastack_tables.security"


class LoggingHelper:
    """
    Unified logging helper for consistent logging across all components.

    This class manages all loggers in the application and provides helper
    methods for common logging patterns to prevent duplicate/inconsistent logging.
    """

    _loggers = {}
    _initialized = False
    _log_dir: Optional[Path] = None
    _environment: Optional[str] = None

    @classmethod
    def initialize(cls, log_dir: Optional[str] = None):
        """
        Initialize all loggers. Should be called once at application startup.

        Args:
            log_dir: Directory where log files will be stored. When neither this
                nor CANVASTACK_LOG_DIR is set, only console handlers are used.
        """
        if cls._initialized:
            return

        log_dir = log_dir or os.getenv('CANVASTACK_LOG_DIR')
        cls._log_dir = Path(log_dir) if log_dir else None

        # Setup all loggers
        cls._loggers[LogType.MAIN] = cls._setup_main_logger()
        cls._loggers[LogType.PIPELINE] = cls._setup_pipeline_logger()
        cls._loggers[LogType.SECURITY] = cls._setup_security_logger()

        cls._initialized = True

    @classmethod
    def get_logger(cls, log_type: LogType = LogType.MAIN) -> logging.Logger:
        """
        Get a logger instance by type.

        Args:
            log_type: The type of logger to retrieve

        Returns:
            The requested logger instance
        """
        if not cls._initialized:
            cls.initialize()
        return cls._loggers.get(log_type, cls._loggers[LogType.MAIN])

    @classmethod
    def configure_environment(cls, environment: Optional[str]) -> None:
        """
        Gate diagnostics on an injected environment name.

        DatatablesService passes its settings here; None clears the setting
        so the CANVASTACK_ENV variable applies again.
        """
        cls._environment = environment.strip().lower() if environment else None

    @classmethod
    def current_environment(cls) -> str:
        """The configured environment, else CANVASTACK_ENV (default production)."""
        if cls._environment is not None:
            return cls._environment
        return os.getenv('CANVASTACK_ENV', 'production').strip().lower()

    @classmethod
    def is_debug_environment(cls) -> bool:
        """True when diagnostics should be emitted (local/testing only)."""
        return cls.current_environment() in DEBUG_ENVIRONMENTS

    # =============================================================================
    # Helper methods for common logging patterns (prevents duplicate logging)
    # =============================================================================

    @classmethod
    def log_error_with_trace(cls, message: str, exception: Exception,
                            log_type: LogType = LogType.MAIN):
        """
        Log an error with full traceback in a single call.

        Args:
            message: Error message to log
            exception: The exception that occurred
            log_type: Which logger to use
        """
        logger = cls.get_logger(log_type)
        logger.error(f"{message}: {exception}", exc_info=exception)

    @classmethod
    def log_debug(cls, message: str, context: Optional[Dict[str, Any]] = None,
                  log_type: LogType = LogType.PIPELINE):
        """
        Log a structured debug entry, only in local/testing environments.

        Args:
            message: Debug message
            context: Optional key/value context appended to the message
            log_type: Which logger to use
        """
        if not cls.is_debug_environment():
            return
        logger = cls.get_logger(log_type)
        if context:
            details = ', '.join(f"{key}={value!r}" for key, value in context.items())
            logger.debug(f"{message} | {details}")
        else:
            logger.debug(message)

    @classmethod
    def log_warning(cls, message: str, context: Optional[Dict[str, Any]] = None,
                    log_type: LogType = LogType.PIPELINE):
        """Log a structured warning entry, only in local/testing environments."""
        if not cls.is_debug_environment():
            return
        logger = cls.get_logger(log_type)
        if context:
            details = ', '.join(f"{key}={value!r}" for key, value in context.items())
            logger.warning(f"{message} | {details}")
        else:
            logger.warning(message)

    @classmethod
    def log_security_event(cls, message: str, context: Optional[Dict[str, Any]] = None):
        """
        Log a security violation to the dedicated security channel.

        Security events are always emitted, regardless of environment.
        """
        logger = cls.get_logger(LogType.SECURITY)
        details = ''
        if context:
            details = ' | ' + ', '.join(f"{key}={value!r}" for key, value in context.items())
        logger.error(f"SECURITY_EXCEPTION: {message}{details}")

    # =============================================================================
    # Private logger setup methods
    # =============================================================================

    @classmethod
    def _file_handler(cls, filename: str, fmt: str) -> RotatingFileHandler:
        handler = RotatingFileHandler(
            cls._log_dir / filename,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=3,
            encoding='utf-8'
        )
        handler.setFormatter(logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S'))
        return handler

    @classmethod
    def _setup_main_logger(cls) -> logging.Logger:
        """Configure and return the main application logger."""
        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()

        logger = logging.getLogger(LogType.MAIN.value)
        logger.setLevel(getattr(logging, log_level, logging.INFO))
        logger.handlers = []
        logger.propagate = False

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
        logger.addHandler(console_handler)

        if cls._log_dir is None:
            return logger

        try:
            cls._log_dir.mkdir(parents=True, exist_ok=True)
            logger.addHandler(cls._file_handler(
                'canvastack_tables.log', '%(asctime)s | %(levelname)s | %(message)s'))

            # Separate error file handler
            error_handler = cls._file_handler(
                'errors.log', '%(asctime)s | %(levelname)s | %(message)s')
            error_handler.setLevel(logging.ERROR)
            logger.addHandler(error_handler)

        except OSError as e:
            logger.warning(f"Could not create file handlers: {e}")

        return logger

    @classmethod
    def _setup_pipeline_logger(cls) -> logging.Logger:
        """Configure the datatables pipeline logger (diagnostics are gated by environment)."""
        log_level = os.getenv('LOG_LEVEL', 'DEBUG').upper()

        logger = logging.getLogger(LogType.PIPELINE.value)
        logger.setLevel(getattr(logging, log_level, logging.INFO))
        logger.handlers = []
        logger.propagate = False

        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[DT %(levelname)s] %(message)s'))
        logger.addHandler(handler)

        return logger

    @classmethod
    def _setup_security_logger(cls) -> logging.Logger:
        """Configure the security channel used for access violations."""
        logger = logging.getLogger(LogType.SECURITY.value)
        logger.setLevel(logging.INFO)
        logger.handlers = []
        logger.propagate = False

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter('[SECURITY] %(message)s'))
        logger.addHandler(console_handler)

        if cls._log_dir is None:
            return logger

        try:
            cls._log_dir.mkdir(parents=True, exist_ok=True)
            logger.addHandler(cls._file_handler('security.log', '%(asctime)s | %(message)s'))
        except OSError as e:
            logger.warning(f"Could not create security file handler: {e}")

        return logger


# Initialize loggers on module import
LoggingHelper.initialize()

logger = LoggingHelper.get_logger(LogType.MAIN)
