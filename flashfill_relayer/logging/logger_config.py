#!/usr/bin/env python3
"""
CENTRALIZED LOGGING CONFIGURATION
==================================

Purpose:
- Setup per-component loggers with rotating file handlers
- Isolate logs by component: relayer_service, order_store, fill_executor,
  order_processor, batch_scheduler, fill_dispatcher, cron, api, chain
- Each component has its own rotating log file (50MB, 10 backups)
- All logs also go to console with clean formatting

USAGE:
    from flashfill_relayer.logging.logger_config import setup_application_logging, get_component_logger

    # Setup once in main
    setup_application_logging(log_dir="logs", level="INFO")

    # Get logger in each module
    logger = get_component_logger("fill_executor")
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Dict

# Standard format: [TIMESTAMP] [LEVEL] [COMPONENT] [MESSAGE]
LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s'
LOG_DATETIME_FORMAT = '%Y-%m-%d %H:%M:%S'

# Key -> logger name
COMPONENT_NAMES = {
    # ---- Service / API ----
    'relayer_service': 'RELAYER_SERVICE',
    'api':             'RELAYER_API',
    'cron':            'CRON_RUNNER',

    # ---- Core execution ----
    'order_store':     'ORDER_STORE',
    'fill_executor':   'FILL_EXECUTOR',
    'order_processor': 'ORDER_PROCESSOR',
    'batch_scheduler': 'BATCH_SCHEDULER',
    'fill_dispatcher': 'FILL_DISPATCHER',

    # ---- Chain gateway (uses __name__) ----
    'chain':           'flashfill_relayer.chain',

    # ---- Core / Config (uses __name__) ----
    'core':            'flashfill_relayer.core',
}

_log_dir: Optional[Path] = None
_log_level: str = 'INFO'
_console_handler: Optional[logging.StreamHandler] = None
_component_handlers: Dict[str, logging.handlers.RotatingFileHandler] = {}


def setup_application_logging(
    log_dir: str = 'logs',
    level: str = 'INFO',
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 10,
    quiet_uvicorn: bool = True
) -> None:
    """
    Initialize application-wide logging with per-component rotating handlers.

    This MUST be called once at application startup (in main()).

    Args:
        log_dir: Directory to store log files
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        max_bytes: Max size of a log file before rotation (default 50MB)
        backup_count: Number of backup files to keep (default 10)
        quiet_uvicorn: Suppress uvicorn access logs (default True)
    """
    global _log_dir, _log_level, _console_handler

    _log_dir = Path(log_dir)
    _log_level = level
    _log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATETIME_FORMAT)

    _console_handler = logging.StreamHandler(sys.stdout)
    _console_handler.setLevel(getattr(logging, level.upper()))
    _console_handler.setFormatter(formatter)
    root_logger.addHandler(_console_handler)

    if quiet_uvicorn:
        logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    _setup_component_handlers(max_bytes, backup_count, formatter)

    # Catch-all file so nothing outside the component tree is lost
    root_fh = logging.handlers.RotatingFileHandler(
        _log_dir / "application.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8',
    )
    root_fh.setLevel(getattr(logging, level.upper()))
    root_fh.setFormatter(formatter)
    root_logger.addHandler(root_fh)


def _setup_component_handlers(max_bytes: int, backup_count: int, formatter: logging.Formatter) -> None:
    """
    Create a rotating file handler per component and attach it immediately,
    so modules using logging.getLogger(__name__) under a registered parent
    are captured too.
    """
    for key, component_name in COMPONENT_NAMES.items():
        handler = logging.handlers.RotatingFileHandler(
            _log_dir / f"{key}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        handler.setLevel(getattr(logging, _log_level.upper()))
        handler.setFormatter(formatter)

        _component_handlers[component_name] = handler

        logger = logging.getLogger(component_name)
        if not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers):
            logger.addHandler(handler)


def get_component_logger(component_key: str) -> logging.Logger:
    """
    Get or create a logger for a specific component.

    Example:
        logger = get_component_logger('batch_scheduler')
        logger.info("Cycle started")
    """
    if component_key not in COMPONENT_NAMES:
        raise ValueError(f"Unknown component: {component_key}. Must be one of {list(COMPONENT_NAMES.keys())}")

    component_name = COMPONENT_NAMES[component_key]
    logger = logging.getLogger(component_name)

    if not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers):
        if component_name in _component_handlers:
            logger.addHandler(_component_handlers[component_name])

    return logger


def get_log_files() -> Dict[str, Path]:
    """Paths of all active component log files."""
    return {
        name: Path(handler.baseFilename)
        for name, handler in _component_handlers.items()
    }
