#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Logging configuration for Auditas.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logging(
    name: str = "auditas",
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    process_id: Optional[int] = None,
    log_dir: Optional[Path] = None
) -> logging.Logger:
    """
    Set up logging for the application.

    Console output goes to stderr so progress rows on stdout are not
    interleaved with log messages.

    Args:
        name: Logger name
        level: Logging level (logging.DEBUG, logging.INFO, etc.)
        log_file: Path to log file (if None, a timestamped file in log_dir)
        log_to_console: Whether to log to console
        log_to_file: Whether to log to file
        process_id: Optional process ID to include in logs
        log_dir: Directory for the default log file (default: ./logs)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if process_id is not None:
        fmt = f'%(asctime)s - [Process-{process_id}] - %(name)s - %(levelname)s - %(message)s'
    else:
        fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    formatter = logging.Formatter(fmt)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_to_file:
        if log_file is None:
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            base = Path(log_dir) if log_dir else Path("logs")
            if process_id is not None:
                log_file = base / f"auditas_process_{process_id}_{timestamp}.log"
            else:
                log_file = base / f"auditas_{timestamp}.log"

        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "auditas") -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
