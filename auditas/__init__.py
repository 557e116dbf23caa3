#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Auditas - resumable, parallel batch checks over large file collections.

Example:
    from auditas import BatchProcessor, Outcome

    processor = BatchProcessor("FLAC Verification", jobs=8, resume=True)
    summary = processor.process_batch(files, check_file)
"""

__version__ = "1.0.0"

from auditas.core import get_config, get_logger, setup_logging
from auditas.processing import (
    BatchProcessor,
    BatchSummary,
    Outcome,
    ResumeCache,
    filter_remaining,
)

__all__ = [
    "__version__",
    "get_config",
    "get_logger",
    "setup_logging",
    "BatchProcessor",
    "BatchSummary",
    "Outcome",
    "ResumeCache",
    "filter_remaining",
]
