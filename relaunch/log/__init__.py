"""
Logging module for the supervisor.
This module provides the root logger setup used by the entry point.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
