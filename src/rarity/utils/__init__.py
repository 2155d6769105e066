"""Utility modules for RARity."""

from rarity.utils.logging import log_rss_memory, setup_logging, write_run_log

__all__ = ["log_rss_memory", "setup_logging", "write_run_log"]
