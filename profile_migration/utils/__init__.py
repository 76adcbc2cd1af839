"""
Utilities module for the Profile Migration Assistant.

This module contains utility functions and helper classes
used throughout the application.
"""

from profile_migration.utils.helpers import (
    generate_session_id,
    normalize_host_name,
    format_duration,
    safe_filename,
    load_config_file,
    sanitize_dict,
)
from profile_migration.utils.logging import (
    setup_logging,
    get_logger,
    transcript_path,
)

__all__ = [
    # Helper functions
    "generate_session_id",
    "normalize_host_name",
    "format_duration",
    "safe_filename",
    "load_config_file",
    "sanitize_dict",
    # Logging utilities
    "setup_logging",
    "get_logger",
    "transcript_path",
]
