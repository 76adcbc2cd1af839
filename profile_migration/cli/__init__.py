"""
CLI module for the Profile Migration Assistant.

This module provides command-line interface functionality
using Click and Rich.
"""

from profile_migration.cli.main import main

__all__ = ["main"]
