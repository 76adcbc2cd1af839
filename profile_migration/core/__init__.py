"""
Core module for the Profile Migration Assistant.

This module contains the exception hierarchy and the retry
policy used throughout the application.
"""

from profile_migration.core.exceptions import (
    ProfileMigrationError,
    ConfigurationError,
    DeviceNotFoundError,
    ManagementApiError,
    RemoteManagementError,
    HostUnreachableError,
    JobTimeoutError,
    RetryLimitExceededError,
    NotificationError,
)

__all__ = [
    "ProfileMigrationError",
    "ConfigurationError",
    "DeviceNotFoundError",
    "ManagementApiError",
    "RemoteManagementError",
    "HostUnreachableError",
    "JobTimeoutError",
    "RetryLimitExceededError",
    "NotificationError",
]
