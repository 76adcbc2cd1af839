"""
Custom exceptions for the Profile Migration Assistant.

This module defines custom exception classes used throughout
the application for better error handling and reporting.
"""

from typing import Any, Dict, Optional


class ProfileMigrationError(Exception):
    """Base exception class for Profile Migration Assistant errors."""
    
    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(ProfileMigrationError):
    """Raised when there's an error in configuration."""
    pass


class DeviceNotFoundError(ProfileMigrationError):
    """Raised when a host is not present in the management inventory."""
    
    def __init__(self, host_name: str, **kwargs):
        super().__init__(f"Device not found in inventory: {host_name}", **kwargs)
        self.host_name = host_name


class ManagementApiError(ProfileMigrationError):
    """Raised when a call to the management console API fails."""
    
    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retryable: bool = False,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.status = status
        self.retryable = retryable


class RemoteManagementError(ProfileMigrationError):
    """Raised when a remote management command fails on a host."""
    
    def __init__(self, message: str, host: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.host = host


class HostUnreachableError(ProfileMigrationError):
    """Raised when a host does not become reachable within the allowed time."""
    
    def __init__(self, host: str, waited: float, **kwargs):
        super().__init__(f"Host {host} still unreachable after {waited:.0f}s", **kwargs)
        self.host = host
        self.waited = waited


class JobTimeoutError(ProfileMigrationError):
    """Raised when a job does not reach a terminal state in time."""
    pass


class RetryLimitExceededError(ProfileMigrationError):
    """Raised when a job keeps failing after all retry attempts."""
    
    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class NotificationError(ProfileMigrationError):
    """Raised when a notification cannot be delivered."""
    pass
