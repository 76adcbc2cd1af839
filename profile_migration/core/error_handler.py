"""
Error handling for the Profile Migration Assistant.

``ErrorHandler`` sorts exceptions into categories and severities and logs
them with structured context. ``RetryHandler`` re-runs coroutines under a
bounded retry policy with exponential backoff; the same delay formula is
used between attempts of a failed migration job.
"""

import asyncio
import logging
import random
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Type

from .exceptions import (
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

SleepFunc = Callable[[float], Awaitable[None]]


class ErrorCategory(str, Enum):
    """Where an error came from."""
    CONFIGURATION = "configuration"
    INVENTORY = "inventory"
    MANAGEMENT_API = "management_api"
    REMOTE = "remote"
    CONNECTIVITY = "connectivity"
    JOB = "job"
    NOTIFICATION = "notification"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """How bad an error is; picks the log level."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """What the application was doing when an error occurred."""
    timestamp: datetime = field(default_factory=datetime.now)
    operation: Optional[str] = None
    step: Optional[str] = None
    session_id: Optional[str] = None
    host: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RetryConfig:
    """Bounds and backoff of a retry loop."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: List[Type[Exception]] = field(default_factory=list)


@dataclass
class ErrorInfo:
    """An error together with its classification."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    context: ErrorContext
    remediation_steps: List[str]
    traceback_str: str
    retry_count: int = 0
    is_recoverable: bool = True


class _Rule(NamedTuple):
    category: ErrorCategory
    severity: ErrorSeverity
    recoverable: bool


# Checked in order, first isinstance match wins
_RULES: List[tuple] = [
    (ConfigurationError, _Rule(ErrorCategory.CONFIGURATION, ErrorSeverity.HIGH, False)),
    (DeviceNotFoundError, _Rule(ErrorCategory.INVENTORY, ErrorSeverity.CRITICAL, False)),
    (ManagementApiError, _Rule(ErrorCategory.MANAGEMENT_API, ErrorSeverity.MEDIUM, True)),
    (RemoteManagementError, _Rule(ErrorCategory.REMOTE, ErrorSeverity.MEDIUM, True)),
    (HostUnreachableError, _Rule(ErrorCategory.CONNECTIVITY, ErrorSeverity.HIGH, True)),
    (RetryLimitExceededError, _Rule(ErrorCategory.JOB, ErrorSeverity.CRITICAL, False)),
    (JobTimeoutError, _Rule(ErrorCategory.JOB, ErrorSeverity.HIGH, False)),
    (NotificationError, _Rule(ErrorCategory.NOTIFICATION, ErrorSeverity.LOW, True)),
    (ProfileMigrationError, _Rule(ErrorCategory.UNKNOWN, ErrorSeverity.HIGH, False)),
    (OSError, _Rule(ErrorCategory.CONNECTIVITY, ErrorSeverity.MEDIUM, True)),
]

_FALLBACK_RULE = _Rule(ErrorCategory.UNKNOWN, ErrorSeverity.MEDIUM, True)

REMEDIATION: Dict[ErrorCategory, List[str]] = {
    ErrorCategory.CONFIGURATION: [
        "Check the configuration file syntax and required fields",
        "Verify site code, collection IDs and package IDs",
    ],
    ErrorCategory.INVENTORY: [
        "Verify the host name is spelled correctly",
        "Check that the machine is a registered client of the site",
    ],
    ErrorCategory.MANAGEMENT_API: [
        "Verify the SMS Provider is online and the AdminService is enabled",
        "Check the account has permissions on the collections involved",
    ],
    ErrorCategory.REMOTE: [
        "Verify WinRM is enabled on the host",
        "Check the account is a local administrator on the host",
    ],
    ErrorCategory.CONNECTIVITY: [
        "Check the host is powered on and connected to the network",
        "Verify firewall rules allow the probe port",
    ],
    ErrorCategory.JOB: [
        "Review the client logs (smsts.log, loadstate.log, scanstate.log)",
        "Check the state migration point has free space",
    ],
    ErrorCategory.NOTIFICATION: [
        "Verify the SMTP server name and port",
    ],
    ErrorCategory.UNKNOWN: [
        "Check the transcript for the full traceback",
    ],
}

_LOG_METHODS = {
    ErrorSeverity.CRITICAL: "critical",
    ErrorSeverity.HIGH: "error",
    ErrorSeverity.MEDIUM: "warning",
    ErrorSeverity.LOW: "info",
}


def compute_backoff_delay(config: RetryConfig, attempt: int) -> float:
    """
    Delay to wait after the given (zero based) attempt.

    Grows by ``exponential_base`` per attempt and never exceeds ``max_delay``.
    With jitter enabled the delay is scaled into [50%, 100%] of that value.
    """
    delay = min(config.base_delay * config.exponential_base ** attempt, config.max_delay)
    if config.jitter:
        delay *= 0.5 + random.random() * 0.5
    return delay


class ErrorHandler:
    """Classifies errors and logs them at a level matching their severity."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _rule_for(error: Exception) -> _Rule:
        for exc_type, rule in _RULES:
            if isinstance(error, exc_type):
                return rule
        return _FALLBACK_RULE

    def categorize_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """
        Classify an error.

        Management API errors are recoverable only when flagged retryable.
        """
        rule = self._rule_for(error)
        recoverable = error.retryable if isinstance(error, ManagementApiError) else rule.recoverable
        return ErrorInfo(
            error=error,
            category=rule.category,
            severity=rule.severity,
            context=context or ErrorContext(),
            remediation_steps=list(REMEDIATION.get(rule.category, [])),
            traceback_str=traceback.format_exc(),
            is_recoverable=recoverable,
        )

    def handle_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        retry_count: int = 0,
    ) -> ErrorInfo:
        """Classify and log an error."""
        info = self.categorize_error(error, context)
        info.retry_count = retry_count
        self._log_error(info)
        return info

    def _log_error(self, info: ErrorInfo) -> None:
        ctx = info.context
        extra = {
            "error_type": type(info.error).__name__,
            "error_message": str(info.error),
            "category": info.category.value,
            "severity": info.severity.value,
            "operation": ctx.operation,
            "step": ctx.step,
            "session_id": ctx.session_id,
            "host": ctx.host,
            "retry_count": info.retry_count,
            "is_recoverable": info.is_recoverable,
        }
        log = getattr(self.logger, _LOG_METHODS[info.severity])
        log(f"{extra['error_type']}: {extra['error_message']}", extra=extra)


class RetryHandler:
    """Runs a coroutine function again after retryable failures."""

    def __init__(
        self,
        error_handler: Optional[ErrorHandler] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(__name__)
        self._sleep = sleep

    @staticmethod
    def is_retryable(error: Exception, config: RetryConfig) -> bool:
        """Check whether an exception may be retried under the given config."""
        if isinstance(error, ManagementApiError) and not error.retryable:
            return False
        if config.retryable_exceptions:
            return isinstance(error, tuple(config.retryable_exceptions))
        return True

    async def retry_with_backoff(
        self,
        func: Callable,
        *args,
        retry_config: Optional[RetryConfig] = None,
        context: Optional[ErrorContext] = None,
        **kwargs
    ) -> Any:
        """
        Await ``func(*args, **kwargs)``, retrying retryable failures.

        At most ``retry_config.max_attempts`` calls are made. Each failure is
        logged through the error handler; the last one, or the first one
        that is not retryable, is re-raised.
        """
        config = retry_config or RetryConfig()

        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                attempt += 1
                self.error_handler.handle_error(e, context, retry_count=attempt)

                if not self.is_retryable(e, config):
                    self.logger.info(f"{type(e).__name__} is not retryable, giving up")
                    raise
                if attempt >= config.max_attempts:
                    raise

                delay = compute_backoff_delay(config, attempt - 1)
                self.logger.info(f"Attempt {attempt}/{config.max_attempts} failed, retrying in {delay:.2f}s")
                await self._sleep(delay)


def create_api_retry_config() -> RetryConfig:
    """Create retry configuration for management API calls."""
    return RetryConfig(
        max_attempts=5,
        base_delay=2.0,
        max_delay=30.0,
        retryable_exceptions=[ManagementApiError, OSError, asyncio.TimeoutError]
    )


def create_remote_retry_config() -> RetryConfig:
    """Create retry configuration for WinRM calls to a host that may still be starting up."""
    return RetryConfig(
        max_attempts=4,
        base_delay=30.0,
        max_delay=120.0,
        retryable_exceptions=[RemoteManagementError]
    )
