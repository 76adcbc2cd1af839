"""
Data models for the Profile Migration Assistant.

This module contains all Pydantic models used throughout the application
for configuration, session management, and data validation.
"""

from profile_migration.models.config import (
    MigrationConfig,
    SiteConfig,
    JobConfig,
    RetryPolicy,
    PollingConfig,
    RemoteConfig,
    NotificationConfig,
    LoggingConfig,
    build_migration_config,
    load_migration_config,
)
from profile_migration.models.session import (
    MigrationBehavior,
    DeploymentStatusCode,
    DeploymentStatus,
    JobPhase,
    JobRun,
    Device,
    Association,
    MigrationPair,
    MigrationSession,
    MigrationStatus,
)

__all__ = [
    # Configuration models
    "MigrationConfig",
    "SiteConfig",
    "JobConfig",
    "RetryPolicy",
    "PollingConfig",
    "RemoteConfig",
    "NotificationConfig",
    "LoggingConfig",
    "build_migration_config",
    "load_migration_config",
    # Session models
    "MigrationBehavior",
    "DeploymentStatusCode",
    "DeploymentStatus",
    "JobPhase",
    "JobRun",
    "Device",
    "Association",
    "MigrationPair",
    "MigrationSession",
    "MigrationStatus",
]
