"""
Configuration models for the Profile Migration Assistant.

This module defines Pydantic models for the site, jobs, polling policy,
remote management, notification and logging settings. All models are
frozen: a configuration is built once and passed into the components.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from profile_migration.core.error_handler import RetryConfig
from profile_migration.core.exceptions import ConfigurationError
from profile_migration.utils.helpers import load_config_file


class FrozenModel(BaseModel):
    """Base model for immutable configuration sections."""
    model_config = ConfigDict(frozen=True, extra="forbid")


class SiteConfig(FrozenModel):
    """Management site and SMS Provider connection settings."""
    site_code: str = Field(..., min_length=3, max_length=3)
    provider_host: str
    admin_service_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    bearer_token: Optional[str] = None
    verify_ssl: bool = True
    request_timeout: float = Field(default=60.0, gt=0)

    @field_validator('site_code')
    @classmethod
    def site_code_upper(cls, v):
        return v.upper()

    @model_validator(mode='before')
    @classmethod
    def default_admin_service_url(cls, data):
        if isinstance(data, dict) and not data.get('admin_service_url') and data.get('provider_host'):
            data = {**data, 'admin_service_url': f"https://{data['provider_host']}/AdminService"}
        return data


class JobConfig(FrozenModel):
    """A collection-targeted package deployment driven by the job driver."""
    name: str
    collection_id: str
    package_id: str
    program_name: Optional[str] = None

    @field_validator('collection_id', 'package_id')
    @classmethod
    def ids_upper(cls, v):
        if not v or not v.strip():
            raise ValueError('Collection and package IDs cannot be empty')
        return v.strip().upper()


class RetryPolicy(FrozenModel):
    """Bounded retry policy for failed jobs."""
    max_attempts: int = Field(default=3, ge=1, le=50)
    base_delay: float = Field(default=60.0, ge=0)
    max_delay: float = Field(default=900.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)

    def to_retry_config(self) -> RetryConfig:
        """Convert to the retry configuration used by the error handler."""
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            exponential_base=self.backoff_factor,
            jitter=False,
        )


class PollingConfig(FrozenModel):
    """Timing of the liveness gate and the job status polling loop (seconds)."""
    initial_grace: float = Field(default=20.0, ge=0)
    poll_interval: float = Field(default=60.0, gt=0)
    stale_state_wait: float = Field(default=60.0, ge=0)
    liveness_interval: float = Field(default=300.0, gt=0)
    liveness_timeout: Optional[float] = Field(default=86400.0, gt=0)
    job_timeout: Optional[float] = Field(default=86400.0, gt=0)
    max_missing_polls: int = Field(default=60, ge=1)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class RemoteConfig(FrozenModel):
    """WinRM settings used to manage client hosts."""
    username: Optional[str] = None
    password: Optional[str] = None
    transport: str = "ntlm"
    port: int = Field(default=5985, ge=1, le=65535)
    use_ssl: bool = False
    server_cert_validation: str = "validate"
    service_name: str = "CcmExec"
    scheduler_namespace: str = r"root\ccm\scheduler"
    probe_port: int = Field(default=135, ge=1, le=65535)
    probe_timeout: float = Field(default=5.0, gt=0)


class NotificationConfig(FrozenModel):
    """Outbound email notification settings."""
    enabled: bool = True
    smtp_server: str = "localhost"
    smtp_port: int = Field(default=25, ge=1, le=65535)
    sender: str = "profile-migration@localhost"
    recipients: List[str] = Field(default_factory=list)
    subject_prefix: str = "[Profile Migration]"
    use_tls: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)

    @model_validator(mode='after')
    def recipients_required_when_enabled(self):
        if self.enabled and not self.recipients:
            raise ValueError('At least one recipient is required when notifications are enabled')
        return self


class LoggingConfig(FrozenModel):
    """Console and transcript logging settings."""
    level: str = "INFO"
    log_dir: str = "logs"
    rich_console: bool = True
    structured: bool = False

    @field_validator('level')
    @classmethod
    def valid_level(cls, v):
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f'Invalid log level: {v}')
        return level


class MigrationConfig(FrozenModel):
    """Complete configuration of a profile migration run."""
    site: SiteConfig
    capture: JobConfig
    restore: JobConfig
    polling: PollingConfig = Field(default_factory=PollingConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    notification: NotificationConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode='after')
    def capture_and_restore_differ(self):
        if self.capture.collection_id == self.restore.collection_id:
            raise ValueError('Capture and restore jobs must target different collections')
        return self


def build_migration_config(data: Dict[str, Any]) -> MigrationConfig:
    """Validate raw configuration data, raising ConfigurationError on failure."""
    try:
        return MigrationConfig.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False)}
        ) from e


def load_migration_config(path: Union[str, Path]) -> MigrationConfig:
    """Load and validate a YAML or JSON configuration file."""
    try:
        data = load_config_file(path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(str(e)) from e
    return build_migration_config(data)
