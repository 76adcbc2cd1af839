"""
Profile Migration Assistant

Drives a one-time Windows user-profile migration between two domain
machines through a ConfigMgr site: pairing, capture, restore and
notification.
"""

__version__ = "0.1.0"
__author__ = "Migration Assistant Team"

from profile_migration.models.config import MigrationConfig
from profile_migration.models.session import MigrationSession, MigrationStatus

__all__ = [
    "MigrationConfig",
    "MigrationSession",
    "MigrationStatus",
]
