"""
Migration orchestrator module.

This module provides the orchestration logic: pairing the machines and
driving the capture and restore jobs.
"""

from .job_driver import JobDriver
from .orchestrator import MigrationOrchestrator
from .pairing import PairingManager

__all__ = [
    "JobDriver",
    "MigrationOrchestrator",
    "PairingManager",
]
