"""
Session models for the Profile Migration Assistant.

This module defines Pydantic models for inventory devices, migration
pairings, deployment status snapshots, job runs and migration sessions.
"""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class MigrationBehavior(IntEnum):
    """Account selection of a computer association."""
    CAPTURE_RESTORE_ALL = 0
    CAPTURE_RESTORE_SPECIFIED = 1


class DeploymentStatusCode(IntEnum):
    """Deployment status codes reported by the management system."""
    SUCCESS = 1
    IN_PROGRESS = 2
    WAITING = 4
    FAILED = 5


class JobPhase(str, Enum):
    """Lifecycle of a job as observed by the job driver."""
    NOT_STARTED = "not_started"
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


class MigrationStatus(str, Enum):
    """Migration session status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Device(BaseModel):
    """A client machine as recorded in the management inventory."""
    model_config = ConfigDict(frozen=True)

    resource_id: int
    name: str
    domain: Optional[str] = None
    is_client: bool = True


class Association(BaseModel):
    """An existing computer association record."""
    model_config = ConfigDict(frozen=True)

    source_resource_id: int
    restore_resource_id: int
    source_name: Optional[str] = None
    restore_name: Optional[str] = None

    def references(self, resource_id: int) -> bool:
        """Whether the association involves the given device."""
        return resource_id in (self.source_resource_id, self.restore_resource_id)


class MigrationPair(BaseModel):
    """Source/target pairing created for one migration run."""
    model_config = ConfigDict(frozen=True)

    source: Device
    target: Device
    behavior: MigrationBehavior = MigrationBehavior.CAPTURE_RESTORE_ALL


class DeploymentStatus(BaseModel):
    """Snapshot of a deployment status record for one host."""
    model_config = ConfigDict(frozen=True)

    code: Union[DeploymentStatusCode, int]
    description: str = ""
    last_status_time: Optional[datetime] = None

    @property
    def phase(self) -> Optional[JobPhase]:
        """Job phase for known status codes, None for codes the tool does not know."""
        return _PHASE_BY_CODE.get(self.code)

    @property
    def is_success(self) -> bool:
        return self.code == DeploymentStatusCode.SUCCESS

    @property
    def is_failed(self) -> bool:
        return self.code == DeploymentStatusCode.FAILED

    def label(self) -> str:
        """Human-readable status name."""
        try:
            return DeploymentStatusCode(self.code).name
        except ValueError:
            return f"UNKNOWN({self.code})"


_PHASE_BY_CODE = {
    DeploymentStatusCode.SUCCESS: JobPhase.SUCCESS,
    DeploymentStatusCode.IN_PROGRESS: JobPhase.IN_PROGRESS,
    DeploymentStatusCode.WAITING: JobPhase.WAITING,
    DeploymentStatusCode.FAILED: JobPhase.FAILED,
}


class PhaseTransition(BaseModel):
    """A recorded change of job phase."""
    phase: JobPhase
    timestamp: datetime = Field(default_factory=datetime.now)
    description: str = ""


class JobRun(BaseModel):
    """Observed execution of one job against one host."""
    job_name: str
    host: str
    package_id: str
    collection_id: str
    phase: JobPhase = JobPhase.NOT_STARTED
    history: List[PhaseTransition] = Field(default_factory=list)
    polls: int = 0
    failures: int = 0
    cleanups: int = 0
    membership_added: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # seconds

    def start(self):
        """Mark the run as started."""
        self.start_time = datetime.now()

    def transition(self, phase: JobPhase, description: str = "") -> bool:
        """Record a phase change. Returns False when the phase did not change."""
        if phase == self.phase:
            return False
        self.phase = phase
        self.history.append(PhaseTransition(phase=phase, description=description))
        return True

    def finish(self):
        """Stamp the end time and duration."""
        self.end_time = datetime.now()
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()

    @property
    def phases(self) -> List[JobPhase]:
        return [transition.phase for transition in self.history]


class MigrationSession(BaseModel):
    """Complete migration session."""
    id: str
    source_name: str
    target_name: str
    status: MigrationStatus = MigrationStatus.PENDING
    pair: Optional[MigrationPair] = None
    capture: Optional[JobRun] = None
    restore: Optional[JobRun] = None
    current_step: Optional[str] = None
    error: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # seconds
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def start(self):
        """Start the migration session."""
        self.status = MigrationStatus.RUNNING
        self.start_time = datetime.now()

    def complete(self):
        """Complete the migration session."""
        self.status = MigrationStatus.COMPLETED
        self._stamp_end()

    def fail(self, error: str):
        """Fail the migration session."""
        self.status = MigrationStatus.FAILED
        self.error = error
        self._stamp_end()

    def _stamp_end(self):
        self.end_time = datetime.now()
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()
