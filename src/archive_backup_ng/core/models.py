"""Result types shared by the pipeline, dispatcher and aggregator.

Statuses merge by severity: FAILURE > WARNING > SUCCESS. SKIPPED is neutral
and never worsens an aggregate.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional


class StageStatus(Enum):
    """Outcome of a single pipeline stage."""

    SUCCESS = "success"
    WARNING = "warning"
    FAILURE = "failure"
    SKIPPED = "skipped"

    @property
    def severity(self) -> int:
        return _SEVERITY[self.value]


class JobStatus(Enum):
    """Final status of a job."""

    SUCCESS = "success"
    WARNINGS = "warnings"
    FAILURE = "failure"
    SKIPPED = "skipped"

    @property
    def severity(self) -> int:
        return _SEVERITY[self.value]


class RunStatus(Enum):
    """Terminal status of a run, mapped to a process exit code."""

    SUCCESS = "success"
    WARNINGS = "warnings"
    FAILURE = "failure"
    SIMULATED_COMPLETE = "simulated-complete"

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self]


class Stage(Enum):
    """Pipeline stages in execution order."""

    PRE_HOOK = "pre-hook"
    SNAPSHOT = "snapshot"
    CREATE_ARCHIVE = "create-archive"
    CHECKSUM = "checksum"
    VERIFY_LOCAL = "verify-local"
    TRANSFER = "transfer"
    LOCAL_RETENTION = "local-retention"
    DELETE_STAGED = "delete-staged"
    POST_HOOK = "post-hook"


_SEVERITY = {
    "skipped": -1,
    "success": 0,
    "warning": 1,
    "warnings": 1,
    "failure": 2,
}

EXIT_CODES = {
    RunStatus.SUCCESS: 0,
    RunStatus.SIMULATED_COMPLETE: 0,
    RunStatus.WARNINGS: 1,
    RunStatus.FAILURE: 2,
}

EXIT_CONFIG_ERROR = 3

_STAGE_TO_JOB = {
    StageStatus.SUCCESS: JobStatus.SUCCESS,
    StageStatus.WARNING: JobStatus.WARNINGS,
    StageStatus.FAILURE: JobStatus.FAILURE,
}


def worst_job_status(statuses: Iterable[JobStatus]) -> JobStatus:
    """Merge job statuses; SKIPPED entries are ignored, empty input is SUCCESS."""
    worst = JobStatus.SUCCESS
    for status in statuses:
        if status.severity > worst.severity:
            worst = status
    return worst


@dataclass
class StageOutcome:
    """Status of one stage of a job."""

    stage: Stage
    status: StageStatus
    message: str = ""


@dataclass
class ArchiveArtifact:
    """Files making up a freshly created archive instance."""

    instance_key: str
    primary: Path
    parts: list[Path] = field(default_factory=list)
    checksum_file: Optional[Path] = None
    digests: dict[str, str] = field(default_factory=dict)

    @property
    def data_files(self) -> list[Path]:
        """Archive payload files (the primary file or its volume parts)."""
        return list(self.parts) if self.parts else [self.primary]

    @property
    def files(self) -> list[Path]:
        files = self.data_files
        if self.checksum_file is not None:
            files.append(self.checksum_file)
        return files

    @property
    def size(self) -> int:
        total = 0
        for path in self.data_files:
            try:
                total += path.stat().st_size
            except OSError:
                pass
        return total


@dataclass
class TransferResult:
    """Outcome of transferring one archive to one target."""

    target_name: str
    success: bool = False
    remote_locations: list[str] = field(default_factory=list)
    bytes_transferred: int = 0
    error: Optional[str] = None
    retry_attempts: int = 0
    transient: bool = False
    warnings: list[str] = field(default_factory=list)
    deleted_remote: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class TransferSummary:
    """Aggregated transfer results of one job, sorted by target name."""

    results: list[TransferResult] = field(default_factory=list)
    tolerate_partial: bool = False

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def succeeded(self) -> bool:
        """Whether the transfer counts as successful for the job.

        Every target must succeed unless partial failure is tolerated, in
        which case one successful target is enough.
        """
        if not self.results:
            return False
        if self.tolerate_partial:
            return self.succeeded_count > 0
        return self.failed_count == 0

    @property
    def status(self) -> StageStatus:
        if not self.succeeded:
            return StageStatus.FAILURE
        if self.failed_count or any(r.warnings for r in self.results):
            return StageStatus.WARNING
        return StageStatus.SUCCESS

    def describe(self) -> str:
        return (
            f"{self.succeeded_count}/{len(self.results)} target(s) succeeded"
            + (", partial failure tolerated" if self.tolerate_partial else "")
        )


@dataclass
class JobResult:
    """Accumulated outcome of one job.

    Owned by the pipeline while the job runs, read-only once finalized.
    """

    job_name: str
    status: JobStatus = JobStatus.SUCCESS
    stages: list[StageOutcome] = field(default_factory=list)
    transfers: list[TransferResult] = field(default_factory=list)
    error: Optional[str] = None
    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0
    archive_files: list[str] = field(default_factory=list)
    deleted_local: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    finalized: bool = False

    @classmethod
    def skipped(cls, job_name: str, reason: str) -> "JobResult":
        result = cls(job_name=job_name, status=JobStatus.SKIPPED, error=reason)
        result.completed_at = result.started_at
        result.finalized = True
        return result

    def record(self, stage: Stage, status: StageStatus, message: str = "") -> None:
        if self.finalized:
            raise RuntimeError(f"Job result for {self.job_name} is already finalized")
        self.stages.append(StageOutcome(stage, status, message))

    def outcome(self, stage: Stage) -> Optional[StageOutcome]:
        for outcome in self.stages:
            if outcome.stage is stage:
                return outcome
        return None

    def note(self, message: str) -> None:
        self.messages.append(message)

    @property
    def worst_stage_status(self) -> StageStatus:
        worst = StageStatus.SUCCESS
        for outcome in self.stages:
            if outcome.status.severity > worst.severity:
                worst = outcome.status
        return worst

    @property
    def duration(self) -> float:
        if self.completed_at:
            return self.completed_at - self.started_at
        return time.time() - self.started_at

    def finalize(self, treat_warnings_as_success: bool = False) -> "JobResult":
        """Compute the final status from the stage outcomes and freeze."""
        status = _STAGE_TO_JOB[self.worst_stage_status]
        if status is JobStatus.WARNINGS and treat_warnings_as_success:
            status = JobStatus.SUCCESS
        if self.error and status is not JobStatus.FAILURE:
            status = JobStatus.FAILURE
        self.status = status
        self.completed_at = time.time()
        self.finalized = True
        return self


@dataclass
class SetResult:
    """Results of the jobs of one set (or of an ad-hoc job list)."""

    name: Optional[str] = None
    on_error: str = "stop"
    jobs: list[JobResult] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def status(self) -> JobStatus:
        return worst_job_status(j.status for j in self.jobs)

    def get(self, job_name: str) -> Optional[JobResult]:
        for job in self.jobs:
            if job.job_name == job_name:
                return job
        return None


@dataclass
class RunResult:
    """Results of a whole run."""

    sets: list[SetResult] = field(default_factory=list)
    simulated: bool = False
    cancelled: bool = False
    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0

    @property
    def jobs(self) -> list[JobResult]:
        return [job for s in self.sets for job in s.jobs]

    @property
    def status(self) -> RunStatus:
        worst = worst_job_status(s.status for s in self.sets)
        if self.cancelled or worst is JobStatus.FAILURE:
            return RunStatus.FAILURE
        if worst is JobStatus.WARNINGS:
            return RunStatus.WARNINGS
        if self.simulated:
            return RunStatus.SIMULATED_COMPLETE
        return RunStatus.SUCCESS

    @property
    def exit_code(self) -> int:
        return self.status.exit_code
