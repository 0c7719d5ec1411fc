"""Configuration schema definitions using dataclasses.

Defines the structure for TOML configuration with sensible defaults.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

ARCHIVE_EXTENSIONS = {
    "gz": ".tar.gz",
    "bz2": ".tar.bz2",
    "xz": ".tar.xz",
    "none": ".tar",
}

CHECKSUM_ALGORITHMS = ("md5", "sha1", "sha256", "sha512", "blake2b")

SET_POLICIES = ("stop", "continue")


@dataclass
class TargetConfig:
    """Backup target configuration.

    Attributes:
        name: Unique target name referenced by jobs
        kind: Provider tag used to pick the target implementation
        path: Destination location understood by the provider
        keep: Number of instances to keep on the target (None = no remote retention)
        settings: Extra provider-specific settings
    """

    name: str
    path: str
    kind: str = "local"
    keep: Optional[int] = None
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass
class JobConfig:
    """Backup job configuration.

    Attributes:
        name: Unique job name
        sources: Paths archived by this job
        staging_dir: Local directory where the archive is created
        archive_name: Base name of archive files (defaults to the job name)
        date_format: strftime format of the timestamp token in file names
        depends_on: Jobs that must complete before this one
        targets: Names of targets the archive is transferred to
        local_keep: Instances kept in the staging directory (0 = unlimited)
        delete_local_after_transfer: Remove the staged archive after transfer
        treat_warnings_as_success: Report warning-only runs as success
        enabled: Whether the job runs when no jobs are requested explicitly
        archive_format: Compression used for the tar archive
        split_size: Volume size for split archives ("" = single file)
        use_snapshot: Archive from a snapshot of the sources
        checksum: Checksum algorithm ("" disables the checksum stage)
        verify: Verify the archive before transferring it
        verify_gates_transfer: Skip transfer when verification fails
        tolerate_partial_targets: Treat the transfer as successful if any target succeeded
        pre_hook: Shell command run before the job
        post_hook: Shell command run after the job
        archive_retries: Attempts for archive creation
        archive_retry_delay: Seconds between archive attempts
        transfer_retries: Attempts per target for transient failures
        transfer_retry_delay: Seconds between transfer attempts
        pinned: Instance keys or file names exempt from retention
    """

    name: str
    sources: list[str] = field(default_factory=list)
    staging_dir: str = ""
    archive_name: str = ""
    date_format: str = "%Y%m%d-%H%M%S"
    depends_on: list[str] = field(default_factory=list)
    targets: list[str] = field(default_factory=list)
    local_keep: int = 0
    delete_local_after_transfer: bool = False
    treat_warnings_as_success: bool = False
    enabled: bool = True
    archive_format: str = "gz"
    split_size: str = ""
    use_snapshot: bool = False
    checksum: str = "sha256"
    verify: bool = False
    verify_gates_transfer: bool = True
    tolerate_partial_targets: bool = False
    pre_hook: Optional[str] = None
    post_hook: Optional[str] = None
    archive_retries: int = 1
    archive_retry_delay: float = 5.0
    transfer_retries: int = 3
    transfer_retry_delay: float = 10.0
    pinned: list[str] = field(default_factory=list)

    def __post_init__(self):
        # Archive files are named after the job unless told otherwise
        if not self.archive_name:
            self.archive_name = self.name

    @property
    def archive_extension(self) -> str:
        return ARCHIVE_EXTENSIONS[self.archive_format]


@dataclass
class SetConfig:
    """Named group of jobs run together.

    Attributes:
        name: Unique set name
        jobs: Jobs requested by this set (dependencies are added automatically)
        on_error: "stop" halts the remaining jobs after a failure, "continue" runs them
    """

    name: str
    jobs: list[str] = field(default_factory=list)
    on_error: str = "stop"


@dataclass
class GlobalConfig:
    """Global configuration settings.

    Job-level settings fall back to these values when not given.

    Attributes:
        staging_dir: Default staging directory for all jobs
        date_format: Default timestamp format for archive names
        archive_format: Default compression
        checksum: Default checksum algorithm
        verify: Default for job verification
        treat_warnings_as_success: Default warning policy
        archive_retries: Default archive creation attempts
        archive_retry_delay: Default delay between archive attempts
        transfer_retries: Default transfer attempts per target
        transfer_retry_delay: Default delay between transfer attempts
        parallel_targets: Max concurrent target transfers per job
        log_file: Path to log file (None for no file logging)
        transaction_log: Path to JSON-lines transaction log (None to disable)
    """

    staging_dir: str = "/var/backups/archive-backup-ng"
    date_format: str = "%Y%m%d-%H%M%S"
    archive_format: str = "gz"
    checksum: str = "sha256"
    verify: bool = False
    treat_warnings_as_success: bool = False
    archive_retries: int = 1
    archive_retry_delay: float = 5.0
    transfer_retries: int = 3
    transfer_retry_delay: float = 10.0
    parallel_targets: int = 3
    log_file: Optional[str] = None
    transaction_log: Optional[str] = None


@dataclass
class Config:
    """Root configuration object.

    Attributes:
        global_config: Global settings that apply to all jobs
        targets: Target definitions
        jobs: Job catalogue in file order
        sets: Set definitions
    """

    global_config: GlobalConfig = field(default_factory=GlobalConfig)
    targets: list[TargetConfig] = field(default_factory=list)
    jobs: list[JobConfig] = field(default_factory=list)
    sets: list[SetConfig] = field(default_factory=list)

    def get_job(self, name: str) -> Optional[JobConfig]:
        for job in self.jobs:
            if job.name == name:
                return job
        return None

    def get_target(self, name: str) -> Optional[TargetConfig]:
        for target in self.targets:
            if target.name == name:
                return target
        return None

    def get_set(self, name: str) -> Optional[SetConfig]:
        for backup_set in self.sets:
            if backup_set.name == name:
                return backup_set
        return None

    def get_enabled_jobs(self) -> list[JobConfig]:
        """Get list of enabled jobs."""
        return [j for j in self.jobs if j.enabled]
