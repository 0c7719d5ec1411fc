"""Exception taxonomy for archive-backup-ng.

Only configuration errors abort a run. Stage, transfer and retention errors
are caught at their boundary and recorded on the result objects:

- ConfigError: unknown job/target references, cycles, invalid settings
- StageError: a pipeline stage collaborator reported failure
- TransferError: transient (retried) or permanent (not retried)
- RetentionError: always downgraded to a warning
"""

from .config.loader import ConfigError


class BackupError(Exception):
    """Base exception for archive-backup-ng runtime failures."""


class DependencyError(ConfigError):
    """A job depends on a job that does not exist."""

    def __init__(self, job: str, missing: str) -> None:
        self.job = job
        self.missing = missing
        super().__init__(f"Job '{job}' depends on unknown job '{missing}'")


class CycleError(ConfigError):
    """Job dependencies form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__("Dependency cycle detected: " + " -> ".join(self.cycle))


class StageError(BackupError):
    """A pipeline stage failed."""


class TransferError(BackupError):
    """Transfer to a target failed."""

    transient = False


class TransientTransferError(TransferError):
    """Transfer failure that is safe to retry (network hiccup, busy share)."""

    transient = True


class PermanentTransferError(TransferError):
    """Transfer failure that must not be retried (bad path, denied access)."""


class RetentionError(BackupError):
    """Evicting old backup instances failed."""
