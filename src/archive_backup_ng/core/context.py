"""Run-wide state passed explicitly through aggregator, pipeline and dispatcher."""

import threading
from dataclasses import dataclass, field
from typing import Optional

from ..config import Config
from ..providers import (
    ArchiveProvider,
    BoundTarget,
    ChecksumProvider,
    HashlibChecksumProvider,
    PassthroughSnapshotProvider,
    SnapshotProvider,
    TarArchiveProvider,
    resolve_targets,
)


@dataclass
class RunContext:
    """Everything a run needs besides the job being executed.

    Attributes:
        config: Resolved configuration
        targets: Configured targets bound to their providers
        archiver: Archive provider
        snapshotter: Snapshot provider
        checksummer: Checksum provider
        simulate: Plan and report without writing archives or deleting files
        parallel_targets: Max concurrent target transfers per job
        hook_timeout: Seconds before a hook command is abandoned (None = no limit)
        cancel_event: Set to request cancellation between stages
    """

    config: Config
    targets: dict[str, BoundTarget] = field(default_factory=dict)
    archiver: ArchiveProvider = field(default_factory=TarArchiveProvider)
    snapshotter: SnapshotProvider = field(default_factory=PassthroughSnapshotProvider)
    checksummer: ChecksumProvider = field(default_factory=HashlibChecksumProvider)
    simulate: bool = False
    parallel_targets: int = 1
    hook_timeout: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def from_config(
        cls,
        config: Config,
        simulate: bool = False,
        parallel_targets: Optional[int] = None,
        **kwargs,
    ) -> "RunContext":
        """Create a context, resolving target providers once."""
        return cls(
            config=config,
            targets=resolve_targets(config),
            simulate=simulate,
            parallel_targets=parallel_targets or config.global_config.parallel_targets,
            **kwargs,
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if seconds <= 0:
            return self.cancelled
        return self.cancel_event.wait(seconds)
