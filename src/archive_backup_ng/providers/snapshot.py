# pyright: standard

"""archive-backup-ng: archive_backup_ng/providers/snapshot.py
Default snapshot provider.
"""

from ..__logger__ import logger
from .common import SnapshotHandle, SnapshotProvider


class PassthroughSnapshotProvider(SnapshotProvider):
    """Archive directly from the live source paths.

    Used when no volume snapshot facility is configured; every source maps
    to itself and release is a no-op.
    """

    def acquire(self, sources: list[str]) -> SnapshotHandle:
        handle = SnapshotHandle(mapping={s: s for s in sources})
        logger.debug("Passthrough snapshot for %d source(s)", len(sources))
        return handle

    def release(self, handle: SnapshotHandle) -> None:
        logger.debug("Released passthrough snapshot (%d path(s))", len(handle.mapping))
