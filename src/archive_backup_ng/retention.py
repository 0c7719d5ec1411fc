"""Count-based retention for backup instances.

The same evaluation is used for the local staging directory and for every
target's remote listing. Pinned instances are set aside before counting, so
they neither use up a keep slot nor protect an unpinned instance.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from .instances import BackupInstance

logger = logging.getLogger(__name__)


@dataclass
class RetentionPlan:
    """Which instances to keep and which to evict.

    Attributes:
        keep_count: Keep count the plan was computed with (0 = unlimited)
        keep: Retained unpinned instances, newest first
        pinned: Pinned instances, newest first
        delete: Eviction candidates, oldest first
    """

    keep_count: int
    keep: list[BackupInstance] = field(default_factory=list)
    pinned: list[BackupInstance] = field(default_factory=list)
    delete: list[BackupInstance] = field(default_factory=list)

    @property
    def files(self) -> list[str]:
        """Names of every file to remove, in deletion order."""
        return [name for instance in self.delete for name in instance.file_names]

    @property
    def empty(self) -> bool:
        return not self.delete


@dataclass
class RetentionOutcome:
    """What applying a plan actually removed."""

    deleted: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    simulated: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors


def _sort_newest_first(instances: Iterable[BackupInstance]) -> list[BackupInstance]:
    # key as tie breaker keeps the order stable for equal creation times
    return sorted(instances, key=lambda i: (i.sort_time, i.key), reverse=True)


def is_pinned(instance: BackupInstance, pinned: Iterable[str] = ()) -> bool:
    """Whether an instance is exempt from retention.

    ``pinned`` may contain instance keys, file names or file paths.
    """
    if instance.is_pinned:
        return True
    pins = {str(p) for p in pinned}
    if not pins:
        return False
    if instance.key in pins:
        return True
    pin_names = {p.replace("\\", "/").rsplit("/", 1)[-1] for p in pins}
    return any(name in pin_names for name in instance.file_names)


def plan_retention(
    instances: Mapping[str, BackupInstance] | Iterable[BackupInstance],
    keep: int,
    pinned: Iterable[str] = (),
) -> RetentionPlan:
    """Decide which instances are eviction candidates.

    Args:
        instances: Instance mapping from group_instances (or plain instances)
        keep: Number of newest unpinned instances to retain (0 = keep all)
        pinned: Extra pinned identifiers (instance keys or file names/paths)

    Returns:
        RetentionPlan with deletion candidates ordered oldest first
    """
    if isinstance(instances, Mapping):
        instances = instances.values()
    ordered = _sort_newest_first(instances)
    pins = list(pinned)

    plan = RetentionPlan(keep_count=keep)
    unpinned = []
    for instance in ordered:
        if is_pinned(instance, pins):
            plan.pinned.append(instance)
        else:
            unpinned.append(instance)

    if keep <= 0:
        plan.keep = unpinned
        return plan

    plan.keep = unpinned[:keep]
    plan.delete = list(reversed(unpinned[keep:]))
    return plan


def apply_retention(
    plan: RetentionPlan,
    delete: Callable[[BackupInstance], None],
    dry_run: bool = False,
) -> RetentionOutcome:
    """Remove the instances of a plan using a caller-supplied delete callable.

    Deletion failures are collected, never raised.
    """
    outcome = RetentionOutcome(simulated=dry_run)
    for instance in plan.delete:
        if dry_run:
            logger.info("Would delete: %s (%s)", instance.key, ", ".join(instance.file_names))
            outcome.deleted.extend(instance.file_names)
            continue
        try:
            delete(instance)
        except Exception as e:
            logger.error("Failed to delete %s: %s", instance.key, e)
            outcome.errors.append(f"{instance.key}: {e}")
            continue
        logger.info("Deleted: %s", instance.key)
        outcome.deleted.extend(instance.file_names)
    return outcome


def format_retention_summary(plan: RetentionPlan) -> str:
    """Format a one-line summary of a retention plan."""
    if plan.keep_count <= 0:
        policy = "keep=unlimited"
    else:
        policy = f"keep={plan.keep_count}"
    return (
        f"{policy}: keeping {len(plan.keep)}, pinned {len(plan.pinned)}, "
        f"deleting {len(plan.delete)}"
    )
