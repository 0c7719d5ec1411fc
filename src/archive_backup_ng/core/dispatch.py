"""Transfer a finished archive to every target of a job.

Targets are independent, so they may be served by a thread pool; results are
sorted by target name so the summary does not depend on completion order.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from .. import __util__
from ..config import JobConfig
from ..errors import RetentionError, TransferError
from ..instances import BackupInstance, group_instances
from ..providers import BoundTarget
from ..retention import (
    RetentionOutcome,
    apply_retention,
    format_retention_summary,
    plan_retention,
)
from ..transaction import log_transaction
from .context import RunContext
from .models import ArchiveArtifact, TransferResult, TransferSummary

logger = logging.getLogger(__name__)


class TransferDispatcher:
    """Drive transfers of one archive to the targets of a job."""

    def __init__(self, context: RunContext) -> None:
        self.context = context

    def dispatch(self, job: JobConfig, artifact: ArchiveArtifact) -> TransferSummary:
        """Transfer ``artifact`` to every target of ``job``.

        Args:
            job: Job whose targets are used
            artifact: Local archive files to transfer

        Returns:
            TransferSummary with one TransferResult per target
        """
        results: list[TransferResult] = []
        targets: list[BoundTarget] = []
        for name in job.targets:
            target = self.context.targets.get(name)
            if target is None:
                results.append(TransferResult(target_name=name, error="target is not configured"))
            else:
                targets.append(target)

        workers = min(self.context.parallel_targets, len(targets))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self.transfer_to_target, job, artifact, target): target
                    for target in targets
                }
                for future in as_completed(futures):
                    target = futures[future]
                    try:
                        results.append(future.result())
                    except Exception as e:
                        logger.error("Transfer to %s failed: %s", target.name, e)
                        results.append(TransferResult(target_name=target.name, error=str(e)))
        else:
            for target in targets:
                results.append(self.transfer_to_target(job, artifact, target))

        results.sort(key=lambda r: r.target_name)
        return TransferSummary(results=results, tolerate_partial=job.tolerate_partial_targets)

    def transfer_to_target(
        self, job: JobConfig, artifact: ArchiveArtifact, target: BoundTarget
    ) -> TransferResult:
        """Transfer to one target with retries, then apply its remote retention."""
        start = time.monotonic()
        if self.context.simulate:
            result = TransferResult(
                target_name=target.name,
                success=True,
                remote_locations=[f"{target.settings.path}/{p.name}" for p in artifact.files],
            )
            logger.info("Would transfer %s to %s", artifact.instance_key, target.name)
        else:
            result = self._transfer_with_retry(job, artifact, target)
        result.duration_seconds = time.monotonic() - start

        log_transaction(
            action="transfer",
            status="completed" if result.success else "failed",
            job=job.name,
            target=target.name,
            instance=artifact.instance_key,
            size_bytes=result.bytes_transferred or None,
            duration_seconds=result.duration_seconds,
            attempts=result.retry_attempts + 1,
            error=result.error,
        )

        if result.success and target.settings.keep is not None:
            self._remote_retention(job, target, result)
        return result

    def _transfer_with_retry(
        self, job: JobConfig, artifact: ArchiveArtifact, target: BoundTarget
    ) -> TransferResult:
        attempts = max(1, job.transfer_retries)
        result = TransferResult(target_name=target.name)

        for attempt in range(1, attempts + 1):
            if self.context.cancelled:
                result = TransferResult(target_name=target.name, error="cancelled")
                result.retry_attempts = attempt - 1
                return result

            logger.info(
                "Transferring %s to %s (attempt %d/%d)",
                artifact.instance_key,
                target.name,
                attempt,
                attempts,
            )
            try:
                result = target.provider.transfer(artifact.primary, artifact, target.settings)
            except TransferError as e:
                result = TransferResult(target_name=target.name, error=str(e), transient=e.transient)
            except __util__.AbortError as e:
                result = TransferResult(target_name=target.name, error=f"aborted: {e}")
            except Exception as e:
                logger.exception("Unexpected error transferring to %s", target.name)
                result = TransferResult(target_name=target.name, error=f"unexpected error: {e}")

            result.target_name = target.name
            result.retry_attempts = attempt - 1
            if result.success:
                logger.info(
                    "Transferred %s to %s (%s)",
                    artifact.instance_key,
                    target.name,
                    __util__.format_size(result.bytes_transferred),
                )
                return result

            if not result.transient:
                logger.error("Transfer to %s failed permanently: %s", target.name, result.error)
                return result

            if attempt < attempts:
                logger.warning(
                    "Transfer to %s failed (%s), retrying in %ss",
                    target.name,
                    result.error,
                    job.transfer_retry_delay,
                )
                if self.context.wait(job.transfer_retry_delay):
                    result.error = f"cancelled after: {result.error}"
                    return result

        logger.error(
            "Transfer to %s failed after %d attempt(s): %s", target.name, attempts, result.error
        )
        return result

    def prune_target(self, job: JobConfig, target: BoundTarget) -> RetentionOutcome:
        """Evict old instances of ``job`` on ``target`` by its keep count.

        Raises:
            TransferError: If the target cannot be listed
        """
        settings = target.settings
        listing = target.provider.list_remote(settings)
        instances = group_instances(listing, job.archive_name, job.date_format)
        plan = plan_retention(instances, settings.keep or 0, job.pinned)
        logger.info("Target %s retention: %s", target.name, format_retention_summary(plan))

        def delete(instance: BackupInstance) -> None:
            outcome = target.provider.delete_remote(settings, instance.file_names)
            if not outcome.success:
                raise RetentionError("; ".join(outcome.errors))

        outcome = apply_retention(plan, delete, dry_run=self.context.simulate)
        if not outcome.simulated and (outcome.deleted or outcome.errors):
            log_transaction(
                action="retention",
                status="completed" if outcome.ok else "partial",
                job=job.name,
                target=target.name,
                details={"deleted": outcome.deleted, "errors": outcome.errors},
            )
        return outcome

    def _remote_retention(
        self, job: JobConfig, target: BoundTarget, result: TransferResult
    ) -> None:
        """Apply remote retention after a transfer; problems become warnings."""
        try:
            outcome = self.prune_target(job, target)
        except Exception as e:
            logger.warning("Remote retention on %s failed: %s", target.name, e)
            result.warnings.append(f"remote retention failed: {e}")
            return

        result.deleted_remote.extend(outcome.deleted)
        for error in outcome.errors:
            result.warnings.append(f"remote retention: {error}")
