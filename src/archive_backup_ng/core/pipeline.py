"""Run one backup job through its stages.

Stage order is fixed::

    pre-hook -> snapshot -> create-archive -> checksum -> verify-local
    -> transfer -> local-retention -> delete-staged -> post-hook

A failed create-archive is terminal: everything up to the post hook is
skipped. Other failures are recorded and later stages still run, except that
a gating verify failure skips the transfer. Errors never leave run(); they
end up in the returned JobResult.
"""

import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock, Timeout

from .. import __util__
from ..config import JobConfig
from ..errors import RetentionError, StageError
from ..instances import BackupInstance, group_instances, list_directory
from ..providers import ArchiveOptions, SnapshotHandle
from ..providers.checksum import read_sidecar, sidecar_path, write_sidecar
from ..retention import (
    RetentionOutcome,
    RetentionPlan,
    apply_retention,
    format_retention_summary,
    plan_retention,
)
from ..transaction import log_transaction
from .context import RunContext
from .dispatch import TransferDispatcher
from .hooks import run_hook
from .models import (
    ArchiveArtifact,
    JobResult,
    JobStatus,
    Stage,
    StageStatus,
    TransferSummary,
)

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".archive-backup-ng.lock"

# Stages skipped when archive creation fails
_AFTER_ARCHIVE = (
    Stage.CHECKSUM,
    Stage.VERIFY_LOCAL,
    Stage.TRANSFER,
    Stage.LOCAL_RETENTION,
    Stage.DELETE_STAGED,
)

StageFunc = Callable[["_JobState"], tuple[StageStatus, str]]


@dataclass
class _JobState:
    """Working state of one job run."""

    job: JobConfig
    result: JobResult
    stamp: str
    sources: list[str] = field(default_factory=list)
    artifact: Optional[ArchiveArtifact] = None
    archive_failed: bool = False
    verify_failed: bool = False
    transfer: Optional[TransferSummary] = None

    @property
    def instance_key(self) -> str:
        return __util__.instance_key(self.job.archive_name, self.stamp)

    @property
    def staging_dir(self) -> Path:
        return Path(self.job.staging_dir).expanduser()


class JobPipeline:
    """Drive jobs through the stage sequence."""

    def __init__(
        self, context: RunContext, dispatcher: Optional[TransferDispatcher] = None
    ) -> None:
        self.context = context
        self.dispatcher = dispatcher or TransferDispatcher(context)

    def run(self, job: JobConfig, now: Optional[datetime] = None) -> JobResult:
        """Run ``job`` and return its finalized result."""
        result = JobResult(job_name=job.name)
        state = _JobState(
            job=job,
            result=result,
            stamp=__util__.date_to_str(now, job.date_format),
            sources=list(job.sources),
        )
        logger.info(__util__.log_heading(f"Job: {job.name}"))
        if self.context.simulate:
            logger.info("Simulation mode: nothing will be written or deleted")

        try:
            with ExitStack() as stack:
                self._run_stages(state, stack)
        except Exception as e:
            # Raised while releasing scoped resources
            logger.error("Cleanup for job %s failed: %s", job.name, e)
            result.record(Stage.SNAPSHOT, StageStatus.WARNING, f"cleanup failed: {e}")

        self._stage(state, Stage.POST_HOOK, self._post_hook, check_cancel=False)

        result.finalize(job.treat_warnings_as_success)
        log_transaction(
            action="job",
            status=result.status.value,
            job=job.name,
            instance=state.instance_key,
            duration_seconds=result.duration,
            error=result.error,
            details={o.stage.value: o.status.value for o in result.stages},
        )
        _log_job_summary(result)
        return result

    def _run_stages(self, state: _JobState, stack: ExitStack) -> None:
        self._stage(state, Stage.PRE_HOOK, self._pre_hook)
        self._stage(state, Stage.SNAPSHOT, lambda s: self._snapshot(s, stack))
        self._stage(state, Stage.CREATE_ARCHIVE, lambda s: self._create_archive(s, stack))

        if state.archive_failed:
            for stage in _AFTER_ARCHIVE:
                state.result.record(stage, StageStatus.SKIPPED, "archive creation failed")
            return

        self._stage(state, Stage.CHECKSUM, self._checksum)
        self._stage(state, Stage.VERIFY_LOCAL, self._verify_local)
        self._stage(state, Stage.TRANSFER, self._transfer)
        self._stage(state, Stage.LOCAL_RETENTION, self._local_retention)
        self._stage(state, Stage.DELETE_STAGED, self._delete_staged)

    def _stage(
        self, state: _JobState, stage: Stage, func: StageFunc, check_cancel: bool = True
    ) -> StageStatus:
        """Run one stage, turning any error into a FAILURE outcome."""
        result = state.result
        if check_cancel and self.context.cancelled:
            result.error = "cancelled"
            if stage is Stage.CREATE_ARCHIVE:
                state.archive_failed = True
            result.record(stage, StageStatus.SKIPPED, "cancelled")
            return StageStatus.SKIPPED

        try:
            status, message = func(state)
        except StageError as e:
            status, message = StageStatus.FAILURE, str(e)
        except Exception as e:
            logger.exception("Unexpected error in stage %s of %s", stage.value, state.job.name)
            status, message = StageStatus.FAILURE, f"unexpected error: {e}"

        if stage is Stage.CREATE_ARCHIVE and status is StageStatus.FAILURE:
            state.archive_failed = True

        result.record(stage, status, message)
        if status is StageStatus.FAILURE:
            logger.error("[%s] %s failed: %s", state.job.name, stage.value, message)
        elif status is StageStatus.WARNING:
            logger.warning("[%s] %s: %s", state.job.name, stage.value, message)
        else:
            logger.debug("[%s] %s %s: %s", state.job.name, stage.value, status.value, message)
        if message:
            result.note(f"{stage.value}: {status.value}: {message}")
        return status

    def _hook_env(self, state: _JobState) -> dict[str, str]:
        env = {
            "ABNG_JOB_NAME": state.job.name,
            "ABNG_STAGING_DIR": str(state.staging_dir),
            "ABNG_INSTANCE": state.instance_key,
            "ABNG_SIMULATE": "1" if self.context.simulate else "0",
        }
        if state.artifact is not None:
            env["ABNG_ARCHIVE"] = str(state.artifact.primary)
        return env

    def _pre_hook(self, state: _JobState) -> tuple[StageStatus, str]:
        command = state.job.pre_hook
        if not command:
            return StageStatus.SKIPPED, ""
        if self.context.simulate:
            return StageStatus.SKIPPED, f"simulation: would run {command!r}"
        run_hook(command, self._hook_env(state), timeout=self.context.hook_timeout)
        return StageStatus.SUCCESS, command

    def _post_hook(self, state: _JobState) -> tuple[StageStatus, str]:
        command = state.job.post_hook
        if not command:
            return StageStatus.SKIPPED, ""
        if self.context.simulate:
            return StageStatus.SKIPPED, f"simulation: would run {command!r}"
        env = self._hook_env(state)
        provisional = "failure" if state.result.error else state.result.worst_stage_status.value
        env["ABNG_JOB_STATUS"] = provisional
        try:
            run_hook(command, env, timeout=self.context.hook_timeout)
        except StageError as e:
            return StageStatus.WARNING, str(e)
        return StageStatus.SUCCESS, command

    def _snapshot(self, state: _JobState, stack: ExitStack) -> tuple[StageStatus, str]:
        if not state.job.use_snapshot:
            return StageStatus.SKIPPED, ""
        if self.context.simulate:
            return StageStatus.SKIPPED, "simulation: snapshot not taken"

        snapshotter = self.context.snapshotter
        try:
            handle = snapshotter.acquire(list(state.job.sources))
        except Exception as e:
            # Release must still run so the provider can clean up partial work
            stack.callback(snapshotter.release, SnapshotHandle(errors=[str(e)]))
            raise StageError(f"snapshot failed, archiving live sources: {e}") from e

        stack.callback(self._release_snapshot, state, handle)
        state.sources = [handle.resolve(s) for s in state.job.sources]
        if handle.errors:
            return StageStatus.WARNING, "; ".join(handle.errors)
        return StageStatus.SUCCESS, f"{len(handle.mapping)} path(s) snapshotted"

    def _release_snapshot(self, state: _JobState, handle: SnapshotHandle) -> None:
        try:
            self.context.snapshotter.release(handle)
        except Exception as e:
            logger.error("Releasing snapshot for %s failed: %s", state.job.name, e)
            state.result.record(Stage.SNAPSHOT, StageStatus.WARNING, f"release failed: {e}")

    def _create_archive(self, state: _JobState, stack: ExitStack) -> tuple[StageStatus, str]:
        job = state.job
        name = __util__.archive_name(job.archive_name, state.stamp, job.archive_extension)
        destination = state.staging_dir / name

        if self.context.simulate:
            state.artifact = ArchiveArtifact(instance_key=state.instance_key, primary=destination)
            return StageStatus.SUCCESS, f"simulation: would create {destination}"

        try:
            state.staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StageError(f"Cannot create staging directory {state.staging_dir}: {e}") from e

        lock = FileLock(str(state.staging_dir / LOCK_FILE_NAME), timeout=0)
        try:
            stack.enter_context(lock)
        except Timeout as e:
            raise StageError(
                f"Staging directory {state.staging_dir} is in use by another job"
            ) from e

        options = ArchiveOptions(
            archive_format=job.archive_format,
            split_size=__util__.parse_size(job.split_size) if job.split_size else None,
            cancel_event=self.context.cancel_event,
        )
        attempts = max(1, job.archive_retries)
        start = time.monotonic()
        outcome = None
        for attempt in range(1, attempts + 1):
            logger.info("Creating archive %s (attempt %d/%d)", destination, attempt, attempts)
            try:
                outcome = self.context.archiver.create_archive(
                    [Path(s) for s in state.sources], destination, options
                )
            except Exception as e:
                logger.error("Archive provider raised: %s", e)
                outcome = None
                error = str(e)
            else:
                error = outcome.error or "archive provider reported failure"
                if outcome.success:
                    break

            if attempt < attempts:
                logger.warning("Archive attempt %d failed: %s", attempt, error)
                if self.context.wait(job.archive_retry_delay):
                    break

        if outcome is None or not outcome.success:
            log_transaction(
                action="archive",
                status="failed",
                job=job.name,
                instance=state.instance_key,
                duration_seconds=time.monotonic() - start,
                attempts=attempt,
                error=error,
            )
            raise StageError(f"Archive creation failed after {attempt} attempt(s): {error}")

        state.artifact = ArchiveArtifact(
            instance_key=state.instance_key,
            primary=Path(outcome.output_path or destination),
            parts=list(outcome.volume_parts),
        )
        state.result.archive_files.extend(str(p) for p in state.artifact.data_files)
        size = state.artifact.size
        log_transaction(
            action="archive",
            status="completed",
            job=job.name,
            instance=state.instance_key,
            size_bytes=size,
            duration_seconds=time.monotonic() - start,
            attempts=attempt,
        )

        message = f"{state.artifact.primary.name} ({__util__.format_size(size)}"
        if state.artifact.parts:
            message += f", {len(state.artifact.parts)} volume(s)"
        message += ")"
        if outcome.warning:
            return StageStatus.WARNING, f"{message}: {outcome.warning}"
        return StageStatus.SUCCESS, message

    def _checksum(self, state: _JobState) -> tuple[StageStatus, str]:
        algorithm = state.job.checksum
        if not algorithm:
            return StageStatus.SKIPPED, ""
        if self.context.simulate:
            return StageStatus.SKIPPED, f"simulation: would write {algorithm} checksum"

        artifact = state.artifact
        assert artifact is not None
        try:
            digests = {
                path.name: self.context.checksummer.compute(path, algorithm)
                for path in artifact.data_files
            }
            sidecar = sidecar_path(artifact.primary, algorithm)
            write_sidecar(sidecar, digests)
        except (OSError, ValueError) as e:
            raise StageError(f"Checksum computation failed: {e}") from e

        artifact.digests = digests
        artifact.checksum_file = sidecar
        state.result.archive_files.append(str(sidecar))
        return StageStatus.SUCCESS, f"{algorithm} written to {sidecar.name}"

    def _verify_local(self, state: _JobState) -> tuple[StageStatus, str]:
        job = state.job
        if not job.verify:
            return StageStatus.SKIPPED, ""
        if self.context.simulate:
            return StageStatus.SKIPPED, "simulation: nothing to verify"

        artifact = state.artifact
        assert artifact is not None
        checksummer = self.context.checksummer
        try:
            if artifact.checksum_file is None:
                for path in artifact.data_files:
                    checksummer.compute(path, "sha256")
                return StageStatus.WARNING, "no checksum recorded, verified readability only"

            expected = read_sidecar(artifact.checksum_file)
            mismatched = [
                path.name
                for path in artifact.data_files
                if path.name not in expected
                or not checksummer.verify(path, expected[path.name], job.checksum)
            ]
        except (OSError, ValueError) as e:
            state.verify_failed = job.verify_gates_transfer
            raise StageError(f"Verification failed: {e}") from e

        if mismatched:
            state.verify_failed = job.verify_gates_transfer
            raise StageError(f"Checksum mismatch: {', '.join(mismatched)}")
        return StageStatus.SUCCESS, f"{len(artifact.data_files)} file(s) verified"

    def _transfer(self, state: _JobState) -> tuple[StageStatus, str]:
        job = state.job
        if not job.targets:
            return StageStatus.SKIPPED, "no targets configured"
        if state.verify_failed:
            return StageStatus.SKIPPED, "verification failed, transfer skipped"

        assert state.artifact is not None
        summary = self.dispatcher.dispatch(job, state.artifact)
        state.transfer = summary
        state.result.transfers = list(summary.results)
        for result in summary.results:
            if not result.success:
                state.result.note(f"transfer to {result.target_name} failed: {result.error}")
            for warning in result.warnings:
                state.result.note(f"target {result.target_name}: {warning}")
        return summary.status, summary.describe()

    def _local_retention(self, state: _JobState) -> tuple[StageStatus, str]:
        job = state.job
        if job.local_keep <= 0:
            return StageStatus.SKIPPED, "keep=unlimited"

        try:
            plan, outcome = prune_staging(job, dry_run=self.context.simulate)
        except Exception as e:
            return StageStatus.WARNING, f"local retention failed: {e}"
        if not outcome.simulated:
            state.result.deleted_local.extend(outcome.deleted)
        summary = format_retention_summary(plan)
        if outcome.errors:
            return StageStatus.WARNING, f"{summary}; errors: {'; '.join(outcome.errors)}"
        return StageStatus.SUCCESS, summary

    def _delete_staged(self, state: _JobState) -> tuple[StageStatus, str]:
        if not state.job.delete_local_after_transfer:
            return StageStatus.SKIPPED, ""
        if state.transfer is None or not state.transfer.succeeded:
            return StageStatus.SKIPPED, "transfer did not succeed, keeping local archive"
        if self.context.simulate:
            return StageStatus.SKIPPED, "simulation: local archive kept"

        assert state.artifact is not None
        errors = []
        for path in state.artifact.files:
            try:
                path.unlink(missing_ok=True)
                state.result.deleted_local.append(path.name)
            except OSError as e:
                errors.append(f"{path.name}: {e}")
        if errors:
            return StageStatus.WARNING, "could not delete: " + "; ".join(errors)
        return StageStatus.SUCCESS, f"removed {len(state.artifact.files)} staged file(s)"


def _log_job_summary(result: JobResult) -> None:
    level = {
        JobStatus.SUCCESS: logging.INFO,
        JobStatus.WARNINGS: logging.WARNING,
        JobStatus.FAILURE: logging.ERROR,
        JobStatus.SKIPPED: logging.INFO,
    }[result.status]
    logger.log(
        level,
        "Job %s finished: %s (%.1fs)",
        result.job_name,
        result.status.value,
        result.duration,
    )


def prune_staging(job: JobConfig, dry_run: bool = False) -> tuple[RetentionPlan, RetentionOutcome]:
    """Apply ``local_keep`` to the archives of ``job`` in its staging directory."""
    staging = Path(job.staging_dir).expanduser()
    try:
        instances = group_instances(list_directory(staging), job.archive_name, job.date_format)
        plan = plan_retention(instances, job.local_keep, job.pinned)
    except (OSError, ValueError) as e:
        raise RetentionError(f"Cannot plan retention for {staging}: {e}") from e
    logger.info("Staging %s retention: %s", staging, format_retention_summary(plan))

    def delete(instance: BackupInstance) -> None:
        for name in instance.file_names:
            (staging / name).unlink(missing_ok=True)

    outcome = apply_retention(plan, delete, dry_run=dry_run)
    if not outcome.simulated and (outcome.deleted or outcome.errors):
        log_transaction(
            action="retention",
            status="completed" if outcome.ok else "partial",
            job=job.name,
            target="local",
            details={"deleted": outcome.deleted, "errors": outcome.errors},
        )
    return plan, outcome
