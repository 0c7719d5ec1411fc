"""Tests for the target transfer dispatcher."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from conftest import FakeTargetProvider, bind

from archive_backup_ng import __util__
from archive_backup_ng.core.dispatch import TransferDispatcher
from archive_backup_ng.core.models import ArchiveArtifact, StageStatus
from archive_backup_ng.errors import PermanentTransferError, TransientTransferError
from archive_backup_ng.instances import RemoteFile


@pytest.fixture
def artifact(tmp_path):
    primary = tmp_path / "Docs_20260105-000000.tar.gz"
    primary.write_bytes(b"x")
    return ArchiveArtifact(instance_key="Docs_20260105-000000", primary=primary)


def remote_history(days):
    base = datetime(2026, 1, 1)
    return [
        RemoteFile(f"Docs_2026010{d + 1}-000000.tar.gz", base + timedelta(days=d), 1)
        for d in days
    ]


class TestDispatch:
    """Tests for TransferDispatcher.dispatch."""

    def test_one_success_one_permanent_failure(self, make_job, make_context, artifact):
        """Test T1 succeeding and T2 failing permanently fails the job transfer."""
        t1 = FakeTargetProvider()
        t2 = FakeTargetProvider(script=[PermanentTransferError("access denied")])
        job = make_job("Docs", targets=["T1", "T2"], transfer_retries=3)
        context = make_context([job], {"T1": bind("T1", t1), "T2": bind("T2", t2)})

        summary = TransferDispatcher(context).dispatch(job, artifact)

        assert [r.target_name for r in summary.results] == ["T1", "T2"]
        ok, failed = summary.results
        assert ok.success and ok.retry_attempts == 0
        assert not failed.success
        assert failed.error == "access denied"
        assert failed.retry_attempts == 0
        assert t2.calls == 1
        assert not summary.succeeded
        assert summary.status is StageStatus.FAILURE

    def test_partial_failure_tolerated(self, make_job, make_context, artifact):
        """Test tolerate_partial_targets turns a partial failure into a warning."""
        t2 = FakeTargetProvider(script=[PermanentTransferError("gone")])
        job = make_job(targets=["T1", "T2"], tolerate_partial_targets=True)
        context = make_context(
            [job], {"T1": bind("T1", FakeTargetProvider()), "T2": bind("T2", t2)}
        )

        summary = TransferDispatcher(context).dispatch(job, artifact)

        assert summary.succeeded
        assert summary.status is StageStatus.WARNING

    def test_transient_failure_retried(self, make_job, make_context, artifact):
        """Test transient failures are retried until success."""
        target = FakeTargetProvider(
            script=[TransientTransferError("timeout"), TransientTransferError("timeout")]
        )
        job = make_job(targets=["T1"], transfer_retries=3)
        context = make_context([job], {"T1": bind("T1", target)})

        summary = TransferDispatcher(context).dispatch(job, artifact)

        result = summary.results[0]
        assert result.success
        assert result.retry_attempts == 2
        assert target.calls == 3
        assert summary.status is StageStatus.SUCCESS

    def test_transient_failure_exhausts_retries(self, make_job, make_context, artifact):
        """Test retries stop after transfer_retries attempts."""
        target = FakeTargetProvider(script=[TransientTransferError("busy")] * 5)
        job = make_job(targets=["T1"], transfer_retries=2)
        context = make_context([job], {"T1": bind("T1", target)})

        result = TransferDispatcher(context).dispatch(job, artifact).results[0]

        assert not result.success
        assert result.transient
        assert result.retry_attempts == 1
        assert target.calls == 2

    def test_unexpected_exception_is_permanent(self, make_job, make_context, artifact):
        """Test unexpected provider errors are not retried."""
        target = FakeTargetProvider(script=[RuntimeError("bug")])
        job = make_job(targets=["T1"], transfer_retries=3)
        context = make_context([job], {"T1": bind("T1", target)})

        result = TransferDispatcher(context).dispatch(job, artifact).results[0]

        assert not result.success
        assert "bug" in result.error
        assert target.calls == 1

    def test_abort_is_not_retried(self, make_job, make_context, artifact):
        """Test a provider abort fails the target without retries."""
        target = FakeTargetProvider(script=[__util__.AbortError("not a directory")])
        job = make_job(targets=["T1"], transfer_retries=3)
        context = make_context([job], {"T1": bind("T1", target)})

        result = TransferDispatcher(context).dispatch(job, artifact).results[0]

        assert result.error == "aborted: not a directory"
        assert target.calls == 1

    def test_unknown_target_is_failure(self, make_job, make_context, artifact):
        """Test a target missing from the context fails that target only."""
        job = make_job(targets=["ghost"])
        context = make_context([job], {})

        summary = TransferDispatcher(context).dispatch(job, artifact)

        assert summary.results[0].error == "target is not configured"
        assert summary.status is StageStatus.FAILURE

    def test_parallel_results_sorted(self, make_job, make_context, artifact):
        """Test parallel dispatch returns results ordered by target name."""
        names = ["zeta", "alpha", "mid"]
        job = make_job(targets=names)
        context = make_context(
            [job], {n: bind(n, FakeTargetProvider()) for n in names}, parallel_targets=3
        )

        summary = TransferDispatcher(context).dispatch(job, artifact)

        assert [r.target_name for r in summary.results] == ["alpha", "mid", "zeta"]
        assert summary.succeeded

    def test_simulation_does_not_transfer(self, make_job, make_context, artifact):
        """Test simulation reports success without calling the provider."""
        target = FakeTargetProvider()
        job = make_job(targets=["T1"])
        context = make_context([job], {"T1": bind("T1", target)}, simulate=True)

        summary = TransferDispatcher(context).dispatch(job, artifact)

        assert summary.succeeded
        assert target.calls == 0

    def test_cancel_during_retry_wait(self, make_job, make_context, artifact):
        """Test cancellation interrupts the retry wait."""
        target = FakeTargetProvider(script=[TransientTransferError("busy")] * 3)
        job = make_job(targets=["T1"], transfer_retries=3, transfer_retry_delay=60)
        context = make_context([job], {"T1": bind("T1", target)})
        context.cancel()

        result = TransferDispatcher(context).dispatch(job, artifact).results[0]

        assert not result.success
        assert target.calls <= 1


class TestRemoteRetention:
    """Tests for retention applied after a transfer."""

    def test_old_remote_instances_evicted(self, make_job, make_context, artifact):
        """Test the target keep count is applied after a successful transfer."""
        target = FakeTargetProvider(files=remote_history(range(4)))
        job = make_job("Docs", targets=["T1"])
        context = make_context([job], {"T1": bind("T1", target, keep=2)})

        result = TransferDispatcher(context).dispatch(job, artifact).results[0]

        assert result.success
        assert result.deleted_remote == [
            "Docs_20260101-000000.tar.gz",
            "Docs_20260102-000000.tar.gz",
            "Docs_20260103-000000.tar.gz",
        ]
        assert "Docs_20260105-000000.tar.gz" in target.files

    def test_no_keep_means_no_retention(self, make_job, make_context, artifact):
        """Test targets without keep are never pruned."""
        target = FakeTargetProvider(files=remote_history(range(4)))
        job = make_job("Docs", targets=["T1"])
        context = make_context([job], {"T1": bind("T1", target)})

        TransferDispatcher(context).dispatch(job, artifact)

        assert target.deleted == []

    def test_retention_failure_is_warning(self, make_job, make_context, artifact):
        """Test a failing listing downgrades to a warning on the result."""
        target = FakeTargetProvider()
        target.list_remote = MagicMock(side_effect=TransientTransferError("offline"))
        job = make_job("Docs", targets=["T1"])
        context = make_context([job], {"T1": bind("T1", target, keep=1)})

        summary = TransferDispatcher(context).dispatch(job, artifact)

        assert summary.results[0].success
        assert "offline" in summary.results[0].warnings[0]
        assert summary.status is StageStatus.WARNING

    def test_pinned_remote_instance_kept(self, make_job, make_context, artifact):
        """Test job level pins protect remote instances."""
        target = FakeTargetProvider(files=remote_history(range(3)))
        job = make_job("Docs", targets=["T1"], pinned=["Docs_20260101-000000"])
        context = make_context([job], {"T1": bind("T1", target, keep=1)})

        result = TransferDispatcher(context).dispatch(job, artifact).results[0]

        assert "Docs_20260101-000000.tar.gz" not in result.deleted_remote
        assert "Docs_20260101-000000.tar.gz" in target.files
