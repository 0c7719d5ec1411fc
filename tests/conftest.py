"""Pytest configuration and shared fixtures."""

from datetime import datetime

import pytest

from archive_backup_ng import transaction
from archive_backup_ng.config import Config, GlobalConfig, JobConfig, TargetConfig
from archive_backup_ng.core.context import RunContext
from archive_backup_ng.core.models import TransferResult
from archive_backup_ng.instances import RemoteFile
from archive_backup_ng.providers import (
    ArchiveOutcome,
    ArchiveProvider,
    BoundTarget,
    DeleteOutcome,
    TargetProvider,
)


@pytest.fixture(autouse=True)
def no_transaction_log():
    """Keep the module level transaction log disabled between tests."""
    transaction.set_transaction_log(None)
    yield
    transaction.set_transaction_log(None)


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_toml(tmp_path):
    """Return a sample valid TOML configuration string."""
    return f"""
[global]
staging_dir = "{tmp_path / 'staging'}"
date_format = "%Y%m%d-%H%M%S"
archive_format = "gz"
checksum = "sha256"
parallel_targets = 2
transfer_retries = 2
transfer_retry_delay = 0

[[targets]]
name = "nas"
kind = "local"
path = "{tmp_path / 'nas'}"
keep = 5

[[targets]]
name = "usb"
path = "{tmp_path / 'usb'}"
create = false

[[jobs]]
name = "Docs"
sources = ["{tmp_path / 'docs'}"]
depends_on = ["Base"]
targets = ["nas"]
local_keep = 3

[[jobs]]
name = "Base"
sources = ["{tmp_path / 'base'}"]
targets = ["nas", "usb"]
tolerate_partial_targets = true

[[sets]]
name = "nightly"
jobs = ["Docs"]
on_error = "stop"
"""


@pytest.fixture
def minimal_config_toml():
    """Return a minimal valid TOML configuration string."""
    return """
[[jobs]]
name = "home"
sources = ["/home"]
"""


@pytest.fixture
def config_file(tmp_config_dir, sample_config_toml):
    """Create a temporary config file with sample content."""
    config_path = tmp_config_dir / "config.toml"
    config_path.write_text(sample_config_toml)
    return config_path


@pytest.fixture
def minimal_config_file(tmp_config_dir, minimal_config_toml):
    """Create a temporary config file with minimal content."""
    config_path = tmp_config_dir / "minimal.toml"
    config_path.write_text(minimal_config_toml)
    return config_path


@pytest.fixture
def source_tree(tmp_path):
    """Create a small directory tree to archive."""
    root = tmp_path / "source"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_text("alpha\n")
    (root / "sub" / "b.txt").write_text("bravo\n" * 100)
    return root


@pytest.fixture
def make_job(tmp_path, source_tree):
    """Factory for JobConfig objects staging below tmp_path."""

    def factory(name="job", **kwargs):
        kwargs.setdefault("sources", [str(source_tree)])
        kwargs.setdefault("staging_dir", str(tmp_path / "staging"))
        kwargs.setdefault("transfer_retry_delay", 0)
        kwargs.setdefault("archive_retry_delay", 0)
        return JobConfig(name=name, **kwargs)

    return factory


class FakeTargetProvider(TargetProvider):
    """Scriptable in-memory target.

    ``script`` holds one entry per transfer call: an exception to raise or
    None for success. Once exhausted, every further call succeeds.
    """

    kind = "fake"

    def __init__(self, script=None, files=None):
        self.script = list(script or [])
        self.files: dict[str, RemoteFile] = {f.name: f for f in (files or [])}
        self.calls = 0
        self.deleted: list[str] = []

    def transfer(self, local_path, metadata, settings):
        self.calls += 1
        if self.script:
            error = self.script.pop(0)
            if error is not None:
                raise error
        result = TransferResult(target_name=settings.name, success=True)
        for path in metadata.files:
            self.files[path.name] = RemoteFile(path.name, datetime.now(), 1)
            result.remote_locations.append(f"{settings.path}/{path.name}")
            result.bytes_transferred += 1
        return result

    def list_remote(self, settings):
        return list(self.files.values())

    def delete_remote(self, settings, names):
        for name in names:
            self.files.pop(name, None)
            self.deleted.append(name)
        return DeleteOutcome(success=True, deleted=list(names))


class FakeArchiveProvider(ArchiveProvider):
    """Writes a tiny file instead of a tar archive; can fail or warn."""

    def __init__(self, failures=0, warning=None):
        self.failures = failures
        self.warning = warning
        self.calls = 0

    def create_archive(self, sources, destination, options):
        self.calls += 1
        if self.calls <= self.failures:
            return ArchiveOutcome(success=False, error="disk full")
        destination.write_bytes(b"archive:" + str(sources).encode())
        return ArchiveOutcome(success=True, output_path=destination, warning=self.warning)


@pytest.fixture
def fake_target():
    return FakeTargetProvider()


@pytest.fixture
def make_context(tmp_path):
    """Factory for RunContext objects with fake targets bound by name."""

    def factory(jobs=(), targets=None, **kwargs):
        targets = targets or {}
        config = Config(
            global_config=GlobalConfig(staging_dir=str(tmp_path / "staging")),
            targets=[t.settings for t in targets.values()],
            jobs=list(jobs),
        )
        kwargs.setdefault("archiver", FakeArchiveProvider())
        return RunContext(config=config, targets=dict(targets), **kwargs)

    return factory


def bind(name, provider, keep=None, path="/remote"):
    """Bind a provider to a target name for use in a RunContext."""
    return BoundTarget(TargetConfig(name=name, path=path, kind=provider.kind, keep=keep), provider)
