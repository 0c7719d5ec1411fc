"""TOML configuration loading and validation.

Handles config file discovery, parsing, and validation with helpful error messages.
"""

import tomllib
from pathlib import Path
from typing import Any

from .. import __util__
from .schema import (
    ARCHIVE_EXTENSIONS,
    CHECKSUM_ALGORITHMS,
    SET_POLICIES,
    Config,
    GlobalConfig,
    JobConfig,
    SetConfig,
    TargetConfig,
)


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


# Config file search paths in priority order
CONFIG_PATHS = [
    Path.home() / ".config" / "archive-backup-ng" / "config.toml",
    Path("/etc/archive-backup-ng/config.toml"),
]


def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def _check_archive_format(value: str, where: str) -> str:
    if value not in ARCHIVE_EXTENSIONS:
        raise ConfigError(
            f"{where}: invalid archive_format '{value}' "
            f"(expected one of {', '.join(ARCHIVE_EXTENSIONS)})"
        )
    return value


def _check_checksum(value: str, where: str) -> str:
    if value and value not in CHECKSUM_ALGORITHMS:
        raise ConfigError(
            f"{where}: unsupported checksum algorithm '{value}' "
            f"(expected one of {', '.join(CHECKSUM_ALGORITHMS)})"
        )
    return value


def _check_date_format(value: str, where: str) -> str:
    from ..instances import date_format_to_regex

    try:
        date_format_to_regex(value)
    except ValueError as e:
        raise ConfigError(f"{where}: invalid date_format '{value}': {e}") from e
    return value


def _check_count(value: Any, field_name: str, where: str, minimum: int = 0) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise ConfigError(f"{where}: '{field_name}' must be an integer >= {minimum}")
    return value


def _parse_target(data: dict[str, Any]) -> TargetConfig:
    """Parse target configuration from dict."""
    if "name" not in data:
        raise ConfigError("Target missing required 'name' field")
    where = f"Target '{data['name']}'"
    if "path" not in data:
        raise ConfigError(f"{where} missing required 'path' field")

    keep = data.get("keep")
    if keep is not None:
        keep = _check_count(keep, "keep", where)

    known = {"name", "path", "kind", "keep"}
    settings = dict(data.get("settings", {}))
    settings.update({k: v for k, v in data.items() if k not in known | {"settings"}})

    return TargetConfig(
        name=data["name"],
        path=data["path"],
        kind=data.get("kind", "local"),
        keep=keep,
        settings=settings,
    )


def _parse_job(data: dict[str, Any], global_config: GlobalConfig) -> JobConfig:
    """Parse job configuration from dict, filling defaults from global config."""
    if "name" not in data:
        raise ConfigError("Job missing required 'name' field")
    where = f"Job '{data['name']}'"
    if not data.get("sources"):
        raise ConfigError(f"{where} missing required 'sources' field")

    split_size = str(data.get("split_size", ""))
    if split_size and not __util__.parse_size(split_size):
        raise ConfigError(f"{where}: invalid split_size '{split_size}'")

    return JobConfig(
        name=data["name"],
        sources=list(data["sources"]),
        staging_dir=data.get("staging_dir", global_config.staging_dir),
        archive_name=data.get("archive_name", ""),
        date_format=_check_date_format(
            data.get("date_format", global_config.date_format), where
        ),
        depends_on=list(data.get("depends_on", [])),
        targets=list(data.get("targets", [])),
        local_keep=_check_count(data.get("local_keep", 0), "local_keep", where),
        delete_local_after_transfer=data.get("delete_local_after_transfer", False),
        treat_warnings_as_success=data.get(
            "treat_warnings_as_success", global_config.treat_warnings_as_success
        ),
        enabled=data.get("enabled", True),
        archive_format=_check_archive_format(
            data.get("archive_format", global_config.archive_format), where
        ),
        split_size=split_size,
        use_snapshot=data.get("use_snapshot", False),
        checksum=_check_checksum(data.get("checksum", global_config.checksum), where),
        verify=data.get("verify", global_config.verify),
        verify_gates_transfer=data.get("verify_gates_transfer", True),
        tolerate_partial_targets=data.get("tolerate_partial_targets", False),
        pre_hook=data.get("pre_hook"),
        post_hook=data.get("post_hook"),
        archive_retries=_check_count(
            data.get("archive_retries", global_config.archive_retries),
            "archive_retries",
            where,
            minimum=1,
        ),
        archive_retry_delay=data.get(
            "archive_retry_delay", global_config.archive_retry_delay
        ),
        transfer_retries=_check_count(
            data.get("transfer_retries", global_config.transfer_retries),
            "transfer_retries",
            where,
            minimum=1,
        ),
        transfer_retry_delay=data.get(
            "transfer_retry_delay", global_config.transfer_retry_delay
        ),
        pinned=list(data.get("pinned", [])),
    )


def _parse_set(data: dict[str, Any]) -> SetConfig:
    """Parse set configuration from dict."""
    if "name" not in data:
        raise ConfigError("Set missing required 'name' field")
    on_error = data.get("on_error", "stop")
    if on_error not in SET_POLICIES:
        raise ConfigError(
            f"Set '{data['name']}': on_error must be one of {', '.join(SET_POLICIES)}"
        )
    return SetConfig(name=data["name"], jobs=list(data.get("jobs", [])), on_error=on_error)


def _parse_global(data: dict[str, Any]) -> GlobalConfig:
    """Parse global configuration from dict."""
    defaults = GlobalConfig()
    return GlobalConfig(
        staging_dir=data.get("staging_dir", defaults.staging_dir),
        date_format=_check_date_format(
            data.get("date_format", defaults.date_format), "Global"
        ),
        archive_format=_check_archive_format(
            data.get("archive_format", defaults.archive_format), "Global"
        ),
        checksum=_check_checksum(data.get("checksum", defaults.checksum), "Global"),
        verify=data.get("verify", defaults.verify),
        treat_warnings_as_success=data.get(
            "treat_warnings_as_success", defaults.treat_warnings_as_success
        ),
        archive_retries=data.get("archive_retries", defaults.archive_retries),
        archive_retry_delay=data.get(
            "archive_retry_delay", defaults.archive_retry_delay
        ),
        transfer_retries=data.get("transfer_retries", defaults.transfer_retries),
        transfer_retry_delay=data.get(
            "transfer_retry_delay", defaults.transfer_retry_delay
        ),
        parallel_targets=data.get("parallel_targets", defaults.parallel_targets),
        log_file=data.get("log_file"),
        transaction_log=data.get("transaction_log"),
    )


def _check_unique(names: list[str], kind: str) -> None:
    seen = set()
    for name in names:
        if name in seen:
            raise ConfigError(f"Duplicate {kind} name: '{name}'")
        seen.add(name)


def _validate_config(config: Config) -> list[str]:
    """Validate cross references and return list of warnings."""
    warnings = []

    _check_unique([j.name for j in config.jobs], "job")
    _check_unique([t.name for t in config.targets], "target")
    _check_unique([s.name for s in config.sets], "set")

    target_names = {t.name for t in config.targets}
    job_names = {j.name for j in config.jobs}

    if not config.jobs:
        warnings.append("No jobs configured")

    for job in config.jobs:
        for target in job.targets:
            if target not in target_names:
                raise ConfigError(f"Job '{job.name}' references unknown target '{target}'")

        if len(job.targets) != len(set(job.targets)):
            warnings.append(f"Job '{job.name}' lists the same target more than once")

        if not job.targets:
            warnings.append(f"Job '{job.name}' has no targets configured")
            if job.delete_local_after_transfer:
                warnings.append(
                    f"Job '{job.name}' deletes local archives after transfer "
                    "but has no targets; local archives will be kept"
                )

    for backup_set in config.sets:
        if not backup_set.jobs:
            warnings.append(f"Set '{backup_set.name}' has no jobs")
        for name in backup_set.jobs:
            if name not in job_names:
                raise ConfigError(
                    f"Set '{backup_set.name}' references unknown job '{name}'"
                )
            job = config.get_job(name)
            if job is not None and not job.enabled:
                warnings.append(
                    f"Set '{backup_set.name}' includes disabled job '{name}'"
                )

    return warnings


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load and validate configuration from TOML file.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    return parse_config(data)


def parse_config(data: dict[str, Any]) -> tuple[Config, list[str]]:
    """Build a validated Config from already-decoded TOML data."""
    global_config = _parse_global(data.get("global", {}))

    config = Config(
        global_config=global_config,
        targets=[_parse_target(t) for t in data.get("targets", [])],
        jobs=[_parse_job(j, global_config) for j in data.get("jobs", [])],
        sets=[_parse_set(s) for s in data.get("sets", [])],
    )

    # Validate and collect warnings
    warnings = _validate_config(config)

    return config, warnings


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# archive-backup-ng configuration
# See documentation for full options

[global]
staging_dir = "/var/backups/staging"
date_format = "%Y%m%d-%H%M%S"
archive_format = "gz"     # gz, bz2, xz or none
checksum = "sha256"       # "" disables checksum sidecars
# log_file = "/var/log/archive-backup-ng.log"
# transaction_log = "/var/log/archive-backup-ng.jsonl"

# Retry and parallelism settings
archive_retries = 2
archive_retry_delay = 5
transfer_retries = 3
transfer_retry_delay = 10
parallel_targets = 3

# Copy archives to a mounted NAS share, keeping 10 versions there
[[targets]]
name = "nas"
kind = "local"
path = "/mnt/nas/backups"
keep = 10

[[jobs]]
name = "Base"
sources = ["/etc"]
targets = ["nas"]
local_keep = 3

# Documents, archived after Base, staged archive removed once on the NAS
[[jobs]]
name = "Docs"
sources = ["/home/user/Documents"]
depends_on = ["Base"]
targets = ["nas"]
local_keep = 2
delete_local_after_transfer = true
verify = true
# split_size = "650M"
# pre_hook = "systemctl stop myapp"
# post_hook = "systemctl start myapp"

[[sets]]
name = "nightly"
jobs = ["Docs"]
on_error = "stop"         # or "continue"
"""
