# pyright: standard

"""archive-backup-ng: archive_backup_ng/providers/__init__.py.

Target providers are looked up by their kind tag once at startup; the rest
of the program only deals with resolved BoundTarget objects.
"""

from dataclasses import dataclass

from ..__logger__ import logger
from ..config import Config, ConfigError, TargetConfig
from .archive import TarArchiveProvider
from .checksum import HashlibChecksumProvider
from .common import (
    ArchiveOptions,
    ArchiveOutcome,
    ArchiveProvider,
    ChecksumProvider,
    DeleteOutcome,
    SnapshotHandle,
    SnapshotProvider,
    TargetProvider,
)
from .local import LocalDirectoryProvider
from .snapshot import PassthroughSnapshotProvider

PROVIDERS: dict[str, type[TargetProvider]] = {
    LocalDirectoryProvider.kind: LocalDirectoryProvider,
}


@dataclass
class BoundTarget:
    """A configured target together with its provider instance."""

    settings: TargetConfig
    provider: TargetProvider

    @property
    def name(self) -> str:
        return self.settings.name


def register_provider(kind: str, provider_class: type[TargetProvider]) -> None:
    """Register a target provider implementation for ``kind``."""
    if not issubclass(provider_class, TargetProvider):
        raise TypeError(f"{provider_class!r} is not a TargetProvider")
    logger.debug("Registering target provider %s -> %s", kind, provider_class.__name__)
    PROVIDERS[kind] = provider_class


def get_provider_class(kind: str) -> type[TargetProvider]:
    """
    Return the provider class registered for a kind tag.

    Raises:
        ConfigError: If no provider is registered for ``kind``.
    """
    try:
        return PROVIDERS[kind]
    except KeyError:
        raise ConfigError(
            f"Unknown target kind '{kind}' (available: {', '.join(sorted(PROVIDERS))})"
        ) from None


def resolve_targets(config: Config) -> dict[str, BoundTarget]:
    """Instantiate one provider per kind and bind every configured target to it."""
    instances: dict[str, TargetProvider] = {}
    bound = {}
    for target in config.targets:
        provider = instances.get(target.kind)
        if provider is None:
            provider = instances[target.kind] = get_provider_class(target.kind)()
        bound[target.name] = BoundTarget(settings=target, provider=provider)
        logger.debug("Resolved target %s -> %r", target.name, provider)
    return bound


__all__ = [
    "ArchiveOptions",
    "ArchiveOutcome",
    "ArchiveProvider",
    "BoundTarget",
    "ChecksumProvider",
    "DeleteOutcome",
    "HashlibChecksumProvider",
    "LocalDirectoryProvider",
    "PROVIDERS",
    "PassthroughSnapshotProvider",
    "SnapshotHandle",
    "SnapshotProvider",
    "TarArchiveProvider",
    "TargetProvider",
    "get_provider_class",
    "register_provider",
    "resolve_targets",
]
