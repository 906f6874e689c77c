"""Schema versioning and migration backups for stored trade data."""

from fxjournal.versioning.data_versioning import (
    CURRENT_VERSION,
    DEFAULT_VERSION,
    VERSION_HISTORY,
    BackupEnvelope,
    DataVersioningService,
    MigrationSummary,
    StorageInfo,
    ValidationResult,
    VersionInfo,
    parse_version,
)

__all__ = [
    "CURRENT_VERSION", "DEFAULT_VERSION", "VERSION_HISTORY",
    "BackupEnvelope", "DataVersioningService", "MigrationSummary",
    "StorageInfo", "ValidationResult", "VersionInfo", "parse_version",
]
