"""
Data Versioning — schema version tracking and migration bookkeeping
===================================================================

Persists the trade-data schema version in a local key-value store, walks
the version table to compute migration paths, validates records against a
version's checklist, and keeps JSON backups taken before a migration.

Storage keys:
  tradeDataVersion                     — current schema version string
  migration_<version>_completed        — ISO-8601 completion stamp
  migration_backup_<version>_<millis>  — {version, timestamp, data} envelope

Storage failures are logged and reported through return values; nothing
here raises on a failed read or write.
"""

from __future__ import annotations
import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ValidationError

from fxjournal.journal.trade_models import Trade
from fxjournal.storage.kv_store import KeyValueStore
from fxjournal.utils.config import get_settings
from fxjournal.utils.exceptions import StorageError, VersioningError
from fxjournal.utils.logger import get_logger, summarize_payload

logger = get_logger(__name__)

VERSION_KEY = "tradeDataVersion"
DEFAULT_VERSION = "1.0.0"
CURRENT_VERSION = "2.0.0"
BACKUP_PREFIX = "migration_backup_"
ESTIMATED_STORAGE_LIMIT = 5 * 1024 * 1024


@dataclass
class VersionInfo:
    description: str
    features: List[str] = field(default_factory=list)
    migration_required: bool = False


VERSION_HISTORY: Dict[str, VersionInfo] = {
    "1.0.0": VersionInfo(
        description="Initial trade data structure",
        features=["basic trade logging", "account management"],
        migration_required=True,
    ),
    "1.1.0": VersionInfo(
        description="Added cloud sync integration",
        features=["cloud sync", "real-time updates"],
        migration_required=False,
    ),
    "2.0.0": VersionInfo(
        description="Enhanced trade features",
        features=["setup classification", "pattern recognition", "partial close tracking"],
        migration_required=True,
    ),
}


def parse_version(version: str) -> Tuple[int, ...]:
    """'1.10.0' → (1, 10, 0). Raises VersioningError on anything else."""
    if not isinstance(version, str) or not version:
        raise VersioningError(f"Invalid version: {version!r}")
    try:
        parts = tuple(int(p) for p in version.split("."))
    except ValueError as e:
        raise VersioningError(f"Invalid version: {version!r}") from e
    if any(p < 0 for p in parts):
        raise VersioningError(f"Invalid version: {version!r}")
    return parts


class BackupEnvelope(BaseModel):
    version: str
    timestamp: str
    data: Any = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class MigrationSummary:
    current_version: str
    target_version: str
    migration_path: List[str]
    new_features: List[str]
    requires_migration: bool


@dataclass
class StorageInfo:
    total_size: int = 0
    backup_size: int = 0
    backup_count: int = 0
    available_space: int = 0


def _backup_millis(key: str) -> int:
    try:
        return int(key.rsplit("_", 1)[-1])
    except ValueError:
        return 0


def _field(data: Mapping[str, Any], name: str, legacy: str = "") -> Any:
    """Look up a snake_case field, falling back to its legacy camelCase key."""
    if name in data:
        return data[name]
    if legacy:
        return data.get(legacy)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        return value
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return None


class DataVersioningService:
    """
    Version tag and migration backups for one key-value store.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        history: Optional[Dict[str, VersionInfo]] = None,
        current_version: str = CURRENT_VERSION,
        backup_keep_count: Optional[int] = None,
    ):
        self._storage = storage
        self._history = dict(history if history is not None else VERSION_HISTORY)
        # Semantic order, not string order: "1.10.0" sorts after "1.9.0".
        self._ordered = sorted(self._history, key=parse_version)
        if current_version not in self._history:
            raise VersioningError(f"Target version {current_version} is not in the version table")
        self.target_version = current_version
        self.backup_keep_count = (backup_keep_count if backup_keep_count is not None
                                  else get_settings().backup_keep_count)

    @property
    def versions(self) -> List[str]:
        return list(self._ordered)

    # ─── Version tag ────────────────────────────────────────

    def get_current_version(self) -> str:
        try:
            return self._storage.get_item(VERSION_KEY) or DEFAULT_VERSION
        except StorageError as e:
            logger.error("version_read_failed", error=str(e))
            return DEFAULT_VERSION

    def set_current_version(self, version: str) -> bool:
        parse_version(version)
        try:
            self._storage.set_item(VERSION_KEY, version)
        except StorageError as e:
            logger.error("version_write_failed", version=version, error=str(e))
            return False
        return True

    def is_migration_needed(self) -> bool:
        return self.get_current_version() != self.target_version

    def get_migration_path(self, from_version: Optional[str] = None,
                           to_version: Optional[str] = None) -> List[str]:
        """Versions after ``from_version`` up to and including ``to_version``."""
        start = from_version or self.get_current_version()
        end = to_version or self.target_version
        if start not in self._history or end not in self._history:
            return []
        from_index = self._ordered.index(start)
        to_index = self._ordered.index(end)
        if from_index >= to_index:
            return []
        return self._ordered[from_index + 1:to_index + 1]

    def get_version_info(self, version: str) -> Optional[VersionInfo]:
        return self._history.get(version)

    def get_versions_requiring_migration(self) -> List[str]:
        return [v for v in self._ordered if self._history[v].migration_required]

    def does_version_require_migration(self, version: str) -> bool:
        info = self.get_version_info(version)
        return info.migration_required if info else False

    def get_migration_summary(self) -> MigrationSummary:
        path = self.get_migration_path()
        features: List[str] = []
        for version in path:
            for feature in self._history[version].features:
                if feature not in features:
                    features.append(feature)
        return MigrationSummary(
            current_version=self.get_current_version(),
            target_version=self.target_version,
            migration_path=path,
            new_features=features,
            requires_migration=self.is_migration_needed(),
        )

    def mark_migration_completed(self, version: Optional[str] = None) -> bool:
        target = version or self.target_version
        if not self.set_current_version(target):
            return False
        try:
            self._storage.set_item(f"migration_{target}_completed", datetime.now().isoformat())
        except StorageError as e:
            logger.error("migration_stamp_failed", version=target, error=str(e))
            return False
        logger.info("migration_completed", version=target)
        return True

    def get_migration_history(self) -> Dict[str, str]:
        history = {}
        for version in self._ordered:
            try:
                stamp = self._storage.get_item(f"migration_{version}_completed")
            except StorageError as e:
                logger.error("migration_history_read_failed", version=version, error=str(e))
                continue
            if stamp:
                history[version] = stamp
        return history

    # ─── Validation ─────────────────────────────────────────

    def validate_data_structure(self, data: Any, version: str) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []

        record = _as_mapping(data)
        if record is None:
            return ValidationResult(False, ["Trade data must be a mapping"], [])

        if version == "1.0.0":
            if not _field(record, "id"):
                errors.append("Trade missing ID")
            if not _field(record, "currency_pair", "currencyPair"):
                errors.append("Trade missing currency pair")
            if not _field(record, "date"):
                errors.append("Trade missing date")
            if not _field(record, "side"):
                errors.append("Trade missing side")
            if not _is_number(_field(record, "entry_price", "entryPrice")):
                errors.append("Trade missing or invalid entry price")

        elif version == "1.1.0":
            if not _field(record, "account_id", "accountId"):
                warnings.append("Trade missing account ID (cloud sync integration)")

        elif version == "2.0.0":
            setup = _as_mapping(_field(record, "setup"))
            if setup:
                if not setup.get("id"):
                    errors.append("Setup missing ID")
                if not setup.get("type"):
                    errors.append("Setup missing type")
                if not setup.get("timeframe"):
                    errors.append("Setup missing timeframe")

            patterns = _field(record, "patterns")
            if isinstance(patterns, list):
                for index, pattern in enumerate(patterns):
                    pattern = _as_mapping(pattern) or {}
                    if not pattern.get("id"):
                        errors.append(f"Pattern {index} missing ID")
                    if not pattern.get("type"):
                        errors.append(f"Pattern {index} missing type")

            partials = _field(record, "partial_closes", "partialCloses")
            if isinstance(partials, list):
                for index, partial in enumerate(partials):
                    partial = _as_mapping(partial) or {}
                    if not partial.get("id"):
                        errors.append(f"Partial close {index} missing ID")
                    if not _is_number(_field(partial, "lot_size", "lotSize")):
                        errors.append(f"Partial close {index} missing lot size")

        else:
            warnings.append(f"Unknown version: {version}")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    # ─── Backups ────────────────────────────────────────────

    def create_migration_backup(self, data: Any) -> str:
        """Store a backup envelope; returns its key, or "" if it could not be written."""
        if isinstance(data, Trade):
            data = data.to_dict()
        elif isinstance(data, list):
            data = [d.to_dict() if isinstance(d, Trade) else d for d in data]

        envelope = BackupEnvelope(
            version=self.get_current_version(),
            timestamp=datetime.now().isoformat(),
            data=data,
        )
        millis = int(time.time() * 1000)
        key = f"{BACKUP_PREFIX}{envelope.version}_{millis}"
        try:
            while self._storage.get_item(key) is not None:
                millis += 1
                key = f"{BACKUP_PREFIX}{envelope.version}_{millis}"
            self._storage.set_item(key, json.dumps(envelope.model_dump(), default=str))
        except (StorageError, TypeError, ValueError) as e:
            logger.error("migration_backup_failed", error=str(e), payload=summarize_payload(data))
            return ""
        logger.info("migration_backup_created", key=key, version=envelope.version)
        return key

    def get_backup(self, backup_key: str) -> Optional[BackupEnvelope]:
        try:
            raw = self._storage.get_item(backup_key)
        except StorageError as e:
            logger.error("backup_read_failed", key=backup_key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return BackupEnvelope.model_validate_json(raw)
        except ValidationError as e:
            logger.error("backup_corrupt", key=backup_key, error=str(e))
            return None

    def restore_from_backup(self, backup_key: str) -> bool:
        """Restore the version tag recorded in a backup."""
        envelope = self.get_backup(backup_key)
        if envelope is None:
            logger.error("backup_restore_failed", key=backup_key)
            return False
        try:
            restored = self.set_current_version(envelope.version)
        except VersioningError as e:
            logger.error("backup_restore_failed", key=backup_key, error=str(e))
            return False
        if restored:
            logger.info("backup_restored", key=backup_key, version=envelope.version,
                        timestamp=envelope.timestamp)
        return restored

    def list_backups(self) -> List[str]:
        """Backup keys, newest first."""
        try:
            keys = [k for k in self._storage.keys() if k.startswith(BACKUP_PREFIX)]
        except StorageError as e:
            logger.error("backup_list_failed", error=str(e))
            return []
        return sorted(keys, key=_backup_millis, reverse=True)

    def cleanup_old_backups(self, keep_count: Optional[int] = None) -> int:
        keep = self.backup_keep_count if keep_count is None else max(keep_count, 0)
        removed = 0
        for key in self.list_backups()[keep:]:
            try:
                self._storage.remove_item(key)
                removed += 1
            except StorageError as e:
                logger.error("backup_cleanup_failed", key=key, error=str(e))
        if removed:
            logger.info("old_backups_removed", removed=removed, kept=keep)
        return removed

    def get_storage_info(self) -> StorageInfo:
        info = StorageInfo()
        try:
            for key in self._storage.keys():
                size = len(key) + len(self._storage.get_item(key) or "")
                info.total_size += size
                if key.startswith(BACKUP_PREFIX):
                    info.backup_size += size
                    info.backup_count += 1
        except StorageError as e:
            logger.error("storage_info_failed", error=str(e))
            return StorageInfo()
        limit = getattr(self._storage, "quota_bytes", None) or ESTIMATED_STORAGE_LIMIT
        info.available_space = max(0, limit - info.total_size)
        return info
