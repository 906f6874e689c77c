from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    CACHE = "cache"
    DATA = "data"
    STORAGE = "storage"
    VERSIONING = "versioning"
    CONFIG = "config"


class JournalError(Exception):
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.DATA,
        key: Optional[str] = None,
    ) -> None:
        self.message = message
        self.category = category
        self.key = key
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.category.value}] {self.message}"]
        if self.key:
            parts.append(f"Key: {self.key}")
        return " | ".join(parts)


class CacheError(JournalError):
    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, ErrorCategory.CACHE, key)


class DataLoadError(JournalError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.DATA)


class StorageError(JournalError):
    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, ErrorCategory.STORAGE, key)


class StorageQuotaError(StorageError):
    def __init__(self, key: str, required: int, quota: int) -> None:
        self.required = required
        self.quota = quota
        super().__init__(f"Storage quota exceeded ({required} > {quota} bytes)", key)


class VersioningError(JournalError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.VERSIONING)
