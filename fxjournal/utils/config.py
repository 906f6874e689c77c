from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/fxjournal.log", description="Log file path")

    cache_max_size: int = Field(default=100, description="Maximum entries held by a cache")
    loader_batch_size: int = Field(default=100, description="Trades per progressive-load batch")
    metric_log_size: int = Field(default=1000, description="Performance metrics kept in memory")
    summary_window_seconds: float = Field(default=300.0, description="Default performance summary window")

    threshold_cache_hit_rate: float = Field(default=80.0, description="Minimum cache hit rate (%)")
    threshold_render_time: float = Field(default=100.0, description="Maximum render time (ms)")
    threshold_data_load_time: float = Field(default=500.0, description="Maximum data load time (ms)")
    threshold_memory_usage: float = Field(default=100.0, description="Maximum memory usage (MB)")
    threshold_component_mount_time: float = Field(default=50.0, description="Maximum mount time (ms)")

    storage_db_path: str = Field(default="data/fxjournal_kv.db", description="Local key-value store path")
    storage_quota_bytes: Optional[int] = Field(default=5 * 1024 * 1024, description="Local storage quota")
    backup_keep_count: int = Field(default=5, description="Migration backups retained by cleanup")

    model_config = {
        "env_prefix": "FXJOURNAL_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
