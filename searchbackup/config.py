"""
Run Configuration

This module resolves the settings of a backup/restore run once, before any
transfer component is created. Settings come from an appsettings.json style
file and can be overridden by environment variables (a local .env file is
honoured).
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv

from .exceptions import ConfigurationError

SEARCH_SERVICE_DOMAIN = "search.windows.net"
DEFAULT_API_VERSION = "2024-07-01"
DEFAULT_BATCH_SIZE = 500
MAX_BATCH_SIZE = 1000
DEFAULT_PARALLEL_JOBS = 10
DEFAULT_INDEXING_DELAY_SECONDS = 10.0

# settings file key -> environment variable
SETTINGS_ENV_VARS = {
    "SourceSearchServiceName": "SEARCH_BACKUP_SOURCE_SERVICE",
    "SourceAdminKey": "SEARCH_BACKUP_SOURCE_KEY",
    "SourceIndexName": "SEARCH_BACKUP_SOURCE_INDEX",
    "TargetSearchServiceName": "SEARCH_BACKUP_TARGET_SERVICE",
    "TargetAdminKey": "SEARCH_BACKUP_TARGET_KEY",
    "TargetIndexName": "SEARCH_BACKUP_TARGET_INDEX",
    "BackupDirectory": "SEARCH_BACKUP_DIRECTORY",
    "MaxBatchSize": "SEARCH_BACKUP_BATCH_SIZE",
    "ParallelizedJobs": "SEARCH_BACKUP_PARALLEL_JOBS",
    "IndexingDelaySeconds": "SEARCH_BACKUP_INDEXING_DELAY",
    "ApiVersion": "SEARCH_BACKUP_API_VERSION",
}


@dataclass(frozen=True)
class IndexHandle:
    """One logical index on one search service"""
    service: str
    api_key: str = field(repr=False)
    index_name: str

    @property
    def endpoint(self) -> str:
        """Service URL; a bare service name maps to the public cloud domain"""
        if self.service.startswith(("http://", "https://")):
            return self.service.rstrip("/")
        return f"https://{self.service}.{SEARCH_SERVICE_DOMAIN}"


@dataclass
class TransferConfig:
    """Configuration for an index backup/restore run"""
    backup_directory: Path
    source: Optional[IndexHandle] = None
    target: Optional[IndexHandle] = None
    backup_index_name: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    parallel_jobs: int = DEFAULT_PARALLEL_JOBS
    indexing_delay_seconds: float = DEFAULT_INDEXING_DELAY_SECONDS
    api_version: str = DEFAULT_API_VERSION

    def __post_init__(self):
        self.backup_directory = Path(self.backup_directory)
        if self.backup_index_name is None and self.source is not None:
            self.backup_index_name = self.source.index_name
        self.validate()

    @property
    def has_source_config(self) -> bool:
        return self.source is not None

    @property
    def has_target_config(self) -> bool:
        return self.target is not None

    def validate(self):
        if not str(self.backup_directory):
            raise ConfigurationError("A backup directory is required")
        if not 0 < self.batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"Batch size must be between 1 and {MAX_BATCH_SIZE}, got {self.batch_size}"
            )
        if self.parallel_jobs <= 0:
            raise ConfigurationError(f"Parallel jobs must be positive, got {self.parallel_jobs}")
        if self.indexing_delay_seconds < 0:
            raise ConfigurationError("Indexing delay cannot be negative")

    def describe(self) -> str:
        """Human-readable summary shown before a run starts"""
        lines = ["CONFIGURATION:"]
        if self.source:
            lines.append(f"  Source service and index: {self.source.endpoint}, {self.source.index_name}")
        if self.target:
            lines.append(f"  Target service and index: {self.target.endpoint}, {self.target.index_name}")
        lines.append(f"  Backup directory: {self.backup_directory}")
        if self.backup_index_name and not self.source:
            lines.append(f"  Backup index name: {self.backup_index_name}")
        lines.append(f"  Batch size: {self.batch_size}, parallel jobs: {self.parallel_jobs}")
        return "\n".join(lines)


def _resolve_handle(settings: Dict[str, Any], side: str) -> Optional[IndexHandle]:
    service = settings.get(f"{side}SearchServiceName")
    index_name = settings.get(f"{side}IndexName")
    api_key = settings.get(f"{side}AdminKey")

    if not service or not index_name:
        return None
    if not api_key:
        raise ConfigurationError(
            f"{side}AdminKey is required when {side}SearchServiceName and {side}IndexName are set"
        )
    return IndexHandle(service=service, api_key=api_key, index_name=index_name)


def _as_number(settings: Dict[str, Any], key: str, default, cast):
    value = settings.get(key)
    if value in (None, ""):
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    if cast is int and isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"{key} must be a whole number, got {value!r}")
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")


def read_settings(
    settings_path: Optional[Union[str, Path]] = None,
    use_environment: bool = True,
) -> Dict[str, Any]:
    """
    Read raw settings from a JSON file and the environment.

    Args:
        settings_path: Path to an appsettings.json style file; optional
        use_environment: Whether environment variables override file values

    Returns:
        Dictionary keyed by the settings file names
    """
    settings: Dict[str, Any] = {}

    if settings_path is not None:
        path = Path(settings_path)
        if not path.exists():
            raise ConfigurationError(f"Settings file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Settings file {path} is not valid JSON: {e}")
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Settings file {path} must contain a JSON object")
        settings.update(loaded)

    if use_environment:
        load_dotenv()
        for key, env_var in SETTINGS_ENV_VARS.items():
            value = os.getenv(env_var)
            if value:
                settings[key] = value

    return settings


def load_config(
    settings_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    use_environment: bool = True,
) -> TransferConfig:
    """
    Resolve a TransferConfig from settings file, environment and overrides.

    Args:
        settings_path: Path to an appsettings.json style file
        overrides: Values that win over file and environment (e.g. CLI flags)
        use_environment: Whether to read environment variables

    Returns:
        Validated TransferConfig
    """
    settings = read_settings(settings_path, use_environment=use_environment)
    if overrides:
        settings.update({k: v for k, v in overrides.items() if v is not None})

    backup_directory = settings.get("BackupDirectory")
    if not backup_directory:
        raise ConfigurationError("BackupDirectory is not configured")

    return TransferConfig(
        backup_directory=Path(backup_directory),
        source=_resolve_handle(settings, "Source"),
        target=_resolve_handle(settings, "Target"),
        backup_index_name=settings.get("SourceIndexName") or None,
        batch_size=_as_number(settings, "MaxBatchSize", DEFAULT_BATCH_SIZE, int),
        parallel_jobs=_as_number(settings, "ParallelizedJobs", DEFAULT_PARALLEL_JOBS, int),
        indexing_delay_seconds=_as_number(
            settings, "IndexingDelaySeconds", DEFAULT_INDEXING_DELAY_SECONDS, float
        ),
        api_version=settings.get("ApiVersion") or DEFAULT_API_VERSION,
    )
