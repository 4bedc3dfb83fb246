"""
Search Index Backup/Restore Transfer Module

This module moves the contents of a search index (schema + documents) to
local files and back, or between two index endpoints.

Key Features:
- Parallel paginated export of documents to numbered JSON files
- Schema capture and index renaming on restore
- Bulk re-import with per-file envelope validation
- Post-transfer document count reconciliation

Usage:
    from searchbackup.config import load_config
    from searchbackup.transfer import IndexBackupRestore

    transfer = IndexBackupRestore.from_config(load_config("appsettings.json"))
    try:
        report = await transfer.run()
    finally:
        await transfer.close()
"""

from .core import IndexBackupRestore, TransferContext, TransferMode, TransferReport, select_mode
from .exporter import BatchResult, BatchStatus, DocumentExporter, ParallelBatchScheduler
from .importer import DocumentImporter, ImportResult
from .schema import SchemaTransfer, rewrite_index_name
from .utils import PaginationWindow, group_into_waves, plan_windows
from .validator import CountReport, CountVerifier

__all__ = [
    "IndexBackupRestore",
    "TransferContext",
    "TransferMode",
    "TransferReport",
    "select_mode",
    "BatchResult",
    "BatchStatus",
    "DocumentExporter",
    "ParallelBatchScheduler",
    "DocumentImporter",
    "ImportResult",
    "SchemaTransfer",
    "rewrite_index_name",
    "PaginationWindow",
    "plan_windows",
    "group_into_waves",
    "CountReport",
    "CountVerifier",
]
