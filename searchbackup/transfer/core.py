"""
Core Index Backup/Restore Implementation

This module provides the IndexBackupRestore class that decides which mode a
run needs and sequences schema transfer, document export, document import
and count verification.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..config import TransferConfig
from ..endpoint import SearchEndpoint, create_search_endpoint
from ..exceptions import ConfigurationError, NothingToRestoreError
from .exporter import BatchResult, DocumentExporter, ParallelBatchScheduler
from .importer import DocumentImporter, ImportResult
from .schema import SchemaTransfer
from .utils import (
    SCHEMA_SUFFIX,
    find_schema_file,
    has_backup_files,
    plan_windows,
    remove_export_files,
)
from .validator import CountReport, CountVerifier


class TransferMode(str, Enum):
    EXPORT_ONLY = "export"
    EXPORT_AND_RESTORE = "export+restore"
    RESTORE_FROM_BACKUP = "restore"
    NOOP = "noop"

    @property
    def exports(self) -> bool:
        return self in (TransferMode.EXPORT_ONLY, TransferMode.EXPORT_AND_RESTORE)

    @property
    def restores(self) -> bool:
        return self in (TransferMode.EXPORT_AND_RESTORE, TransferMode.RESTORE_FROM_BACKUP)


def select_mode(
    has_source_config: bool,
    has_target_config: bool,
    has_existing_backup_files: bool,
) -> TransferMode:
    """
    Decide what a run does from what is configured and what is on disk.

    Raises:
        NothingToRestoreError: target configured, no source, empty backup directory
    """
    if has_source_config:
        return TransferMode.EXPORT_AND_RESTORE if has_target_config else TransferMode.EXPORT_ONLY
    if not has_target_config:
        return TransferMode.NOOP
    if not has_existing_backup_files:
        raise NothingToRestoreError("Cannot restore - no backup files found")
    return TransferMode.RESTORE_FROM_BACKUP


@dataclass
class TransferContext:
    """Configuration plus the endpoints built from it, created once per run"""
    config: TransferConfig
    source: Optional[SearchEndpoint] = None
    target: Optional[SearchEndpoint] = None

    @classmethod
    def from_config(cls, config: TransferConfig) -> "TransferContext":
        return cls(
            config=config,
            source=create_search_endpoint(config.source, config.api_version),
            target=create_search_endpoint(config.target, config.api_version),
        )

    async def close(self):
        for endpoint in (self.source, self.target):
            if endpoint is not None:
                await endpoint.close()


@dataclass
class TransferReport:
    """What a run did"""
    mode: TransferMode
    batches: List[BatchResult] = field(default_factory=list)
    import_result: Optional[ImportResult] = None
    counts: Optional[CountReport] = None

    @property
    def exported_documents(self) -> int:
        return sum(batch.document_count for batch in self.batches)


class IndexBackupRestore:
    """
    Main class for backing up an index to files and restoring it.

    Supported runs:
    1. Export only: schema and documents of the source go to the backup directory
    2. Export and restore: as above, then the target is recreated and loaded
    3. Restore from existing backup: the target is recreated from files on disk
    """

    def __init__(self, context: TransferContext):
        self.context = context
        self.config = context.config
        self.schema_transfer = SchemaTransfer()
        self.verifier = CountVerifier()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: TransferConfig) -> "IndexBackupRestore":
        return cls(TransferContext.from_config(config))

    def _backup_index_name(self) -> str:
        """Index name the backup files carry; falls back to the schema file name"""
        if self.config.backup_index_name:
            return self.config.backup_index_name
        return find_schema_file(self.config.backup_directory).name[:-len(SCHEMA_SUFFIX)]

    def resolve_mode(self) -> TransferMode:
        return select_mode(
            has_source_config=self.context.source is not None,
            has_target_config=self.context.target is not None,
            has_existing_backup_files=has_backup_files(
                self.config.backup_directory, self.config.backup_index_name
            ),
        )

    async def backup(self) -> List[BatchResult]:
        """
        Export the source schema and documents to the backup directory.

        Returns:
            One BatchResult per pagination window
        """
        source = self.context.source
        if source is None:
            raise ConfigurationError("Source index is not configured")

        backup_dir = self.config.backup_directory
        backup_dir.mkdir(parents=True, exist_ok=True)

        await self.schema_transfer.export_schema(source, backup_dir)

        # The window plan depends on the count, so a failure here is fatal
        total_documents = await source.count_documents()
        windows = plan_windows(total_documents, self.config.batch_size)
        self.logger.info(
            f"Exporting {total_documents} documents from {source.index_name} in {len(windows)} batches"
        )

        scheduler = ParallelBatchScheduler(DocumentExporter(source), self.config.parallel_jobs)
        results = await scheduler.run(windows, backup_dir, source.index_name)

        # Files past the new plan are left over from a larger snapshot
        remove_export_files(backup_dir, source.index_name, keep_through=len(windows))
        return results

    async def restore(self) -> ImportResult:
        """
        Recreate the target index from the backup directory and load its documents.

        The schema file is located and renamed before the target is touched,
        so an ambiguous backup directory fails without any network call.
        """
        target = self.context.target
        if target is None:
            raise ConfigurationError("Target index is not configured")

        backup_dir = self.config.backup_directory
        index_name = self._backup_index_name()
        schema_json = self.schema_transfer.load_restore_schema(backup_dir, target.index_name)

        await self.schema_transfer.recreate_target_index(target, schema_json)

        importer = DocumentImporter(target)
        return await importer.import_directory(backup_dir, index_name)

    async def run(self) -> TransferReport:
        """
        Run whatever the configuration and backup directory call for.

        Returns:
            TransferReport with per-batch results, import result and counts
        """
        mode = self.resolve_mode()
        report = TransferReport(mode=mode)

        if mode == TransferMode.NOOP:
            self.logger.info("Neither source nor target is configured, nothing to do")
            return report

        if mode.exports:
            self.logger.info("START INDEX BACKUP")
            report.batches = await self.backup()

        if mode.restores:
            if mode == TransferMode.RESTORE_FROM_BACKUP:
                self.logger.info("START INDEX RESTORE FROM EXISTING BACKUP")
            else:
                self.logger.info("START INDEX RESTORE")
            report.import_result = await self.restore()

            delay = self.config.indexing_delay_seconds
            if delay > 0:
                self.logger.info(f"Waiting {delay:g} seconds for target to index content...")
                self.logger.info("NOTE: For really large indexes it may take longer to index all content.")
                await asyncio.sleep(delay)

            report.counts = await self.verifier.compare(self.context.source, self.context.target)
            self.logger.info(report.counts.render())

        return report

    async def close(self):
        await self.context.close()
