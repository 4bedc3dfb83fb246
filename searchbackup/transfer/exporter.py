"""
Index Document Export Functionality

This module handles exporting the documents of a source index into numbered
JSON files, one file per pagination window, with windows fetched in parallel
waves.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from ..config import DEFAULT_PARALLEL_JOBS
from ..endpoint import SearchEndpoint
from ..exceptions import EnvelopeError
from .utils import (
    PaginationWindow,
    build_envelope,
    export_file_path,
    group_into_waves,
    prepare_document,
    validate_envelope,
)


class BatchStatus(str, Enum):
    WRITTEN = "written"
    EMPTY = "empty"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass
class BatchResult:
    """Outcome of exporting one pagination window"""
    window: PaginationWindow
    path: Path
    status: BatchStatus
    document_count: int = 0
    reason: Optional[str] = None

    @property
    def written(self) -> bool:
        return self.status == BatchStatus.WRITTEN


def _write_atomically(path: Path, content: str):
    """Write content to path so that readers never observe a partial file"""
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(temp_name, path)
    except BaseException:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise


class DocumentExporter:
    """
    Exports a single pagination window of a source index to one file.

    Failures never escape export_window(): each window reports a BatchResult
    and sibling windows keep running. Completeness is checked afterwards by
    comparing document counts.
    """

    def __init__(self, source: SearchEndpoint):
        self.source = source
        self.logger = logging.getLogger(__name__)

    async def export_window(self, window: PaginationWindow, output_path: Union[str, Path]) -> BatchResult:
        """
        Query one window and write its documents as a {"value": [...]} file.

        Args:
            window: Pagination window to fetch
            output_path: Destination file

        Returns:
            BatchResult describing what happened to this window
        """
        output_path = Path(output_path)
        self.logger.info(
            f"Backing up source documents to {output_path} - (skip = {window.skip}, batch size = {window.size})"
        )

        try:
            documents = await self.source.search(skip=window.skip, top=window.size)

            if not documents:
                self.logger.info(f"No documents found in batch {window.sequence}")
                return BatchResult(window, output_path, BatchStatus.EMPTY)

            envelope = build_envelope([prepare_document(doc) for doc in documents])

            try:
                validate_envelope(envelope)
            except EnvelopeError as e:
                self.logger.error(f"Generated invalid JSON for batch {window.sequence}: {e}")
                return BatchResult(window, output_path, BatchStatus.INVALID, reason=str(e))

            _write_atomically(output_path, envelope)
            self.logger.info(f"Batch {window.sequence}: {len(documents)} documents written")
            return BatchResult(window, output_path, BatchStatus.WRITTEN, document_count=len(documents))

        except Exception as e:
            self.logger.error(f"Failed to export batch {window.sequence}: {str(e)}")
            return BatchResult(window, output_path, BatchStatus.FAILED, reason=str(e))


class ParallelBatchScheduler:
    """
    Drives a DocumentExporter over every window in waves of concurrent tasks.

    All windows of a wave start together and the next wave waits until each
    of them has finished, so at most wave_width requests are in flight.
    """

    def __init__(self, exporter: DocumentExporter, wave_width: int = DEFAULT_PARALLEL_JOBS):
        if wave_width <= 0:
            raise ValueError(f"Wave width must be positive, got {wave_width}")
        self.exporter = exporter
        self.wave_width = wave_width
        self.logger = logging.getLogger(__name__)

    async def run(
        self,
        windows: List[PaginationWindow],
        backup_dir: Union[str, Path],
        index_name: str,
    ) -> List[BatchResult]:
        """
        Export all windows into backup_dir.

        Args:
            windows: Planned windows, in order
            backup_dir: Directory receiving the export files
            index_name: Source index name used in file names

        Returns:
            One BatchResult per window, in window order
        """
        results: List[BatchResult] = []
        waves = group_into_waves(windows, self.wave_width)

        for wave_number, wave in enumerate(waves, start=1):
            self.logger.debug(f"Starting wave {wave_number}/{len(waves)} with {len(wave)} batches")
            wave_results = await asyncio.gather(*(
                self.exporter.export_window(
                    window, export_file_path(backup_dir, index_name, window.sequence)
                )
                for window in wave
            ))
            results.extend(wave_results)

        written = sum(1 for r in results if r.written)
        self.logger.info(f"Exported {written} of {len(results)} batches")
        return results
