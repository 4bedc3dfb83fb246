"""
Index Document Import Functionality

This module handles uploading the export files of a backup directory into a
target index, one bulk request per file.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple, Union

from ..endpoint import SearchEndpoint
from ..exceptions import BulkIndexError, EnvelopeError, RemoteOperationError
from .utils import list_export_files, validate_envelope


@dataclass
class ImportResult:
    """Outcome of importing a backup directory"""
    submitted: List[Path] = field(default_factory=list)
    skipped: Dict[Path, str] = field(default_factory=dict)
    document_count: int = 0


class DocumentImporter:
    """
    Uploads export files to a target index.

    Files are processed one at a time in sequence-number order. A file that
    cannot be read or lacks a "value" array is skipped; a file the target
    rejects stops the import, since the same rejection would recur for every
    remaining file.
    """

    def __init__(self, target: SearchEndpoint):
        self.target = target
        self.logger = logging.getLogger(__name__)

    def load_envelope(self, path: Path) -> Tuple[str, int]:
        """
        Read an export file and check its envelope shape.

        Returns:
            Raw file content and the number of documents it holds

        Raises:
            EnvelopeError: if the file cannot be read or is not a valid envelope
        """
        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise EnvelopeError(f"Could not read file: {e}") from e

        documents = validate_envelope(content)
        return content, len(documents)

    async def import_file(self, path: Union[str, Path]) -> int:
        """
        Upload one export file as a single bulk request.

        Returns:
            Number of documents submitted

        Raises:
            EnvelopeError: if the file is not a valid envelope
            BulkIndexError: if the target rejects the upload
        """
        path = Path(path)
        content, document_count = self.load_envelope(path)
        self.logger.info(f"Uploading {document_count} documents from file {path}")

        try:
            await self.target.index_documents(content)
        except RemoteOperationError as e:
            raise BulkIndexError(
                f"Failed to upload documents from {path}", e.status_code, e.details
            ) from e

        return document_count

    async def import_directory(self, backup_dir: Union[str, Path], index_name: str) -> ImportResult:
        """
        Upload every export file of an index from a backup directory.

        Args:
            backup_dir: Backup directory
            index_name: Index name the files were exported from

        Returns:
            ImportResult listing submitted and skipped files
        """
        result = ImportResult()
        files = list_export_files(backup_dir, index_name)
        self.logger.info(f"Upload index documents from {len(files)} saved JSON files")

        for path in files:
            try:
                document_count = await self.import_file(path)
            except EnvelopeError as e:
                self.logger.error(f"Skipping {path}: {e}")
                result.skipped[path] = str(e)
                continue
            result.submitted.append(path)
            result.document_count += document_count

        if result.skipped:
            self.logger.warning(f"Skipped {len(result.skipped)} of {len(files)} files")
        return result
