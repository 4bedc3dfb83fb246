"""
Index Schema Transfer

This module captures the index definition of a source index into the backup
directory and recreates it, under a new name, on a target service. The
definition is treated as opaque JSON: only the top-level "name" is touched.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from ..endpoint import SearchEndpoint
from ..exceptions import RemoteOperationError, SchemaFileError, SchemaTransferError
from .utils import find_schema_file, schema_file_path

NAME_KEY = "name"
ODATA_ANNOTATION_PREFIX = "@odata."


def _load_schema_object(schema_text: str) -> Dict[str, Any]:
    try:
        schema = json.loads(schema_text)
    except json.JSONDecodeError as e:
        raise SchemaFileError(f"Schema is not valid JSON: {e}") from e
    if not isinstance(schema, dict) or not isinstance(schema.get(NAME_KEY), str):
        raise SchemaFileError(f"Schema must be a JSON object with a string '{NAME_KEY}'")
    return schema


def rewrite_index_name(schema_text: str, index_name: str, drop_annotations: bool = False) -> str:
    """
    Replace the index name of a schema, leaving every other field untouched.

    Args:
        schema_text: Schema JSON as read from the backup directory
        index_name: New index name
        drop_annotations: Remove top-level @odata.* response annotations

    Returns:
        Re-serialised schema JSON with the original key order
    """
    schema = _load_schema_object(schema_text)
    schema[NAME_KEY] = index_name

    if drop_annotations:
        schema = {
            key: value
            for key, value in schema.items()
            if not key.startswith(ODATA_ANNOTATION_PREFIX)
        }

    return json.dumps(schema, ensure_ascii=False)


class SchemaTransfer:
    """
    Moves an index definition between a search service and a backup directory.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def export_schema(self, source: SearchEndpoint, backup_dir: Union[str, Path]) -> Path:
        """
        Save the source index definition as the directory's schema file.

        Args:
            source: Source endpoint
            backup_dir: Backup directory

        Returns:
            Path of the written schema file

        Raises:
            SchemaTransferError: if the definition cannot be read
        """
        path = schema_file_path(backup_dir, source.index_name)
        self.logger.info(f"Backing up source index schema to {path}")

        try:
            schema_text = await source.get_index_definition()
        except RemoteOperationError as e:
            raise SchemaTransferError(
                f"Could not read the schema of {source.index_name}", e.status_code, e.details
            ) from e
        except Exception as e:
            raise SchemaTransferError(f"Could not read the schema of {source.index_name}: {e}") from e

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(schema_text)

        return path

    def load_restore_schema(self, backup_dir: Union[str, Path], target_index_name: str) -> str:
        """
        Read the directory's schema file and rename it for the target.

        No network call is made, so an ambiguous backup directory is reported
        before the target index is touched.

        Raises:
            SchemaFileError: if there is not exactly one usable schema file
        """
        path = find_schema_file(backup_dir)
        self.logger.info(f"Using schema file {path}")

        with open(path, "r", encoding="utf-8-sig") as f:
            schema_text = f.read()

        return rewrite_index_name(schema_text, target_index_name, drop_annotations=True)

    async def create_target_index(self, target: SearchEndpoint, schema_json: str) -> None:
        """
        Create the target index from a prepared schema.

        Raises:
            SchemaTransferError: if the service rejects the definition
        """
        self.logger.info(f"Create target index {target.index_name}")
        try:
            await target.create_index(schema_json)
        except RemoteOperationError as e:
            raise SchemaTransferError(
                f"Could not create index {target.index_name}", e.status_code, e.details
            ) from e

    async def recreate_target_index(self, target: SearchEndpoint, schema_json: str) -> None:
        """Delete the target index if present, then create it from the schema"""
        self.logger.info(f"Delete target index {target.index_name}, if it exists")
        deleted = await target.delete_index()
        if not deleted:
            self.logger.info(f"Target index {target.index_name} did not exist")

        await self.create_target_index(target, schema_json)
