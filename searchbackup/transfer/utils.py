"""
Transfer Utility Functions

This module provides the pure helpers shared by the export and import sides:
pagination planning, backup directory layout, document reshaping and
envelope handling.
"""

import json
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import MAX_BATCH_SIZE
from ..exceptions import EnvelopeError, SchemaFileError
from ..utils import logger

SCHEMA_SUFFIX = ".schema"
EXPORT_SUFFIX = ".json"
ENVELOPE_KEY = "value"
SEARCH_ANNOTATION_PREFIX = "@search."


@dataclass(frozen=True)
class PaginationWindow:
    """A (skip, size) slice of an index, numbered by its position in the plan"""
    sequence: int
    skip: int
    size: int

    def expected_documents(self, total_documents: int) -> int:
        """Documents this window should return for a given total; the last one may be short"""
        return max(0, min(self.size, total_documents - self.skip))


def plan_windows(total_documents: int, batch_size: int) -> List[PaginationWindow]:
    """
    Map a document count to the ordered pagination windows that cover it.

    Args:
        total_documents: Number of documents in the source index
        batch_size: Documents per window, at most 1000

    Returns:
        ceil(total_documents / batch_size) windows with 1-based sequence numbers
    """
    if total_documents < 0:
        raise ValueError(f"Document count cannot be negative, got {total_documents}")
    if not 0 < batch_size <= MAX_BATCH_SIZE:
        raise ValueError(f"Batch size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")

    window_count = math.ceil(total_documents / batch_size)
    return [
        PaginationWindow(sequence=i + 1, skip=i * batch_size, size=batch_size)
        for i in range(window_count)
    ]


def group_into_waves(windows: List[PaginationWindow], wave_width: int) -> List[List[PaginationWindow]]:
    """Split windows, keeping their order, into consecutive waves of at most wave_width"""
    if wave_width <= 0:
        raise ValueError(f"Wave width must be positive, got {wave_width}")
    return [windows[i:i + wave_width] for i in range(0, len(windows), wave_width)]


# ---------------------------------------------------------------------------
# Backup directory layout
# ---------------------------------------------------------------------------

def schema_file_path(backup_dir: Union[str, Path], index_name: str) -> Path:
    return Path(backup_dir) / f"{index_name}{SCHEMA_SUFFIX}"


def export_file_path(backup_dir: Union[str, Path], index_name: str, sequence: int) -> Path:
    return Path(backup_dir) / f"{index_name}{sequence}{EXPORT_SUFFIX}"


def find_schema_file(backup_dir: Union[str, Path]) -> Path:
    """
    Locate the single schema file of a backup directory.

    Raises:
        SchemaFileError: if the directory holds no schema file or more than one
    """
    backup_dir = Path(backup_dir)
    schema_files = sorted(backup_dir.glob(f"*{SCHEMA_SUFFIX}")) if backup_dir.is_dir() else []

    if not schema_files:
        raise SchemaFileError(
            f"No schema file found in {backup_dir}. Please ensure a {SCHEMA_SUFFIX} file exists."
        )
    if len(schema_files) > 1:
        names = ", ".join(p.name for p in schema_files)
        raise SchemaFileError(
            f"Multiple schema files found in {backup_dir} ({names}). "
            f"Please ensure only one {SCHEMA_SUFFIX} file exists."
        )
    return schema_files[0]


def _export_file_pattern(index_name: Optional[str]) -> re.Pattern:
    name = re.escape(index_name) if index_name else ".+?"
    return re.compile(rf"^{name}(\d+){re.escape(EXPORT_SUFFIX)}$")


def _numbered_export_files(backup_dir: Path, index_name: Optional[str]) -> List[Tuple[int, Path]]:
    if not backup_dir.is_dir():
        return []

    pattern = _export_file_pattern(index_name)
    numbered = []
    for path in backup_dir.iterdir():
        match = pattern.match(path.name)
        if match and path.is_file():
            numbered.append((int(match.group(1)), path.name, path))

    return [(sequence, path) for sequence, _, path in sorted(numbered)]


def list_export_files(backup_dir: Union[str, Path], index_name: Optional[str] = None) -> List[Path]:
    """
    List export files of an index, ordered by their numeric suffix.

    Args:
        backup_dir: Backup directory to scan
        index_name: Index name the files were exported from; None matches any

    Returns:
        Paths sorted by sequence number (gaps are allowed)
    """
    return [path for _, path in _numbered_export_files(Path(backup_dir), index_name)]


def has_backup_files(backup_dir: Union[str, Path], index_name: Optional[str] = None) -> bool:
    """True when the directory holds a schema file or export files to restore from"""
    backup_dir = Path(backup_dir)
    if not backup_dir.is_dir():
        return False
    if any(backup_dir.glob(f"*{SCHEMA_SUFFIX}")):
        return True
    return bool(list_export_files(backup_dir, index_name))


def _other_index_names(backup_dir: Path, index_name: str) -> List[str]:
    return [
        path.name[:-len(SCHEMA_SUFFIX)]
        for path in backup_dir.glob(f"*{SCHEMA_SUFFIX}")
        if path.name[:-len(SCHEMA_SUFFIX)] != index_name
    ]


def remove_export_files(backup_dir: Union[str, Path], index_name: str, keep_through: int = 0) -> int:
    """
    Delete export files of an index left over from a previous snapshot.

    Files numbered up to keep_through belong to the current snapshot and are
    kept. A name that is also a valid export file of another index with a
    schema file in the directory (hotels21.json next to hotels2.schema) is
    ambiguous and is never deleted.

    Returns:
        Number of files removed
    """
    backup_dir = Path(backup_dir)
    other_patterns = [_export_file_pattern(name) for name in _other_index_names(backup_dir, index_name)]

    removed = 0
    for sequence, path in _numbered_export_files(backup_dir, index_name):
        if sequence <= keep_through:
            continue
        if any(pattern.match(path.name) for pattern in other_patterns):
            logger.warning(f"Not removing {path.name}: it may belong to another index in {backup_dir}")
            continue
        path.unlink()
        removed += 1
    if removed:
        logger.info(f"Removed {removed} export files of a previous {index_name} snapshot")
    return removed


# ---------------------------------------------------------------------------
# Document reshaping
# ---------------------------------------------------------------------------

GEO_POINT_KEYS = frozenset({"Latitude", "Longitude"})
# Extra properties the .NET GeographyPoint type serialises alongside the coordinates
GEO_POINT_METADATA_KEYS = frozenset({"IsEmpty", "Z", "M", "CoordinateSystem"})


def is_geo_point(value: Any) -> bool:
    if not isinstance(value, dict) or not GEO_POINT_KEYS.issubset(value):
        return False
    return GEO_POINT_METADATA_KEYS.issuperset(set(value) - GEO_POINT_KEYS)


def reshape_geo_points(value: Any) -> Any:
    """
    Rewrite geo-point objects into the shape the bulk index API accepts.

    An object carrying only Latitude/Longitude and spatial metadata
    (IsEmpty, Z, M, CoordinateSystem) becomes
    {"type": "Point", "coordinates": [lat, long]}. Objects with any other
    property are kept as they are. Nested objects and collections are
    rewritten recursively; everything else is returned as-is.
    """
    if is_geo_point(value):
        return {
            "type": "Point",
            "coordinates": [value["Latitude"], value["Longitude"]],
        }
    if isinstance(value, dict):
        return {key: reshape_geo_points(item) for key, item in value.items()}
    if isinstance(value, list):
        return [reshape_geo_points(item) for item in value]
    return value


def prepare_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Strip search result annotations from a query result and reshape geo-points"""
    fields = {
        key: value
        for key, value in document.items()
        if not key.startswith(SEARCH_ANNOTATION_PREFIX)
    }
    return reshape_geo_points(fields)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

def _reject_constant(name: str):
    raise EnvelopeError(f"Non-standard JSON constant {name}")


def parse_json_strict(text: str) -> Any:
    """Parse JSON, rejecting NaN and Infinity which the search service does not accept"""
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise EnvelopeError(f"Invalid JSON: {e}") from e


def build_envelope(documents: List[Dict[str, Any]]) -> str:
    """Serialise documents into a {"value": [...]} envelope"""
    return json.dumps({ENVELOPE_KEY: documents}, ensure_ascii=False)


def validate_envelope(text: str) -> List[Any]:
    """
    Check that text is a JSON object with a top-level "value" array.

    Returns:
        The parsed document list

    Raises:
        EnvelopeError: if the text is not valid JSON or lacks the array
    """
    envelope = parse_json_strict(text)
    if not isinstance(envelope, dict) or ENVELOPE_KEY not in envelope:
        raise EnvelopeError(f"Envelope does not contain a '{ENVELOPE_KEY}' array")
    documents = envelope[ENVELOPE_KEY]
    if not isinstance(documents, list):
        raise EnvelopeError(f"Envelope '{ENVELOPE_KEY}' is not an array")
    return documents
