"""
Command line entry point for backing up and restoring a search index.

Example usage:

    searchbackup --settings appsettings.json
    searchbackup --settings appsettings.json --backup-dir ./backup --yes

Whether the run exports, restores, or both depends on which of the source
and target indexes are configured and on what the backup directory holds.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .exceptions import BackupRestoreError
from .transfer import IndexBackupRestore, TransferReport
from .utils import logger, setup_logger

DEFAULT_SETTINGS_FILE = "appsettings.json"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Back up and restore a search index via local JSON files")
    parser.add_argument(
        "--settings",
        help=f"Settings file with source/target service and index names (default: {DEFAULT_SETTINGS_FILE} if present)",
    )
    parser.add_argument("--backup-dir", help="Backup directory; overrides BackupDirectory")
    parser.add_argument("--batch-size", type=int, help="Documents per export file, up to 1000")
    parser.add_argument("--parallel-jobs", type=int, help="Export batches fetched concurrently")
    parser.add_argument(
        "--indexing-delay",
        type=float,
        help="Seconds to wait after a restore before counting target documents",
    )
    parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return parser.parse_args(argv)


def resolve_settings_path(settings: Optional[str]) -> Optional[Path]:
    if settings:
        return Path(settings)
    default = Path(DEFAULT_SETTINGS_FILE)
    return default if default.exists() else None


def confirm(prompt: str = "Does this look correct? [y/N] ") -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def print_report(report: TransferReport):
    if report.batches:
        written = sum(1 for batch in report.batches if batch.written)
        print(f"Exported {report.exported_documents} documents to {written} files")
    if report.import_result is not None:
        result = report.import_result
        print(f"Uploaded {result.document_count} documents from {len(result.submitted)} files")
        for path, reason in result.skipped.items():
            print(f"  Skipped {path}: {reason}")
    if report.counts is not None:
        print()
        print(report.counts.render())


async def run_transfer(transfer: IndexBackupRestore) -> TransferReport:
    try:
        return await transfer.run()
    finally:
        await transfer.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logger(getattr(logging, args.log_level))

    try:
        config = load_config(
            resolve_settings_path(args.settings),
            overrides={
                "BackupDirectory": args.backup_dir,
                "MaxBatchSize": args.batch_size,
                "ParallelizedJobs": args.parallel_jobs,
                "IndexingDelaySeconds": args.indexing_delay,
            },
        )
    except BackupRestoreError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    print(config.describe())
    if not args.yes and not confirm():
        print("Cancelled.")
        return 130

    try:
        report = asyncio.run(run_transfer(IndexBackupRestore.from_config(config)))
    except BackupRestoreError as e:
        logger.error(f"ERROR: {e}")
        return 1

    print_report(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
