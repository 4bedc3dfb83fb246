"""
Search Index Backup and Restore Example

This example backs up an index on one search service to a local folder and
then restores the backup into a differently named index on a second service.

Scenario:
- Production service: index "hotels" is exported to ./backup
- Staging service: the backup is restored as "hotels-staging"

Set SEARCH_BACKUP_SOURCE_KEY and SEARCH_BACKUP_TARGET_KEY (or put them in a
.env file) before running.
"""

import asyncio
import os

from searchbackup import IndexHandle, TransferConfig
from searchbackup.transfer import IndexBackupRestore, TransferMode
from searchbackup.utils import setup_logger


# ============================================================================
# Step 1: Back up the production index
# ============================================================================

async def backup_production_index():
    """Export schema and documents of the production index"""
    print("=== Backing up production index ===")

    config = TransferConfig(
        backup_directory="./backup",
        source=IndexHandle(
            service="contoso-prod",
            api_key=os.environ["SEARCH_BACKUP_SOURCE_KEY"],
            index_name="hotels",
        ),
        batch_size=500,      # Documents per export file
        parallel_jobs=10,    # Batches fetched per wave
    )

    transfer = IndexBackupRestore.from_config(config)
    try:
        report = await transfer.run()
    finally:
        await transfer.close()

    assert report.mode == TransferMode.EXPORT_ONLY
    failed = [batch for batch in report.batches if not batch.written]
    print(f"Exported {report.exported_documents} documents in {len(report.batches)} batches")
    for batch in failed:
        print(f"  Batch {batch.window.sequence} {batch.status.value}: {batch.reason}")

    return report


# ============================================================================
# Step 2: Restore the backup into staging
# ============================================================================

async def restore_to_staging():
    """Recreate the index on staging from the local backup"""
    print("=== Restoring backup to staging ===")

    config = TransferConfig(
        backup_directory="./backup",
        target=IndexHandle(
            service="contoso-staging",
            api_key=os.environ["SEARCH_BACKUP_TARGET_KEY"],
            index_name="hotels-staging",
        ),
        indexing_delay_seconds=15,  # Give the service time to index before counting
    )

    transfer = IndexBackupRestore.from_config(config)
    try:
        report = await transfer.run()
    finally:
        await transfer.close()

    result = report.import_result
    print(f"Uploaded {result.document_count} documents from {len(result.submitted)} files")
    for path, reason in result.skipped.items():
        print(f"  Skipped {path.name}: {reason}")
    print(report.counts.render())

    return report


async def main():
    setup_logger("INFO")

    await backup_production_index()
    await restore_to_staging()


if __name__ == "__main__":
    asyncio.run(main())
