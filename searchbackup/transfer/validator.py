"""
Transfer Validation Module

Document counts are the only completeness signal of a transfer: export and
import both skip bad batches, so source and target totals are read back and
reported side by side once a restore has finished.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..endpoint import SearchEndpoint


@dataclass
class CountReport:
    """Document counts of both ends of a transfer; None means unknown"""
    source_count: Optional[int] = None
    target_count: Optional[int] = None

    @property
    def matches(self) -> Optional[bool]:
        if self.source_count is None or self.target_count is None:
            return None
        return self.source_count == self.target_count

    def render(self) -> str:
        def fmt(count: Optional[int]) -> str:
            return "unknown" if count is None else str(count)

        return (
            "SAFEGUARD CHECK: Source and target index counts should match\n"
            f" Source index contains {fmt(self.source_count)} docs\n"
            f" Target index contains {fmt(self.target_count)} docs"
        )


class CountVerifier:
    """Reads total document counts without ever failing the run"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def count_documents(self, endpoint: Optional[SearchEndpoint]) -> Optional[int]:
        """
        Total document count of an index.

        Returns:
            The count, or None if there is no endpoint or the query failed
        """
        if endpoint is None:
            return None
        try:
            return await endpoint.count_documents()
        except Exception as e:
            self.logger.error(f"Could not count documents in {endpoint.index_name}: {str(e)}")
            return None

    async def compare(
        self,
        source: Optional[SearchEndpoint],
        target: Optional[SearchEndpoint],
    ) -> CountReport:
        """Count both ends and report; equality is not enforced"""
        report = CountReport(
            source_count=await self.count_documents(source),
            target_count=await self.count_documents(target),
        )
        if report.matches is False:
            self.logger.warning(
                f"Document counts differ: source {report.source_count}, target {report.target_count}"
            )
        return report
