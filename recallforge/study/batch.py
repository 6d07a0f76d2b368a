"""
Batch coordinator for review scheduling.

Schedules many independent reviews in one call. Every entry is validated,
scheduled and reported on its own: a malformed or failing entry produces a
failure record at its index while its neighbours still succeed.

Results always come back in input order, whatever order the worker pool
finishes them in.

Follows NASA JPL Power of Ten rules.
"""

import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Sequence

from recallforge.core.config.features import MAX_BATCH_ITEMS, MAX_BATCH_WORKERS
from recallforge.core.exceptions import BatchItemError, RecallForgeError, ValidationError
from recallforge.core.logging import get_logger
from recallforge.study.contracts import (
    BatchItemResult,
    BatchScheduleResult,
    BatchSummary,
    ScheduleResult,
)

logger = get_logger(__name__)

# Type for the per-entry scheduling function
ScheduleFunc = Callable[[Any], ScheduleResult]


class BatchCoordinator:
    """
    Fans a list of review entries out over a bounded worker pool.

    Rule #2: Bounded worker pool and batch size.
    Rule #7: Explicit result for each entry.
    """

    def __init__(self, max_workers: int = 4, max_items: int = 100) -> None:
        """
        Initialize the coordinator.

        Args:
            max_workers: Concurrent workers (capped at MAX_BATCH_WORKERS).
                1 runs entries sequentially on the calling thread.
            max_items: Largest accepted batch (capped at MAX_BATCH_ITEMS).
        """
        self._max_workers = max(1, min(max_workers, MAX_BATCH_WORKERS))
        self._max_items = max(1, min(max_items, MAX_BATCH_ITEMS))

    @property
    def max_items(self) -> int:
        return self._max_items

    def run(self, entries: Sequence[Any], schedule: ScheduleFunc) -> BatchScheduleResult:
        """
        Schedule every entry independently.

        Args:
            entries: Raw review entries (mappings or ScheduleRequest objects).
            schedule: Function scheduling one entry.

        Returns:
            BatchScheduleResult with one result per entry, in input order.

        Raises:
            ValidationError: If the batch itself is too large.
        """
        if len(entries) > self._max_items:
            raise ValidationError(
                f"Batch size {len(entries)} exceeds maximum {self._max_items}",
                how_to_fix=[f"Split the batch into chunks of at most {self._max_items} reviews"],
            )

        batch_id = str(uuid.uuid4())
        start_time = time.perf_counter()

        if self._max_workers == 1 or len(entries) <= 1:
            results = [self._run_one(i, entry, schedule) for i, entry in enumerate(entries)]
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                futures = [
                    executor.submit(self._run_one, i, entry, schedule)
                    for i, entry in enumerate(entries)
                ]
                # Collected in submission order, not completion order
                results = [future.result() for future in futures]

        successful = sum(1 for r in results if r.success)
        summary = BatchSummary(
            total=len(results), successful=successful, failed=len(results) - successful
        )
        logger.info(
            "Batch scheduled",
            batch_id=batch_id,
            total=summary.total,
            failed=summary.failed,
            duration_ms=f"{(time.perf_counter() - start_time) * 1000:.1f}",
        )
        return BatchScheduleResult(results=results, summary=summary)

    def _run_one(self, index: int, entry: Any, schedule: ScheduleFunc) -> BatchItemResult:
        """
        Schedule one entry, converting any failure into a failure record.

        Rule #7: Always return explicit result.
        """
        user_id, item_id = _entry_key(entry)
        try:
            result = schedule(entry)
        except RecallForgeError as e:
            logger.warning(
                "Batch entry rejected", index=index, code=e.error_code, error=str(e)
            )
            return _failure(index, user_id, item_id, e)
        except Exception as e:
            logger.exception("Batch entry failed", index=index)
            wrapped = BatchItemError(f"Internal error: {type(e).__name__}", index=index)
            return _failure(index, user_id, item_id, wrapped)

        return BatchItemResult(
            index=index,
            success=True,
            user_id=result.user_id,
            item_id=result.item_id,
            result=result,
        )


def _entry_key(entry: Any) -> "tuple[Optional[str], Optional[str]]":
    """Best-effort identifiers of a raw entry for failure reports."""
    if isinstance(entry, dict):
        user_id = entry.get("userId", entry.get("user_id"))
        item_id = entry.get("itemId", entry.get("item_id"))
        return (
            user_id if isinstance(user_id, str) else None,
            item_id if isinstance(item_id, str) else None,
        )
    return (getattr(entry, "user_id", None), getattr(entry, "item_id", None))


def _failure(
    index: int, user_id: Optional[str], item_id: Optional[str], error: RecallForgeError
) -> BatchItemResult:
    return BatchItemResult(
        index=index,
        success=False,
        user_id=user_id,
        item_id=item_id,
        error=str(error),
        error_code=error.error_code,
    )
