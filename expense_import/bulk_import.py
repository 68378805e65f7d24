"""
Expense Import - Bulk Import Coordination

PURPOSE: Push validated records to a persistence collaborator in throttled batches
SCOPE: Batching, inter-batch delays, rate-limit backoff with per-item retry,
       outcome aggregation
DEPENDENCIES: asyncio, config, models

STATES: idle -> running(i) -> [throttled(i) -> retrying_individually(i)] ->
running(i+1) ... -> idle. Outcome counters are only touched after each
batch's gather has joined.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple

from .config import ImportConfig, config
from .errors import ImportFailedError, RateLimitError
from .models import ExpenseRecord, ImportOutcome

logger = logging.getLogger(__name__)

PersistFn = Callable[[ExpenseRecord], Any]
SleepFn = Callable[[float], Awaitable[None]]
ProgressFn = Callable[[int, int], None]

RATE_LIMIT_STATUS = 429


class ImportState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    THROTTLED = 'throttled'
    RETRYING_INDIVIDUALLY = 'retrying_individually'


def is_rate_limited(error: BaseException) -> bool:
    """True when a persistence failure means "slow down"."""
    if isinstance(error, RateLimitError):
        return True
    for attr in ('status_code', 'code', 'status'):
        if getattr(error, attr, None) == RATE_LIMIT_STATUS:
            return True
    response = getattr(error, 'response', None)
    if response is not None and getattr(response, 'status_code', None) == RATE_LIMIT_STATUS:
        return True
    return 'rate limit' in str(error).lower()


def describe_failure(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


class BulkImportCoordinator:
    """Runs persistence calls for many records and aggregates the outcome."""

    def __init__(self, import_config: Optional[ImportConfig] = None,
                 sleep: Optional[SleepFn] = None):
        self.config = import_config or config
        self._sleep = sleep or asyncio.sleep
        self.state = ImportState.IDLE
        self.batch_index: Optional[int] = None

    async def import_all(self, records: Iterable[ExpenseRecord], persist: PersistFn,
                         strict: bool = False,
                         on_progress: Optional[ProgressFn] = None) -> ImportOutcome:
        """Persist every record; never raises for partial failure unless ``strict``."""
        items = list(records)
        outcome = ImportOutcome()
        batch_size = self.config.BATCH_SIZE
        total_batches = (len(items) + batch_size - 1) // batch_size
        logger.info(f"Importing {len(items)} records in {total_batches} batches of up to {batch_size}")

        processed = 0
        try:
            for batch_index in range(total_batches):
                if batch_index > 0:
                    await self._sleep(self.config.BATCH_DELAY_SECONDS)

                start = batch_index * batch_size
                batch = [
                    (self._row_number(record, start + offset), record)
                    for offset, record in enumerate(items[start:start + batch_size])
                ]
                await self._run_batch(batch_index, batch, persist, outcome)

                processed += len(batch)
                if on_progress is not None:
                    on_progress(processed, len(items))
        finally:
            self._transition(ImportState.IDLE, None)

        logger.info(
            f"Import finished: {outcome.success_count} succeeded, {outcome.failed_count} failed"
        )
        if strict and outcome.failed_count:
            raise ImportFailedError(outcome)
        return outcome

    async def _run_batch(self, batch_index: int, batch: List[Tuple[int, ExpenseRecord]],
                         persist: PersistFn, outcome: ImportOutcome) -> None:
        self._transition(ImportState.RUNNING, batch_index)
        results = await asyncio.gather(
            *(self._persist_one(persist, record) for _, record in batch),
            return_exceptions=True,
        )

        failed: List[Tuple[int, ExpenseRecord, BaseException]] = []
        for (row_number, record), result in zip(batch, results):
            if isinstance(result, BaseException):
                failed.append((row_number, record, result))
            else:
                outcome.record_success()

        if not failed:
            return

        if not any(is_rate_limited(error) for _, _, error in failed):
            for row_number, _, error in failed:
                logger.error(f"Row {row_number}: persistence failed: {describe_failure(error)}")
                outcome.record_failure(row_number, describe_failure(error))
            return

        self._transition(ImportState.THROTTLED, batch_index)
        logger.warning(
            f"Batch {batch_index + 1} was rate limited; backing off "
            f"{self.config.RATE_LIMIT_BACKOFF_SECONDS}s before retrying {len(failed)} records"
        )
        await self._sleep(self.config.RATE_LIMIT_BACKOFF_SECONDS)

        self._transition(ImportState.RETRYING_INDIVIDUALLY, batch_index)
        for position, (row_number, record, _) in enumerate(failed):
            if position > 0:
                await self._sleep(self.config.RETRY_ITEM_DELAY_SECONDS)
            try:
                await self._persist_one(persist, record)
            except Exception as e:
                logger.error(f"Row {row_number}: retry failed: {describe_failure(e)}")
                outcome.record_failure(row_number, describe_failure(e))
            else:
                outcome.record_success()

    @staticmethod
    async def _persist_one(persist: PersistFn, record: ExpenseRecord) -> None:
        result = persist(record)
        if inspect.isawaitable(result):
            await result

    @staticmethod
    def _row_number(record: ExpenseRecord, position: int) -> int:
        return record.source_row if record.source_row is not None else position + 1

    def _transition(self, state: ImportState, batch_index: Optional[int]) -> None:
        self.state = state
        self.batch_index = batch_index
        logger.debug(f"Import state -> {state.value} (batch {batch_index})")
