"""
Metrics Collector

Records the lifecycle of every metered provider call: start, finish,
outcome, token usage and derived cost.

Every start() must be paired with exactly one finish(). Records are keyed
by a fresh uuid, so concurrent calls never contend on the same record; the
lock only guards insertion into and lookup in the shared store.

Finished records are handed to a MonitoringSink on a background task. The
sink is never awaited on the caller's path and its errors are logged, not
raised.

Pattern: Repository with append-only records, rotated externally
"""

import asyncio
import dataclasses
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from broker_ai.observability.logging import get_logger
from broker_ai.observability.sinks import MonitoringSink
from broker_ai.services.cost_table import ModelCostTable


# =============================================================================
# MetricRecord
# =============================================================================


@dataclass
class MetricRecord:
    """
    One metered provider call.

    Created by MetricsCollector.start() and mutated exactly once by finish().

    Attributes:
        id: Unique record id
        model: Model identifier used for cost lookup
        provider: Provider name (openai, anthropic, ...)
        operation: chat, embed or document
        start_time: Clock reading at start (seconds)
        end_time: Clock reading at finish, None while in flight
        duration_ms: end_time - start_time in milliseconds
        tokens: Total tokens reported by the provider
        cost: Derived USD cost, None when tokens are unknown
        success: Outcome; False until finished successfully
        error: Error description for failed calls
        finished: True once finish() has run
    """

    id: str
    model: str
    provider: str
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    tokens: Optional[int] = None
    cost: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    finished: bool = False

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


# =============================================================================
# MetricsCollector
# =============================================================================


class MetricsCollector:
    """
    In-process store of metric records with sink forwarding.

    Example:
        >>> collector = MetricsCollector(ModelCostTable(), sink=LoggingSink())
        >>> record_id = collector.start("gpt-4o", provider="openai")
        >>> collector.finish(record_id, success=True, tokens=812)
    """

    def __init__(
        self,
        cost_table: Optional[ModelCostTable] = None,
        sink: Optional[MonitoringSink] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            cost_table: Pricing used to derive cost at finish time
            sink: Destination for finished records; None keeps them local only
            clock: Time source in seconds, injectable for tests
        """
        self._cost_table = cost_table or ModelCostTable()
        self._sink = sink
        self._clock = clock
        self._records: dict[str, MetricRecord] = {}
        self._lock = threading.Lock()
        self._pending_tasks: set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def cost_table(self) -> ModelCostTable:
        return self._cost_table

    def start(self, model: str, provider: str = "", operation: str = "chat") -> str:
        """
        Open a record for a call that is about to be made.

        Returns:
            The new record id
        """
        record_id = uuid.uuid4().hex
        record = MetricRecord(
            id=record_id,
            model=model,
            provider=provider,
            operation=operation,
            start_time=self._clock(),
        )
        with self._lock:
            self._records[record_id] = record
        return record_id

    def finish(
        self,
        record_id: str,
        success: bool,
        tokens: Optional[int] = None,
        error: Optional[str] = None,
    ) -> Optional[MetricRecord]:
        """
        Close a record and forward it to the sink.

        Unknown ids and repeated finishes are logged and ignored.

        Args:
            record_id: Id returned by start()
            success: Whether the call produced a usable result
            tokens: Total tokens used, if reported
            error: Error description for failures

        Returns:
            Snapshot of the finished record, or None if it was ignored
        """
        end_time = self._clock()
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.finished:
                finished_copy = None
                duplicate = record is not None
            else:
                record.end_time = end_time
                record.duration_ms = (end_time - record.start_time) * 1000.0
                record.tokens = tokens
                record.cost = self._cost_table.cost_for(record.model, tokens)
                record.success = success
                record.error = error
                record.finished = True
                finished_copy = dataclasses.replace(record)

        if finished_copy is None:
            self._logger.warning(
                "metric_finish_ignored",
                record_id=record_id,
                reason="already finished" if duplicate else "unknown id",
            )
            return None

        self._dispatch(finished_copy)
        return finished_copy

    def get(self, record_id: str) -> Optional[MetricRecord]:
        """Snapshot of one record, None if unknown."""
        with self._lock:
            record = self._records.get(record_id)
            return dataclasses.replace(record) if record is not None else None

    def records(self) -> list[MetricRecord]:
        """Snapshots of all retained records in start order."""
        with self._lock:
            return [dataclasses.replace(r) for r in self._records.values()]

    def pending_count(self) -> int:
        """Number of started but unfinished records."""
        with self._lock:
            return sum(1 for r in self._records.values() if not r.finished)

    def rotate(self) -> list[MetricRecord]:
        """Remove and return all finished records; in-flight ones are kept."""
        with self._lock:
            done = [r for r in self._records.values() if r.finished]
            for record in done:
                del self._records[record.id]
        return done

    async def flush(self) -> None:
        """Wait for outstanding sink deliveries."""
        while self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks))

    # =========================================================================
    # Sink Delivery
    # =========================================================================

    def _dispatch(self, record: MetricRecord) -> None:
        if self._sink is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning("metric_sink_skipped", record_id=record.id, reason="no event loop")
            return

        task = loop.create_task(self._deliver(record))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _deliver(self, record: MetricRecord) -> None:
        try:
            await self._sink.record(record)
        except Exception as e:
            self._logger.error(
                "metric_sink_failed",
                record_id=record.id,
                sink=type(self._sink).__name__,
                error=str(e),
            )
