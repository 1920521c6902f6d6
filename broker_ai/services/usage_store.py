"""
Usage Store - Redis aggregation of metered calls

A MonitoringSink that folds finished MetricRecords into daily and
per-model counters in Redis hashes, and reads them back for reporting.

Key layout:
    usage:daily:<YYYY-MM-DD>          totals for the day
    usage:model:<YYYY-MM-DD>:<model>  totals for one model on that day

Pattern: Repository pattern with Redis storage
Anti-Pattern §1.3 Avoided: Uses Pydantic models for data structures
"""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel, Field
from redis.asyncio import Redis

from broker_ai.observability.sinks import MonitoringSink

if TYPE_CHECKING:
    from broker_ai.services.metrics_collector import MetricRecord


class UsageStoreError(Exception):
    """Raised when Redis usage aggregation fails."""

    pass


class UsageSummary(BaseModel):
    """
    Aggregated usage over a day or a model.

    Attributes:
        request_count: Metered calls
        success_count: Calls that succeeded
        failure_count: Calls that failed
        total_tokens: Tokens reported by providers
        total_cost: Derived cost in USD
        total_duration_ms: Sum of call durations
    """

    request_count: int = Field(default=0)
    success_count: int = Field(default=0)
    failure_count: int = Field(default=0)
    total_tokens: int = Field(default=0)
    total_cost: float = Field(default=0.0)
    total_duration_ms: float = Field(default=0.0)

    @classmethod
    def from_hash(cls, raw: dict) -> "UsageSummary":
        data = {(k.decode() if isinstance(k, bytes) else k): v for k, v in raw.items()}
        return cls(
            request_count=int(data.get("request_count", 0)),
            success_count=int(data.get("success_count", 0)),
            failure_count=int(data.get("failure_count", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
            total_cost=float(data.get("total_cost", 0)),
            total_duration_ms=float(data.get("total_duration_ms", 0)),
        )


class RedisUsageSink(MonitoringSink):
    """
    Aggregates metric records into Redis hashes.

    Uses one pipeline of HINCRBY/HINCRBYFLOAT per record so concurrent
    writers never lose increments.

    Attributes:
        redis: Redis client for persistence
    """

    DAILY_KEY_PREFIX = "usage:daily:"
    MODEL_KEY_PREFIX = "usage:model:"

    def __init__(
        self,
        redis_client: Redis,
        ttl_days: Optional[int] = 90,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        """
        Args:
            redis_client: Redis client for persistence
            ttl_days: Expiry applied to each touched key; None keeps keys forever
            today: Date source, injectable for tests
        """
        self._redis = redis_client
        self._ttl_seconds = ttl_days * 86400 if ttl_days else None
        self._today = today

    def _get_daily_key(self, target_date: Optional[dt.date] = None) -> str:
        target = target_date or self._today()
        return f"{self.DAILY_KEY_PREFIX}{target.isoformat()}"

    def _get_model_key(self, model: str, target_date: Optional[dt.date] = None) -> str:
        target = target_date or self._today()
        return f"{self.MODEL_KEY_PREFIX}{target.isoformat()}:{model}"

    async def record(self, record: "MetricRecord") -> None:
        """
        Fold one finished record into today's counters.

        Raises:
            UsageStoreError: If Redis rejects the pipeline
        """
        try:
            outcome_field = "success_count" if record.success else "failure_count"
            tokens = record.tokens or 0
            cost = record.cost or 0.0
            duration = record.duration_ms or 0.0

            pipe = self._redis.pipeline()
            for key in (self._get_daily_key(), self._get_model_key(record.model)):
                pipe.hincrby(key, "request_count", 1)
                pipe.hincrby(key, outcome_field, 1)
                pipe.hincrby(key, "total_tokens", tokens)
                pipe.hincrbyfloat(key, "total_cost", cost)
                pipe.hincrbyfloat(key, "total_duration_ms", duration)
                if self._ttl_seconds:
                    pipe.expire(key, self._ttl_seconds)
            await pipe.execute()

        except Exception as e:
            raise UsageStoreError(f"Failed to record usage: {e}") from e

    async def get_daily_usage(self, date: Optional[dt.date] = None) -> UsageSummary:
        """
        Get usage summary for a specific day (default today).

        Raises:
            UsageStoreError: If Redis is unreachable
        """
        try:
            data = await self._redis.hgetall(self._get_daily_key(date))
            if not data:
                return UsageSummary()
            return UsageSummary.from_hash(data)

        except Exception as e:
            raise UsageStoreError(f"Failed to get daily usage: {e}") from e

    async def get_usage_by_model(
        self,
        target_date: Optional[dt.date] = None,
    ) -> dict[str, UsageSummary]:
        """
        Get usage breakdown by model for a specific day (default today).

        Returns:
            Dict mapping model names to usage summaries
        """
        try:
            target = target_date or self._today()
            prefix = f"{self.MODEL_KEY_PREFIX}{target.isoformat()}:"

            result: dict[str, UsageSummary] = {}
            cursor = 0
            while True:
                cursor, keys = await self._redis.scan(cursor, match=f"{prefix}*", count=100)
                for key in keys:
                    key_str = key.decode() if isinstance(key, bytes) else key
                    model = key_str[len(prefix):]
                    data = await self._redis.hgetall(key)
                    if data:
                        result[model] = UsageSummary.from_hash(data)

                if cursor == 0:
                    break

            return result

        except Exception as e:
            raise UsageStoreError(f"Failed to get usage by model: {e}") from e
