from __future__ import annotations

import json
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from uuid import UUID, uuid4

_TRACE_CONTEXT: ContextVar["SearchTrace | None"] = ContextVar("search_trace", default=None)

STAGES = ("intent", "cache", "db", "ranking")


def _round_or_none(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value, 3)


@dataclass
class SearchTrace:
    request_id: UUID = field(default_factory=uuid4)
    path: str = ""
    method: str = "GET"
    request_start_timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    query_text: str | None = None
    search_type: str | None = None
    strategy: str | None = None
    cache_hit: bool | None = None
    stage_times_ms: dict[str, float] = field(default_factory=dict)
    total_time_ms: float | None = None
    result_count: int | None = None
    search_active: bool = False
    _request_perf_counter_start: float = field(default_factory=perf_counter, repr=False)

    def mark_search(self, query_text: str | None, search_type: str | None = None, strategy: str | None = None) -> None:
        self.query_text = (query_text or "").strip() or None
        self.search_type = search_type
        self.strategy = strategy
        self.search_active = True

    def mark_cache(self, hit: bool) -> None:
        self.cache_hit = hit

    def record_stage_time(self, stage: str, duration_ms: float) -> None:
        if stage not in STAGES:
            return
        self.stage_times_ms[stage] = self.stage_times_ms.get(stage, 0.0) + duration_ms

    def stage_time(self, stage: str) -> float | None:
        return self.stage_times_ms.get(stage)

    def set_result_count(self, result_count: int) -> None:
        self.result_count = result_count

    def finalize(self) -> None:
        if self.total_time_ms is None:
            self.total_time_ms = (perf_counter() - self._request_perf_counter_start) * 1000.0
        if self.search_active and self.result_count is None:
            self.result_count = 0

    def to_header_value(self) -> str:
        payload = {
            "request_id": str(self.request_id),
            **{f"{stage}_time_ms": _round_or_none(self.stage_time(stage)) for stage in STAGES},
            "total_time_ms": _round_or_none(self.total_time_ms),
            "result_count": self.result_count,
            "cache_hit": self.cache_hit,
        }
        return json.dumps(payload, separators=(",", ":"))

    def missing_stages(self) -> list[str]:
        # A cache hit legitimately skips the db and ranking stages.
        if not self.search_active:
            return []
        required = ("intent", "cache") if self.cache_hit else ("intent", "db", "ranking")
        return [stage for stage in required if stage not in self.stage_times_ms]


def get_current_trace() -> SearchTrace | None:
    return _TRACE_CONTEXT.get()


def set_current_trace(trace: SearchTrace) -> Token:
    return _TRACE_CONTEXT.set(trace)


def reset_current_trace(token: Token) -> None:
    _TRACE_CONTEXT.reset(token)
