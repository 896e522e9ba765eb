import json
import logging

from discovery.telemetry import SearchTrace, instrument_stage, reset_current_trace, set_current_trace, timed_stage
from discovery.telemetry.logging_utils import PERF_LEVEL_NUM, resolve_log_level


def test_timed_stage_accumulates_into_active_trace():
    trace = SearchTrace()
    token = set_current_trace(trace)
    try:
        with timed_stage("db"):
            pass
        with timed_stage("db"):
            pass
        with timed_stage("unknown"):
            pass
    finally:
        reset_current_trace(token)

    assert trace.stage_time("db") is not None
    assert "unknown" not in trace.stage_times_ms


def test_instrument_stage_without_trace_is_transparent():
    @instrument_stage("ranking")
    def double(value):
        return value * 2

    assert double(4) == 8


def test_missing_stages_respects_cache_hits():
    trace = SearchTrace()
    trace.mark_search("spa", "general", "text")
    trace.record_stage_time("intent", 0.2)
    assert trace.missing_stages() == ["db", "ranking"]

    trace.mark_cache(True)
    assert trace.missing_stages() == ["cache"]


def test_header_value_is_compact_json():
    trace = SearchTrace()
    trace.mark_search("spa")
    trace.record_stage_time("intent", 1.23456)
    trace.finalize()

    header = json.loads(trace.to_header_value())
    assert header["intent_time_ms"] == 1.235
    assert header["db_time_ms"] is None
    assert header["result_count"] == 0
    assert header["request_id"] == str(trace.request_id)


def test_resolve_log_level():
    assert resolve_log_level("perf") == PERF_LEVEL_NUM
    assert resolve_log_level("warning") == logging.WARNING
    assert resolve_log_level("nonsense") == logging.INFO
