from __future__ import annotations

import logging

PERF_LEVEL_NUM = 25
PERF_LEVEL_NAME = "PERF"
PERF_LOGGER_NAME = "discovery.perf"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def register_perf_level() -> None:
    if logging.getLevelName(PERF_LEVEL_NUM) != PERF_LEVEL_NAME:
        logging.addLevelName(PERF_LEVEL_NUM, PERF_LEVEL_NAME)


def resolve_log_level(value: str | None, fallback: int = logging.INFO) -> int:
    if not value:
        return fallback
    normalized = value.strip().upper()
    if normalized == PERF_LEVEL_NAME:
        return PERF_LEVEL_NUM
    resolved = logging.getLevelName(normalized)
    return resolved if isinstance(resolved, int) else fallback


def configure_logging(app_level: str, perf_level: str) -> None:
    register_perf_level()
    app_log_level = resolve_log_level(app_level, fallback=logging.INFO)

    root = logging.getLogger()
    if root.handlers:
        root.setLevel(app_log_level)
    else:
        logging.basicConfig(level=app_log_level, format=LOG_FORMAT)

    logging.getLogger(PERF_LOGGER_NAME).setLevel(resolve_log_level(perf_level, fallback=PERF_LEVEL_NUM))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(app_log_level, logging.WARNING))
