"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


HOST = os.getenv("PAYMENTS_HOST", "0.0.0.0")
PORT = env_int("PAYMENTS_PORT", 3001, minimum=1)
OUTPUT_DIR = os.getenv("PAYMENTS_OUTPUT_DIR", os.path.join(os.getcwd(), "output"))
LOG_LEVEL = os.getenv("PAYMENTS_LOG_LEVEL", "INFO").upper()

DEFAULT_DUE_DAYS = env_int("PAYMENTS_DUE_DAYS", 30, minimum=0)

DEFAULT_MAX_CONCURRENT_RENDERS = max(2, min(8, os.cpu_count() or 2))
MAX_CONCURRENT_RENDERS = env_int(
    "PAYMENTS_MAX_CONCURRENT_RENDERS",
    DEFAULT_MAX_CONCURRENT_RENDERS,
    minimum=1,
)
MAX_INFLIGHT_RENDERS = env_int(
    "PAYMENTS_MAX_INFLIGHT_RENDERS",
    max(16, MAX_CONCURRENT_RENDERS * 4),
    minimum=1,
)
RENDER_QUEUE_TIMEOUT_MS = env_int("PAYMENTS_RENDER_QUEUE_TIMEOUT_MS", 30000, minimum=0)
RENDER_TIMEOUT_MS = env_int("PAYMENTS_RENDER_TIMEOUT_MS", 60000, minimum=1000)

MAX_BODY_BYTES = env_int("PAYMENTS_MAX_BODY_BYTES", 8 * 1024 * 1024, minimum=1024)
MAX_PAGES = env_int("PAYMENTS_MAX_PAGES", 500, minimum=1)
LISTEN_BACKLOG = env_int("PAYMENTS_LISTEN_BACKLOG", 128, minimum=1)
