# APScheduler scheduled jobs
from qbo_bridge.jobs.schedulers.token_refresh import (
    RowResult,
    TickSummary,
    refresh_token_record,
    run_refresh_tick,
)

__all__ = [
    "RowResult",
    "TickSummary",
    "refresh_token_record",
    "run_refresh_tick",
]
