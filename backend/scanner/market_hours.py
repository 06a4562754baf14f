"""US equity regular-session check (09:30–16:00 America/New_York, Mon–Fri)."""
from __future__ import annotations

from datetime import datetime

import pandas as pd

MARKET_TZ = "America/New_York"
OPEN_MINUTE = 9 * 60 + 30
CLOSE_MINUTE = 16 * 60


def is_market_open(now: datetime | None = None) -> bool:
    """
    Naive datetimes are taken as UTC. Exchange holidays are not modelled,
    so a holiday weekday reports open during session hours.
    """
    ts = pd.Timestamp(now) if now is not None else pd.Timestamp.now(tz="UTC")
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    local = ts.tz_convert(MARKET_TZ)
    if local.weekday() >= 5:
        return False
    minute = local.hour * 60 + local.minute
    return OPEN_MINUTE <= minute < CLOSE_MINUTE
