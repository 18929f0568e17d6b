from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_timestamp(now: Optional[datetime] = None) -> str:
    # Microseconds keep run directories of back-to-back invocations apart.
    moment = now or datetime.now(timezone.utc)
    return moment.strftime("%Y%m%d-%H%M%S-%f")
