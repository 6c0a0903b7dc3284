from datetime import datetime, timezone
from typing import Optional


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Les dates sont stockées en UTC sans fuseau"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
