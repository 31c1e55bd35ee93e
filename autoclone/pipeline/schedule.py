"""
Publish-time calculation for scheduled uploads.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Optional

PUBLISH_HOUR = 17          # 5 PM
PUBLISH_UTC_OFFSET = -8    # PST, no DST adjustment


def next_publish_time(
    now: Optional[datetime] = None,
    hour: int = PUBLISH_HOUR,
    utc_offset_hours: int = PUBLISH_UTC_OFFSET,
) -> datetime:
    """
    Next occurrence of `hour`:00 in a fixed UTC offset, as an aware UTC datetime.

    Being exactly at the target hour counts as already passed, so the
    result rolls to the next day.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    zone = timezone(timedelta(hours=utc_offset_hours))
    local_now = now.astimezone(zone)

    target = datetime.combine(local_now.date(), time(hour=hour), tzinfo=zone)
    if local_now >= target:
        target += timedelta(days=1)

    return target.astimezone(timezone.utc)


def next_publish_iso(now: Optional[datetime] = None, **kwargs) -> str:
    """next_publish_time() formatted like `2026-10-20T01:00:00.000Z`."""
    target = next_publish_time(now, **kwargs)
    return target.strftime("%Y-%m-%dT%H:%M:%S.") + f"{target.microsecond // 1000:03d}Z"
