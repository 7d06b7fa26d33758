"""Cluster evolution over time for stacked charts."""

from datetime import datetime, timedelta
from typing import Dict, List, Sequence, Union

import pendulum

from ..models import EnrichedProjection, OpinionCluster

HOUR = "hour"
SIX_HOURS = "6hours"
DAY = "day"

_STEPS = {
    HOUR: timedelta(hours=1),
    SIX_HOURS: timedelta(hours=6),
    DAY: timedelta(days=1),
}

_LABEL_FORMATS = {
    HOUR: "MMM DD HH:mm",
    SIX_HOURS: "MMM DD HH:mm",
    DAY: "MMM DD",
}


def calculate_granularity(start: datetime, end: datetime) -> str:
    """Hourly up to a day, 6-hourly up to a week, daily beyond."""
    days = (end - start).total_seconds() / 86400
    if days <= 1:
        return HOUR
    if days <= 7:
        return SIX_HOURS
    return DAY


def _bucket_origin(start: datetime, granularity: str) -> pendulum.DateTime:
    moment = pendulum.instance(start)
    if granularity == DAY:
        return moment.start_of("day")
    return moment.start_of("hour")


def generate_time_series_data(
    projections: Sequence[EnrichedProjection],
    clusters: Sequence[OpinionCluster],
    start: datetime,
    end: datetime,
) -> List[Dict[str, Union[str, int]]]:
    """
    Count cluster members per time bucket.

    Returns:
        One row per bucket, oldest first: ``{"date": label, "cluster_0": n, ...}``.
        Outliers and posts outside the range are not counted.
    """
    granularity = calculate_granularity(start, end)
    step = _STEPS[granularity]
    label_format = _LABEL_FORMATS[granularity]
    origin = _bucket_origin(start, granularity)
    end_moment = pendulum.instance(end)

    bucket_starts: List[pendulum.DateTime] = []
    cursor = origin
    while cursor <= end_moment:
        bucket_starts.append(cursor)
        cursor = cursor + step

    cluster_keys = {c.cluster_id: f"cluster_{c.cluster_id}" for c in clusters}
    rows: List[Dict[str, Union[str, int]]] = []
    for bucket in bucket_starts:
        row: Dict[str, Union[str, int]] = {"date": bucket.format(label_format)}
        for key in cluster_keys.values():
            row[key] = 0
        rows.append(row)

    for projection in projections:
        key = cluster_keys.get(projection.cluster_id)
        if key is None:
            continue
        created = pendulum.instance(projection.post_created_at)
        if created < origin or created > end_moment:
            continue
        index = int((created - origin).total_seconds() // step.total_seconds())
        if index < len(rows):
            rows[index][key] += 1

    return rows
