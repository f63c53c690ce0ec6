from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Optional, Union

from backend.app.models import (
    CandidateRecord,
    ChannelPerformanceItem,
    EventConversionItem,
    FunnelMetricsResponse,
    TouchpointsToHire,
    normalize_number,
    utc_now,
)


def safe_rate(numerator: int, denominator: int, digits: int = 3) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator, digits)


def median(values: list[Union[int, float]]) -> Optional[Union[int, float]]:
    """Median of an ascending sequence; the even case averages the two middle values."""
    if not values:
        return None
    mid = len(values) // 2
    if len(values) % 2 == 0:
        return normalize_number((values[mid - 1] + values[mid]) / 2)
    return values[mid]


def _by_leads(items: list, key: str) -> list:
    return sorted(items, key=lambda item: (-item.leads, getattr(item, key)))


def event_conversion(records: Iterable[CandidateRecord]) -> list[EventConversionItem]:
    counts: dict[str, list[int]] = {}
    for record in records:
        if not record.event_name:
            continue
        bucket = counts.setdefault(record.event_name, [0, 0])
        bucket[0] += 1
        if record.is_interviewed:
            bucket[1] += 1
    items = [
        EventConversionItem(
            event_name=name,
            leads=leads,
            interviews=interviews,
            interview_rate=safe_rate(interviews, leads),
        )
        for name, (leads, interviews) in counts.items()
    ]
    return _by_leads(items, "event_name")


def touchpoints_to_hire(records: Iterable[CandidateRecord]) -> TouchpointsToHire:
    touches = sorted(
        record.touchpoints
        for record in records
        if record.is_hired and record.touchpoints is not None
    )
    average = round(sum(touches) / len(touches), 2) if touches else None
    return TouchpointsToHire(
        hired_count=len(touches),
        avg_touchpoints=average,
        median_touchpoints=median(touches),
    )


def channel_performance(records: Iterable[CandidateRecord]) -> list[ChannelPerformanceItem]:
    counts: dict[str, list[int]] = {}
    for record in records:
        if not record.source:
            continue
        bucket = counts.setdefault(record.source, [0, 0, 0])
        bucket[0] += 1
        if record.is_interviewed:
            bucket[1] += 1
        if record.is_hired:
            bucket[2] += 1
    items = [
        ChannelPerformanceItem(
            source=source,
            leads=leads,
            interviews=interviews,
            hires=hires,
            interview_rate=safe_rate(interviews, leads),
            hire_rate=safe_rate(hires, leads),
            hire_from_interview_rate=safe_rate(hires, interviews),
        )
        for source, (leads, interviews, hires) in counts.items()
    ]
    return _by_leads(items, "source")


def compute_funnel_metrics(
    records: Iterable[CandidateRecord], *, now: Optional[datetime] = None
) -> FunnelMetricsResponse:
    rows = list(records)
    return FunnelMetricsResponse(
        updated_at=now or utc_now(),
        event_conversion=event_conversion(rows),
        touchpoints_to_hire=touchpoints_to_hire(rows),
        channel_performance=channel_performance(rows),
    )
