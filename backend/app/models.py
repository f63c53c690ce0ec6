from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

INTERVIEWED_STAGES = frozenset({"Interview", "Offer", "Hired"})

MAX_EXACT_TOUCHPOINTS = 2**53

TEXT_FIELDS = (
    "full_name",
    "email",
    "source",
    "event_name",
    "role",
    "outreach_date",
    "interview_stage",
    "hire_date",
    "notes",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_number(value: float) -> Union[int, float]:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _parse_numeric_text(text: str) -> Optional[Union[int, float]]:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except (ValueError, OverflowError):
        return None


def coerce_touchpoints(value: Any) -> Optional[Union[int, float]]:
    """Lenient numeric parse for sheet cells; anything unusable becomes absent.

    Integers beyond 2**53 cannot be held exactly by the numeric column, so they
    are treated as unusable rather than silently rounded.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        number = _parse_numeric_text(value.strip())
    elif isinstance(value, (int, float)):
        number = value
    else:
        return None
    if number is None:
        return None
    if isinstance(number, int):
        return number if abs(number) <= MAX_EXACT_TOUCHPOINTS else None
    if not math.isfinite(number) or abs(number) > MAX_EXACT_TOUCHPOINTS:
        return None
    return normalize_number(number)


def _coerce_text(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(normalize_number(value))
    if isinstance(value, str) and value == "":
        return None
    return value


class ChangeEventType(str, Enum):
    connected = "connected"
    updated = "updated"


class CandidateRecord(BaseModel):
    candidate_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    source: Optional[str] = None
    event_name: Optional[str] = None
    role: Optional[str] = None
    outreach_date: Optional[str] = None
    interview_stage: Optional[str] = None
    touchpoints: Optional[Union[int, float]] = None
    hire_date: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_hired(self) -> bool:
        return bool(self.hire_date)

    @property
    def is_interviewed(self) -> bool:
        return self.interview_stage in INTERVIEWED_STAGES


class SyncRowRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    candidate_id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    source: Optional[str] = None
    event_name: Optional[str] = None
    role: Optional[str] = None
    outreach_date: Optional[str] = None
    interview_stage: Optional[str] = None
    touchpoints: Optional[Union[int, float]] = None
    hire_date: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("candidate_id", *TEXT_FIELDS, mode="before")
    @classmethod
    def blank_text_to_none(cls, value: Any) -> Any:
        return _coerce_text(value)

    @field_validator("touchpoints", mode="before")
    @classmethod
    def parse_touchpoints(cls, value: Any) -> Optional[Union[int, float]]:
        return coerce_touchpoints(value)

    def to_record(self) -> CandidateRecord:
        return CandidateRecord(
            candidate_id=self.candidate_id or "",
            **{name: getattr(self, name) for name in TEXT_FIELDS},
            touchpoints=self.touchpoints,
        )


class SyncRowResponse(BaseModel):
    ok: bool = True
    upserted_candidate_id: str


class EventConversionItem(BaseModel):
    event_name: str
    leads: int
    interviews: int
    interview_rate: float


class TouchpointsToHire(BaseModel):
    hired_count: int
    avg_touchpoints: Optional[float]
    median_touchpoints: Optional[Union[int, float]]


class ChannelPerformanceItem(BaseModel):
    source: str
    leads: int
    interviews: int
    hires: int
    interview_rate: float
    hire_rate: float
    hire_from_interview_rate: float


class FunnelMetricsResponse(BaseModel):
    updated_at: datetime
    event_conversion: list[EventConversionItem]
    touchpoints_to_hire: TouchpointsToHire
    channel_performance: list[ChannelPerformanceItem]


class HireItem(BaseModel):
    candidate_id: str
    full_name: Optional[str]
    hire_date: str


class HiresDebugResponse(BaseModel):
    count: int
    hires: list[HireItem]


class ChangeEvent(BaseModel):
    type: ChangeEventType
    at: datetime
    candidate_id: Optional[str] = None

    @classmethod
    def connected(cls) -> "ChangeEvent":
        return cls(type=ChangeEventType.connected, at=utc_now())

    @classmethod
    def updated(cls, candidate_id: str) -> "ChangeEvent":
        return cls(type=ChangeEventType.updated, at=utc_now(), candidate_id=candidate_id)

    def to_sse(self) -> str:
        payload = self.model_dump(mode="json", exclude_none=True)
        return f"data: {json.dumps(payload)}\n\n"
