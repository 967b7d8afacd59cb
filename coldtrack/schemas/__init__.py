"""
Wire models for ColdTrack.
Import from here rather than from the individual modules.
"""

from .catalog import BranchRef, SensorRef, UserProfile
from .live import LiveReading, HistoryPoint, parse_live_payload
from .event import EventRecord, EventFilter
from .analytics import (
    DateRangeQuery,
    KPISet,
    PeriodBucket,
    PeriodSeries,
    StateShare,
    CriticalEvent,
    EventBreakdown,
    DailyTemperature,
    CameraEventRank,
    CameraFailureRank,
    CameraRankings,
    AnalyticsResult,
    SummaryAuthor,
    ExecutiveSummary,
)

__all__ = [
    "BranchRef",
    "SensorRef",
    "UserProfile",
    "LiveReading",
    "HistoryPoint",
    "parse_live_payload",
    "EventRecord",
    "EventFilter",
    "DateRangeQuery",
    "KPISet",
    "PeriodBucket",
    "PeriodSeries",
    "StateShare",
    "CriticalEvent",
    "EventBreakdown",
    "DailyTemperature",
    "CameraEventRank",
    "CameraFailureRank",
    "CameraRankings",
    "AnalyticsResult",
    "SummaryAuthor",
    "ExecutiveSummary",
]
