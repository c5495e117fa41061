"""Domain models for visits, preferences, time windows and persisted routes."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from ..errors import InvalidInputError

START_ID = "START"
END_ID = "END"

POTENTIAL_SCORES = {"high": 100, "medium": 50, "low": 25}
DEFAULT_POTENTIAL_SCORE = 50

WEEKDAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


def potential_score(potential: Optional[str]) -> int:
    """Map a potential tier (High/Medium/Low) to its numeric score."""

    if not potential:
        return DEFAULT_POTENTIAL_SCORE
    return POTENTIAL_SCORES.get(potential.strip().lower(), DEFAULT_POTENTIAL_SCORE)


def parse_time(value: str) -> int:
    """Convert an ``HH:MM`` string into minutes since midnight."""

    try:
        hours_text, minutes_text = value.strip().split(":")[:2]
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid time of day '{value}', expected HH:MM.") from exc
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise InvalidInputError(f"Invalid time of day '{value}', expected HH:MM.")
    return hours * 60 + minutes


def format_time(minutes: float) -> str:
    """Format minutes since midnight as ``HH:MM`` (hours are not wrapped at 24)."""

    total = int(minutes)
    return f"{total // 60:02d}:{total % 60:02d}"


class RouteStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Allowed visiting window for a customer."""

    customer_id: str
    start_time: str
    end_time: str
    is_strict: bool = False
    priority_level: int = 0
    day_of_week: Optional[str] = None
    is_active: bool = True

    @property
    def start_minutes(self) -> int:
        return parse_time(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time(self.end_time)

    def applies_on(self, day: Optional[date]) -> bool:
        if not self.is_active:
            return False
        if day is None or not self.day_of_week:
            return True
        return self.day_of_week.strip().upper()[:3] == WEEKDAYS[day.weekday()]


@dataclass(slots=True)
class Visit:
    """A visit record as returned by the visit reader."""

    visit_id: str
    customer_id: Optional[str]
    customer_name: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    potential: Optional[str] = None
    visit_date: Optional[date] = None


@dataclass(frozen=True, slots=True)
class Location:
    """A point on the route: the start, the synthetic end, or a visit."""

    location_id: str
    latitude: float
    longitude: float
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    potential: Optional[str] = None
    time_window: Optional[TimeWindow] = None

    @property
    def is_start(self) -> bool:
        return self.location_id == START_ID

    @property
    def is_end(self) -> bool:
        return self.location_id == END_ID

    @property
    def is_stop(self) -> bool:
        return not (self.is_start or self.is_end)

    @property
    def potential_score(self) -> int:
        return potential_score(self.potential)

    @property
    def has_strict_window(self) -> bool:
        return self.time_window is not None and self.time_window.is_strict


@dataclass(slots=True)
class RoutePreferences:
    """Per-salesperson tunables for route construction and timing."""

    minimize_distance_weight: float = 0.4
    minimize_time_weight: float = 0.4
    maximize_visits_weight: float = 0.2
    max_visits_per_day: int = 10
    max_distance_per_day_km: float = 150.0
    max_hours_per_day: float = 8.0
    work_start_time: str = "09:00"
    work_end_time: str = "18:00"
    lunch_break_start: str = "13:00"
    lunch_break_duration_minutes: int = 60
    average_visit_duration_minutes: int = 45
    travel_buffer_percentage: float = 1.2
    return_to_start: bool = True
    fuel_cost_per_km: float = 0.15
    default_start_latitude: Optional[float] = None
    default_start_longitude: Optional[float] = None

    def __post_init__(self) -> None:
        self.return_to_start = bool(self.return_to_start)
        if self.travel_buffer_percentage < 1:
            raise InvalidInputError(
                f"travel_buffer_percentage must be >= 1, got {self.travel_buffer_percentage}."
            )
        for name in ("work_start_time", "work_end_time", "lunch_break_start"):
            parse_time(getattr(self, name))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "RoutePreferences":
        """Build preferences from a stored row, ignoring unknown columns and nulls."""

        if not data:
            return cls()
        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in data.items() if key in known and value is not None}
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class RouteRecord:
    """Persisted optimization result and its lifecycle state."""

    tenant_id: str
    salesman_id: str
    route_date: date
    visit_sequence: list[str]
    total_visits: int
    total_distance_km: float
    estimated_travel_time_minutes: float
    estimated_fuel_cost: float
    start_latitude: float
    start_longitude: float
    route_start_time: str
    route_end_time: str
    route_name: str = ""
    algorithm_used: str = "nearest_neighbor_2opt"
    optimization_time_ms: float = 0.0
    constraints_applied: dict[str, Any] = field(default_factory=dict)
    preferences: dict[str, Any] = field(default_factory=dict)
    status: RouteStatus = RouteStatus.PLANNED
    actual_distance_km: Optional[float] = None
    actual_time_minutes: Optional[float] = None
    efficiency_score: Optional[float] = None
    route_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def visit_ids(self) -> list[str]:
        return [item for item in self.visit_sequence if item not in (START_ID, END_ID)]


@dataclass(slots=True)
class RouteHistoryEntry:
    """Append-only planned-vs-actual record written on route completion."""

    tenant_id: str
    salesman_id: str
    route_id: str
    event_type: str
    planned_distance_km: float
    actual_distance_km: float
    planned_time_minutes: float
    actual_time_minutes: Optional[float]
    efficiency_score: float
    time_saved_minutes: Optional[float]
    recorded_at: Optional[datetime] = None
