"""
Data transfer objects shared by the provider adapter, the completion engine
and the API layer.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from route_distances.core.constants import (
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
)


@dataclass(frozen=True)
class KnownLocation:
    """A resolved coordinate pair."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not MIN_LATITUDE <= self.latitude <= MAX_LATITUDE:
            raise ValueError(f"Invalid latitude: {self.latitude}")
        if not MIN_LONGITUDE <= self.longitude <= MAX_LONGITUDE:
            raise ValueError(f"Invalid longitude: {self.longitude}")

    def as_param(self) -> str:
        return f"{self.latitude},{self.longitude}"


class _Unresolved:
    """Marker for a location whose coordinates are not known yet."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()


class _Uncomputed:
    """Marker for a matrix cell the provider never answered (failed or skipped chunk)."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNCOMPUTED"


UNCOMPUTED = _Uncomputed()


@dataclass
class DistanceResult:
    """A single provider answer for one origin/destination pair."""
    distance_km: float
    duration_minutes: Optional[float] = None
    route_metadata: Optional[Dict[str, Any]] = None
    directions_link: Optional[str] = None


class ScopeKind(str, Enum):
    PAIR = 'pair'
    FROM_SOURCE = 'from_source'
    TO_DESTINATION = 'to_destination'
    FULL_MATRIX = 'full_matrix'


@dataclass(frozen=True)
class Scope:
    """
    The (source-set x destination-set) selection a completion request targets.

    A missing id means "all" on that side, so Scope() is the full matrix.
    """
    source_id: Optional[int] = None
    destination_id: Optional[int] = None

    @property
    def kind(self) -> ScopeKind:
        if self.source_id is not None and self.destination_id is not None:
            return ScopeKind.PAIR
        if self.source_id is not None:
            return ScopeKind.FROM_SOURCE
        if self.destination_id is not None:
            return ScopeKind.TO_DESTINATION
        return ScopeKind.FULL_MATRIX


class RunState(str, Enum):
    PLANNING = 'planning'
    FETCHING_EXISTING = 'fetching_existing'
    DIFFING = 'diffing'
    BATCHING = 'batching'
    PROVIDER_CALLING = 'provider_calling'
    PERSISTING = 'persisting'
    PARTIAL_DONE = 'partial_done'
    DONE = 'done'


@dataclass
class CompletionResult:
    """
    Outcome of one completion run.

    rows are Distance model instances with source and destination loaded.
    truncated is set whenever candidate pairs were left uncomputed;
    timed_out is set when the wall-clock budget ended the run.
    """
    rows: List[Any] = field(default_factory=list)
    truncated: bool = False
    timed_out: bool = False
    elapsed_ms: int = 0
    new_calculations: int = 0
    state: RunState = RunState.DONE
