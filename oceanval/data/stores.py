"""
Station Catalog, Observation Feed and Forecast Store.

In-memory implementations of the external collaborators the verification
engine reads from, plus BoundedStoreAccess, which wraps every call into
them with a timeout and a single retry.

Key Capabilities:
- Station lookup by id and listing by region/status
- Append-only observation and forecast samples with duplicate rejection
- Sanity checking of sample values against the variable's valid range
- Change subscriptions used to drive cache invalidation
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from oceanval.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    StoreTimeoutError,
)
from oceanval.variables import Variable

logger = logging.getLogger(__name__)


class StationStatus(Enum):
    """Operational status of a profiling float."""

    ACTIVE = "active"
    INACTIVE = "inactive"


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validity_time(issue_date: date, lead_time: int) -> datetime:
    """Time a forecast is valid for: issue date 00 UTC plus lead time days."""
    issued = datetime(issue_date.year, issue_date.month, issue_date.day, tzinfo=timezone.utc)
    return issued + timedelta(days=lead_time)


@dataclass(frozen=True)
class Station:
    """
    Profiling float station.

    Attributes:
        station_id: Globally unique float identifier (WMO number)
        latitude: Registered latitude in degrees
        longitude: Registered longitude in degrees
        status: Operational status
        last_profile: Timestamp of the most recent profile
        profile_count: Cumulative number of profiles
        region: Region label
    """

    station_id: str
    latitude: float
    longitude: float
    status: StationStatus = StationStatus.ACTIVE
    last_profile: Optional[datetime] = None
    profile_count: int = 0
    region: str = ""

    def __post_init__(self):
        if not self.station_id:
            raise InvalidArgumentError("Station id must not be empty")
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidArgumentError(
                f"Latitude out of range for station {self.station_id}",
                {"latitude": self.latitude},
            )
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidArgumentError(
                f"Longitude out of range for station {self.station_id}",
                {"longitude": self.longitude},
            )
        if isinstance(self.status, str):
            object.__setattr__(self, "status", StationStatus(self.status))
        if self.last_profile is not None:
            object.__setattr__(self, "last_profile", _utc(self.last_profile))

    @property
    def is_active(self) -> bool:
        return self.status == StationStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "station_id": self.station_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "status": self.status.value,
            "last_profile": self.last_profile.isoformat() if self.last_profile else None,
            "profile_count": self.profile_count,
            "region": self.region,
        }


@dataclass(frozen=True)
class ObservationSample:
    """
    One observed value from a profiling float.

    Attributes:
        station_id: Float identifier
        variable: Observed variable
        timestamp: Observation time (UTC)
        value: Observed value
        depth: Depth in metres, only for profile variables
        latitude: Float position at observation time, if known
        longitude: Float position at observation time, if known
    """

    station_id: str
    variable: Variable
    timestamp: datetime
    value: float
    depth: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "variable", Variable.parse(self.variable))
        object.__setattr__(self, "timestamp", _utc(self.timestamp))
        object.__setattr__(self, "value", float(self.value))
        _check_depth(self.variable, self.depth, "observation")

    @property
    def key(self) -> Tuple:
        return (self.station_id, self.variable.value, self.timestamp, self.depth)


@dataclass(frozen=True)
class ForecastSample:
    """
    One forecast value extracted at a station.

    Attributes:
        model_id: Forecast model identifier
        variable: Forecast variable
        issue_date: Forecast issue (initialization) date
        lead_time: Lead time in whole days (>= 1)
        station_id: Station the value was extracted at
        value: Forecast value
        depth: Depth level in metres, only for profile variables
    """

    model_id: str
    variable: Variable
    issue_date: date
    lead_time: int
    station_id: str
    value: float
    depth: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "variable", Variable.parse(self.variable))
        if isinstance(self.issue_date, datetime):
            object.__setattr__(self, "issue_date", self.issue_date.date())
        if isinstance(self.lead_time, bool) or not isinstance(self.lead_time, int) or self.lead_time < 1:
            raise InvalidArgumentError(
                "Lead time must be a positive whole number of days",
                {"lead_time": self.lead_time},
            )
        object.__setattr__(self, "value", float(self.value))
        _check_depth(self.variable, self.depth, "forecast")

    @property
    def valid_time(self) -> datetime:
        return validity_time(self.issue_date, self.lead_time)

    @property
    def key(self) -> Tuple:
        return (
            self.model_id,
            self.variable.value,
            self.issue_date,
            self.lead_time,
            self.station_id,
            self.depth,
        )


def _check_depth(variable: Variable, depth: Optional[float], kind: str) -> None:
    if variable.is_profile and depth is None:
        raise InvalidArgumentError(
            f"Profile variable {variable.value} {kind} requires a depth"
        )
    if not variable.is_profile and depth is not None:
        raise InvalidArgumentError(
            f"Variable {variable.value} has no depth dimension",
            {"depth": depth},
        )


def _check_range(variable: Variable, value: float) -> None:
    if not variable.spec.in_range(value):
        raise InvalidArgumentError(
            f"Value outside valid range for {variable.value}",
            {"value": value, "valid_range": variable.spec.valid_range},
        )


class _Subscribers:
    """Change listeners for an append-only source."""

    def __init__(self):
        self._callbacks: List[Callable[[Any], None]] = []
        self._lock = threading.Lock()

    def add(self, callback: Callable[[Any], None]) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def notify(self, sample: Any) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback(sample)


class StationCatalog:
    """
    Read-mostly registry of profiling float stations.

    Example:
        catalog = StationCatalog()
        catalog.register(Station("2902123", 25.45, 119.85, region="East China Sea"))
        catalog.get("2902123")
    """

    def __init__(self, stations: Optional[List[Station]] = None):
        self._stations: Dict[str, Station] = {}
        self._profiles: Set[Tuple[str, datetime]] = set()
        self._feeds: List["ObservationFeed"] = []
        self._lock = threading.RLock()
        for station in stations or []:
            self.register(station)

    def register(self, station: Station) -> None:
        """Register a new station; identifiers are unique."""
        with self._lock:
            if station.station_id in self._stations:
                raise InvalidArgumentError(
                    f"Station '{station.station_id}' is already registered"
                )
            self._stations[station.station_id] = station

    def get(self, station_id: str) -> Station:
        """
        Look up a station by id.

        Raises:
            NotFoundError: If the station is not registered
        """
        with self._lock:
            station = self._stations.get(station_id)
        if station is None:
            raise NotFoundError("station", station_id)
        return station

    def list(
        self,
        region: Optional[str] = None,
        status: Optional[StationStatus] = None,
    ) -> List[Station]:
        """List stations, optionally filtered by region and status, ordered by id."""
        if isinstance(status, str):
            status = StationStatus(status)
        with self._lock:
            stations = list(self._stations.values())
        return sorted(
            (
                s for s in stations
                if (region is None or s.region == region)
                and (status is None or s.status == status)
            ),
            key=lambda s: s.station_id,
        )

    def record_profile(self, station_id: str, timestamp: datetime) -> Station:
        """Update status, last profile time and profile count for a new profile."""
        with self._lock:
            station = self.get(station_id)
            timestamp = _utc(timestamp)
            last = station.last_profile
            updated = replace(
                station,
                status=StationStatus.ACTIVE,
                last_profile=timestamp if last is None or timestamp > last else last,
                profile_count=station.profile_count + 1,
            )
            self._stations[station_id] = updated
            return updated

    def follow(self, feed: "ObservationFeed") -> None:
        """
        Keep station activity current from an observation feed.

        Each new (station, timestamp) seen on ``feed`` is recorded as one
        profile; further samples of that profile are not counted again.
        Following the same feed twice has no effect.
        """
        with self._lock:
            if any(f is feed for f in self._feeds):
                return
            self._feeds.append(feed)
        feed.subscribe(self._on_observation)

    def _on_observation(self, sample: "ObservationSample") -> None:
        profile = (sample.station_id, sample.timestamp)
        with self._lock:
            if profile in self._profiles:
                return
            if sample.station_id not in self._stations:
                logger.debug(f"Observation for unregistered station {sample.station_id}")
                return
            self._profiles.add(profile)
            self.record_profile(sample.station_id, sample.timestamp)

    def summary(self) -> Dict[str, Any]:
        """Dashboard summary: station counts, profile totals and per-region counts."""
        stations = self.list()
        regions: Dict[str, int] = {}
        for station in stations:
            regions[station.region] = regions.get(station.region, 0) + 1
        last_profiles = [s.last_profile for s in stations if s.last_profile]
        return {
            "total_stations": len(stations),
            "active_stations": sum(1 for s in stations if s.is_active),
            "inactive_stations": sum(1 for s in stations if not s.is_active),
            "total_profiles": sum(s.profile_count for s in stations),
            "regions": dict(sorted(regions.items())),
            "latest_profile": max(last_profiles).isoformat() if last_profiles else None,
        }


class ObservationFeed:
    """
    Append-only source of float observations.

    Samples outside the variable's valid range and exact duplicates are
    rejected. Subscribers are notified after every accepted sample.
    """

    def __init__(self):
        self._samples: Dict[Tuple[str, str], List[ObservationSample]] = {}
        self._keys: Set[Tuple] = set()
        self._lock = threading.RLock()
        self._subscribers = _Subscribers()

    def append(self, sample: ObservationSample) -> None:
        """Record a new observation sample."""
        _check_range(sample.variable, sample.value)
        with self._lock:
            if sample.key in self._keys:
                raise InvalidArgumentError(
                    "Duplicate observation sample",
                    {"station_id": sample.station_id, "variable": sample.variable.value,
                     "timestamp": sample.timestamp.isoformat(), "depth": sample.depth},
                )
            self._keys.add(sample.key)
            self._samples.setdefault((sample.station_id, sample.variable.value), []).append(sample)
        self._subscribers.notify(sample)

    def query(
        self,
        station_id: str,
        variable: Variable,
        start: datetime,
        end: datetime,
    ) -> List[ObservationSample]:
        """Observations for a station and variable with start <= timestamp <= end."""
        start, end = _utc(start), _utc(end)
        with self._lock:
            samples = list(self._samples.get((station_id, variable.value), ()))
        return sorted(
            (s for s in samples if start <= s.timestamp <= end),
            key=lambda s: (s.timestamp, s.depth if s.depth is not None else -1.0),
        )

    def subscribe(self, callback: Callable[[ObservationSample], None]) -> None:
        self._subscribers.add(callback)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class ForecastStore:
    """
    Append-only source of forecast samples.

    Indexed by (model, variable, issue date, lead time, station); each index
    slot holds one value per depth. Duplicate keys are rejected.
    """

    def __init__(self):
        self._index: Dict[Tuple, Dict[Optional[float], ForecastSample]] = {}
        self._models: Set[str] = set()
        self._lock = threading.RLock()
        self._subscribers = _Subscribers()

    def append(self, sample: ForecastSample) -> None:
        """Record a new forecast sample."""
        _check_range(sample.variable, sample.value)
        slot_key = sample.key[:-1]
        with self._lock:
            slot = self._index.setdefault(slot_key, {})
            if sample.depth in slot:
                raise InvalidArgumentError(
                    "Duplicate forecast sample",
                    {"model_id": sample.model_id, "variable": sample.variable.value,
                     "issue_date": sample.issue_date.isoformat(),
                     "lead_time": sample.lead_time, "station_id": sample.station_id,
                     "depth": sample.depth},
                )
            slot[sample.depth] = sample
            self._models.add(sample.model_id)
        self._subscribers.notify(sample)

    def get(
        self,
        model_id: str,
        variable: Variable,
        issue_date: date,
        lead_time: int,
        station_id: str,
    ) -> List[ForecastSample]:
        """Forecast samples for one index slot, ordered by depth."""
        with self._lock:
            slot = dict(self._index.get((model_id, variable.value, issue_date, lead_time, station_id), {}))
        return sorted(slot.values(), key=lambda s: s.depth if s.depth is not None else -1.0)

    def models(self) -> Set[str]:
        """Identifiers of all models with at least one sample."""
        with self._lock:
            return set(self._models)

    def subscribe(self, callback: Callable[[ForecastSample], None]) -> None:
        self._subscribers.add(callback)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(slot) for slot in self._index.values())


class BoundedStoreAccess:
    """
    Runs store calls with a timeout, retrying timed-out calls with backoff.

    Errors raised by the store itself (NotFoundError, InvalidArgumentError)
    propagate immediately and are never retried.

    Example:
        access = BoundedStoreAccess(timeout_seconds=5.0, retries=1)
        station = access.call("catalog.get", catalog.get, "2902123")
    """

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        retries: int = 1,
        backoff_seconds: float = 0.5,
        max_workers: int = 8,
    ):
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="store-access"
        )

    def call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Call ``fn`` bounded by the configured timeout.

        Raises:
            StoreTimeoutError: If every attempt timed out
        """
        attempts = 0
        while True:
            attempts += 1
            future = self._executor.submit(fn, *args, **kwargs)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeoutError:
                future.cancel()
                if attempts > self.retries:
                    logger.warning(
                        f"Store call {operation} timed out after {attempts} attempt(s)"
                    )
                    raise StoreTimeoutError(operation, self.timeout_seconds, attempts)
                delay = self.backoff_seconds * attempts
                logger.warning(
                    f"Store call {operation} timed out (retry {attempts} in {delay:.2f}s)"
                )
                time.sleep(delay)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
