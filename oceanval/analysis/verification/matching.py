"""
Observation/Forecast Matching.

Pairs a float's observed values with the forecast valid at the same time
and station for a given model, issue date and lead time.

An observation is only paired if it lies within the configured time window
of the forecast validity time and, when its position is known, within the
configured radius of the station. Otherwise the slot is reported missing:
a stale or distant observation is never used as a substitute.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from oceanval.exceptions import (
    InvalidArgumentError,
    QueryCancelledError,
)
from oceanval.variables import DepthBinTable, Variable
from oceanval.config import MatchTolerance
from oceanval.data.stores import (
    BoundedStoreAccess,
    ForecastSample,
    ForecastStore,
    ObservationFeed,
    ObservationSample,
    Station,
    StationCatalog,
    validity_time,
)

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Reasons a slot could not be paired
MISSING_NO_FORECAST = "no_forecast"
MISSING_NO_OBSERVATION = "no_observation"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


@dataclass(frozen=True)
class MatchedPair:
    """
    One observation joined to one forecast value.

    Attributes:
        station_id: Station identifier
        variable: Verified variable
        model_id: Forecast model
        issue_date: Forecast issue date
        lead_time: Lead time in days
        depth: Depth level (None for single-level variables)
        forecast: Forecast value
        observation: Observed value
        observed_at: Observation timestamp
    """

    station_id: str
    variable: Variable
    model_id: str
    issue_date: date
    lead_time: int
    depth: Optional[float]
    forecast: float
    observation: float
    observed_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple:
        """Unique key: at most one pair per key."""
        return (
            self.station_id,
            self.variable.value,
            -1.0 if self.depth is None else self.depth,
            self.model_id,
            self.lead_time,
            self.issue_date.isoformat(),
        )

    @property
    def error(self) -> float:
        return self.forecast - self.observation


@dataclass
class MatchSlot:
    """One depth slot of a match: either a pair or a missing marker."""

    depth: Optional[float]
    pair: Optional[MatchedPair] = None
    reason: Optional[str] = None

    @property
    def is_missing(self) -> bool:
        return self.pair is None


@dataclass
class MatchResult:
    """
    All slots matched for one station, variable, model, issue date and lead time.

    Attributes:
        station_id: Station identifier
        variable: Verified variable
        model_id: Forecast model
        issue_date: Forecast issue date
        lead_time: Lead time in days
        slots: One slot per depth (a single slot for single-level variables)
    """

    station_id: str
    variable: Variable
    model_id: str
    issue_date: date
    lead_time: int
    slots: List[MatchSlot] = field(default_factory=list)

    @property
    def pairs(self) -> List[MatchedPair]:
        return [slot.pair for slot in self.slots if slot.pair is not None]

    @property
    def missing(self) -> List[MatchSlot]:
        return [slot for slot in self.slots if slot.is_missing]


def collect_pairs(results: Iterable[MatchResult]) -> List[MatchedPair]:
    """
    Flatten match results, rejecting duplicate pair keys.

    Raises:
        InvalidArgumentError: If two pairs share the same key
    """
    seen = set()
    pairs = []
    for result in results:
        for pair in result.pairs:
            if pair.key in seen:
                raise InvalidArgumentError("Duplicate matched pair", {"key": pair.key})
            seen.add(pair.key)
            pairs.append(pair)
    return pairs


class ObservationForecastMatcher:
    """
    Pairs observations with forecasts for one model at a time.

    Example:
        matcher = ObservationForecastMatcher(catalog, feed, store)
        result = matcher.match("2902123", Variable.T, date(2025, 8, 5), 3, "WenHai")
        print(len(result.pairs), len(result.missing))
    """

    def __init__(
        self,
        catalog: StationCatalog,
        observations: ObservationFeed,
        forecasts: ForecastStore,
        depth_table: Optional[DepthBinTable] = None,
        tolerance: Optional[MatchTolerance] = None,
        max_lead_time: int = 10,
        access: Optional[BoundedStoreAccess] = None,
        max_workers: int = 4,
    ):
        self.catalog = catalog
        self.observations = observations
        self.forecasts = forecasts
        self.depth_table = depth_table or DepthBinTable()
        self.tolerance = tolerance or MatchTolerance()
        self.max_lead_time = max_lead_time
        self.access = access or BoundedStoreAccess()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="matcher"
        )

    def validate_lead_time(self, lead_time: int) -> int:
        """
        Check a lead time against the supported forecast horizon.

        Raises:
            InvalidArgumentError: If not an integer in [1, max_lead_time]
        """
        if isinstance(lead_time, bool) or not isinstance(lead_time, int):
            raise InvalidArgumentError(
                "Lead time must be an integer number of days",
                {"lead_time": lead_time},
            )
        if not 1 <= lead_time <= self.max_lead_time:
            raise InvalidArgumentError(
                f"Lead time must be between 1 and {self.max_lead_time}",
                {"lead_time": lead_time},
            )
        return lead_time

    def match(
        self,
        station_id: str,
        variable: Variable,
        issue_date: date,
        lead_time: int,
        model_id: str,
    ) -> MatchResult:
        """
        Match one station's observations to one model's forecast.

        Args:
            station_id: Station identifier
            variable: Variable (or identifier) to match
            issue_date: Forecast issue date
            lead_time: Lead time in days
            model_id: Forecast model

        Returns:
            MatchResult with one slot per depth

        Raises:
            NotFoundError: Unknown station
            InvalidArgumentError: Unknown variable or invalid lead time
            StoreTimeoutError: A store call exceeded its bounds
        """
        variable = Variable.parse(variable)
        self.validate_lead_time(lead_time)
        station = self.access.call("catalog.get", self.catalog.get, station_id)

        forecasts = self.access.call(
            "forecasts.get",
            self.forecasts.get,
            model_id, variable, issue_date, lead_time, station_id,
        )

        valid_time = validity_time(issue_date, lead_time)
        window = timedelta(hours=self.tolerance.time_window_hours)
        observations = self.access.call(
            "observations.query",
            self.observations.query,
            station_id, variable, valid_time - window, valid_time + window,
        )
        nearby = [obs for obs in observations if self._within_radius(station, obs)]

        if variable.is_profile:
            slots = self._match_profile(forecasts, nearby, valid_time)
        else:
            slots = [self._match_surface(forecasts, nearby, valid_time)]

        result = MatchResult(
            station_id=station_id,
            variable=variable,
            model_id=model_id,
            issue_date=issue_date,
            lead_time=lead_time,
            slots=slots,
        )
        logger.debug(
            f"Matched {station_id}/{variable.value}/{model_id} lead {lead_time}: "
            f"{len(result.pairs)} pairs, {len(result.missing)} missing"
        )
        return result

    def match_many(
        self,
        station_ids: Sequence[str],
        variable: Variable,
        issue_date: date,
        lead_times: Sequence[int],
        model_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[MatchResult]:
        """
        Match every (station, lead time) group concurrently.

        Cancellation is checked at group boundaries.

        Returns:
            Match results ordered by station id then lead time

        Raises:
            QueryCancelledError: If ``cancel_event`` is set before all groups finish
        """
        variable = Variable.parse(variable)
        for lead_time in lead_times:
            self.validate_lead_time(lead_time)

        groups = [(s, lt) for s in sorted(set(station_ids)) for lt in sorted(set(lead_times))]
        results: Dict[Tuple[str, int], MatchResult] = {}

        def run_group(station_id: str, lead_time: int) -> MatchResult:
            if cancel_event is not None and cancel_event.is_set():
                raise QueryCancelledError()
            return self.match(station_id, variable, issue_date, lead_time, model_id)

        futures = {
            self._executor.submit(run_group, station_id, lead_time): (station_id, lead_time)
            for station_id, lead_time in groups
        }
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
                if cancel_event is not None and cancel_event.is_set():
                    raise QueryCancelledError()
        except BaseException:
            for pending in futures:
                pending.cancel()
            raise

        return [results[group] for group in groups]

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _within_radius(self, station: Station, obs: ObservationSample) -> bool:
        if obs.latitude is None or obs.longitude is None:
            return True
        distance = haversine_km(station.latitude, station.longitude, obs.latitude, obs.longitude)
        return distance <= self.tolerance.radius_km

    def _match_surface(
        self,
        forecasts: List[ForecastSample],
        observations: List[ObservationSample],
        valid_time: datetime,
    ) -> MatchSlot:
        if not forecasts:
            return MatchSlot(depth=None, reason=MISSING_NO_FORECAST)
        forecast = forecasts[0]
        if not observations:
            return MatchSlot(depth=None, reason=MISSING_NO_OBSERVATION)

        best = min(
            observations,
            key=lambda o: (abs((o.timestamp - valid_time).total_seconds()), o.timestamp, o.value),
        )
        return MatchSlot(depth=None, pair=self._pair(forecast, best, None))

    def _match_profile(
        self,
        forecasts: List[ForecastSample],
        observations: List[ObservationSample],
        valid_time: datetime,
    ) -> List[MatchSlot]:
        by_level: Dict[float, ForecastSample] = {}
        for forecast in forecasts:
            if forecast.depth in self.depth_table:
                by_level[forecast.depth] = forecast
            else:
                logger.debug(f"Skipping forecast off the depth table: {forecast.depth} m")

        best: Dict[float, Tuple[Tuple, ObservationSample]] = {}
        for obs in observations:
            level = self.depth_table.bin_for(obs.depth)
            if level is None:
                continue
            rank = (
                abs((obs.timestamp - valid_time).total_seconds()),
                abs(obs.depth - level),
                obs.timestamp,
                obs.value,
            )
            if level not in best or rank < best[level][0]:
                best[level] = (rank, obs)

        slots = []
        for level in self.depth_table:
            forecast = by_level.get(level)
            if forecast is None:
                slots.append(MatchSlot(depth=level, reason=MISSING_NO_FORECAST))
            elif level not in best:
                slots.append(MatchSlot(depth=level, reason=MISSING_NO_OBSERVATION))
            else:
                slots.append(MatchSlot(depth=level, pair=self._pair(forecast, best[level][1], level)))
        return slots

    @staticmethod
    def _pair(
        forecast: ForecastSample,
        obs: ObservationSample,
        depth: Optional[float],
    ) -> MatchedPair:
        return MatchedPair(
            station_id=forecast.station_id,
            variable=forecast.variable,
            model_id=forecast.model_id,
            issue_date=forecast.issue_date,
            lead_time=forecast.lead_time,
            depth=depth,
            forecast=forecast.value,
            observation=obs.value,
            observed_at=obs.timestamp,
        )
