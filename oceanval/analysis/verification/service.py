"""
Validation Query Service.

The single entry point used by presentation layers. A query names a station
selector, a variable, a forecast issue date, a lead-time range, whether a
depth profile is wanted and which models to verify; the service answers
with a LeadTimeSeries, a DepthProfileSeries or a ModelComparison.

Malformed queries fail before any store access or aggregation. Results are
cached by request fingerprint and invalidated when new observation or
forecast samples arrive for the same station, variable and issue date.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from oceanval.analysis.verification.comparison import ModelComparison, MultiModelComparator
from oceanval.analysis.verification.matching import (
    MatchedPair,
    ObservationForecastMatcher,
    collect_pairs,
)
from oceanval.analysis.verification.statistics import (
    DepthProfileSeries,
    ErrorStatisticsAggregator,
    LeadTimeSeries,
)
from oceanval.config import EngineConfig
from oceanval.data.cache.manager import CacheManager
from oceanval.data.stores import (
    BoundedStoreAccess,
    ForecastSample,
    ForecastStore,
    ObservationFeed,
    ObservationSample,
    StationCatalog,
    StationStatus,
)
from oceanval.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    QueryCancelledError,
)
from oceanval.variables import DepthBinTable, Variable

logger = logging.getLogger(__name__)

QueryResult = Union[LeadTimeSeries, DepthProfileSeries, ModelComparison]


class QueryShape(Enum):
    """Kind of result a query produces."""

    LEAD_TIME_SERIES = "lead_time_series"
    DEPTH_PROFILE = "depth_profile"
    MODEL_COMPARISON = "model_comparison"


@dataclass(frozen=True)
class StationSelector:
    """
    Identifies the stations to aggregate over.

    Either explicit station ids, or a region and/or status filter resolved
    through the station catalog.
    """

    station_ids: Tuple[str, ...] = ()
    region: Optional[str] = None
    status: Optional[StationStatus] = None

    @classmethod
    def single(cls, station_id: str) -> "StationSelector":
        return cls(station_ids=(station_id,))

    @classmethod
    def of(cls, *station_ids: str) -> "StationSelector":
        return cls(station_ids=tuple(station_ids))

    @classmethod
    def in_region(cls, region: str, status: Optional[StationStatus] = None) -> "StationSelector":
        return cls(region=region, status=status)

    @property
    def is_empty(self) -> bool:
        return not self.station_ids and self.region is None and self.status is None

    def describe(self) -> str:
        if self.station_ids:
            return ",".join(self.station_ids)
        parts = []
        if self.region is not None:
            parts.append(f"region={self.region}")
        if self.status is not None:
            parts.append(f"status={StationStatus(self.status).value}")
        return " ".join(parts) or "<empty>"


@dataclass(frozen=True)
class QueryRequest:
    """
    Explicit parameters of one validation query.

    Attributes:
        station_selector: Stations to aggregate over (a bare id is accepted)
        variable: Variable or identifier
        forecast_issue_date: Issue date (date or ISO string)
        lead_time_range: Inclusive (first, last) lead time in days
        depth_requested: Request a depth profile (T/S only, single lead time)
        models: Models to verify in ranking order (empty = preferred model)
    """

    station_selector: Union[StationSelector, str]
    variable: Union[Variable, str]
    forecast_issue_date: Union[date, str]
    lead_time_range: Tuple[int, int] = (1, 10)
    depth_requested: bool = False
    models: Tuple[str, ...] = ()

    def __post_init__(self):
        if isinstance(self.station_selector, str):
            object.__setattr__(self, "station_selector", StationSelector.single(self.station_selector))
        if isinstance(self.models, str):
            object.__setattr__(self, "models", (self.models,))
        else:
            object.__setattr__(self, "models", tuple(self.models))

    @property
    def shape(self) -> QueryShape:
        if self.depth_requested:
            return QueryShape.DEPTH_PROFILE
        if len(self.models) > 1:
            return QueryShape.MODEL_COMPARISON
        return QueryShape.LEAD_TIME_SERIES


@dataclass(frozen=True)
class ResolvedQuery:
    """A validated query with the station selector resolved."""

    shape: QueryShape
    variable: Variable
    issue_date: date
    station_ids: Tuple[str, ...]
    lead_times: Tuple[int, ...]
    models: Tuple[str, ...]

    def cache_tags(self) -> List[str]:
        return [cache_tag(s, self.variable, self.issue_date) for s in self.station_ids]


def cache_tag(station_id: str, variable: Variable, issue_date: date) -> str:
    """Invalidation tag shared by all results over (station, variable, issue date)."""
    return f"{station_id}|{variable.value}|{issue_date.isoformat()}"


class ValidationQueryService:
    """
    Facade over matching, aggregation, comparison and caching.

    Example:
        service = ValidationQueryService(catalog, feed, store)
        series = service.query(QueryRequest("2902123", "T", "2025-08-05"))
        print(series.rmse)
    """

    def __init__(
        self,
        catalog: StationCatalog,
        observations: ObservationFeed,
        forecasts: ForecastStore,
        config: Optional[EngineConfig] = None,
        cache: Optional[CacheManager] = None,
    ):
        self.config = config or EngineConfig()
        self.catalog = catalog
        self.observations = observations
        self.forecasts = forecasts

        workers = self.config.worker_count
        access = self.config.store_access
        self.access = BoundedStoreAccess(
            timeout_seconds=access.timeout_seconds,
            retries=access.retries,
            backoff_seconds=access.backoff_seconds,
            max_workers=workers * 2,
        )
        self.depth_table = DepthBinTable(self.config.depth_levels)
        self.matcher = ObservationForecastMatcher(
            catalog,
            observations,
            forecasts,
            depth_table=self.depth_table,
            tolerance=self.config.tolerance,
            max_lead_time=self.config.max_lead_time,
            access=self.access,
            max_workers=workers,
        )
        self.aggregator = ErrorStatisticsAggregator()
        self.comparator = MultiModelComparator(self.aggregator, max_workers=workers)
        self.cache = cache or CacheManager(
            self.config.cache, cancel_exceptions=(QueryCancelledError,)
        )

        catalog.follow(observations)
        observations.subscribe(self._on_observation)
        forecasts.subscribe(self._on_forecast)

        logger.info(
            f"ValidationQueryService initialized with {workers} workers, "
            f"max_lead_time={self.config.max_lead_time}"
        )

    def query(
        self,
        request: QueryRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> QueryResult:
        """
        Answer a validation query.

        Args:
            request: Query parameters
            cancel_event: Set by the caller to abandon the query

        Returns:
            LeadTimeSeries, DepthProfileSeries or ModelComparison

        Raises:
            InvalidArgumentError: Malformed request or unknown station selector
            NotFoundError: Unknown model
            InsufficientDataError: No matched pairs at all (single-model shapes)
            StoreTimeoutError: A store call exceeded its bounds after retry
            QueryCancelledError: The caller set ``cancel_event``
        """
        resolved = self.resolve(request)
        key = self.fingerprint(resolved)
        return self.cache.get_or_compute(
            key,
            lambda: self._compute(resolved, cancel_event),
            tags=resolved.cache_tags(),
        )

    def resolve(self, request: QueryRequest) -> ResolvedQuery:
        """
        Validate a request and resolve its station selector.

        Raises:
            InvalidArgumentError: Malformed request or unknown station selector
            NotFoundError: Unknown model
        """
        variable = Variable.parse(request.variable)
        issue_date = self._parse_issue_date(request.forecast_issue_date)
        lead_times = self._lead_times(request.lead_time_range)

        models = request.models or (self.config.model_ranking[0],)
        if len(set(models)) != len(models):
            raise InvalidArgumentError("Model identifiers must be unique", {"models": list(models)})

        shape = request.shape
        if shape == QueryShape.DEPTH_PROFILE:
            if not variable.is_profile:
                raise InvalidArgumentError(
                    f"Variable {variable.value} has no depth dimension",
                    {"variable": variable.value},
                )
            if len(lead_times) != 1:
                raise InvalidArgumentError(
                    "Depth profile requests need a single lead time",
                    {"lead_time_range": list(request.lead_time_range)},
                )
            if len(models) != 1:
                raise InvalidArgumentError(
                    "Depth profile requests need a single model",
                    {"models": list(models)},
                )

        station_ids = self._resolve_stations(request.station_selector)

        known = self.access.call("forecasts.models", self.forecasts.models)
        for model_id in models:
            if model_id not in known:
                raise NotFoundError("model", model_id)

        return ResolvedQuery(
            shape=shape,
            variable=variable,
            issue_date=issue_date,
            station_ids=station_ids,
            lead_times=lead_times,
            models=tuple(models),
        )

    def fingerprint(self, resolved: ResolvedQuery) -> str:
        """Deterministic cache key for the full parameter tuple."""
        return self.cache.generate_cache_key(
            resolved.shape.value,
            resolved.variable.value,
            resolved.issue_date.isoformat(),
            ",".join(resolved.station_ids),
            f"{resolved.lead_times[0]}-{resolved.lead_times[-1]}",
            ",".join(resolved.models),
        )

    def invalidate(self, station_id: str, variable: Variable, issue_date: date) -> int:
        """Drop cached results over (station, variable, issue date)."""
        return self.cache.invalidate_by_tag(cache_tag(station_id, Variable.parse(variable), issue_date))

    def station_summary(self) -> Dict[str, Any]:
        """Dashboard summary of the station catalog."""
        return self.access.call("catalog.summary", self.catalog.summary)

    def close(self) -> None:
        """Release worker pools."""
        self.matcher.close()
        self.comparator.close()
        self.access.shutdown()

    def __enter__(self) -> "ValidationQueryService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _compute(self, resolved: ResolvedQuery, cancel_event: Optional[threading.Event]) -> QueryResult:
        started = time.monotonic()
        logger.info(
            f"Computing {resolved.shape.value} for {resolved.variable.value} "
            f"issued {resolved.issue_date} over {len(resolved.station_ids)} station(s)"
        )

        if resolved.shape == QueryShape.MODEL_COMPARISON:
            result = self.comparator.compare(
                resolved.models,
                resolved.variable,
                resolved.station_ids,
                resolved.issue_date,
                resolved.lead_times,
                lambda model_id: self._pairs(resolved, model_id, cancel_event),
                cancel_event=cancel_event,
            )
        elif resolved.shape == QueryShape.DEPTH_PROFILE:
            model_id = resolved.models[0]
            result = self.aggregator.depth_profile(
                self._pairs(resolved, model_id, cancel_event),
                self.depth_table.levels,
                resolved.lead_times[0],
                resolved.variable,
                model_id,
                resolved.issue_date,
                resolved.station_ids,
            )
        else:
            model_id = resolved.models[0]
            result = self.aggregator.lead_time_series(
                self._pairs(resolved, model_id, cancel_event),
                resolved.lead_times,
                resolved.variable,
                model_id,
                resolved.issue_date,
                resolved.station_ids,
            )

        if cancel_event is not None and cancel_event.is_set():
            raise QueryCancelledError()

        logger.info(
            f"Computed {resolved.shape.value} in {time.monotonic() - started:.3f}s"
        )
        return result

    def _pairs(
        self,
        resolved: ResolvedQuery,
        model_id: str,
        cancel_event: Optional[threading.Event],
    ) -> List[MatchedPair]:
        results = self.matcher.match_many(
            resolved.station_ids,
            resolved.variable,
            resolved.issue_date,
            resolved.lead_times,
            model_id,
            cancel_event=cancel_event,
        )
        return collect_pairs(results)

    def _lead_times(self, lead_time_range: Sequence[int]) -> Tuple[int, ...]:
        try:
            first, last = lead_time_range
        except (TypeError, ValueError):
            raise InvalidArgumentError(
                "Lead time range must be a (first, last) pair",
                {"lead_time_range": lead_time_range},
            )
        for lead_time in (first, last):
            self.matcher.validate_lead_time(lead_time)
        if first > last:
            raise InvalidArgumentError(
                "Lead time range is inverted",
                {"lead_time_range": [first, last]},
            )
        return tuple(range(first, last + 1))

    @staticmethod
    def _parse_issue_date(value: Union[date, str]) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value))
        except ValueError:
            raise InvalidArgumentError(
                "Forecast issue date must be an ISO date",
                {"forecast_issue_date": value},
            )

    def _resolve_stations(self, selector: StationSelector) -> Tuple[str, ...]:
        if selector.is_empty:
            raise InvalidArgumentError("Station selector is empty")

        if selector.station_ids:
            for station_id in selector.station_ids:
                try:
                    self.access.call("catalog.get", self.catalog.get, station_id)
                except NotFoundError as e:
                    raise InvalidArgumentError(
                        f"Unknown station selector: {e}",
                        {"station_id": station_id},
                    ) from e
            return tuple(sorted(set(selector.station_ids)))

        stations = self.access.call(
            "catalog.list", self.catalog.list, region=selector.region, status=selector.status
        )
        if not stations:
            raise InvalidArgumentError(
                f"Station selector matches no stations: {selector.describe()}"
            )
        return tuple(s.station_id for s in stations)

    def _on_forecast(self, sample: ForecastSample) -> None:
        count = self.invalidate(sample.station_id, sample.variable, sample.issue_date)
        if count:
            logger.debug(f"New forecast for {sample.station_id} invalidated {count} result(s)")

    def _on_observation(self, sample: ObservationSample) -> None:
        count = 0
        for issue_date in sorted(self._affected_issue_dates(sample.timestamp)):
            count += self.invalidate(sample.station_id, sample.variable, issue_date)
        if count:
            logger.debug(f"New observation for {sample.station_id} invalidated {count} result(s)")

    def _affected_issue_dates(self, timestamp: datetime) -> Set[date]:
        """Issue dates with a validity window containing ``timestamp``."""
        window = timedelta(hours=self.config.tolerance.time_window_hours)
        dates: Set[date] = set()
        for lead_time in range(1, self.config.max_lead_time + 1):
            earliest = timestamp - window - timedelta(days=lead_time)
            latest = timestamp + window - timedelta(days=lead_time)
            day = earliest.date()
            while True:
                issued = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
                if issued > latest:
                    break
                if issued >= earliest:
                    dates.add(day)
                day += timedelta(days=1)
        return dates
