"""
Multi-Model Comparison.

Aggregates each forecast model independently and assembles a side-by-side
comparison on a shared lead-time axis. A model that cannot be aggregated is
reported as a per-model failure; the other models still report.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

from oceanval.analysis.verification.matching import MatchedPair
from oceanval.analysis.verification.statistics import (
    ErrorStatisticsAggregator,
    LeadTimeSeries,
)
from oceanval.exceptions import (
    InvalidArgumentError,
    QueryCancelledError,
    VerificationError,
)
from oceanval.variables import Variable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelFailure:
    """Why one model has no series in a comparison."""

    model_id: str
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass(frozen=True)
class ModelComparison:
    """
    Lead-time series of several models on a shared axis.

    Attributes:
        variable: Verified variable
        issue_date: Forecast issue date
        station_ids: Stations aggregated over
        lead_times: Union of the lead times any model has data for
        series: Model id -> series, in ranking order
        failures: Model id -> failure, for models without a series
    """

    variable: Variable
    issue_date: date
    station_ids: tuple
    lead_times: tuple
    series: Dict[str, LeadTimeSeries] = field(default_factory=dict)
    failures: Dict[str, ModelFailure] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        """True when at least one model failed to report."""
        return bool(self.failures)

    @property
    def model_ids(self) -> List[str]:
        return list(self.series)

    def rmse_at(self, model_id: str, lead_time: int) -> Optional[float]:
        """RMSE of a model at a lead time, None if missing."""
        series = self.series.get(model_id)
        if series is None:
            return None
        point = series.get_point(lead_time)
        return None if point is None else point.rmse

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": "model_comparison",
            "variable": self.variable.value,
            "unit": self.variable.spec.unit,
            "issue_date": self.issue_date.isoformat(),
            "station_ids": list(self.station_ids),
            "lead_times": list(self.lead_times),
            "partial": self.is_partial,
            "models": {m: s.to_dict() for m, s in self.series.items()},
            "failures": {m: f.to_dict() for m, f in self.failures.items()},
        }


class MultiModelComparator:
    """
    Runs the aggregator once per model, concurrently.

    Example:
        comparator = MultiModelComparator()
        comparison = comparator.compare(
            ["WenHai", "GLO12"], Variable.SST, ["2902123"], date(2025, 8, 5),
            range(1, 11), pairs_for_model,
        )
    """

    def __init__(
        self,
        aggregator: Optional[ErrorStatisticsAggregator] = None,
        max_workers: int = 4,
    ):
        self.aggregator = aggregator or ErrorStatisticsAggregator()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="comparator"
        )

    def compare(
        self,
        models: Sequence[str],
        variable: Variable,
        station_ids: Sequence[str],
        issue_date: date,
        lead_times: Sequence[int],
        pairs_for_model: Callable[[str], Sequence[MatchedPair]],
        cancel_event: Optional[threading.Event] = None,
    ) -> ModelComparison:
        """
        Compare models on the union of their available lead times.

        Args:
            models: Model ids in ranking order
            variable: Verified variable
            station_ids: Stations aggregated over
            issue_date: Forecast issue date
            lead_times: Candidate lead times
            pairs_for_model: Returns the matched pairs of one model
            cancel_event: Cooperative cancellation flag

        Returns:
            ModelComparison, partial when some models failed

        Raises:
            InvalidArgumentError: If model ids repeat
            QueryCancelledError: If cancelled before all models finish
        """
        models = list(models)
        if len(set(models)) != len(models):
            raise InvalidArgumentError("Model identifiers must be unique", {"models": models})

        def run_model(model_id: str) -> LeadTimeSeries:
            if cancel_event is not None and cancel_event.is_set():
                raise QueryCancelledError()
            pairs = pairs_for_model(model_id)
            return self.aggregator.lead_time_series(
                pairs, lead_times, variable, model_id, issue_date, station_ids
            )

        futures = {m: self._executor.submit(run_model, m) for m in models}

        series: Dict[str, LeadTimeSeries] = {}
        failures: Dict[str, ModelFailure] = {}
        try:
            for model_id in models:
                try:
                    series[model_id] = futures[model_id].result()
                except QueryCancelledError:
                    raise
                except VerificationError as e:
                    logger.warning(f"Model {model_id} excluded from comparison: {e}")
                    failures[model_id] = ModelFailure(model_id, e.error_type, str(e))
        except BaseException:
            for future in futures.values():
                future.cancel()
            raise

        axis = sorted({lt for s in series.values() for lt in s.available_lead_times})
        aligned = {m: s.reindex(axis) for m, s in series.items()}

        logger.info(
            f"Compared {len(models)} models for {variable.value} "
            f"({len(aligned)} reported, {len(failures)} failed)"
        )
        return ModelComparison(
            variable=variable,
            issue_date=issue_date,
            station_ids=tuple(sorted(station_ids)),
            lead_times=tuple(axis),
            series=aligned,
            failures=failures,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)
