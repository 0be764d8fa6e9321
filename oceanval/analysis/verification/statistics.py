"""
Error Statistics Aggregation.

Reduces matched forecast/observation pairs into verification statistics
(RMSE, bias, MAE, Pearson correlation) per lead time and per depth level.

Aggregation is stateless and deterministic: pairs are ordered by their
unique key before reduction, so the output depends only on the set of pairs
and never on the order they were supplied in. An empty sample raises
InsufficientDataError rather than producing a zero statistic.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from oceanval.analysis.verification.matching import MatchedPair
from oceanval.exceptions import InsufficientDataError, InvalidArgumentError
from oceanval.variables import Variable

logger = logging.getLogger(__name__)


def _optional(value: float) -> Optional[float]:
    """NaN to None for serialization."""
    if value is None or np.isnan(value):
        return None
    return float(value)


@dataclass(frozen=True)
class ErrorStatistics:
    """
    Verification statistics for one group of matched pairs.

    Attributes:
        n_samples: Number of pairs
        rmse: Root mean square error
        bias: Mean error (forecast - observed)
        mae: Mean absolute error
        correlation: Pearson correlation, NaN when undefined
    """

    n_samples: int
    rmse: float
    bias: float
    mae: float
    correlation: float = np.nan

    @property
    def has_correlation(self) -> bool:
        return not np.isnan(self.correlation)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "n_samples": self.n_samples,
            "rmse": self.rmse,
            "bias": self.bias,
            "mae": self.mae,
            "correlation": _optional(self.correlation),
        }


def compute_error_statistics(pairs: Iterable[MatchedPair]) -> ErrorStatistics:
    """
    Compute RMSE, bias, MAE and correlation over matched pairs.

    Args:
        pairs: Matched pairs sharing a variable (and usually a lead time or depth)

    Returns:
        ErrorStatistics

    Raises:
        InsufficientDataError: If there are no pairs
    """
    ordered = sorted(pairs, key=lambda p: p.key)
    if not ordered:
        raise InsufficientDataError("No matched pairs to aggregate")

    fcst = np.array([p.forecast for p in ordered], dtype=np.float64)
    obs = np.array([p.observation for p in ordered], dtype=np.float64)
    diff = fcst - obs

    rmse = float(np.sqrt(np.mean(diff ** 2)))
    bias = float(np.mean(diff))
    mae = float(np.mean(np.abs(diff)))

    # Correlation is undefined for a single pair or a constant series
    if len(ordered) > 1 and np.ptp(fcst) > 0 and np.ptp(obs) > 0:
        if np.array_equal(fcst, obs):
            correlation = 1.0
        else:
            correlation = float(np.clip(np.corrcoef(fcst, obs)[0, 1], -1.0, 1.0))
    else:
        correlation = np.nan

    return ErrorStatistics(
        n_samples=len(ordered),
        rmse=rmse,
        bias=bias,
        mae=mae,
        correlation=correlation,
    )


@dataclass(frozen=True)
class LeadTimePoint:
    """One lead time of a series; statistics is None when missing."""

    lead_time: int
    statistics: Optional[ErrorStatistics] = None

    @property
    def is_missing(self) -> bool:
        return self.statistics is None

    @property
    def rmse(self) -> Optional[float]:
        return None if self.statistics is None else self.statistics.rmse

    @property
    def bias(self) -> Optional[float]:
        return None if self.statistics is None else self.statistics.bias

    @property
    def correlation(self) -> Optional[float]:
        return None if self.statistics is None else _optional(self.statistics.correlation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_time": self.lead_time,
            "missing": self.is_missing,
            **(self.statistics.to_dict() if self.statistics else {
                "n_samples": 0, "rmse": None, "bias": None, "mae": None, "correlation": None,
            }),
        }


@dataclass(frozen=True)
class LeadTimeSeries:
    """
    Verification statistics as a function of lead time.

    Attributes:
        variable: Verified variable
        model_id: Forecast model
        issue_date: Forecast issue date
        station_ids: Stations aggregated over
        points: One point per lead time, ascending
    """

    variable: Variable
    model_id: str
    issue_date: date
    station_ids: tuple
    points: tuple = field(default_factory=tuple)

    @property
    def lead_times(self) -> List[int]:
        return [p.lead_time for p in self.points]

    @property
    def available_lead_times(self) -> List[int]:
        return [p.lead_time for p in self.points if not p.is_missing]

    @property
    def rmse(self) -> List[Optional[float]]:
        return [p.rmse for p in self.points]

    @property
    def bias(self) -> List[Optional[float]]:
        return [p.bias for p in self.points]

    @property
    def correlation(self) -> List[Optional[float]]:
        return [p.correlation for p in self.points]

    def get_point(self, lead_time: int) -> Optional[LeadTimePoint]:
        """Get the point at a lead time, or None if outside the axis."""
        for point in self.points:
            if point.lead_time == lead_time:
                return point
        return None

    def reindex(self, lead_times: Sequence[int]) -> "LeadTimeSeries":
        """Project the series onto another lead-time axis; new points are missing."""
        by_lead = {p.lead_time: p for p in self.points}
        return LeadTimeSeries(
            variable=self.variable,
            model_id=self.model_id,
            issue_date=self.issue_date,
            station_ids=self.station_ids,
            points=tuple(by_lead.get(lt, LeadTimePoint(lt)) for lt in sorted(lead_times)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": "lead_time_series",
            "variable": self.variable.value,
            "unit": self.variable.spec.unit,
            "model_id": self.model_id,
            "issue_date": self.issue_date.isoformat(),
            "station_ids": list(self.station_ids),
            "lead_times": self.lead_times,
            "rmse": self.rmse,
            "bias": self.bias,
            "correlation": self.correlation,
            "points": [p.to_dict() for p in self.points],
        }


@dataclass(frozen=True)
class DepthProfilePoint:
    """One depth level of a profile; statistics is None when missing."""

    depth: float
    statistics: Optional[ErrorStatistics] = None

    @property
    def is_missing(self) -> bool:
        return self.statistics is None

    @property
    def rmse(self) -> Optional[float]:
        return None if self.statistics is None else self.statistics.rmse

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depth": self.depth,
            "missing": self.is_missing,
            "rmse": self.rmse,
            "bias": None if self.statistics is None else self.statistics.bias,
            "n_samples": 0 if self.statistics is None else self.statistics.n_samples,
        }


@dataclass(frozen=True)
class DepthProfileSeries:
    """
    RMSE by depth level for one lead time.

    Attributes:
        variable: Profile variable (T or S)
        model_id: Forecast model
        issue_date: Forecast issue date
        lead_time: Lead time in days
        station_ids: Stations aggregated over
        points: One point per depth level, increasing depth
    """

    variable: Variable
    model_id: str
    issue_date: date
    lead_time: int
    station_ids: tuple
    points: tuple = field(default_factory=tuple)

    @property
    def depths(self) -> List[float]:
        return [p.depth for p in self.points]

    @property
    def rmse(self) -> List[Optional[float]]:
        return [p.rmse for p in self.points]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": "depth_profile_series",
            "variable": self.variable.value,
            "unit": self.variable.spec.unit,
            "model_id": self.model_id,
            "issue_date": self.issue_date.isoformat(),
            "lead_time": self.lead_time,
            "station_ids": list(self.station_ids),
            "depths": self.depths,
            "rmse": self.rmse,
            "points": [p.to_dict() for p in self.points],
        }


class ErrorStatisticsAggregator:
    """
    Builds lead-time and depth-profile series from matched pairs.

    Example:
        aggregator = ErrorStatisticsAggregator()
        series = aggregator.lead_time_series(
            pairs, range(1, 11), Variable.T, "WenHai", date(2025, 8, 5), ("2902123",)
        )
        print(series.rmse)
    """

    def lead_time_series(
        self,
        pairs: Sequence[MatchedPair],
        lead_times: Iterable[int],
        variable: Variable,
        model_id: str,
        issue_date: date,
        station_ids: Sequence[str],
    ) -> LeadTimeSeries:
        """
        Aggregate pairs per lead time.

        Lead times without pairs become missing points.

        Raises:
            InvalidArgumentError: If pairs belong to another variable or model
            InsufficientDataError: If no lead time has any pair
        """
        self._check_pairs(pairs, variable, model_id)
        axis = sorted(set(lead_times))
        by_lead: Dict[int, List[MatchedPair]] = {lt: [] for lt in axis}
        for pair in pairs:
            if pair.lead_time in by_lead:
                by_lead[pair.lead_time].append(pair)

        points = tuple(
            LeadTimePoint(lt, compute_error_statistics(by_lead[lt]) if by_lead[lt] else None)
            for lt in axis
        )
        if all(p.is_missing for p in points):
            raise InsufficientDataError(
                f"No matched pairs for {variable.value}/{model_id} at any lead time",
                {"lead_times": axis},
            )

        return LeadTimeSeries(
            variable=variable,
            model_id=model_id,
            issue_date=issue_date,
            station_ids=tuple(sorted(station_ids)),
            points=points,
        )

    def depth_profile(
        self,
        pairs: Sequence[MatchedPair],
        depth_levels: Iterable[float],
        lead_time: int,
        variable: Variable,
        model_id: str,
        issue_date: date,
        station_ids: Sequence[str],
    ) -> DepthProfileSeries:
        """
        Aggregate pairs of one lead time per depth level.

        Raises:
            InvalidArgumentError: If the variable has no depth dimension
            InsufficientDataError: If no depth level has any pair
        """
        if not variable.is_profile:
            raise InvalidArgumentError(
                f"Variable {variable.value} has no depth dimension"
            )
        self._check_pairs(pairs, variable, model_id)

        levels = sorted(set(depth_levels))
        by_depth: Dict[float, List[MatchedPair]] = {d: [] for d in levels}
        for pair in pairs:
            if pair.lead_time == lead_time and pair.depth in by_depth:
                by_depth[pair.depth].append(pair)

        points = tuple(
            DepthProfilePoint(d, compute_error_statistics(by_depth[d]) if by_depth[d] else None)
            for d in levels
        )
        if all(p.is_missing for p in points):
            raise InsufficientDataError(
                f"No matched pairs for {variable.value}/{model_id} profile at lead {lead_time}",
                {"lead_time": lead_time},
            )

        return DepthProfileSeries(
            variable=variable,
            model_id=model_id,
            issue_date=issue_date,
            lead_time=lead_time,
            station_ids=tuple(sorted(station_ids)),
            points=points,
        )

    @staticmethod
    def _check_pairs(pairs: Sequence[MatchedPair], variable: Variable, model_id: str) -> None:
        for pair in pairs:
            if pair.variable != variable or pair.model_id != model_id:
                raise InvalidArgumentError(
                    "Matched pair does not belong to the aggregated series",
                    {"expected": f"{variable.value}/{model_id}",
                     "got": f"{pair.variable.value}/{pair.model_id}"},
                )
