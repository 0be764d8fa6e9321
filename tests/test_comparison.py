"""
Tests for Multi-Model Comparison.

Covers the shared lead-time axis, missing entries for models without data
at a lead time, per-model failures and cancellation.
"""

import threading
from datetime import date

import pytest

from oceanval.analysis.verification.comparison import ModelComparison, MultiModelComparator
from oceanval.analysis.verification.matching import MatchedPair
from oceanval.exceptions import (
    InvalidArgumentError,
    QueryCancelledError,
    StoreTimeoutError,
)
from oceanval.variables import Variable


ISSUE = date(2025, 8, 5)


def pairs_for(model_id, lead_times, error):
    return [
        MatchedPair("2902123", Variable.SST, model_id, ISSUE, lt, None, 29.0 + error, 29.0)
        for lt in lead_times
    ]


@pytest.fixture
def comparator():
    c = MultiModelComparator(max_workers=3)
    yield c
    c.close()


class TestMultiModelComparator:
    """Tests for side-by-side comparison."""

    def test_missing_lead_marked_per_model(self, comparator):
        """Model B without lead 3 is missing there while A still reports."""
        data = {
            "A": pairs_for("A", [1, 2, 3, 4, 5], 0.2),
            "B": pairs_for("B", [1, 2, 4, 5], 0.4),
        }
        comparison = comparator.compare(
            ["A", "B"], Variable.SST, ["2902123"], ISSUE, range(1, 6), data.__getitem__
        )

        assert comparison.lead_times == (1, 2, 3, 4, 5)
        assert comparison.rmse_at("A", 3) == pytest.approx(0.2)
        assert comparison.rmse_at("B", 3) is None
        assert comparison.series["B"].get_point(3).is_missing
        assert comparison.rmse_at("B", 4) == pytest.approx(0.4)
        assert not comparison.is_partial

    def test_axis_is_union_of_available_leads(self, comparator):
        """Lead times no model has data for are not on the axis."""
        data = {
            "A": pairs_for("A", [1, 2], 0.1),
            "B": pairs_for("B", [2, 4], 0.3),
        }
        comparison = comparator.compare(
            ["A", "B"], Variable.SST, ["2902123"], ISSUE, range(1, 11), data.__getitem__
        )

        assert comparison.lead_times == (1, 2, 4)
        assert comparison.series["A"].lead_times == [1, 2, 4]
        assert comparison.series["A"].get_point(4).is_missing

    def test_model_order_follows_ranking(self, comparator):
        data = {m: pairs_for(m, [1], 0.1) for m in ("2O1S", "WenHai", "GLO12")}
        comparison = comparator.compare(
            ["WenHai", "GLO12", "2O1S"], Variable.SST, ["2902123"], ISSUE, [1], data.__getitem__
        )
        assert comparison.model_ids == ["WenHai", "GLO12", "2O1S"]

    def test_failed_model_reported(self, comparator):
        """A model that cannot be aggregated is a failure; others still report."""
        def pairs_for_model(model_id):
            if model_id == "B":
                raise StoreTimeoutError("forecasts.get", 5.0, attempts=2)
            return pairs_for(model_id, [1, 2], 0.2)

        comparison = comparator.compare(
            ["A", "B"], Variable.SST, ["2902123"], ISSUE, [1, 2], pairs_for_model
        )

        assert comparison.is_partial
        assert comparison.model_ids == ["A"]
        assert comparison.failures["B"].error_type == "StoreTimeout"
        assert comparison.to_dict()["partial"] is True

    def test_model_without_data_reported(self, comparator):
        """A model with no pairs at all fails with insufficient data."""
        data = {"A": pairs_for("A", [1], 0.2), "B": []}
        comparison = comparator.compare(
            ["A", "B"], Variable.SST, ["2902123"], ISSUE, [1], data.__getitem__
        )

        assert comparison.failures["B"].error_type == "InsufficientData"

    def test_duplicate_models_rejected(self, comparator):
        with pytest.raises(InvalidArgumentError):
            comparator.compare(["A", "A"], Variable.SST, ["2902123"], ISSUE, [1], lambda m: [])

    def test_cancelled(self, comparator):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(QueryCancelledError):
            comparator.compare(
                ["A", "B"], Variable.SST, ["2902123"], ISSUE, [1],
                lambda m: pairs_for(m, [1], 0.1), cancel_event=cancel,
            )

    def test_to_dict(self, comparator):
        data = {"A": pairs_for("A", [1], 0.2), "B": pairs_for("B", [1], 0.4)}
        result = comparator.compare(
            ["A", "B"], Variable.SST, ["2902123"], ISSUE, [1], data.__getitem__
        ).to_dict()

        assert result["kind"] == "model_comparison"
        assert list(result["models"]) == ["A", "B"]
        assert result["models"]["B"]["rmse"] == pytest.approx([0.4])
        assert result["failures"] == {}


class TestModelComparison:
    """Tests for the comparison result."""

    def test_rmse_at_unknown_model(self):
        comparison = ModelComparison(Variable.SST, ISSUE, ("2902123",), (1,))
        assert comparison.rmse_at("A", 1) is None
        assert comparison.model_ids == []
