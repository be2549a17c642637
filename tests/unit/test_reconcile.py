"""
Unit Tests for Outer-Join Reconciliation and Aggregation
"""
import pytest
import polars as pl

from src.transformation.aggregation import aggregate, pivot_periods
from src.transformation.reconcile import (
    outer_join_reconcile,
    overlay_cost_adjustment,
    reconcile_frames,
    reconcile_net,
)


class TestOuterJoinReconcile:
    """Tests for the left-join plus anti-join merge"""

    @pytest.fixture
    def left(self):
        return pl.DataFrame({"k": [1, 2], "a": [1.0, 2.0]})

    @pytest.fixture
    def right(self):
        return pl.DataFrame({"k": [2, 3], "b": [10.0, 30.0]})

    def test_every_key_kept(self, left, right):
        """Test that keys from either side appear exactly once"""
        result = outer_join_reconcile(left, right, ["k"]).sort("k")

        assert result.columns == ["k", "a", "b"]
        assert result["k"].to_list() == [1, 2, 3]
        assert result["a"].to_list() == [1.0, 2.0, 0.0]
        assert result["b"].to_list() == [0.0, 10.0, 30.0]

    def test_null_zero_measure(self, left, right):
        """Test that a None zero measure keeps absent sides null"""
        result = outer_join_reconcile(left, right, ["k"], zero_measure=None).sort("k")

        assert result["a"].to_list() == [1.0, 2.0, None]
        assert result["b"].to_list() == [None, 10.0, 30.0]

    def test_duplicate_keys_collapsed(self, right):
        """Test that repeated keys are summed before the merge"""
        left = pl.DataFrame({"k": [2, 2], "a": [1.0, 2.0]})

        result = outer_join_reconcile(left, right, ["k"]).sort("k")

        assert result.height == 2
        assert result.filter(pl.col("k") == 2)["a"].item() == 3.0

    def test_null_keys_match(self):
        """Test that null key parts compare equal across sides"""
        left = pl.DataFrame({"k": [None, 1], "a": [1.0, 2.0]}, schema={"k": pl.Int64, "a": pl.Float64})
        right = pl.DataFrame({"k": [None], "b": [5.0]}, schema={"k": pl.Int64, "b": pl.Float64})

        result = outer_join_reconcile(left, right, ["k"])

        assert result.height == 2
        assert result.filter(pl.col("k").is_null())["b"].item() == 5.0

    def test_overlapping_measures_rejected(self, left):
        """Test that a measure name on both sides is an error"""
        with pytest.raises(ValueError):
            outer_join_reconcile(left, left, ["k"])

    def test_reconcile_frames(self, left, right):
        """Test folding three streams"""
        third = pl.DataFrame({"k": [4], "c": [7.0]})

        result = reconcile_frames([left, right, third], ["k"])

        assert sorted(result["k"].to_list()) == [1, 2, 3, 4]
        assert result["c"].sum() == 7.0


class TestReconcileNet:
    """Tests for netting sales against returns"""

    def test_net_conserves_totals(self):
        """Test that net equals sales minus returns in total and per key"""
        sales = pl.DataFrame({"k": [1, 2], "dollars": [10.0, 20.0]})
        returns = pl.DataFrame({"k": [2, 3], "dollars": [5.0, 7.0]})

        net = reconcile_net(sales, returns, ["k"], ["dollars"]).sort("k")

        assert net.columns == ["k", "sales_dollars", "returns_dollars", "net_dollars"]
        assert net["net_dollars"].to_list() == [10.0, 15.0, -7.0]
        assert net["net_dollars"].sum() == sales["dollars"].sum() - returns["dollars"].sum()

    def test_return_only_key(self):
        """Test that a key with only returns nets negative"""
        sales = pl.DataFrame({"k": [1], "dollars": [10.0]})
        returns = pl.DataFrame({"k": [9], "dollars": [4.0]})

        net = reconcile_net(sales, returns, ["k"], ["dollars"])

        row = net.filter(pl.col("k") == 9).row(0, named=True)
        assert row["sales_dollars"] == 0.0
        assert row["net_dollars"] == -4.0


class TestCostAdjustmentOverlay:
    """Tests for the COSA overlay"""

    def test_overlay(self):
        """Test matched, unmatched, COSA-only and zero adjustment keys"""
        net = pl.DataFrame({"k": [1, 2], "net_dollars": [100.0, 50.0]})
        cosa = pl.DataFrame({"k": [1, 3, 4], "cosa": [30.0, 5.0, 0.0]})

        result = overlay_cost_adjustment(net, cosa, ["k"]).sort("k")

        assert result["k"].to_list() == [1, 2, 3]
        assert result["cosa_cost"].to_list() == [30.0, 0.0, 5.0]
        assert result["net_dollars"].to_list() == [100.0, 50.0, 0.0]
        assert result["cosa_net_gm"].to_list() == [70.0, 50.0, -5.0]


class TestAggregation:
    """Tests for group-by and period pivots"""

    def test_aggregate_sorted(self):
        """Test that aggregates come back sorted by the grain"""
        df = pl.DataFrame({"g": ["b", "a", "b"], "v": [1, 2, 3]})

        result = aggregate(df, ["g"], ["v"])

        assert result.rows() == [("a", 2), ("b", 4)]

    def test_aggregate_multiple_columns(self):
        """Test a two-column grain"""
        df = pl.DataFrame({"g": ["a", "a", "a"], "h": [1, 2, 1], "v": [1.0, 2.0, 3.0]})

        result = aggregate(df, ["g", "h"], ["v"])

        assert result.rows() == [("a", 1, 4.0), ("a", 2, 2.0)]

    def test_pivot_periods(self):
        """Test that absent periods are zero and columns follow period order"""
        df = pl.DataFrame({
            "g": ["a", "a", "b"],
            "period": ["lw", "ytd", "ytd"],
            "v": [1, 2, 3],
        })

        result = pivot_periods(df, ["g"], ["v"], ["lw", "ytd"])

        assert result.columns == ["g", "v_lw", "v_ytd"]
        assert result.rows() == [("a", 1, 2), ("b", 0, 3)]

    def test_pivot_multiple_measures(self):
        """Test measure-major column order within a period"""
        df = pl.DataFrame({
            "g": ["a"],
            "period": ["lw"],
            "v": [1.0],
            "w": [2.0],
        })

        result = pivot_periods(df, ["g"], ["v", "w"], ["lw", "lw_ly"])

        assert result.columns == ["g", "v_lw", "w_lw", "v_lw_ly", "w_lw_ly"]
        assert result.row(0) == ("a", 1.0, 2.0, 0.0, 0.0)
