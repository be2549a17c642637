"""
Unit Tests for Fact Extraction, Enrichment and the Net Sales Pipeline
"""
from datetime import date

import pytest
import polars as pl

from src.fiscal import PeriodWindow, YearBasis
from src.quality.errors import ConservationError
from src.quality.report import DataQualityReport
from src.transformation import (
    DimensionEnricher,
    NetSalesPipeline,
    NetSalesRequest,
    enrich_sales_facts,
    extract_delivered_returns,
    extract_delivered_sales,
)
from src.transformation.transformers import COSA_KEYS

MINI_AS_OF = date(2025, 3, 5)


class TestExtraction:
    """Tests for sales and returns extraction"""

    def test_delivered_sales(self, delivered_sales_df, sales_lines_df, rules):
        """Test that sales take the line's attribution location and a known channel"""
        quality = DataQualityReport()

        facts = extract_delivered_sales(delivered_sales_df, sales_lines_df, rules, quality)

        assert facts.height == 5
        row = facts.filter(pl.col("order_line_id") == 2).row(0, named=True)
        assert row["location_id"] == 2
        assert row["sales_channel"] == "web"
        assert row["dollars"] == 30.0
        assert row["gm"] == 18.0
        assert row["vendor_gm"] == 20.0
        assert facts.filter(pl.col("order_line_id") == 3)["sales_channel"].item() == "other"
        assert quality.reclassified["delivered_sales_unknown_channel"] == 1

    def test_delivered_returns(self, delivered_returns_df, sales_lines_df, rules):
        """Test hub re-attribution and dangling returns"""
        quality = DataQualityReport()

        facts = extract_delivered_returns(delivered_returns_df, sales_lines_df, rules, quality)

        assert facts.height == 2
        assert quality.dangling["returns_sales_line"] == 1
        web = facts.filter(pl.col("order_line_id") == 2).row(0, named=True)
        assert web["location_id"] == 2
        assert web["sales_channel"] == "web"
        store = facts.filter(pl.col("order_line_id") == 1).row(0, named=True)
        assert store["location_id"] == 14
        assert store["sales_channel"] == "pos"

    def test_store_return_of_online_order(self, rules):
        """Test that an in-store return takes the original online order's channel"""
        lines = pl.DataFrame({
            "order_line_id": [10, 11],
            "order_id": [7, 8],
            "product_id": [1, 1],
            "sales_channel": ["web", "pos"],
            "source": ["oroms", "xcenter"],
            "attribution_location_id": [2, 14],
            "unit_last_cost": [5.0, 5.0],
        })
        returns = pl.DataFrame({
            "date_key": [20250226],
            "order_line_id": [11],
            "product_id": [1],
            "location_id": [14],
            "original_order_id": [7],
            "quantity": [1],
            "merchandise": [20.0],
            "fair_market_value": [5.0],
        })

        facts = extract_delivered_returns(returns, lines, rules)

        assert facts.row(0, named=True)["sales_channel"] == "web"
        assert facts.row(0, named=True)["location_id"] == 14


class TestEnrichment:
    """Tests for dimension joins and allow-lists"""

    def test_join_counts_dangling(self):
        """Test that inner joins count what they drop"""
        facts = pl.DataFrame({"product_id": [1, 2, 3]})
        dimension = pl.DataFrame({"product_id": [1, 2], "name": ["a", "b"]})
        enricher = DimensionEnricher()

        result = enricher.join_dimension(facts, dimension, on="product_id", name="products")

        assert result.height == 2
        assert enricher.quality.dangling["products"] == 1

    def test_keep_unmatched(self):
        """Test that unmatched facts can be kept with null attributes"""
        facts = pl.DataFrame({"product_id": [1, 3]})
        dimension = pl.DataFrame({"product_id": [1], "name": ["a"]})
        enricher = DimensionEnricher()

        result = enricher.join_dimension(facts, dimension, on="product_id", name="products", keep_unmatched=True)

        assert result.height == 2
        assert result.filter(pl.col("product_id") == 3)["name"].item() is None
        assert enricher.quality.dangling["products"] == 1

    def test_duplicate_dimension_keys(self):
        """Test that duplicated dimension keys never multiply facts"""
        facts = pl.DataFrame({"product_id": [1]})
        dimension = pl.DataFrame({"product_id": [1, 1], "name": ["a", "b"]})

        result = DimensionEnricher().join_dimension(facts, dimension, on="product_id", name="products")

        assert result.rows() == [(1, "a")]

    def test_allow_list(self):
        """Test that allow-list exclusions are counted"""
        enricher = DimensionEnricher()
        df = pl.DataFrame({"level_3_id": [3, 4, 6]})

        result = enricher.apply_allow_list(df, "level_3_id", [3, 6], "valid_departments")

        assert result["level_3_id"].to_list() == [3, 6]
        assert enricher.quality.filtered["valid_departments"] == 1

    def test_enrich_sales_facts(self, products_df, taxonomy_df, locations_df, rules):
        """Test the standard enrichment with a channel allow-list"""
        facts = pl.DataFrame({
            "product_id": [1, 2, 4],
            "location_id": [14, 2, 14],
            "net_dollars": [1.0, 2.0, 3.0],
        })
        quality = DataQualityReport()

        result = enrich_sales_facts(
            facts, products_df, taxonomy_df, locations_df, rules, quality, channels=["1"],
        )

        assert result["product_id"].to_list() == [1]
        assert quality.filtered == {"valid_departments": 1, "valid_channels": 1}
        assert {"level_3_id", "level_5_id", "vendor_id", "channel_id", "has_comparable_sales"} <= set(result.columns)


class TestNetSalesPipeline:
    """Tests for the end-to-end net sales pipeline"""

    @pytest.fixture
    def pipeline(self, mini_warehouse, rules, test_settings):
        return NetSalesPipeline(mini_warehouse, rules=rules, settings=test_settings)

    def test_net_conservation(self, pipeline):
        """Test that reconciled net equals sales minus returns"""
        net = pipeline.net_facts(["dollars", "units"])

        assert net["net_dollars"].sum() == pytest.approx(117.0 - 50.0)
        assert net["net_units"].sum() == 6 - 2
        assert pipeline.quality.passed
        assert net.filter(pl.col("location_id") == 904).is_empty()

    def test_run_by_location(self, pipeline):
        """Test TY and LY last-week net dollars per location"""
        result = pipeline.run(NetSalesRequest(
            as_of=MINI_AS_OF,
            grain=["location_id"],
            measures=["dollars"],
            windows=[PeriodWindow.LAST_WEEK],
            bases=[YearBasis.TY, YearBasis.LY],
        ))

        assert result.anchor.fiscal_week_id == 202505
        assert result.periods == ["lw", "lw_ly"]
        assert result.frame.columns == ["location_id", "net_dollars_lw", "net_dollars_lw_ly"]
        assert result.frame.rows() == [(2, 20.0, 0.0), (14, 20.0, 12.0)]

    def test_quality_side_channel(self, pipeline):
        """Test that exclusions are counted, not raised"""
        result = pipeline.run(NetSalesRequest(as_of=MINI_AS_OF, grain=["location_id"], measures=["dollars"]))

        assert result.quality.dangling["returns_sales_line"] == 1
        assert result.quality.total_dangling == 1
        assert result.quality.reclassified["delivered_sales_unknown_channel"] == 1
        assert result.quality.filtered["valid_departments"] == 1
        assert result.duration_seconds >= 0

    def test_cosa_overlay(self, pipeline):
        """Test COSA-only keys and dropped zero adjustments"""
        net = pipeline.cosa_overlay(pipeline.net_facts(["dollars"], COSA_KEYS))

        assert net.height == 8
        matched = net.filter((pl.col("product_id") == 1) & (pl.col("date_key") == 20250224))
        assert matched["cosa_net_gm"].item() == 31.0
        cosa_only = net.filter(pl.col("product_id") == 3).filter(pl.col("location_id") == 14)
        assert cosa_only["net_dollars"].item() == 0.0
        assert cosa_only["cosa_net_gm"].item() == -4.0
        zero = net.filter((pl.col("product_id") == 2) & (pl.col("date_key") == 20250224))
        assert zero["cosa_cost"].item() == 0.0

    def test_run_with_cosa(self, pipeline):
        """Test COSA net margin per location"""
        result = pipeline.run(NetSalesRequest(
            as_of=MINI_AS_OF,
            grain=["location_id"],
            measures=["dollars"],
            include_cosa=True,
        ))

        assert result.measures == ["net_dollars", "cosa_net_gm"]
        assert result.frame.rows() == [(2, 20.0, 20.0), (14, 20.0, 7.0)]

    def test_long_output(self, pipeline):
        """Test one row per grain and period"""
        result = pipeline.run(NetSalesRequest(
            as_of=MINI_AS_OF,
            grain=["location_id"],
            measures=["dollars"],
            windows=[PeriodWindow.LAST_WEEK, PeriodWindow.YTD],
            wide=False,
        ))

        assert result.frame.columns == ["location_id", "period", "net_dollars"]
        assert result.frame.height == 4

    def test_conservation_failure_raises(self, pipeline):
        """Test that a net total that does not conserve aborts the run"""
        net = pl.DataFrame({"net_dollars": [1.0]})
        sales = pl.DataFrame({"dollars": [5.0]})
        returns = pl.DataFrame({"dollars": [1.0]})

        with pytest.raises(ConservationError) as exc_info:
            pipeline.verify_conservation(net, sales, returns, ["dollars"])

        assert exc_info.value.details["expected"] == 4.0

    def test_null_fact_keys_are_warnings(self, pipeline):
        """Test that null fact keys are surfaced without failing the run"""
        facts = pl.DataFrame({
            "date_key": [20250224, 20250224],
            "product_id": [1, 2],
            "location_id": [14, None],
            "dollars": [10.0, 20.0],
        })

        pipeline.validate_facts(facts, facts.head(1), ["dollars"])

        assert [c.name for c in pipeline.quality.checks] == ["sales_not_null_location_id"]
        assert pipeline.quality.passed

    def test_facts_outside_calendar_and_allow_list(self, pipeline, calendar, rules):
        """Test that off-calendar days, unknown channels and negative units are warnings"""
        facts = pl.DataFrame({
            "date_key": [20250224, 20990101],
            "product_id": [1, 2],
            "location_id": [14, 14],
            "sales_channel": ["pos", "tiktok_shop"],
            "units": [1, -1],
        })

        pipeline.validate_facts(
            facts, facts.head(1), ["units"], calendar=calendar, channels=rules.known_sales_channels
        )

        assert [c.name for c in pipeline.quality.checks] == [
            "sales_range_units",
            "sales_ref_integrity_date_key",
            "sales_enum_sales_channel",
        ]
        assert pipeline.quality.passed


class TestPipelineReuse:
    """Tests for reconciling the same facts at several grains"""

    @pytest.fixture
    def pipeline(self, mini_warehouse, rules, test_settings):
        return NetSalesPipeline(mini_warehouse, rules=rules, settings=test_settings)

    def test_extraction_counted_once(self, pipeline):
        """Test that exclusions are counted once however many grains are reconciled"""
        pipeline.run(NetSalesRequest(as_of=MINI_AS_OF, grain=["location_id"], measures=["dollars"]))
        pipeline.net_facts(["dollars"], COSA_KEYS)
        pipeline.net_facts(["dollars", "units"])

        assert pipeline.quality.dangling["returns_sales_line"] == 1
        assert pipeline.quality.reclassified["delivered_sales_unknown_channel"] == 1
        names = [c.name for c in pipeline.quality.checks]
        assert names.count("conservation_dollars") == 1
        assert names.count("conservation_units") == 1

    def test_extract_is_cached(self, pipeline):
        """Test that the extracted facts are reused"""
        first = pipeline.extract()

        assert pipeline.extract() is first
