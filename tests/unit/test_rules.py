"""
Unit Tests for Channel, Location and Price Rules
"""
import pytest
import polars as pl

from src.config import BusinessRules
from src.config.lookups import PriceEndingRule
from src.transformation.rules import (
    classify_price_ending,
    merch_group,
    normalize_sales_channel,
    price_type_rank,
    reattribute_hub_returns,
    receipt_age_bucket,
    region_attributes,
)


class TestSalesChannel:
    """Tests for channel normalization"""

    def test_normalize(self, rules):
        """Test that null maps to pos and unknown codes to other"""
        df = pl.DataFrame({"sales_channel": ["web", None, "tiktok_shop", "pos"]})

        normalized, reclassified = normalize_sales_channel(df, rules)

        assert normalized["sales_channel"].to_list() == ["web", "pos", "other", "pos"]
        assert reclassified == 1

    def test_empty_frame(self, rules):
        """Test normalizing an empty frame"""
        df = pl.DataFrame({"sales_channel": []}, schema={"sales_channel": pl.Utf8})

        normalized, reclassified = normalize_sales_channel(df, rules)

        assert normalized.is_empty()
        assert reclassified == 0


class TestHubReturns:
    """Tests for hub return re-attribution"""

    @pytest.fixture
    def returns(self):
        return pl.DataFrame(
            {
                "location_id": [904, 904, 14, 2],
                "sales_channel": ["web", "slt_sfs", "web", "web"],
            },
            schema={"location_id": pl.Int64, "sales_channel": pl.Utf8},
        )

    def test_direct_channel_moves_to_ecommerce(self, returns, rules):
        """Test that only direct-channel returns at the hub move"""
        result = reattribute_hub_returns(returns, rules)

        assert result["location_id"].to_list() == [2, 904, 14, 2]

    def test_idempotent(self, returns, rules):
        """Test that applying the rule twice changes nothing more"""
        once = reattribute_hub_returns(returns, rules)
        twice = reattribute_hub_returns(once, rules)

        assert once.equals(twice)

    def test_rule_override(self, returns):
        """Test a rule table with a different ecommerce location"""
        rules = BusinessRules(ecommerce_location_id=7)

        result = reattribute_hub_returns(returns, rules)

        assert result["location_id"].to_list() == [7, 904, 14, 2]


class TestClassification:
    """Tests for department and price classification"""

    def test_merch_group(self, rules):
        """Test department to merch group mapping"""
        df = pl.DataFrame({"level_3_id": [500007, 3, 999]})

        result = df.select(merch_group(pl.col("level_3_id"), rules).alias("group"))

        assert result["group"].to_list() == ["Entertaining", "Kitchen", "Other"]

    def test_price_type_rank(self, rules):
        """Test that unknown price types sort last"""
        df = pl.DataFrame({"price_type": ["regular_price", "other", "clearance"]})

        result = df.select(price_type_rank(pl.col("price_type"), rules).alias("rank"))

        assert result["rank"].to_list() == [1, 5, 6]

    def test_price_ending(self, rules):
        """Test the first matching price-ending rule wins"""
        df = pl.DataFrame({"price": [19.96, 19.99, 20.01, None, 20.00]}, schema={"price": pl.Float64})

        result = df.select(classify_price_ending(pl.col("price"), rules).alias("t")).unnest("t")

        assert result["price_type_code"].to_list() == ["POS", "MKD", "MOS", "NP", "REG"]
        assert result["price_type_id"].to_list() == [3, 2, 4, 5, 1]

    def test_price_ending_rules_swappable(self):
        """Test a replacement price-ending table"""
        rules = BusinessRules(price_ending_rules=[
            PriceEndingRule(kind="cents_digit", value="5", type_id=9, code="HALF", description="Half"),
        ])
        df = pl.DataFrame({"price": [10.95, 19.96]})

        result = df.select(classify_price_ending(pl.col("price"), rules).alias("t")).unnest("t")

        assert result["price_type_code"].to_list() == ["HALF", "REG"]

    def test_receipt_age_bucket(self, rules):
        """Test receipt age buckets, with no receipt counting as oldest"""
        df = pl.DataFrame({"age": [10, 100, 200, 300, 400, None]}, schema={"age": pl.Int64})

        result = df.select(receipt_age_bucket(pl.col("age"), rules).alias("b")).unnest("b")

        assert result["receipt_age_bucket_id"].to_list() == [5, 4, 3, 2, 1, 1]
        assert result["receipt_age_bucket"][0] == "Aged Last 13 Weeks"


class TestRegions:
    """Tests for region attributes"""

    def test_region_attributes(self, rules):
        """Test mapped, warehouse and unmapped districts"""
        locations = pl.DataFrame(
            {
                "location_id": [14, 904, 512],
                "district_code": ["NW", None, "ZZ"],
                "channel_code": ["retail", "warehouse", "retail"],
            },
            schema={"location_id": pl.Int64, "district_code": pl.Utf8, "channel_code": pl.Utf8},
        )

        result = region_attributes(locations, rules).sort("location_id")

        assert result["region"].to_list() == ["West Coast", "zOther", "DC"]
        assert result["district_code"].to_list() == ["NW", "ZZ", "No Code"]
        assert result["win_store"].to_list() == ["Y", "N", "N"]
