"""
Business Rule Lookups

Named, versioned rule tables shared by every report: department and
channel allow-lists, the hub return remap, region/district attributes,
price classification tables and customer bucketing thresholds.

Rule tables are plain data. Pipeline functions receive a ``BusinessRules``
instance explicitly instead of reading module globals, so a report can be
rerun against an older rule version or a test override.
"""

from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegionRule(BaseModel):
    """Region and district attributes for one district code"""
    region: str
    region_order: int
    district_name: str
    district_order: int
    manager: Optional[str] = None


class PriceEndingRule(BaseModel):
    """
    One row of the price-ending classification table.

    ``kind`` is one of:
      - ``cents_digit``: second decimal digit of the price equals ``value``
      - ``suffix``: the price rendered as text ends with ``value``
      - ``missing``: the price is null
    Rules are evaluated in list order; the first match wins.
    """
    kind: str
    value: Optional[str] = None
    type_id: int
    code: str
    description: str


class AgeBucketRule(BaseModel):
    """Receipt age bucket, matched when ``age_days <= max_days``"""
    max_days: int
    bucket_id: int
    label: str


class BusinessRules(BaseSettings):
    """Versioned business rule tables"""

    model_config = SettingsConfigDict(env_prefix="RULES_", extra="ignore")

    version: str = Field(default="2025.11", description="Rule table version")

    # Merchandising
    valid_departments: List[int] = Field(
        default=[500004, 500005, 250003, 3, 500006, 250004, 500007,
                 250005, 500008, 500010, 6, 250007, 500012, 8],
        description="Level-3 department ids included in sales reporting",
    )
    merch_groups: Dict[str, List[int]] = Field(
        default={
            "Entertaining": [500007, 500010, 250007, 500012, 8],
            "Kitchen": [500005, 250003, 3, 500006, 250004, 250005, 6, 500008, 4, 500004],
        },
        description="Merch group name -> department ids; anything else is 'Other'",
    )
    default_merch_group: str = "Other"

    # Channels and locations
    retail_channel_ids: List[str] = Field(default=["1"], description="Store channel ids")
    store_channel_ids: List[str] = Field(default=["1", "2"], description="Retail plus ecommerce channel ids")
    hub_location_id: int = Field(default=904, description="Central distribution hub location")
    ecommerce_location_id: int = Field(default=2, description="Ecommerce pseudo-location")
    direct_channels: List[str] = Field(
        default=[
            "amazon_pickup", "amazon_delivery", "slt_bopis", "walmart_go_local",
            "web", "customer_service", "amazon_marketplace", "culinary_orders",
        ],
        description="Direct-to-consumer channels whose hub returns move to ecommerce",
    )
    known_sales_channels: List[str] = Field(
        default=[
            "pos", "web", "customer_service", "amazon_marketplace", "amazon_pickup",
            "amazon_delivery", "slt_bopis", "slt_sfs", "walmart_go_local",
            "culinary_orders", "other",
        ],
        description="Recognised sales_channel vocabulary",
    )
    default_sales_channel: str = "pos"
    unclassified_sales_channel: str = "other"
    online_source: str = "oroms"
    store_source: str = "xcenter"

    # Store reporting
    regions: Dict[str, RegionRule] = Field(
        default={
            "NW": RegionRule(region="West Coast", region_order=1, district_name="West Coast North", district_order=1, manager="Tina Spangler"),
            "WC": RegionRule(region="West Coast", region_order=1, district_name="West Coast South", district_order=2, manager="Tina Spangler"),
            "CHI": RegionRule(region="Mid-West", region_order=2, district_name="Greater Chicago", district_order=3, manager="Kimberly Taylor"),
            "TX": RegionRule(region="Mid-West", region_order=2, district_name="Texas", district_order=4, manager="Kimberly Taylor"),
            "FL": RegionRule(region="Florida", region_order=3, district_name="Florida", district_order=5, manager="Jose Fasenda"),
            "EC": RegionRule(region="East Coast", region_order=4, district_name="East Coast", district_order=6, manager="Heather Dean"),
            "OV": RegionRule(region="East Coast", region_order=4, district_name="Ohio Valley", district_order=7, manager="Heather Dean"),
            "WDC": RegionRule(region="Florida", region_order=3, district_name="District of Columbia", district_order=8, manager="Jose Fasenda"),
            "DC": RegionRule(region="ecommerce", region_order=5, district_name="ecommerce", district_order=9, manager="ecommerce"),
        },
        description="District code -> region attributes",
    )
    warehouse_channel_code: str = "warehouse"
    warehouse_region: RegionRule = RegionRule(region="DC", region_order=6, district_name="DC", district_order=10, manager="DC")
    other_region: RegionRule = RegionRule(region="zOther", region_order=7, district_name="Other", district_order=11, manager="zOther")
    win_stores: List[int] = Field(
        default=[14, 18, 42, 76, 113, 122, 125, 138, 144, 154, 157, 159, 160, 161, 162, 171, 172, 174, 175],
        description="Stores flagged in the win-store program",
    )

    # Price classification
    price_type_order: Dict[str, int] = Field(
        default={
            "regular_price": 1,
            "promotional_sale": 2,
            "markdown_sale": 3,
            "marked_out_of_stock": 4,
            "other": 5,
        },
        description="Price type -> display order; unknown types sort last",
    )
    unknown_price_type_order: int = 6
    default_price_type: str = "other"
    price_ending_rules: List[PriceEndingRule] = Field(
        default=[
            PriceEndingRule(kind="cents_digit", value="6", type_id=3, code="POS", description="POS"),
            PriceEndingRule(kind="cents_digit", value="9", type_id=2, code="MKD", description="Markdown"),
            PriceEndingRule(kind="suffix", value="01", type_id=4, code="MOS", description="MOS"),
            PriceEndingRule(kind="missing", type_id=5, code="NP", description="No Price"),
        ],
        description="Ordered price-ending rules; first match wins",
    )
    regular_price_rule: PriceEndingRule = PriceEndingRule(kind="default", type_id=1, code="REG", description="Regular")
    receipt_age_buckets: List[AgeBucketRule] = Field(
        default=[
            AgeBucketRule(max_days=91, bucket_id=5, label="Aged Last 13 Weeks"),
            AgeBucketRule(max_days=182, bucket_id=4, label="Aged 14 - 26 Weeks"),
            AgeBucketRule(max_days=273, bucket_id=3, label="Aged 27 - 39 Weeks"),
            AgeBucketRule(max_days=364, bucket_id=2, label="Aged 40 - 52 Weeks"),
        ],
        description="Ascending receipt age buckets",
    )
    oldest_age_bucket: AgeBucketRule = AgeBucketRule(max_days=-1, bucket_id=1, label="Aged Greater than 52 Weeks")
    open_date_sentinel: str = "2099-12-31"

    # Discounts
    no_discount_code: str = "No Discount"
    no_subdiscount_code: str = "No Sub-Code"

    # Customer bucketing
    frequency_cap: int = Field(default=5, description="Order frequency above this lands in the cap+1 bucket")
    sales_bucket_thresholds: List[float] = Field(
        default=[1000, 2500, 5000, 7500, 10000],
        description="Upper bounds of customer sales bands",
    )
    full_price_class_prices: List[float] = Field(
        default=[49, 59, 69, 79, 195, 200, 210, 250, 295],
        description="Cooking class list prices treated as full price",
    )
    placeholder_customer_name: str = "Cozymeal Chef"

    # Customer lifecycle
    non_customer_emails: List[str] = Field(
        default=["noemail@example.com", "storeorders@example.com"],
        description="Shared emails keyed at the register; their orders count as anonymous",
    )
    marketplace_channel_pattern: str = Field(
        default="amazon|amzbopis",
        description="sales_channel pattern of marketplace orders left out of customer reports",
    )
    retention_quarters: int = Field(default=4, description="Quarters looked back for a retained customer")
    reporting_week_in_quarter: int = Field(default=2, description="Fiscal week whose last day dates a quarter")
    cooking_school_departments: List[int] = Field(default=[9], description="Level-3 cooking school departments")
    gift_card_classes: List[int] = Field(default=[500198], description="Level-5 gift card classes")
    warranty_classes: List[int] = Field(default=[216], description="Level-5 warranty classes")

    # Online cooking class buyers
    occ_subcategory: str = Field(default="999", description="Sub-category code of online cooking classes")
    near_store_miles: float = 25.0
    active_gap_days: int = Field(default=365, description="Largest gap before the last order for an active buyer")
    lapsed_gap_days: int = Field(default=730, description="Largest gap for a lapsed buyer; longer is deep lapsed")

    # DSR demand classes: class id -> (name, selector)
    dsr_classes: Dict[int, Tuple[str, str]] = Field(
        default={
            212: ("DC/SFS", "dc_sfs"),
            250275: ("Drop Ship", "drop_ship"),
            337: ("Amazon Marketplace", "channel:amazon_marketplace"),
            353: ("BOPIS", "channel:slt_bopis"),
            250220: ("Walmart Go Local", "channel:walmart_go_local"),
            500198: ("Gift Cards", "level_5:500198"),
            216: ("Warranties", "level_5:216"),
            461000001: ("Safonia", "level_5:461000001"),
            500086: ("Culinary", "channel:culinary_orders"),
        },
        description="DSR class id -> (display name, line selector)",
    )
    dc_sfs_channels: List[str] = Field(default=["web", "customer_service", "slt_sfs"])
    drop_ship_channels: List[str] = Field(default=["web", "customer_service"])
    dc_sfs_excluded_department: int = 4
    dc_sfs_class_id: int = 212


@lru_cache()
def get_business_rules() -> BusinessRules:
    """Get the cached default rule tables."""
    return BusinessRules()
