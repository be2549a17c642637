"""
Synthetic Warehouse Generator

Generates a small, internally consistent retail warehouse for demos and
tests. Includes:
- A 4-5-4 fiscal calendar with a 364-day last-year mapping
- Products, taxonomy, vendors, stores, the ecommerce location and the hub
- Store and online sales lines with written and delivered sales
- Returns, including online returns received at the hub
- COSA adjustments, daily price history, POS discounts and drop-ship POs
- DSR forecast and budget
- Purchase orders and receipts
- Order headers with buyer emails, including BOPIS pickups rung at the register
- Customer orders, cooking-school class lines and class products
- Customers with their sign-up date and closest store
"""

import random
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import polars as pl
import structlog
from faker import Faker

from src.config import BusinessRules, get_business_rules, get_settings
from src.ingestion.warehouse import WarehouseReader

fake = Faker()
settings = get_settings()
logger = structlog.get_logger(__name__)

# Seed for reproducibility
random.seed(42)
np.random.seed(42)
Faker.seed(42)


# =============================================================================
# CONFIGURATION
# =============================================================================

DEPARTMENTS = [
    (500004, "Cookware", "110"),
    (500005, "Cutlery", "120"),
    (3, "Bakeware", "130"),
    (6, "Small Electrics", "140"),
    (500007, "Tabletop", "210"),
    (8, "Glassware", "220"),
    (4, "Services", "900"),
]
CLASS_DEPARTMENT = (9, "Cooking School", "950")
GIFT_CARD_CLASS = 500198
WARRANTY_CLASS = 216

STORE_DISTRICTS = ["NW", "WC", "CHI", "TX", "FL", "EC", "OV", "WDC", "ZZ"]
STORE_IDS = [14, 18, 42, 76, 113, 201, 305, 410, 512]
CULINARY_STORES = [14, 42, 113, 305]

ONLINE_CHANNELS = [
    ("web", 0.45),
    ("customer_service", 0.10),
    ("amazon_marketplace", 0.12),
    ("slt_bopis", 0.08),
    ("slt_sfs", 0.08),
    ("walmart_go_local", 0.07),
    ("culinary_orders", 0.07),
    ("tiktok_shop", 0.03),
]

PRICE_TYPES = [
    ("regular_price", 0.55),
    ("promotional_sale", 0.20),
    ("markdown_sale", 0.15),
    ("marked_out_of_stock", 0.05),
    ("clearance", 0.05),
]

DISCOUNT_CODES = {
    "EMP": ["STAFF", "FAMILY"],
    "PROMO": ["10OFF", "20OFF", "BOGO"],
    "COUPON": ["EMAIL", "MAILER"],
}

SALE_CLASS_PRICES = [39.0, 45.0, 99.0]

CALENDAR_SCHEMA = {
    "date_key": pl.Int64,
    "gregorian_date": pl.Date,
    "fiscal_week_id": pl.Int64,
    "fiscal_month_id": pl.Int64,
    "fiscal_quarter_id": pl.Int64,
    "fiscal_year": pl.Int64,
    "last_year_date_key": pl.Int64,
}


def date_key(day: date) -> int:
    return int(day.strftime("%Y%m%d"))


def fiscal_year_start(year: int) -> date:
    """Sunday on or before February 1st"""
    feb_first = date(year, 2, 1)
    return feb_first - timedelta(days=(feb_first.weekday() + 1) % 7)


def build_fiscal_calendar(first_year: int, last_year: int) -> pl.DataFrame:
    """
    Retail 4-5-4 calendar for fiscal years first_year..last_year.

    Weeks start on Sunday. A 53rd week folds into the last month and
    quarter. ``last_year_date_key`` points 364 days back, the same weekday
    of the same fiscal week a year earlier.
    """
    rows = []
    for year in range(first_year, last_year + 1):
        start = fiscal_year_start(year)
        end = fiscal_year_start(year + 1)
        day = start
        while day < end:
            week = (day - start).days // 7 + 1
            quarter = min((week - 1) // 13, 3) + 1
            week_in_quarter = week - (quarter - 1) * 13
            if week_in_quarter <= 4:
                month_in_quarter = 1
            elif week_in_quarter <= 9:
                month_in_quarter = 2
            else:
                month_in_quarter = 3
            month = (quarter - 1) * 3 + month_in_quarter
            rows.append({
                "date_key": date_key(day),
                "gregorian_date": day,
                "fiscal_week_id": year * 100 + week,
                "fiscal_month_id": year * 100 + month,
                "fiscal_quarter_id": year * 10 + quarter,
                "fiscal_year": year,
                "last_year_date_key": date_key(day - timedelta(days=364)),
            })
            day += timedelta(days=1)
    return pl.DataFrame(rows, schema=CALENDAR_SCHEMA)


# =============================================================================
# GENERATORS
# =============================================================================

class DimensionGenerator:
    """Generate products, taxonomy, vendors, channels and locations"""

    def __init__(self, rules: BusinessRules):
        self.rules = rules

    def taxonomies(self, class_ids: List[Tuple[int, int]]) -> pl.DataFrame:
        """Level-3 departments and the (class id, department id) level-5 classes"""
        rows = []
        for department_id, name, code in DEPARTMENTS + [CLASS_DEPARTMENT]:
            rows.append({
                "taxonomy_id": department_id, "level": 3, "parent_id": None,
                "name": name, "taxonomy_code": code,
            })
        for class_id, department_id in class_ids:
            rows.append({
                "taxonomy_id": class_id, "level": 5, "parent_id": department_id,
                "name": f"{fake.word().title()} Class", "taxonomy_code": str(class_id % 1000),
            })
        return pl.DataFrame(rows, schema={
            "taxonomy_id": pl.Int64, "level": pl.Int64, "parent_id": pl.Int64,
            "name": pl.Utf8, "taxonomy_code": pl.Utf8,
        })

    def vendors(self, n: int) -> pl.DataFrame:
        return pl.DataFrame(
            {
                "vendor_id": list(range(10, 10 + n)),
                "vendor_name": [fake.company() for _ in range(n)],
                "is_foreign_vendor": [int(random.random() < 0.3) for _ in range(n)],
            },
            schema={"vendor_id": pl.Int64, "vendor_name": pl.Utf8, "is_foreign_vendor": pl.Int64},
        )

    def products(self, n: int, n_classes: int, vendor_ids: List[int]) -> Tuple[pl.DataFrame, pl.DataFrame, List]:
        """Merchandise and cooking-class products with their taxonomy"""
        products = []
        taxonomy = []
        class_ids = []
        department_classes: Dict[int, List[int]] = {}

        for department_id, _, _ in DEPARTMENTS:
            members = [department_id * 100 + k for k in range(1, 3)]
            department_classes[department_id] = members
            class_ids.extend((c, department_id) for c in members)
        department_classes[4] = [GIFT_CARD_CLASS, WARRANTY_CLASS]
        class_ids.extend([(GIFT_CARD_CLASS, 4), (WARRANTY_CLASS, 4)])

        for i in range(n):
            product_id = 1001 + i
            department_id = random.choice(DEPARTMENTS)[0]
            retail_price = round(random.uniform(8, 400), 2)
            products.append({
                "product_id": product_id,
                "sku": f"SKU-{product_id:06d}",
                "product_name": f"{fake.word().title()} {fake.word()}",
                # a few products have no vendor on file
                "vendor_id": random.choice(vendor_ids) if random.random() > 0.05 else None,
                "retail_price": retail_price,
                "unit_cost": round(retail_price * random.uniform(0.35, 0.6), 2),
            })
            taxonomy.append({
                "product_id": product_id,
                "level_3_id": department_id,
                "level_5_id": random.choice(department_classes[department_id]),
            })

        class_department = CLASS_DEPARTMENT[0]
        class_ids.append((500086, class_department))
        for i in range(n_classes):
            product_id = 9001 + i
            price = random.choice(self.rules.full_price_class_prices + SALE_CLASS_PRICES)
            products.append({
                "product_id": product_id,
                "sku": f"CLS-{product_id:06d}",
                "product_name": f"{fake.word().title()} Cooking Class",
                "vendor_id": None,
                "retail_price": float(price),
                "unit_cost": 0.0,
            })
            taxonomy.append({"product_id": product_id, "level_3_id": class_department, "level_5_id": 500086})

        products_df = pl.DataFrame(products, schema={
            "product_id": pl.Int64, "sku": pl.Utf8, "product_name": pl.Utf8,
            "vendor_id": pl.Int64, "retail_price": pl.Float64, "unit_cost": pl.Float64,
        })
        taxonomy_df = pl.DataFrame(taxonomy, schema={
            "product_id": pl.Int64, "level_3_id": pl.Int64, "level_5_id": pl.Int64,
        })
        return products_df, taxonomy_df, class_ids

    def channels(self) -> pl.DataFrame:
        return pl.DataFrame({
            "channel_id": ["1", "2", "3"],
            "channel_code": ["retail", "ecommerce", self.rules.warehouse_channel_code],
        })

    def locations(self) -> pl.DataFrame:
        rows = [
            {
                "location_id": store_id,
                "name": f"{fake.city()} Store",
                "location_code": f"S{store_id:03d}",
                "channel_id": "1",
                "channel_code": "retail",
                "district_code": district,
                "has_comparable_sales": random.random() > 0.25,
                "has_culinary": store_id in CULINARY_STORES,
            }
            for store_id, district in zip(STORE_IDS, STORE_DISTRICTS)
        ]
        rows.append({
            "location_id": self.rules.ecommerce_location_id, "name": "Ecommerce",
            "location_code": "ECOM", "channel_id": "2", "channel_code": "ecommerce",
            "district_code": "DC", "has_comparable_sales": True, "has_culinary": False,
        })
        rows.append({
            "location_id": self.rules.hub_location_id, "name": "Distribution Hub",
            "location_code": "HUB", "channel_id": "3",
            "channel_code": self.rules.warehouse_channel_code,
            "district_code": None, "has_comparable_sales": False, "has_culinary": False,
        })
        return pl.DataFrame(rows, schema={
            "location_id": pl.Int64, "name": pl.Utf8, "location_code": pl.Utf8,
            "channel_id": pl.Utf8, "channel_code": pl.Utf8, "district_code": pl.Utf8,
            "has_comparable_sales": pl.Boolean, "has_culinary": pl.Boolean,
        })


class SalesGenerator:
    """Generate sales lines, written and delivered sales, returns and their side tables"""

    def __init__(
        self,
        products_df: pl.DataFrame,
        rules: BusinessRules,
        as_of: date,
        history_days: int = 450,
    ):
        merchandise = products_df.filter(pl.col("sku").str.starts_with("SKU-"))
        self.product_data = merchandise.select("product_id", "retail_price", "unit_cost").to_dicts()
        self.product_ids = merchandise["product_id"].to_list()
        self.rules = rules
        self.as_of = as_of
        self.history_days = history_days

    def _order_day(self) -> date:
        return self.as_of - timedelta(days=random.randint(0, self.history_days))

    def generate(self, n_orders: int = 1500) -> Dict[str, pl.DataFrame]:
        """Generate n orders with their lines and facts"""
        lines = []
        written = []
        delivered = []
        returns = []
        discounts = []
        drop_ship = []
        order_line_id = 1

        online_codes = [c[0] for c in ONLINE_CHANNELS]
        online_weights = [c[1] for c in ONLINE_CHANNELS]

        for order_id in range(1, n_orders + 1):
            order_day = self._order_day()
            is_online = random.random() < 0.45
            store_id = random.choice(STORE_IDS)

            if is_online:
                # Some online lines carry no channel at all
                channel = random.choices(online_codes, weights=online_weights)[0] if random.random() > 0.02 else None
                source = self.rules.online_source
                location = store_id if channel == "slt_bopis" else self.rules.ecommerce_location_id
            else:
                channel = "pos" if random.random() > 0.05 else None
                source = self.rules.store_source
                location = store_id

            num_items = np.random.choice([1, 2, 3, 4], p=[0.50, 0.30, 0.15, 0.05])
            for product in random.sample(self.product_data, int(num_items)):
                quantity = int(np.random.choice([1, 2, 3], p=[0.70, 0.20, 0.10]))
                discount_percent = random.choice([0, 0, 0, 10, 20])
                merchandise = round(product["retail_price"] * quantity * (1 - discount_percent / 100), 2)
                fair_market_value = round(product["unit_cost"] * quantity, 2)
                unit_last_cost = round(product["unit_cost"] * random.uniform(0.95, 1.05), 2)

                lines.append({
                    "order_line_id": order_line_id,
                    "order_id": order_id,
                    "order_number": f"ORD-{order_id:07d}",
                    "product_id": product["product_id"],
                    "sales_channel": channel,
                    "source": source,
                    "attribution_location_id": location,
                    "unit_last_cost": unit_last_cost,
                })
                fact = {
                    "order_id": order_id,
                    "order_line_id": order_line_id,
                    "product_id": product["product_id"],
                    "quantity": quantity,
                    "merchandise": merchandise,
                    "fair_market_value": fair_market_value,
                }
                written.append({"date_key": date_key(order_day), **fact})

                delivered_day = order_day + timedelta(days=random.randint(0, 3) if is_online else 0)
                if delivered_day <= self.as_of:
                    delivered.append({"date_key": date_key(delivered_day), **fact})

                    if random.random() < 0.08:
                        returned = random.randint(1, quantity)
                        return_day = min(delivered_day + timedelta(days=random.randint(1, 30)), self.as_of)
                        if is_online:
                            return_location = self.rules.hub_location_id if random.random() < 0.6 else store_id
                        else:
                            return_location = store_id
                        returns.append({
                            "date_key": date_key(return_day),
                            "order_line_id": order_line_id,
                            "product_id": product["product_id"],
                            "location_id": return_location,
                            "original_order_id": order_id,
                            "quantity": returned,
                            "merchandise": round(merchandise * returned / quantity, 2),
                            "fair_market_value": round(fair_market_value * returned / quantity, 2),
                        })

                if source == self.rules.store_source and random.random() < 0.25:
                    codes = random.sample(list(DISCOUNT_CODES), 2 if random.random() < 0.2 else 1)
                    for code in codes:
                        discounts.append({
                            "order_line_id": order_line_id,
                            "discount_code": code,
                            "subdiscount_code": random.choice(DISCOUNT_CODES[code]),
                            "discount_amount": round(merchandise * random.uniform(0.05, 0.2), 2),
                        })

                if channel in self.rules.drop_ship_channels and random.random() < 0.15:
                    drop_ship.append({
                        "order_id": order_id,
                        "product_id": product["product_id"],
                        "po_number": f"DS-{fake.unique.random_number(digits=8)}",
                    })

                order_line_id += 1

        # Returns whose sales line was never loaded
        for _ in range(2):
            returns.append({
                "date_key": date_key(self.as_of - timedelta(days=random.randint(1, 20))),
                "order_line_id": order_line_id + random.randint(1000, 2000),
                "product_id": random.choice(self.product_ids),
                "location_id": random.choice(STORE_IDS),
                "original_order_id": None,
                "quantity": 1,
                "merchandise": 25.0,
                "fair_market_value": 10.0,
            })

        fact_schema = {
            "date_key": pl.Int64, "order_id": pl.Int64, "order_line_id": pl.Int64,
            "product_id": pl.Int64, "quantity": pl.Int64,
            "merchandise": pl.Float64, "fair_market_value": pl.Float64,
        }
        lines_df = pl.DataFrame(lines, schema={
            "order_line_id": pl.Int64, "order_id": pl.Int64, "order_number": pl.Utf8,
            "product_id": pl.Int64, "sales_channel": pl.Utf8, "source": pl.Utf8,
            "attribution_location_id": pl.Int64, "unit_last_cost": pl.Float64,
        })
        delivered_df = pl.DataFrame(delivered, schema=fact_schema)
        return {
            "sales_lines": lines_df,
            "written_sales": pl.DataFrame(written, schema=fact_schema),
            "delivered_sales": delivered_df,
            "delivered_returns": pl.DataFrame(returns, schema={
                "date_key": pl.Int64, "order_line_id": pl.Int64, "product_id": pl.Int64,
                "location_id": pl.Int64, "original_order_id": pl.Int64, "quantity": pl.Int64,
                "merchandise": pl.Float64, "fair_market_value": pl.Float64,
            }),
            "pos_discounts": pl.DataFrame(discounts, schema={
                "order_line_id": pl.Int64, "discount_code": pl.Utf8,
                "subdiscount_code": pl.Utf8, "discount_amount": pl.Float64,
            }),
            "drop_ship_po": pl.DataFrame(drop_ship, schema={
                "order_id": pl.Int64, "product_id": pl.Int64, "po_number": pl.Utf8,
            }),
            "cosa": self.cosa(delivered_df, lines_df),
        }

    def headers(self, lines: pl.DataFrame, n_emails: int = 400) -> pl.DataFrame:
        """
        One header per order with the buyer's email, when known. A few store
        orders are BOPIS pickups rung at the register with no email, pointing
        at the online order that carries it.
        """
        emails = [fake.email() for _ in range(n_emails)]
        orders = (
            lines.group_by("order_id")
            .agg(pl.col("order_number").first(), pl.col("source").first(), pl.col("sales_channel").first())
            .sort("order_id")
        )
        online_types = {"slt_bopis": "bopis", "slt_sfs": "ship_from_store"}
        online_pickups = []
        rows = []
        for order in orders.iter_rows(named=True):
            online = order["source"] == self.rules.online_source
            order_type = online_types.get(order["sales_channel"], "ecommerce order") if online else "sale"
            email = random.choice(emails) if random.random() < (0.9 if online else 0.55) else None
            if email is not None and random.random() < 0.03:
                email = random.choice(self.rules.non_customer_emails)
            alt_order_number = None
            if online and order_type == "bopis":
                online_pickups.append(order["order_number"])
            elif not online and online_pickups and random.random() < 0.05:
                order_type = "bopis"
                email = None
                alt_order_number = random.choice(online_pickups)
            rows.append({
                "order_id": order["order_id"],
                "order_number": order["order_number"],
                "source": order["source"],
                "order_type": order_type,
                "email": email,
                "alt_order_number": alt_order_number,
            })
        return pl.DataFrame(rows, schema={
            "order_id": pl.Int64, "order_number": pl.Utf8, "source": pl.Utf8,
            "order_type": pl.Utf8, "email": pl.Utf8, "alt_order_number": pl.Utf8,
        })

    def cosa(self, delivered: pl.DataFrame, lines: pl.DataFrame) -> pl.DataFrame:
        """Cost adjustments for a sample of sold keys plus keys with no sales"""
        sold = (
            delivered.join(lines.select("order_line_id", "attribution_location_id"), on="order_line_id")
            .group_by(["date_key", "product_id", pl.col("attribution_location_id").alias("location_id")])
            .agg(pl.col("fair_market_value").sum())
        )
        sample = sold.sample(fraction=0.3, seed=42) if sold.height else sold
        adjustments = sample.select(
            "date_key",
            "product_id",
            "location_id",
            (pl.col("fair_market_value") * pl.lit(random.uniform(0.9, 1.1))).round(2).alias("cosa"),
        )
        orphans = pl.DataFrame(
            {
                "date_key": [date_key(self.as_of - timedelta(days=random.randint(1, 60))) for _ in range(5)],
                "product_id": random.sample(self.product_ids, 5),
                "location_id": random.sample(STORE_IDS, 5),
                "cosa": [round(random.uniform(5, 50), 2) for _ in range(5)],
            },
            schema=adjustments.schema,
        )
        return pl.concat([adjustments, orphans], how="vertical_relaxed")

    def price_history(self, days: int = 28) -> pl.DataFrame:
        """Daily price rows for the last ``days`` days and the same days a year earlier"""
        rows = []
        price_codes = [p[0] for p in PRICE_TYPES]
        price_weights = [p[1] for p in PRICE_TYPES]
        for offset in range(days):
            for day in (self.as_of - timedelta(days=offset), self.as_of - timedelta(days=offset + 364)):
                for product in self.product_data:
                    if random.random() < 0.1:
                        continue
                    price_type = random.choices(price_codes, weights=price_weights)[0]
                    markdown = 1.0 if price_type == "regular_price" else random.uniform(0.6, 0.9)
                    rows.append({
                        "date_key": date_key(day),
                        "product_id": product["product_id"],
                        "price_type": price_type,
                        "price": round(product["retail_price"] * markdown, 2),
                    })
        return pl.DataFrame(rows, schema={
            "date_key": pl.Int64, "product_id": pl.Int64, "price_type": pl.Utf8, "price": pl.Float64,
        })

    def forecast_budget(self, days: int = 14) -> pl.DataFrame:
        """DSR forecast and budget per class for recent days, this year and last"""
        rows = []
        for offset in range(days):
            for day in (self.as_of - timedelta(days=offset), self.as_of - timedelta(days=offset + 364)):
                for class_id in self.rules.dsr_classes:
                    forecast = round(random.uniform(200, 5000), 2)
                    rows.append({
                        "date_key": date_key(day),
                        "class_id": class_id,
                        "forecast_demand": forecast,
                        "budgeted_demand": round(forecast * random.uniform(0.9, 1.2), 2),
                    })
        return pl.DataFrame(rows, schema={
            "date_key": pl.Int64, "class_id": pl.Int64,
            "forecast_demand": pl.Float64, "budgeted_demand": pl.Float64,
        })


class PurchaseOrderGenerator:
    """Generate purchase order lines and their receipts"""

    def __init__(self, products_df: pl.DataFrame, rules: BusinessRules, as_of: date):
        merchandise = products_df.filter(pl.col("sku").str.starts_with("SKU-"))
        self.product_data = merchandise.select("product_id", "vendor_id", "unit_cost").to_dicts()
        self.rules = rules
        self.as_of = as_of

    def generate(self, n_pos: int = 60) -> Tuple[pl.DataFrame, pl.DataFrame]:
        details = []
        receipts = []
        locations = STORE_IDS + [self.rules.hub_location_id]

        for po in range(1, n_pos + 1):
            purchase_order_id = 700000 + po
            location_id = random.choice(locations)
            vendor_po_name = f"{fake.word().upper()}-{po}" if random.random() > 0.1 else None
            written_date = self.as_of - timedelta(days=random.randint(10, 200))
            arrival_date = written_date + timedelta(days=random.randint(14, 60))

            for line_number in range(1, random.randint(1, 4) + 1):
                product = random.choice(self.product_data)
                ordered = random.randint(6, 120)
                received = random.choice([0, 0, ordered // 2, ordered, ordered + 2])
                last_receipt = self.as_of - timedelta(days=random.randint(1, 500)) if random.random() > 0.1 else None
                details.append({
                    "purchase_order_id": purchase_order_id,
                    "po_line_number": line_number,
                    "location_id": location_id,
                    "product_id": product["product_id"],
                    "vendor_id": product["vendor_id"],
                    "vendor_po_name": vendor_po_name,
                    "is_closed": int(random.random() < 0.2),
                    "written_date": written_date,
                    "arrival_date": arrival_date,
                    "arrival_date_key": date_key(arrival_date),
                    "next_cost_effective_date": (
                        arrival_date + timedelta(days=30) if random.random() > 0.5 else None
                    ),
                    "cancel_date": arrival_date + timedelta(days=45) if random.random() > 0.5 else None,
                    "last_receipt_date": last_receipt,
                    "quantity_ordered": ordered,
                    "quantity_received": received,
                    "quantity_open": ordered - received,
                    "landed_cost": round(product["unit_cost"] * 1.08, 2),
                    "vendor_cost": product["unit_cost"],
                })
                if received:
                    receipts.append({
                        "purchase_order_id": purchase_order_id,
                        "po_line_number": line_number,
                        "location_id": location_id,
                        "product_id": product["product_id"],
                        # most receipts land on the planned arrival day
                        "received_date_key": date_key(
                            arrival_date if random.random() > 0.2 else arrival_date + timedelta(days=3)
                        ),
                        "received_quantity": received,
                    })

        details_df = pl.DataFrame(details, schema={
            "purchase_order_id": pl.Int64, "po_line_number": pl.Int64, "location_id": pl.Int64,
            "product_id": pl.Int64, "vendor_id": pl.Int64, "vendor_po_name": pl.Utf8,
            "is_closed": pl.Int64, "written_date": pl.Date, "arrival_date": pl.Date,
            "arrival_date_key": pl.Int64, "next_cost_effective_date": pl.Date, "cancel_date": pl.Date,
            "last_receipt_date": pl.Date, "quantity_ordered": pl.Int64, "quantity_received": pl.Int64,
            "quantity_open": pl.Int64, "landed_cost": pl.Float64, "vendor_cost": pl.Float64,
        })
        receipts_df = pl.DataFrame(receipts, schema={
            "purchase_order_id": pl.Int64, "po_line_number": pl.Int64, "location_id": pl.Int64,
            "product_id": pl.Int64, "received_date_key": pl.Int64, "received_quantity": pl.Int64,
        })
        return details_df, receipts_df


class CustomerOrderGenerator:
    """Generate customer orders, order lines, cooking-class lines and class products"""

    def __init__(self, products_df: pl.DataFrame, rules: BusinessRules, as_of: date):
        self.class_products = products_df.filter(pl.col("sku").str.starts_with("CLS-")).to_dicts()
        self.merch_skus = products_df.filter(pl.col("sku").str.starts_with("SKU-"))["sku"].to_list()
        self.rules = rules
        self.as_of = as_of

    def customers(self, n: int) -> List[dict]:
        customers = [
            {"customer_key": 50000 + i, "email": fake.email(), "name": fake.name()}
            for i in range(n)
        ]
        customers.append({"customer_key": -1, "email": None, "name": None})
        return customers

    def culinary_products(self) -> pl.DataFrame:
        return pl.DataFrame(
            {
                "sku": [p["sku"] for p in self.class_products],
                "location_code": [f"S{random.choice(STORE_IDS):03d}" for _ in self.class_products],
                "is_class_cancelled": [random.choice(["Y", "N", "N", "true", "0"]) for _ in self.class_products],
                "start_date": [
                    self.as_of - timedelta(days=random.randint(-30, 300)) for _ in self.class_products
                ],
            },
            schema={"sku": pl.Utf8, "location_code": pl.Utf8, "is_class_cancelled": pl.Utf8, "start_date": pl.Date},
        )

    def customer_dimension(self, customers: List[dict], headers: List[dict]) -> pl.DataFrame:
        """Known customers with their sign-up date and closest store"""
        first_orders: Dict[int, date] = {}
        for header in headers:
            key = header["customer_key"]
            if key not in first_orders or header["order_date"] < first_orders[key]:
                first_orders[key] = header["order_date"]

        rows = []
        for customer in customers:
            if customer["customer_key"] == -1:
                continue
            first_order = first_orders.get(customer["customer_key"], self.as_of)
            # Customers signed up with their first order or some time before it
            entered = first_order if random.random() < 0.4 else first_order - timedelta(days=random.randint(1, 1500))
            rows.append({
                "customer_key": customer["customer_key"],
                "email": customer["email"],
                "original_entered_date": entered,
                "miles_to_closest_store": round(random.uniform(0.5, 120), 1),
                "closest_store_id": random.choice(STORE_IDS),
            })
        return pl.DataFrame(rows, schema={
            "customer_key": pl.Int64, "email": pl.Utf8, "original_entered_date": pl.Date,
            "miles_to_closest_store": pl.Float64, "closest_store_id": pl.Int64,
        })

    def generate(self, n_customers: int = 300, n_orders: int = 1500) -> Dict[str, pl.DataFrame]:
        customers = self.customers(n_customers)
        first_day = date(self.as_of.year - 2, 1, 1)
        span = (self.as_of - first_day).days

        headers = []
        order_lines = []
        class_lines = []
        class_line_id = 1

        for order in range(1, n_orders + 1):
            customer = random.choice(customers) if random.random() > 0.03 else customers[-1]
            order_date = first_day + timedelta(days=random.randint(0, span))
            order_number = f"WEB-{order:07d}"
            sub_categories = []

            merch_amount = round(random.uniform(15, 600), 2) if random.random() > 0.3 else 0.0
            merch_units = 0
            if merch_amount:
                merch_units = random.randint(1, 4)
                sub_categories.append("100")
                order_lines.append({
                    "order_number": order_number, "sku": random.choice(self.merch_skus),
                    "net_amount": merch_amount, "net_quantity": merch_units, "price": merch_amount,
                })

            seats = 0
            class_amount = 0.0
            if self.class_products and (merch_amount == 0 or random.random() < 0.25):
                product = random.choice(self.class_products)
                seats = random.randint(1, 4)
                price = product["retail_price"]
                class_amount = round(price * seats, 2)
                sub_categories.append(CLASS_DEPARTMENT[2])
                if random.random() < 0.35:
                    sub_categories.append(self.rules.occ_subcategory)
                order_lines.append({
                    "order_number": order_number, "sku": product["sku"],
                    "net_amount": class_amount, "net_quantity": seats, "price": price,
                })
                placeholder = random.random() < 0.1
                class_lines.append({
                    "order_number": order_number,
                    "order_line_id": class_line_id,
                    "date_ordered": order_date,
                    "sku": product["sku"],
                    "email": customer["email"],
                    "customer_name": self.rules.placeholder_customer_name if placeholder else customer["name"],
                    "billing_name": customer["name"] or fake.name(),
                    "quantity": seats,
                    "quantity_returned": 1 if seats > 1 and random.random() < 0.1 else 0,
                    "quantity_canceled": 1 if seats > 2 and random.random() < 0.1 else 0,
                    "sub_total": class_amount,
                })
                class_line_id += 1

            net_amount = merch_amount + class_amount
            if random.random() < 0.03:
                net_amount = -net_amount
            headers.append({
                "customer_key": customer["customer_key"],
                "order_number": order_number,
                "order_date": order_date,
                "order_year": order_date.year,
                "net_amount": round(net_amount, 2),
                "net_quantity": merch_units + seats,
                "purchase_order": "Y" if random.random() > 0.08 else "N",
                "cooking_school_amount": class_amount,
                "cooking_school_quantity": seats,
                "cancel_quantity": 1 if random.random() < 0.03 else 0,
                "sub_categories_purchased": "|".join(sub_categories),
                "email": customer["email"],
            })

        return {
            "order_header": pl.DataFrame(headers, schema={
                "customer_key": pl.Int64, "order_number": pl.Utf8, "order_date": pl.Date,
                "order_year": pl.Int64, "net_amount": pl.Float64, "net_quantity": pl.Int64,
                "purchase_order": pl.Utf8, "cooking_school_amount": pl.Float64,
                "cooking_school_quantity": pl.Int64, "cancel_quantity": pl.Int64,
                "sub_categories_purchased": pl.Utf8, "email": pl.Utf8,
            }),
            "order_lines": pl.DataFrame(order_lines, schema={
                "order_number": pl.Utf8, "sku": pl.Utf8, "net_amount": pl.Float64,
                "net_quantity": pl.Int64, "price": pl.Float64,
            }),
            "class_sales_lines": pl.DataFrame(class_lines, schema={
                "order_number": pl.Utf8, "order_line_id": pl.Int64, "date_ordered": pl.Date,
                "sku": pl.Utf8, "email": pl.Utf8, "customer_name": pl.Utf8, "billing_name": pl.Utf8,
                "quantity": pl.Int64, "quantity_returned": pl.Int64, "quantity_canceled": pl.Int64,
                "sub_total": pl.Float64,
            }),
            "culinary_products": self.culinary_products(),
            "customers": self.customer_dimension(customers, headers),
        }


class WarehouseGenerator:
    """Main warehouse generator orchestrator"""

    def __init__(
        self,
        output_dir: Optional[Union[str, Path]] = None,
        rules: Optional[BusinessRules] = None,
        seed: int = 42,
    ):
        self.output_dir = Path(output_dir or settings.data_lake.warehouse_path)
        self.rules = rules or get_business_rules()
        self.seed = seed

    def _reseed(self) -> None:
        random.seed(self.seed)
        np.random.seed(self.seed)
        Faker.seed(self.seed)
        fake.unique.clear()

    def generate_all(
        self,
        as_of: date,
        n_products: int = 60,
        n_class_products: int = 12,
        n_vendors: int = 12,
        n_orders: int = 1500,
        n_customers: int = 300,
        n_customer_orders: int = 1500,
        n_pos: int = 60,
        save: bool = False,
        file_format: Optional[str] = None,
    ) -> Dict[str, pl.DataFrame]:
        """Generate every warehouse table ending on ``as_of``"""
        self._reseed()
        logger.info("Generating synthetic warehouse", as_of=str(as_of), seed=self.seed)

        calendar = build_fiscal_calendar(as_of.year - 2, as_of.year + 1)

        dimensions = DimensionGenerator(self.rules)
        vendors = dimensions.vendors(n_vendors)
        products, product_taxonomy, class_ids = dimensions.products(
            n_products, n_class_products, vendors["vendor_id"].to_list()
        )

        sales = SalesGenerator(products, self.rules, as_of)
        po_details, po_receipts = PurchaseOrderGenerator(products, self.rules, as_of).generate(n_pos)

        data = {
            "calendar": calendar,
            "products": products,
            "product_taxonomy": product_taxonomy,
            "taxonomies": dimensions.taxonomies(class_ids),
            "vendors": vendors,
            "channels": dimensions.channels(),
            "locations": dimensions.locations(),
            **sales.generate(n_orders),
            "product_price_history": sales.price_history(),
            "forecast_budget": sales.forecast_budget(),
            "po_details": po_details,
            "po_receipts": po_receipts,
            **CustomerOrderGenerator(products, self.rules, as_of).generate(n_customers, n_customer_orders),
        }
        data["sales_headers"] = sales.headers(data["sales_lines"])

        for name, df in data.items():
            logger.debug(f"Generated {name}: {len(df)} rows")

        if save:
            self._save_data(data, file_format)

        logger.info(f"Warehouse generation complete: {len(data)} tables")
        return data

    def _save_data(self, data: Dict[str, pl.DataFrame], file_format: Optional[str] = None) -> List[Path]:
        """Save generated tables to the warehouse path"""
        reader = WarehouseReader(self.output_dir, file_format=file_format, tables=data)
        return reader.write_all()


def generate_warehouse(
    as_of: date,
    seed: int = 42,
    rules: Optional[BusinessRules] = None,
    **sizes,
) -> Dict[str, pl.DataFrame]:
    """Generate an in-memory synthetic warehouse"""
    return WarehouseGenerator(rules=rules, seed=seed).generate_all(as_of, **sizes)


if __name__ == "__main__":
    WarehouseGenerator().generate_all(date.today(), save=True)
