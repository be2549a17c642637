"""
Unit Tests for Fiscal Anchor and Period Windows
"""
from datetime import date, timedelta

import pytest
import polars as pl

from src.data.generators import build_fiscal_calendar, fiscal_year_start
from src.fiscal import (
    FiscalLevel,
    PeriodWindow,
    YearBasis,
    bucket_periods,
    build_window,
    period_labels,
    resolve_anchor,
    resolve_fiscal_week,
    window_calendar,
)
from src.quality.errors import CalendarIntegrityError


def key(day: date) -> int:
    return int(day.strftime("%Y%m%d"))


class TestResolveAnchor:
    """Tests for anchor resolution"""

    def test_offset_anchor_ids(self, calendar):
        """Test that the as-of date minus the offset resolves to its fiscal ids"""
        anchor = resolve_anchor(calendar, date(2025, 3, 5), offset_days=7)

        assert anchor.anchor_date == date(2025, 2, 26)
        assert anchor.date_key == 20250226
        assert anchor.fiscal_week_id == 202505
        assert anchor.fiscal_month_id == 202502
        assert anchor.fiscal_quarter_id == 20251
        assert anchor.fiscal_year == 2025
        assert anchor.week_start_date == date(2025, 2, 23)
        assert anchor.week_end_date == date(2025, 3, 1)
        assert anchor.week_in_year == 5

    def test_string_as_of(self, calendar):
        """Test that an ISO string as-of date is accepted"""
        assert resolve_anchor(calendar, "2025-03-05", 7) == resolve_anchor(calendar, date(2025, 3, 5), 7)

    def test_ids_per_level(self, calendar):
        """Test fiscal id lookup by level"""
        anchor = resolve_anchor(calendar, date(2025, 2, 26))

        assert anchor.id_for(FiscalLevel.MONTH) == 202502
        assert anchor.ids()["fiscal_year"] == 2025
        assert anchor.members(calendar, FiscalLevel.WEEK).height == 7

    def test_missing_date_raises(self, calendar):
        """Test that a date outside the calendar is an integrity error"""
        with pytest.raises(CalendarIntegrityError) as exc_info:
            resolve_anchor(calendar, date(2030, 1, 1))

        assert exc_info.value.details["matches"] == 0

    def test_duplicate_date_raises(self, calendar):
        """Test that an anchor matching two calendar rows is an integrity error"""
        duplicated = pl.concat([calendar, calendar.filter(pl.col("date_key") == 20250226)])

        with pytest.raises(CalendarIntegrityError):
            resolve_anchor(duplicated, date(2025, 2, 26))

    def test_resolve_fiscal_week(self, calendar):
        """Test that a selected fiscal week anchors on its last day"""
        anchor = resolve_fiscal_week(calendar, 202505)

        assert anchor.anchor_date == date(2025, 3, 1)
        assert anchor.fiscal_week_id == 202505

    def test_unknown_fiscal_week_raises(self, calendar):
        """Test that a week with no calendar rows is an integrity error"""
        with pytest.raises(CalendarIntegrityError):
            resolve_fiscal_week(calendar, 209901)


class TestWindows:
    """Tests for period windows"""

    @pytest.fixture
    def anchor(self, calendar):
        # fiscal week 7 of FY2025: 2025-03-09 .. 2025-03-15
        return resolve_anchor(calendar, date(2025, 3, 12))

    @pytest.mark.parametrize(
        "window,days",
        [
            (PeriodWindow.TODAY, 1),
            (PeriodWindow.TWO_DAY, 2),
            (PeriodWindow.LAST_WEEK, 7),
            (PeriodWindow.MTD, 21),
            (PeriodWindow.QTD, 49),
            (PeriodWindow.YTD, 49),
        ],
    )
    def test_window_lengths(self, calendar, anchor, window, days):
        """Test that to-date windows run through the end of the anchor week"""
        rows = window_calendar(calendar, build_window(anchor, window))

        assert rows.height == days

    def test_through_date(self, calendar, anchor):
        """Test that an explicit end date cuts a to-date window"""
        definition = build_window(anchor, PeriodWindow.MTD, through=date(2025, 3, 12))

        assert window_calendar(calendar, definition).height == 18

    @pytest.mark.parametrize("window", list(PeriodWindow))
    def test_ty_ly_parity(self, calendar, anchor, window):
        """Test that TY and LY windows cover the same days through the calendar mapping"""
        definition = build_window(anchor, window)
        ty = window_calendar(calendar, definition, YearBasis.TY)
        ly = window_calendar(calendar, definition, YearBasis.LY)

        assert ty.height == ly.height
        assert ly["fact_date_key"].to_list() == [
            key(d - timedelta(days=364)) for d in ty["gregorian_date"].to_list()
        ]

    def test_missing_last_year_mapping_raises(self, calendar, anchor):
        """Test that LY windows refuse calendar rows without a last-year key"""
        broken = calendar.with_columns(
            pl.when(pl.col("date_key") == 20250312)
            .then(pl.lit(None, dtype=pl.Int64))
            .otherwise(pl.col("last_year_date_key"))
            .alias("last_year_date_key")
        )
        definition = build_window(anchor, PeriodWindow.LAST_WEEK)

        assert window_calendar(broken, definition, YearBasis.TY).height == 7
        with pytest.raises(CalendarIntegrityError):
            window_calendar(broken, definition, YearBasis.LY)

    def test_bucket_periods(self, calendar, anchor):
        """Test that facts land in every TY and LY period they fall in"""
        sale_day = date(2025, 3, 10)
        facts = pl.DataFrame({
            "store": ["a", "a", "a"],
            "date_key": [key(sale_day), key(sale_day - timedelta(days=364)), key(date(2025, 2, 1))],
            "amount": [1.0, 2.0, 4.0],
        })
        definitions = [
            build_window(anchor, PeriodWindow.LAST_WEEK),
            build_window(anchor, PeriodWindow.YTD),
        ]
        bases = [YearBasis.TY, YearBasis.LY]

        bucketed = bucket_periods(facts, calendar, definitions, bases)
        totals = dict(bucketed.group_by("period").agg(pl.col("amount").sum()).iter_rows())

        assert totals == {"lw": 1.0, "ytd": 5.0, "lw_ly": 2.0, "ytd_ly": 2.0}
        assert period_labels(definitions, bases) == ["lw", "ytd", "lw_ly", "ytd_ly"]


class TestFiscalCalendar:
    """Tests for the generated 4-5-4 calendar"""

    @pytest.mark.parametrize("year", range(2020, 2031))
    def test_year_starts_on_sunday(self, year):
        """Test that every fiscal year starts on a Sunday near February 1"""
        start = fiscal_year_start(year)

        assert start.weekday() == 6
        assert date(year, 1, 26) <= start <= date(year, 2, 1)

    def test_calendar_structure(self):
        """Test calendar keys, weeks and year lengths"""
        calendar = build_fiscal_calendar(2023, 2025)

        assert calendar["date_key"].is_unique().all()
        assert calendar["last_year_date_key"].null_count() == 0
        week_sizes = calendar.group_by("fiscal_week_id").len()["len"]
        assert set(week_sizes.to_list()) == {7}
        year_sizes = calendar.group_by("fiscal_year").len()["len"].to_list()
        assert set(year_sizes) <= {364, 371}
        assert calendar.filter(pl.col("fiscal_week_id") == 202505)["fiscal_month_id"].unique().to_list() == [202502]
