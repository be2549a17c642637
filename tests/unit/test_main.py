"""
Unit Tests - Command Line
"""
import argparse

import pytest

from src.main import main, parse_params


class TestParseParams:
    """Tests for report parameter parsing"""

    def test_values(self):
        """Test ints, lists and strings"""
        params = parse_params(["year=2024", "years=2023,2024", "start_date=2025-11-01"])

        assert params == {"year": 2024, "years": [2023, 2024], "start_date": "2025-11-01"}

    def test_empty(self):
        """Test no parameters"""
        assert parse_params(None) == {}

    def test_malformed(self):
        """Test that a pair without '=' is rejected"""
        with pytest.raises(argparse.ArgumentTypeError):
            parse_params(["year"])


class TestMain:
    """Tests for CLI commands"""

    def test_list(self, capsys):
        """Test listing the catalogue"""
        assert main(["list"]) == 0

        out = capsys.readouterr().out.split()
        assert "store_margin" in out
        assert "dsr_kpi" in out

    def test_unknown_report(self, tmp_path):
        """Test that unknown report names exit with a usage error"""
        assert main(["run", "weekly_flash", "--as-of", "2025-11-22", "--warehouse", str(tmp_path)]) == 2

    def test_missing_warehouse_fails_report(self, tmp_path):
        """Test that a report with no warehouse tables fails without raising"""
        code = main([
            "run", "customer_frequency",
            "--as-of", "2025-11-22",
            "--warehouse", str(tmp_path),
            "--output", str(tmp_path / "reports"),
        ])

        assert code == 1

    def test_generate_then_run(self, tmp_path):
        """Test generating a CSV warehouse and building a report from it"""
        warehouse = tmp_path / "warehouse"
        reports = tmp_path / "reports"

        assert main(["generate", "--as-of", "2025-11-22", "--output", str(warehouse), "--format", "csv"]) == 0
        assert (warehouse / "order_header.csv").exists()

        code = main([
            "run", "customer_frequency",
            "--as-of", "2025-11-22",
            "--warehouse", str(warehouse),
            "--output", str(reports),
            "--format", "csv",
            "--param", "years=2024,2025",
        ])

        assert code == 0
        assert (reports / "customer_frequency_20251122.csv").exists()
        assert (reports / "customer_frequency_20251122_quality.json").exists()
