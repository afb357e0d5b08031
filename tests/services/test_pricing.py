# tests/services/test_pricing.py

import json

import pytest

from app.core.exceptions import ConfigurationError
from app.services.pricing import load_pricing_table


@pytest.fixture
def pricing():
    return load_pricing_table()


@pytest.mark.parametrize("volume_type, size_gb, iops, expected", [
    ("gp3", 100, 3000, 8.00),
    ("gp3", 100, 3500, 10.50),
    ("gp3", 100, 1000, 8.00),
    ("gp2", 100, 300, 10.00),
    ("io1", 100, 1000, 77.50),
    ("io2", 10, 100, 7.75),
    ("st1", 1000, 0, 45.00),
    ("sc1", 1000, 0, 25.00),
])
def test_monthly_cost_by_volume_type(pricing, volume_type, size_gb, iops, expected):
    assert pricing.monthly_cost(volume_type, size_gb, iops) == pytest.approx(expected)


def test_unknown_or_missing_volume_type_costs_nothing(pricing):
    assert pricing.monthly_cost("standard", 100, 0) == 0.0
    assert pricing.monthly_cost(None, 100, 0) == 0.0


def test_missing_size_or_iops_treated_as_zero(pricing):
    assert pricing.monthly_cost("gp3", None, None) == 0.0
    assert pricing.monthly_cost("io1", 10, None) == pytest.approx(1.25)


def test_cost_rounded_to_cents(pricing):
    assert pricing.monthly_cost("gp2", 7, 0) == 0.7


def test_load_pricing_table_from_file(tmp_path):
    path = tmp_path / "pricing.json"
    path.write_text(json.dumps({
        "version": "2025-06-eu-west-1",
        "rates": {"gp3": {"per_gb_month": 0.088, "per_iops_month": 0.0055, "included_iops": 3000}},
    }))

    table = load_pricing_table(str(path))

    assert table.version == "2025-06-eu-west-1"
    assert table.currency == "USD"
    assert table.monthly_cost("gp3", 100, 3000) == pytest.approx(8.80)
    assert table.monthly_cost("gp2", 100, 0) == 0.0


@pytest.mark.parametrize("content", ["not json", json.dumps({"version": "x", "rates": {"gp3": {"per_gb_month": -1}}})])
def test_invalid_pricing_file_is_a_configuration_error(tmp_path, content):
    path = tmp_path / "pricing.json"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_pricing_table(str(path))


def test_missing_pricing_file_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_pricing_table(str(tmp_path / "missing.json"))
