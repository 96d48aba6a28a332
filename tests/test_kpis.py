"""
Tests for KPI string parsing.
"""

import pytest

from infosight.worker.kpis import guess_unit, parse_kpi


@pytest.mark.parametrize("kpi, name, value, numeric", [
    ("Food Wastage Reduction: 28%", "Food Wastage Reduction", "28%", 28.0),
    ("Revenue Growth: 1,250.5 USD", "Revenue Growth", "1,250.5 USD", 1250.5),
    ("Meal Satisfaction Score: 4.4/5", "Meal Satisfaction Score", "4.4/5", 4.4),
    ("Launch Status: on track", "Launch Status", "on track", None),
    ("Ratio: 3:1", "Ratio", "3:1", 3.0),
])
def test_parse_kpi(kpi, name, value, numeric):
    parsed = parse_kpi(kpi)

    assert parsed.name == name
    assert parsed.value == value
    assert parsed.numeric_value == numeric


@pytest.mark.parametrize("kpi", ["", "No colon here", ": 12"])
def test_parse_kpi_rejects_malformed(kpi):
    assert parse_kpi(kpi) is None


@pytest.mark.parametrize("value, unit", [
    ("28%", "%"),
    ("$1,200", "$"),
    ("7.2 minutes", "minutes"),
    ("4.4/5", "/5"),
    ("on track", None),
])
def test_guess_unit(value, unit):
    assert guess_unit(value) == unit
