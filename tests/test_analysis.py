"""
Tests for battery health, wear and power analysis.
"""

import pytest

from battman.analysis import (
    charge_bar,
    estimate_co2,
    estimate_cycles,
    health_recommendations,
    rate_health,
    rate_wear,
    usage_level,
    wear_level,
    wear_recommendations,
)
from battman.models import BatterySnapshot, BatteryState, health_percent, valid_percentage


class TestHealthPercent:
    """Tests for the health formula."""

    def test_example_value(self):
        assert health_percent(45.0, 50.0) == 90.00

    def test_rounded_to_two_decimals(self):
        assert health_percent(41.234, 50.0) == 82.47

    @pytest.mark.parametrize(
        "full,design",
        [(None, 50.0), (45.0, None), (45.0, 0.0), (0.0, 50.0), (-1.0, 50.0), (None, None)],
    )
    def test_undefined_operands_give_none(self, full, design):
        assert health_percent(full, design) is None

    def test_capped_at_hundred(self):
        assert health_percent(52.0, 50.0) == 100.0

    def test_snapshot_property(self):
        snap = BatterySnapshot(device_id="BAT0", energy_full=45.0, energy_design=50.0)
        assert snap.health_pct == 90.0


class TestValidPercentage:
    def test_in_range(self):
        assert valid_percentage(81) == 81
        assert valid_percentage(80.6) == 81
        assert valid_percentage(0) == 0
        assert valid_percentage(100) == 100

    def test_out_of_range(self):
        assert valid_percentage(101) is None
        assert valid_percentage(-3) is None
        assert valid_percentage(None) is None


class TestBatteryState:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("charging", BatteryState.CHARGING),
            ("Discharging", BatteryState.DISCHARGING),
            ("fully-charged", BatteryState.FULL),
            ("Full", BatteryState.FULL),
            ("pending-charge", BatteryState.UNKNOWN),
            ("Not charging", BatteryState.UNKNOWN),
            (None, BatteryState.UNKNOWN),
        ],
    )
    def test_parse(self, raw, expected):
        assert BatteryState.parse(raw) == expected


class TestHealthRating:
    @pytest.mark.parametrize(
        "health,status,stars",
        [
            (95.0, "Excellent", "★★★★★"),
            (80.0, "Excellent", "★★★★★"),
            (65.0, "Good", "★★★★☆"),
            (45.0, "Fair", "★★★☆☆"),
            (25.0, "Poor", "★★☆☆☆"),
            (10.0, "Critical", "★☆☆☆☆"),
        ],
    )
    def test_thresholds(self, health, status, stars):
        rating = rate_health(health)
        assert rating.status == status
        assert rating.stars == stars

    def test_recommendations_for_healthy_battery(self):
        tips = health_recommendations(90.0)
        assert not any("replacement" in t for t in tips)
        assert "Use original charger when possible" in tips

    def test_recommendations_for_worn_battery(self):
        tips = health_recommendations(55.0)
        assert tips[0] == "Consider battery replacement in the near future"
        assert "Avoid full discharge cycles" in tips


class TestWear:
    def test_wear_is_complement_of_health(self):
        assert wear_level(90.0) == 10.0
        assert wear_level(87.65) == 12.35

    @pytest.mark.parametrize(
        "wear,status",
        [(3.0, "Excellent"), (5.0, "Excellent"), (12.0, "Good"), (25.0, "Fair"), (45.0, "Poor"), (60.0, "Critical")],
    )
    def test_rate_wear(self, wear, status):
        assert rate_wear(wear).status == status

    def test_estimate_cycles_is_two_per_percent(self):
        assert estimate_cycles(10.0) == 20
        assert estimate_cycles(12.35) == 24
        assert estimate_cycles(0.0) == 0

    def test_wear_recommendations(self):
        assert len(wear_recommendations(2.0)) == 1
        assert wear_recommendations(40.0)[0] == "Consider battery replacement for optimal performance"


class TestUsageAndBar:
    def test_usage_level(self):
        assert usage_level(15.0).status == "High Usage"
        assert usage_level(9.0).status == "Moderate Usage"
        assert usage_level(7.0).status == "Low Usage"
        assert usage_level(None).status == "Unknown"

    def test_charge_bar(self):
        assert charge_bar(100) == ("██████████", "green")
        assert charge_bar(45) == ("████░░░░░░", "green")
        assert charge_bar(20)[1] == "yellow"
        assert charge_bar(5) == ("░░░░░░░░░░", "red")
        assert charge_bar(None) == ("N/A", "dim")


class TestCO2Estimate:
    def test_only_discharging_batteries_count(self):
        snapshots = [
            BatterySnapshot(device_id="BAT0", state=BatteryState.DISCHARGING, power_rate=20.0),
            BatterySnapshot(device_id="BAT1", state=BatteryState.CHARGING, power_rate=30.0),
        ]
        estimate = estimate_co2(snapshots)
        assert estimate is not None
        assert estimate.power_usage_w == 20.0
        assert estimate.potential_saved_w == 4.0
        assert estimate.co2_per_hour_kg == 0.002
        assert estimate.co2_per_day_kg == 0.046
        assert estimate.km_not_driven == 5.1

    def test_none_when_not_discharging(self):
        snapshots = [BatterySnapshot(device_id="BAT0", state=BatteryState.FULL, power_rate=0.0)]
        assert estimate_co2(snapshots) is None
        assert estimate_co2([]) is None
