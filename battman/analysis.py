"""
Battery health, wear and power-usage analysis.

The cycle count and CO2 figures here are rough heuristics, not
measurements; callers should present them as estimates.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from battman.models import BatterySnapshot, BatteryState

# Global average grid emissions (kg CO2 per kWh)
CO2_PER_KWH = 0.475
# Assumed power reduction in power-saving mode
POWER_SAVING_FACTOR = 0.2
# kg CO2 per km for an average car
CO2_PER_KM_DRIVEN = 0.00892

HIGH_USAGE_WATTS = 12.0
MODERATE_USAGE_WATTS = 7.0


@dataclass(frozen=True)
class Rating:
    status: str
    color: str
    stars: str = ""


@dataclass(frozen=True)
class EcoEstimate:
    """Heuristic savings if the discharging batteries ran in power-saving mode."""

    power_usage_w: float
    potential_saved_w: float
    co2_per_hour_kg: float
    co2_per_day_kg: float
    km_not_driven: float


def rate_health(health: float) -> Rating:
    if health >= 80:
        return Rating("Excellent", "green", "★★★★★")
    if health >= 60:
        return Rating("Good", "green", "★★★★☆")
    if health >= 40:
        return Rating("Fair", "yellow", "★★★☆☆")
    if health >= 20:
        return Rating("Poor", "yellow", "★★☆☆☆")
    return Rating("Critical", "red", "★☆☆☆☆")


def health_recommendations(health: float) -> list[str]:
    tips = []
    if health < 60:
        tips.append("Consider battery replacement in the near future")
    if health < 80:
        tips.append("Avoid full discharge cycles")
        tips.append("Keep battery between 20% and 80% for optimal longevity")
    tips.append("Avoid exposing your laptop to extreme temperatures")
    tips.append("Use original charger when possible")
    return tips


def wear_level(health: float) -> float:
    """Wear level is the capacity lost since new: ``100 - health``."""
    return round(100.0 - health, 2)


def rate_wear(wear: float) -> Rating:
    if wear <= 5:
        return Rating("Excellent", "green")
    if wear <= 15:
        return Rating("Good", "green")
    if wear <= 30:
        return Rating("Fair", "yellow")
    if wear <= 50:
        return Rating("Poor", "yellow")
    return Rating("Critical", "red")


def estimate_cycles(wear: float) -> int:
    """Very rough charge-cycle estimate (two cycles per percent of wear)."""
    return max(int(wear * 20 / 10), 0)


def wear_recommendations(wear: float) -> list[str]:
    tips = []
    if wear > 30:
        tips.append("Consider battery replacement for optimal performance")
    if wear > 15:
        tips.append("Avoid full charge/discharge cycles")
        tips.append("Keep battery between 20% and 80% when possible")
    tips.append("Avoid exposing your laptop to extreme temperatures")
    return tips


def usage_level(power_w: float | None) -> Rating:
    if power_w is None:
        return Rating("Unknown", "dim")
    if power_w > HIGH_USAGE_WATTS:
        return Rating("High Usage", "red")
    if power_w > MODERATE_USAGE_WATTS:
        return Rating("Moderate Usage", "yellow")
    return Rating("Low Usage", "green")


def charge_bar(percent: int | None, width: int = 10) -> tuple[str, str]:
    """Return a ``█░`` gauge and the color it should be drawn in."""
    if percent is None:
        return "N/A", "dim"
    filled = max(0, min(width, percent * width // 100))
    bar = "█" * filled + "░" * (width - filled)
    if percent <= 10:
        return bar, "red"
    if percent <= 25:
        return bar, "yellow"
    return bar, "green"


def estimate_co2(snapshots: Iterable[BatterySnapshot]) -> EcoEstimate | None:
    """
    Estimate CO2 saved per hour/day if discharging batteries used power-saving mode.

    Returns None when no battery is discharging with a known power rate.
    """
    total = 0.0
    seen = False
    for snap in snapshots:
        if snap.state == BatteryState.DISCHARGING and snap.power_rate is not None:
            total += snap.power_rate
            seen = True
    if not seen or total <= 0:
        return None

    saved = total * POWER_SAVING_FACTOR
    hourly = saved * CO2_PER_KWH / 1000
    daily = hourly * 24
    return EcoEstimate(
        power_usage_w=round(total, 3),
        potential_saved_w=round(saved, 3),
        co2_per_hour_kg=round(hourly, 3),
        co2_per_day_kg=round(daily, 3),
        km_not_driven=round(daily / CO2_PER_KM_DRIVEN, 1),
    )
