"""
Battery data types shared by the sensors, the sampler and the log store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class BatteryState(str, Enum):
    """Charge state reported for a battery."""

    CHARGING = "charging"
    DISCHARGING = "discharging"
    FULL = "full"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> BatteryState:
        """Map a raw upower/sysfs state string onto a BatteryState."""
        value = (raw or "").strip().lower()
        if value == "charging":
            return cls.CHARGING
        if value == "discharging":
            return cls.DISCHARGING
        if value in {"full", "fully-charged"}:
            return cls.FULL
        return cls.UNKNOWN


def health_percent(energy_full: float | None, energy_design: float | None) -> float | None:
    """
    Return ``100 * energy_full / energy_design`` rounded to two decimals.

    Returns None unless both operands are positive. Batteries that report a
    full capacity above their design capacity are capped at 100.
    """
    if energy_full is None or energy_design is None:
        return None
    if energy_full <= 0 or energy_design <= 0:
        return None
    return round(min(100.0 * energy_full / energy_design, 100.0), 2)


def valid_percentage(value: int | float | None) -> int | None:
    if value is None:
        return None
    pct = int(round(value))
    if 0 <= pct <= 100:
        return pct
    return None


@dataclass
class BatterySnapshot:
    """Point-in-time read of a single battery. Every field may be missing."""

    device_id: str
    percentage: int | None = None
    state: BatteryState = BatteryState.UNKNOWN
    energy_now: float | None = None  # Wh
    energy_full: float | None = None  # Wh
    energy_design: float | None = None  # Wh
    power_rate: float | None = None  # W
    vendor: str | None = None
    model: str | None = None
    technology: str | None = None
    time_to_empty: str | None = None
    time_to_full: str | None = None

    @property
    def health_pct(self) -> float | None:
        return health_percent(self.energy_full, self.energy_design)

    @property
    def time_remaining(self) -> str | None:
        if self.state == BatteryState.DISCHARGING:
            return self.time_to_empty
        if self.state == BatteryState.CHARGING:
            return self.time_to_full
        return None


@dataclass(frozen=True)
class BatterySample:
    """One log row: a battery reading taken at a sampler tick."""

    timestamp: datetime
    device_id: str
    percentage: int | None = None
    state: BatteryState = BatteryState.UNKNOWN
    energy_now: float | None = None
    power_rate: float | None = None
    health_pct: float | None = None

    @classmethod
    def from_snapshot(cls, timestamp: datetime, snapshot: BatterySnapshot) -> BatterySample:
        return cls(
            timestamp=timestamp.replace(microsecond=0),
            device_id=snapshot.device_id,
            percentage=valid_percentage(snapshot.percentage),
            state=snapshot.state,
            energy_now=snapshot.energy_now,
            power_rate=snapshot.power_rate,
            health_pct=snapshot.health_pct,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.strftime(TIMESTAMP_FORMAT),
            "device_id": self.device_id,
            "percentage": self.percentage,
            "state": self.state.value,
            "energy_now": self.energy_now,
            "power_rate": self.power_rate,
            "health_pct": self.health_pct,
        }
