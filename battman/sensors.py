"""
Battery sensor adapters.

Two backends provide the same capability (list battery devices, read one
device's snapshot):

- ``UPowerSensor`` talks to ``upower``
- ``SysfsSensor`` reads ``/sys/class/power_supply/BAT*`` directly

Both raise ``SensorUnavailableError`` when a device list or a read cannot
be obtained; individual missing fields simply come back as None.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess

from battman.models import BatterySnapshot, BatteryState, valid_percentage

logger = logging.getLogger(__name__)

POWER_SUPPLY_DIR = "/sys/class/power_supply"

_NUMBER_RE = re.compile(r"[-+]?\d*\.?\d+")


class SensorUnavailableError(Exception):
    """Raised when battery devices cannot be listed or read."""

    pass


def _run(cmd: list[str]) -> str:
    """
    Run a system command and return stdout.

    Raises SensorUnavailableError when the command is missing or fails.
    """
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            errors="replace",
            check=False,
        )
    except OSError as e:
        raise SensorUnavailableError(f"{cmd[0]} unavailable: {e}") from e

    if result.returncode != 0:
        raise SensorUnavailableError(f"{' '.join(cmd)} exited with {result.returncode}")
    return result.stdout or ""


def parse_number(raw: str | None) -> float | None:
    """
    Extract the leading number from a value such as ``"45.2 Wh"`` or ``"81%"``.

    Accepts comma decimal separators (e.g. ``"12,5 W"``).
    """
    if raw is None:
        return None
    s = raw.strip().replace(",", ".")
    if not s or s.upper() == "N/A":
        return None
    m = _NUMBER_RE.search(s)
    if not m:
        return None
    try:
        return float(m.group(0))
    except ValueError:
        return None


class BatterySensor:
    """Base class for battery backends."""

    name = "none"

    def enumerate_devices(self) -> list[str]:
        raise NotImplementedError

    def read_snapshot(self, device_id: str) -> BatterySnapshot:
        raise NotImplementedError

    def read_all(self) -> list[BatterySnapshot]:
        """Snapshot every device, skipping the ones that cannot be read."""
        snapshots = []
        for device_id in self.enumerate_devices():
            try:
                snapshots.append(self.read_snapshot(device_id))
            except SensorUnavailableError as e:
                logger.warning("Skipping %s: %s", device_id, e)
        return snapshots


class UPowerSensor(BatterySensor):
    """Battery readings from ``upower -e`` / ``upower -i``."""

    name = "upower"

    def __init__(self) -> None:
        self._paths: dict[str, str] = {}

    def enumerate_devices(self) -> list[str]:
        out = _run(["upower", "-e"])
        devices = []
        for line in out.splitlines():
            path = line.strip()
            if "battery" not in path:
                continue
            device_id = path.rsplit("/", 1)[-1]
            self._paths[device_id] = path
            devices.append(device_id)
        return devices

    def _path_for(self, device_id: str) -> str:
        path = self._paths.get(device_id)
        if path is None:
            path = f"/org/freedesktop/UPower/devices/{device_id}"
        return path

    def read_snapshot(self, device_id: str) -> BatterySnapshot:
        out = _run(["upower", "-i", self._path_for(device_id)])
        if not out.strip():
            raise SensorUnavailableError(f"No data for {device_id}")
        return parse_upower_info(device_id, out)


def parse_upower_info(device_id: str, text: str) -> BatterySnapshot:
    """Build a snapshot from the ``key: value`` lines printed by ``upower -i``."""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip().lower()
        if key and key not in fields:
            fields[key] = value.strip()

    percentage = parse_number(fields.get("percentage"))
    return BatterySnapshot(
        device_id=device_id,
        percentage=valid_percentage(percentage),
        state=BatteryState.parse(fields.get("state")),
        energy_now=parse_number(fields.get("energy")),
        energy_full=parse_number(fields.get("energy-full")),
        energy_design=parse_number(fields.get("energy-full-design")),
        power_rate=parse_number(fields.get("energy-rate")),
        vendor=fields.get("vendor") or None,
        model=fields.get("model") or None,
        technology=fields.get("technology") or None,
        time_to_empty=fields.get("time to empty") or None,
        time_to_full=fields.get("time to full") or None,
    )


class SysfsSensor(BatterySensor):
    """Battery readings straight from the kernel power_supply class."""

    name = "sysfs"

    def __init__(self, base: str = POWER_SUPPLY_DIR):
        self.base = base

    def enumerate_devices(self) -> list[str]:
        try:
            entries = os.listdir(self.base)
        except OSError as e:
            raise SensorUnavailableError(f"Cannot list {self.base}: {e}") from e
        return sorted(d for d in entries if d.startswith("BAT"))

    def read_snapshot(self, device_id: str) -> BatterySnapshot:
        bat_dir = os.path.join(self.base, device_id)
        if not os.path.isdir(bat_dir):
            raise SensorUnavailableError(f"No such battery: {device_id}")

        def _read_str(name: str) -> str | None:
            try:
                with open(os.path.join(bat_dir, name), encoding="utf-8", errors="replace") as f:
                    return f.read().strip()
            except OSError:
                return None

        def _read_int(name: str) -> int | None:
            s = _read_str(name)
            if s is None:
                return None
            try:
                return int(s)
            except ValueError:
                return None

        def _energy_wh(kind: str) -> float | None:
            # energy_* is in µWh; charge_* is in µAh and needs the design voltage (µV)
            energy = _read_int(f"energy_{kind}")
            if energy is not None:
                return round(energy / 1e6, 3)
            charge = _read_int(f"charge_{kind}")
            voltage = _read_int("voltage_min_design")
            if charge is not None and voltage:
                return round(charge * voltage / 1e12, 3)
            return None

        power_now = _read_int("power_now")
        if power_now is not None:
            power_rate: float | None = round(abs(power_now) / 1e6, 3)
        else:
            current_now = _read_int("current_now")
            voltage_now = _read_int("voltage_now")
            if current_now is not None and voltage_now is not None:
                power_rate = round(abs(current_now * voltage_now) / 1e12, 3)
            else:
                power_rate = None

        return BatterySnapshot(
            device_id=device_id,
            percentage=valid_percentage(_read_int("capacity")),
            state=BatteryState.parse(_read_str("status")),
            energy_now=_energy_wh("now"),
            energy_full=_energy_wh("full"),
            energy_design=_energy_wh("full_design"),
            power_rate=power_rate,
            vendor=_read_str("manufacturer") or None,
            model=_read_str("model_name") or None,
            technology=_read_str("technology") or None,
        )


def default_sensor() -> BatterySensor:
    """Prefer upower when it is installed, otherwise read sysfs."""
    if shutil.which("upower"):
        return UPowerSensor()
    return SysfsSensor()


def detect_power_source(base: str = POWER_SUPPLY_DIR) -> str:
    """
    Return ``"AC"``, ``"Battery"`` or ``"Unknown"`` from the adapters'
    ``online`` flags.
    """
    try:
        entries = sorted(os.listdir(base))
    except OSError:
        return "Unknown"

    for entry in entries:
        online = os.path.join(base, entry, "online")
        try:
            with open(online, encoding="utf-8") as f:
                value = f.read().strip()
        except OSError:
            continue
        if value == "1":
            return "AC"
        if value == "0":
            return "Battery"
    return "Unknown"
