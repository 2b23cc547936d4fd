"""
Probe for the optional system tools battman reads battery data with.

Only ``upower`` is used today. Without it the sensors fall back to
``/sys/class/power_supply``, so a missing tool is a warning, never fatal.
"""

from __future__ import annotations

import shutil
from typing import NamedTuple


class ToolStatus(NamedTuple):
    name: str
    path: str | None
    package: str

    @property
    def available(self) -> bool:
        return self.path is not None


# command -> distribution package that provides it
SYSTEM_TOOLS = {
    "upower": "upower",
}


def probe_tools() -> list[ToolStatus]:
    return [ToolStatus(cmd, shutil.which(cmd), pkg) for cmd, pkg in SYSTEM_TOOLS.items()]


def get_missing_commands() -> list[str]:
    return [t.name for t in probe_tools() if not t.available]


def install_hint(cmd: str) -> str:
    package = SYSTEM_TOOLS.get(cmd, cmd)
    return f"sudo dnf install {package}"
