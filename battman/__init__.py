"""battman - battery telemetry and power reports for Linux."""

__version__ = "1.0.0"
