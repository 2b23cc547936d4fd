import argparse
import logging
import sys
from pathlib import Path

from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

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
from battman.branding import VERSION, console, cx_header, cx_print, show_banner
from battman.config import (
    CONFIG_KEYS,
    BattmanConfig,
    ConfigInvalidError,
    config_path,
    load_config,
    save_config,
)
from battman.system_tools import get_missing_commands, install_hint
from battman.log_store import HEADER, LogStore, StoreIOError, default_export_path
from battman.models import BatterySnapshot
from battman.sampler import Sampler
from battman.sensors import BatterySensor, SensorUnavailableError, default_sensor, detect_power_source

logger = logging.getLogger("battman")


def _configure_logging(verbose: bool) -> None:
    if any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
        return
    handler = RichHandler(console=console, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def _fmt(value, suffix: str = "", digits: int = 2) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:.{digits}f}{suffix}"
    return f"{value}{suffix}"


class BattmanCLI:
    def __init__(
        self,
        verbose: bool = False,
        config: BattmanConfig | None = None,
        sensor: BatterySensor | None = None,
    ):
        self.verbose = verbose
        self.config = config if config is not None else load_config()
        self.sensor = sensor if sensor is not None else default_sensor()
        self.store = LogStore(self.config.log_file)
        self.sampler = Sampler(self.sensor, self.store)

    def _debug(self, message: str):
        """Print debug info only in verbose mode"""
        if self.verbose:
            console.print(f"[dim][DEBUG] {message}[/dim]")

    def _confirm(self, question: str) -> bool:
        console.print(f"{question} \\[y/N]: ", end="")
        try:
            resp = input().strip().lower()
        except (EOFError, KeyboardInterrupt):
            # stdin closed or user pressed Ctrl+C -> treat as non-affirmative
            console.print()
            resp = ""
        return resp in ("y", "yes")

    def _snapshots(self) -> list[BatterySnapshot] | None:
        """Read every battery; report sensor failures inline and return None."""
        try:
            snapshots = self.sensor.read_all()
        except SensorUnavailableError as e:
            cx_print(f"Battery information unavailable: {e}", "error")
            return None
        if not snapshots:
            cx_print("No battery detected.", "warning")
            return None
        self._debug(f"Read {len(snapshots)} battery snapshot(s) via {self.sensor.name}")
        return snapshots

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def status(self) -> int:
        """Show charge, state, power use and capacity for every battery."""
        for cmd in get_missing_commands():
            cx_print(
                f"{cmd} not found; reading /sys/class/power_supply instead (install with: {install_hint(cmd)})",
                "warning",
            )

        cx_header("🔋 Battery Info")
        snapshots = self._snapshots()
        if snapshots is None:
            return 2

        for idx, snap in enumerate(snapshots, start=1):
            table = Table(title=f"Battery #{idx} ({snap.device_id})", show_header=False, box=None)
            table.add_column("Field", style="bold")
            table.add_column("Value")

            if snap.vendor:
                table.add_row("Vendor", escape(snap.vendor))
            if snap.model:
                table.add_row("Model", escape(snap.model))
            if snap.technology:
                table.add_row("Technology", escape(snap.technology))
            table.add_row("⚡ State", snap.state.value)

            bar, color = charge_bar(snap.percentage)
            table.add_row("🔋 Charge", f"{_fmt(snap.percentage, '%')} [{color}]{bar}[/{color}]")

            remaining = snap.time_remaining
            if remaining:
                table.add_row("⏳ Time remaining", remaining)

            usage = usage_level(snap.power_rate)
            table.add_row(
                "🧭 Power use", f"[{usage.color}]{usage.status}[/{usage.color}] ({_fmt(snap.power_rate, ' W')})"
            )
            table.add_row("🩺 Health", _fmt(snap.health_pct, "%"))
            table.add_row(
                "💾 Capacity",
                f"{_fmt(snap.energy_now, ' Wh')} / {_fmt(snap.energy_full, ' Wh')} "
                f"(Design: {_fmt(snap.energy_design, ' Wh')})",
            )
            console.print(table)
            console.print()

        source = detect_power_source()
        if source == "AC":
            cx_print("Running on AC power", "info")
        elif source == "Battery":
            cx_print("Running on battery power", "battery")
        else:
            cx_print("Power source information unavailable", "warning")
        return 0

    def health(self) -> int:
        """Rate each battery's health and print care recommendations."""
        cx_header("🩺 Battery Health Analysis")
        snapshots = self._snapshots()
        if snapshots is None:
            return 2

        reported = False
        for snap in snapshots:
            health = snap.health_pct
            if health is None:
                cx_print(f"{snap.device_id}: battery health information unavailable", "warning")
                continue
            reported = True
            rating = rate_health(health)
            c = rating.color
            console.print(f"  {snap.device_id} health: [{c}]{health:.2f}%[/{c}] ({rating.status})")
            console.print(f"  Health rating: [{c}]{rating.stars}[/{c}]")
            console.print("\n  Recommendations:")
            for tip in health_recommendations(health):
                console.print(f"  • {tip}")
            console.print()
        return 0 if reported else 2

    def wear(self) -> int:
        """Show wear level, capacity retention and an estimated cycle count."""
        cx_header("🧳 Battery Wear Analysis")
        snapshots = self._snapshots()
        if snapshots is None:
            return 2

        reported = False
        for snap in snapshots:
            health = snap.health_pct
            if health is None:
                cx_print(f"{snap.device_id}: battery wear information unavailable", "warning")
                continue
            reported = True
            wear = wear_level(health)
            rating = rate_wear(wear)
            c = rating.color
            console.print(f"  {snap.device_id} wear level: [{c}]{wear:.2f}%[/{c}] ({rating.status})")
            console.print(f"  Capacity retention: [{c}]{health:.2f}%[/{c}]")
            console.print(f"  Original capacity: {_fmt(snap.energy_design, ' Wh')}")
            console.print(f"  Current capacity: {_fmt(snap.energy_full, ' Wh')}")
            console.print(f"  Estimated battery cycles: ~{estimate_cycles(wear)} (rough estimate)")
            console.print("\n  Recommendations:")
            for tip in wear_recommendations(wear):
                console.print(f"  • {tip}")
            console.print()
        return 0 if reported else 2

    def eco(self) -> int:
        """Estimate CO2 that power-saving mode could save at the current draw."""
        cx_header("🌍 Environmental Impact")
        snapshots = self._snapshots()
        if snapshots is None:
            return 2

        estimate = estimate_co2(snapshots)
        if estimate is None:
            cx_print("Not currently discharging or power data unavailable", "warning")
        else:
            console.print(f"  Current power usage: {estimate.power_usage_w} W")
            console.print(f"  Potential power saved in power-saving mode: {estimate.potential_saved_w} W")
            console.print(f"  Estimated CO₂ saved per hour: {estimate.co2_per_hour_kg} kg")
            console.print(f"  Estimated CO₂ saved per day: {estimate.co2_per_day_kg} kg")
            console.print(f"  Equivalent to: {estimate.km_not_driven} km not driven in an average car")
            cx_print("Note: Estimates are heuristic and vary by hardware and grid mix.", "warning")

        console.print("\n  🌱 Eco tips:")
        console.print("  • Use power saving mode when on battery")
        console.print("  • Reduce screen brightness to save power")
        console.print("  • Close unused applications and browser tabs")
        return 0

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    def start_logging(self) -> int:
        was_running = self.sampler.is_running
        handle = self.sampler.start(self.config.log_interval)
        if was_running:
            cx_print(f"Logging is already running ({handle.thread.name})", "warning")
            return 0
        cx_print(f"Logging started ({handle.thread.name})", "success")
        cx_print(f"Log file: {self.store.path}")
        cx_print(f"Logging interval: {handle.interval_seconds} seconds")
        return 0

    def stop_logging(self) -> int:
        if self.sampler.stop():
            cx_print("Logging stopped", "success")
        else:
            cx_print("No active logging process found", "warning")
        return 0

    def log(self, args: argparse.Namespace) -> int:
        """Handle log commands (record, tail, stats, export, clear).

        Args:
            args: Parsed command-line arguments containing log_action subcommand.

        Returns:
            int: 0 on success, 1 on error, 2 when there is nothing to show.
        """
        action = getattr(args, "log_action", None)
        if action == "record":
            return self._log_record(getattr(args, "interval", None))
        if action == "tail":
            return self._log_tail(getattr(args, "lines", 10))
        if action == "stats":
            return self._log_stats()
        if action == "export":
            return self._log_export(getattr(args, "destination", None))
        if action == "clear":
            return self._log_clear(yes=bool(getattr(args, "yes", False)))

        cx_print("Unknown log command")
        return 2

    def _log_record(self, interval: int | None = None) -> int:
        """Run the sampler in the foreground until interrupted."""
        try:
            self.sampler.start(interval if interval is not None else self.config.log_interval)
        except ConfigInvalidError as e:
            cx_print(f"Invalid interval: {e}", "error")
            return 1

        cx_print(
            f"Recording every {self.sampler.interval_seconds}s to {self.store.path} (Ctrl+C to stop)",
            "info",
        )
        try:
            handle = self.sampler.handle
            while handle is not None and handle.alive:
                handle.thread.join(timeout=1.0)
        except KeyboardInterrupt:
            console.print()
        finally:
            self.sampler.stop()
        cx_print("Logging stopped", "success")
        return 0

    def _log_tail(self, lines: int = 10) -> int:
        if not self.store.exists():
            cx_print("No logs found. Start logging first.", "warning")
            return 2

        rows = self.store.tail(lines)
        if len(rows) == 0:
            cx_print("No entries in log", "warning")
            return 2

        table = Table(title=f"Recent log entries (last {len(rows)})", header_style="bold cyan")
        for name in HEADER:
            table.add_column(name)
        for row in rows:
            d = row.to_dict()
            table.add_row(
                d["timestamp"],
                d["device_id"],
                _fmt(row.percentage),
                d["state"],
                _fmt(row.energy_now),
                _fmt(row.power_rate),
                _fmt(row.health_pct),
            )
        console.print(table)
        return 0

    def _log_stats(self) -> int:
        if not self.store.exists():
            cx_print("No logs found. Start logging first.", "warning")
            return 2

        stats = self.store.stats()
        cx_print(f"Total log entries: {stats.rows}")
        cx_print(f"Log file: {self.store.path}")
        if stats.rows == 0:
            cx_print("No entries in log", "warning")
            return 0

        console.print(f"  Average battery level: {_fmt(stats.average_percentage, '%', 1)}")
        console.print(f"  Minimum recorded level: {_fmt(stats.min_percentage, '%')}")
        console.print(
            f"  Average discharge rate (estimate): {_fmt(stats.average_discharge_power, ' W')}"
        )
        return 0

    def _log_export(self, destination: str | None = None) -> int:
        dest = Path(destination) if destination else default_export_path()
        try:
            exported = self.store.export_copy(dest)
        except StoreIOError as e:
            cx_print(f"Export failed: {e}", "error")
            return 1
        cx_print(f"Log exported to: {exported}", "success")
        return 0

    def _log_clear(self, yes: bool = False) -> int:
        if not yes and not self._confirm("Are you sure you want to clear the log?"):
            cx_print("Clear operation cancelled", "info")
            return 0
        try:
            self.store.clear()
        except StoreIOError as e:
            cx_print(f"Clear failed: {e}", "error")
            return 1
        cx_print("Log cleared", "success")
        return 0

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def settings(self, args: argparse.Namespace) -> int:
        """Handle config commands (show, set)."""
        action = getattr(args, "config_action", None)
        if action == "show":
            cx_print(f"Config file: {config_path()}")
            for key, value in self.config.to_dict().items():
                console.print(f"  {key}: {value}")
            return 0

        if action == "set":
            try:
                self.config.set(args.key, args.value)
            except ConfigInvalidError as e:
                cx_print(f"Invalid setting: {e}", "error")
                return 1
            save_config(self.config)
            self.store = LogStore(self.config.log_file)
            self.sampler.store = self.store
            cx_print(f"Saved: {args.key} = {args.value}", "success")
            return 0

        cx_print("Unknown config command")
        return 2

    # ------------------------------------------------------------------
    # Interactive menu
    # ------------------------------------------------------------------
    def _show_menu(self) -> None:
        show_banner(show_version=True)
        table = Table(show_header=False, box=None)
        table.add_column("Key", style="green")
        table.add_column("Action")
        table.add_row("1", "Battery info")
        table.add_row("2", "Battery health")
        table.add_row("3", "Battery wear")
        table.add_row("4", "Environmental impact")
        table.add_row("9", "Start background logging")
        table.add_row("0", "Stop background logging")
        table.add_row("L", "Log analysis")
        table.add_row("C", "Configure settings")
        table.add_row("Q", "Quit")
        console.print(table)
        state = "running" if self.sampler.is_running else "stopped"
        console.print(f"[dim]Logging: {state}[/dim]")
        console.print("Choose an option: ", end="")

    def _menu_log(self) -> None:
        cx_print(f"Total log entries: {self.store.count_rows()}")
        console.print("  1. Show recent entries\n  2. Show statistics\n  3. Export\n  4. Clear log\n  5. Back")
        console.print("  Choose an option: ", end="")
        try:
            choice = input().strip()
        except EOFError:
            console.print()
            return
        if choice == "1":
            self._log_tail()
        elif choice == "2":
            self._log_stats()
        elif choice == "3":
            self._log_export()
        elif choice == "4":
            self._log_clear()
        elif choice != "5":
            cx_print("Invalid option", "warning")

    def _menu_settings(self) -> None:
        for key, value in self.config.to_dict().items():
            console.print(f"  {key}: {value}")
        console.print(f"  Setting to change ({', '.join(CONFIG_KEYS)}, blank to go back): ", end="")
        try:
            key = input().strip()
            if not key:
                return
            console.print(f"  New value for {key}: ", end="")
            value = input().strip()
        except EOFError:
            console.print()
            return
        ns = argparse.Namespace(config_action="set", key=key, value=value)
        self.settings(ns)

    def menu(self) -> int:
        """Interactive loop; background logging keeps running between commands."""
        actions = {
            "1": self.status,
            "2": self.health,
            "3": self.wear,
            "4": self.eco,
            "9": self.start_logging,
            "0": self.stop_logging,
            "l": self._menu_log,
            "c": self._menu_settings,
        }
        try:
            while True:
                self._show_menu()
                try:
                    choice = input().strip().lower()
                except EOFError:
                    break
                if choice == "q":
                    break
                action = actions.get(choice)
                if action is None:
                    cx_print("Invalid option", "warning")
                    continue
                try:
                    action()
                except (OSError, ValueError) as e:
                    cx_print(f"Error: {e}", "error")
        except KeyboardInterrupt:
            console.print()
        finally:
            if self.sampler.is_running:
                self.stop_logging()
        console.print("Exiting Power Manager. Goodbye!")
        return 0


def show_rich_help():
    """Display the command overview as a Rich table."""
    show_banner(show_version=True)
    console.print()

    console.print("[bold]Battery telemetry and power reports for Linux[/bold]")
    console.print()

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Command", style="green")
    table.add_column("Description")

    table.add_row("status", "Battery info and power source")
    table.add_row("health", "Battery health rating")
    table.add_row("wear", "Wear level and estimated cycles")
    table.add_row("eco", "Estimated CO₂ savings")
    table.add_row("log record", "Sample batteries until Ctrl+C")
    table.add_row("log tail|stats|export|clear", "Inspect or manage the battery log")
    table.add_row("config show|set", "View or change settings")
    table.add_row("menu", "Interactive menu with background logging")

    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="battman",
        description="Battery & power manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global flags
    parser.add_argument("--version", "-V", action="version", version=f"battman {VERSION}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("status", help="Show battery info and power source")
    subparsers.add_parser("health", help="Battery health analysis")
    subparsers.add_parser("wear", help="Battery wear analysis")
    subparsers.add_parser("eco", help="Estimate environmental impact")
    subparsers.add_parser("menu", help="Interactive menu")

    log_parser = subparsers.add_parser("log", help="Battery log tools")
    log_subs = log_parser.add_subparsers(dest="log_action", required=True)

    record_parser = log_subs.add_parser("record", help="Sample batteries until Ctrl+C")
    record_parser.add_argument(
        "--interval", type=int, help="Seconds between samples (default: config log_interval)"
    )

    tail_parser = log_subs.add_parser("tail", help="Show recent entries")
    tail_parser.add_argument("-n", "--lines", type=int, default=10, help="Number of entries")

    log_subs.add_parser("stats", help="Show log statistics")

    export_parser = log_subs.add_parser("export", help="Copy the log to a CSV file")
    export_parser.add_argument("destination", nargs="?", help="Target path")

    clear_parser = log_subs.add_parser("clear", help="Remove all entries (keeps header)")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    config_parser = subparsers.add_parser("config", help="View or change settings")
    config_subs = config_parser.add_subparsers(dest="config_action", required=True)
    config_subs.add_parser("show", help="Show current settings")
    config_set = config_subs.add_parser("set", help="Change a setting")
    config_set.add_argument("key", choices=CONFIG_KEYS)
    config_set.add_argument("value")

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    # The Guard: Check for empty commands before starting the CLI
    if not args.command:
        show_rich_help()
        return 0

    _configure_logging(args.verbose)
    cli = BattmanCLI(verbose=args.verbose)

    try:
        if args.command == "status":
            return cli.status()
        elif args.command == "health":
            return cli.health()
        elif args.command == "wear":
            return cli.wear()
        elif args.command == "eco":
            return cli.eco()
        elif args.command == "log":
            return cli.log(args)
        elif args.command == "config":
            return cli.settings(args)
        elif args.command == "menu":
            return cli.menu()
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\n❌ Operation cancelled", file=sys.stderr)
        return 130
    except (ValueError, OSError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
