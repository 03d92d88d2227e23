"""
Device Fleet Operator Console — Entry Point
============================================
Launch fleet polling with the CLI console.

Usage:
  python main.py                          # Simulated fleet + CLI console
  python main.py --modbus                 # Real devices over Modbus TCP
  python main.py --headless --user ops    # Poll only, no console
  python main.py --store path/fleet.json --settings path/settings.json
"""

import argparse
import logging
import signal
import sys

from fleetctl.config.settings import Settings
from fleetctl.core.announce import LoggingAnnouncer
from fleetctl.core.catalog import FleetCatalog
from fleetctl.core.control import ControlGate
from fleetctl.core.permissions import PermissionService, parse_permissions
from fleetctl.core.scheduler import PollingScheduler
from fleetctl.core.store import JsonFleetStore
from fleetctl.drivers.simulator import FleetSimulator


def parse_args():
    parser = argparse.ArgumentParser(
        description="Device fleet polling and control console"
    )
    parser.add_argument(
        "--modbus", action="store_true",
        help="Talk to real devices over Modbus TCP (default: simulator)"
    )
    parser.add_argument(
        "--headless", action="store_true",
        help="Run polling without console (requires --user)"
    )
    parser.add_argument(
        "--user",
        help="Log in as this operator at startup"
    )
    parser.add_argument(
        "--permissions", default="ViewHome,ControlDevice",
        help="Comma-separated permissions for --user"
    )
    parser.add_argument(
        "--settings",
        help="Path to settings JSON file"
    )
    parser.add_argument(
        "--store",
        help="Path to fleet store JSON file (overrides settings)"
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--log-file",
        help="Log to file instead of stderr"
    )
    return parser.parse_args()


def create_client(args, settings: Settings):
    """Create the appropriate protocol backend based on arguments."""
    if args.modbus:
        from fleetctl.drivers.modbus_driver import ModbusDriver
        return ModbusDriver(
            port=settings.modbus_port, timeout=settings.modbus_timeout_sec
        )

    # Default: simulated fleet
    return FleetSimulator()


def main():
    args = parse_args()

    # Configure logging
    log_kwargs = {
        "level": getattr(logging, args.log_level),
        "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    }
    if args.log_file:
        log_kwargs["filename"] = args.log_file
    logging.basicConfig(**log_kwargs)

    # Load configuration
    settings = Settings.load(args.settings) if args.settings else Settings()
    store = JsonFleetStore(args.store or settings.store_path)
    catalog = FleetCatalog.bootstrap(store)

    client = create_client(args, settings)
    scheduler = PollingScheduler(catalog, client, settings)
    session = PermissionService()
    gate = ControlGate(
        catalog, scheduler, client, session,
        announcer=LoggingAnnouncer(),
        settings=settings,
    )

    if args.user:
        try:
            perms = parse_permissions(p for p in args.permissions.split(",") if p.strip())
        except ValueError as exc:
            print(exc)
            sys.exit(2)
        session.login(args.user, perms)
        print(gate.resume_polling())
    elif args.headless:
        print("--headless requires --user")
        sys.exit(2)

    # Handle SIGINT/SIGTERM gracefully
    def signal_handler(sig, frame):
        gate.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if args.headless:
            print("Fleet polling running (headless mode). Press Ctrl+C to stop.")
            signal.pause()
        else:
            from console.cli import run_cli
            run_cli(gate, session)
    finally:
        gate.shutdown()


if __name__ == "__main__":
    main()
