"""
Fleet Operator CLI Console
===========================
Command-line interface for operator interaction with the fleet.
Supports:

  - Session (login with permissions, logout)
  - Device commands (start, stop, enable)
  - Polling (resume, pause)
  - Status display (fleet table, single device)
  - Settings viewing, modification and persistence
  - Simulator fault injection (dev mode)

Usage:
  python -m console.cli              # Interactive mode (simulator)
"""

import cmd
import logging

from fleetctl.core.control import ControlGate
from fleetctl.core.permissions import PermissionService, parse_permissions

logger = logging.getLogger(__name__)


class FleetConsole(cmd.Cmd):
    """Interactive CLI for the device fleet."""

    intro = (
        "\n"
        "╔══════════════════════════════════════════════════════╗\n"
        "║  Device Fleet — Operator Console                     ║\n"
        "║  Type 'help' for commands, 'quit' to exit            ║\n"
        "╚══════════════════════════════════════════════════════╝\n"
    )
    prompt = "FLEET> "

    def __init__(self, gate: ControlGate, session: PermissionService):
        super().__init__()
        self.gate = gate
        self.session = session

    # ── Session Commands ─────────────────────────────────────

    def do_login(self, arg):
        """Log in: login <user> [permission ...]  (ViewHome ControlDevice All)"""
        parts = arg.split()
        if not parts:
            print("Usage: login <user> [permission ...]")
            return
        try:
            perms = parse_permissions(parts[1:])
        except ValueError as exc:
            print(exc)
            return
        self.session.login(parts[0], perms)
        print(f"Logged in as {parts[0]}")

    def do_logout(self, arg):
        """Log out: logout"""
        self.session.logout()
        print("Logged out")

    def do_whoami(self, arg):
        """Show current user and permissions: whoami"""
        if not self.session.is_logged_in:
            print("Not logged in")
            return
        perms = ", ".join(sorted(p.value for p in self.session.permissions)) or "none"
        print(f"{self.session.current_user} ({perms})")

    # ── Device Commands ──────────────────────────────────────

    def do_start(self, arg):
        """Start a device: start <id>"""
        device_id = self._device_id(arg, "start")
        if device_id is not None:
            print(self.gate.start(device_id, self.session.permissions))

    def do_stop(self, arg):
        """Stop a device: stop <id>"""
        device_id = self._device_id(arg, "stop")
        if device_id is not None:
            print(self.gate.stop(device_id, self.session.permissions))

    def do_enable(self, arg):
        """Return a device to polling: enable <id>"""
        device_id = self._device_id(arg, "enable")
        if device_id is not None:
            print(self.gate.enable(device_id, self.session.permissions))

    # ── Polling Commands ─────────────────────────────────────

    def do_resume(self, arg):
        """Poll now and arm the poll timer: resume"""
        print(self.gate.resume_polling())

    def do_pause(self, arg):
        """Disarm polling and close connections: pause"""
        print(self.gate.pause_polling())

    # ── Status Commands ──────────────────────────────────────

    def do_status(self, arg):
        """Show fleet status: status"""
        s = self.gate.get_status()
        print("\n── Fleet Status ──────────────────────────────────")
        print(f"  Polling:        {'ARMED' if s['polling'] else 'STOPPED'}")
        print(f"  Ticks:          {s['tick_count']} (last: {s['tick_time_ms']} ms)")
        print(f"  Can Control:    {'YES' if s['can_control'] else 'NO'}")
        print()
        print(f"  {'ID':>3s}  {'Name':<14s} {'Endpoint':<18s} {'Status':<13s} "
              f"{'Runs':>10s}  Operable")
        for d in s["devices"]:
            print(f"  {d['id']:>3d}  {d['name']:<14s} {d['endpoint']:<18s} "
                  f"{d['status']:<13s} {d['run_count']:>10d}  "
                  f"{'yes' if d['operable'] else 'no'}")
        print()

    def do_summary(self, arg):
        """Show device counts by status: summary"""
        summary = self.gate.catalog.summary()
        print(f"\n  Devices: {summary['total_devices']}  Operable: {summary['operable']}")
        for status, count in sorted(summary["by_status"].items()):
            print(f"  {status:<14s} {count}")
        print()

    # ── Settings Commands ────────────────────────────────────

    def do_settings(self, arg):
        """Show all settings: settings [filter]"""
        filter_str = arg.strip().lower()
        print("\n── Settings ─────────────────────────────────────")
        for key, val in sorted(self.gate.sp.as_dict().items()):
            if filter_str and filter_str not in key.lower():
                continue
            print(f"  {key:<28s} = {val}")
        print()

    def do_set(self, arg):
        """Update a setting: set <key> <value>"""
        parts = arg.strip().split(None, 1)
        if len(parts) != 2:
            print("Usage: set <key> <value>")
            return
        key, value = parts
        if self.gate.sp.update(key, value):
            print(f"Setting {key} updated to {getattr(self.gate.sp, key)}")
        else:
            print(f"Invalid setting: {key}")

    def do_save(self, arg):
        """Save settings to disk: save [path]"""
        self.gate.sp.save(arg.strip() or None)
        print("Settings saved")

    # ── Simulator Commands (dev mode) ────────────────────────

    def do_sim_offline(self, arg):
        """[Sim] Take a device offline: sim_offline <id>"""
        self._sim_endpoint_call(arg, "set_online", False)

    def do_sim_online(self, arg):
        """[Sim] Bring a device back online: sim_online <id>"""
        self._sim_endpoint_call(arg, "set_online", True)

    def do_sim_fault(self, arg):
        """[Sim] Fault a device: sim_fault <id>"""
        self._sim_endpoint_call(arg, "set_fault", True)

    # ── Utility ──────────────────────────────────────────────

    def do_quit(self, arg):
        """Exit the console: quit"""
        print("Shutting down...")
        return True

    def do_exit(self, arg):
        """Exit the console: exit"""
        return self.do_quit(arg)

    do_EOF = do_quit

    def emptyline(self):
        pass

    def default(self, line):
        print(f"Unknown command: {line}. Type 'help' for available commands.")

    def _device_id(self, arg, command):
        try:
            return int(arg.strip())
        except ValueError:
            print(f"Usage: {command} <id>")
            return None

    def _sim_endpoint_call(self, arg, method, value):
        if not hasattr(self.gate.client, method):
            print("Not in simulation mode")
            return
        device_id = self._device_id(arg, "sim")
        if device_id is None:
            return
        device = self.gate.catalog.get(device_id)
        if device is None:
            print(f"Unknown device: {device_id}")
            return
        getattr(self.gate.client, method)(device.endpoint, value)
        print(f"Simulator {method}({device.name}, {value})")


def run_cli(gate: ControlGate, session: PermissionService):
    """Launch the interactive CLI console."""
    console = FleetConsole(gate, session)
    try:
        console.cmdloop()
    except KeyboardInterrupt:
        print("\nInterrupted.")


def main():
    """Entry point for standalone CLI usage."""
    import tempfile
    from pathlib import Path

    from fleetctl.config.settings import Settings
    from fleetctl.core.announce import LoggingAnnouncer
    from fleetctl.core.catalog import FleetCatalog
    from fleetctl.core.scheduler import PollingScheduler
    from fleetctl.core.store import JsonFleetStore
    from fleetctl.drivers.simulator import FleetSimulator

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    settings = Settings()
    store = JsonFleetStore(str(Path(tempfile.gettempdir()) / "fleet_sim.json"))
    catalog = FleetCatalog.bootstrap(store)
    sim = FleetSimulator()
    scheduler = PollingScheduler(catalog, sim, settings)
    session = PermissionService()
    gate = ControlGate(catalog, scheduler, sim, session, LoggingAnnouncer(), settings)

    try:
        run_cli(gate, session)
    finally:
        gate.shutdown()


if __name__ == "__main__":
    main()
