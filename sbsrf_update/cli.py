"""sbsrf-update command line.

Usage::

    sbsrf-update                                  # bootstrap + update this machine
    sbsrf-update update [-f] [-H HOST] [NAME]
    sbsrf-update restore [-H HOST] [NAME]
    sbsrf-update device list|add|remove|edit|show|default [NAME]
    sbsrf-update clean [--all]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import subprocess
import sys
from pathlib import Path

import httpx

from sbsrf_update.errors import FilesystemError, UpdateError
from sbsrf_update.orchestrator import UpdateOrchestrator
from sbsrf_update.progress import TqdmReporter
from sbsrf_update.registry import DeviceRegistry
from sbsrf_update.release import get_release_source
from sbsrf_update.settings import Settings

logger = logging.getLogger(__name__)

_HTTP_TIMEOUT = httpx.Timeout(30.0, read=120.0)


# ── Prompt helpers ────────────────────────────────────────────────


def _print(msg: str = "") -> None:
    print(msg, flush=True)


def _input(prompt: str) -> str:
    return input(prompt).strip()


def _yes_no(prompt: str, default: bool = True) -> bool:
    suffix = " [Y/n] " if default else " [y/N] "
    raw = _input(prompt + suffix)
    if not raw:
        return default
    return raw.lower().startswith("y")


def _select(prompt: str, options: list[str], default: int) -> int:
    for i, option in enumerate(options, 1):
        marker = "*" if i - 1 == default else " "
        _print(f" {marker} [{i}] {option}")
    while True:
        raw = _input(f"{prompt} [{default + 1}]: ")
        if not raw:
            return default
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return int(raw) - 1
        _print(f"  Please enter a number between 1 and {len(options)}")


class ConsolePrompter:
    def confirm(self, message: str, default: bool) -> bool:
        return _yes_no(message, default)

    def select(self, message: str, options: list[str], default: int) -> int:
        return _select(message, options, default)


# ── Commands ──────────────────────────────────────────────────────


async def _run_orchestrated(args: argparse.Namespace, settings: Settings) -> None:
    registry = DeviceRegistry(settings)
    async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT, follow_redirects=True) as client:
        orchestrator = UpdateOrchestrator(
            settings,
            registry,
            get_release_source(settings.release_source, client),
            client,
            ConsolePrompter(),
            reporter=TqdmReporter(),
            echo=_print,
        )
        if args.command == "update":
            await orchestrator.update(args.name or settings.os_name, force=args.force, host=args.host)
        elif args.command == "restore":
            await orchestrator.restore(args.name or settings.os_name, host=args.host)
        else:
            await orchestrator.run_default()


def _device_list(registry: DeviceRegistry) -> None:
    current = registry.settings.os_name
    names = registry.names()
    if not names:
        _print("No devices configured")
        return
    for name in names:
        marker = "->" if name == current else "  "
        _print(f"{marker} {name}")


def _device_show(registry: DeviceRegistry, name: str) -> None:
    config = registry.load(name)
    _print(json.dumps(config.to_dict(), indent=2, ensure_ascii=False))


def _open_with_os(path: Path) -> None:
    try:
        if sys.platform == "win32":
            os.startfile(str(path))
        elif sys.platform == "darwin":
            subprocess.run(["open", str(path)], check=True)
        else:
            subprocess.run(["xdg-open", str(path)], check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise FilesystemError(f"Cannot open {path}: {exc}") from exc


def _device(args: argparse.Namespace, registry: DeviceRegistry) -> None:
    action = args.action
    if action == "list":
        _device_list(registry)
        return

    name = args.name or registry.settings.os_name
    if action == "add":
        config = registry.create(name, engine=args.engine)
        _print(f"Added device {name} ({config.name}) at {config.work_dir}")
    elif action == "remove":
        registry.load(name)
        if _yes_no(f"Remove device {name} and all of its backups?", default=False):
            registry.remove(name)
            _print(f"Removed device {name}")
    elif action == "edit":
        registry.load(name)
        _open_with_os(registry.config_path(name))
    elif action == "show":
        _device_show(registry, name)
    elif action == "default":
        link = registry.set_default(name)
        _print(f"{link.name} now points at {name}")


def _clean(args: argparse.Namespace, registry: DeviceRegistry) -> None:
    if args.all and not _yes_no(
        f"Remove {registry.root} including every device config and backup?", default=False
    ):
        return
    path = registry.clean(everything=args.all)
    _print(f"Removed {path}")


# ── Entry point ───────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sbsrf-update",
        description="Update, back up and restore sbsrf input method configurations",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--home",
        metavar="PATH",
        default=None,
        help="Override work directory (default: ~/.sbsrf-update or SBSRF_UPDATE_HOME env var)",
    )
    sub = parser.add_subparsers(dest="command")

    update = sub.add_parser("update", help="Install the latest release on a device")
    update.add_argument("-f", "--force", action="store_true", help="Reinstall even if up to date")
    update.add_argument("-H", "--host", default=None, help="Address of a remote device")
    update.add_argument("name", nargs="?", default=None, help="Device name (default: this OS)")

    restore = sub.add_parser("restore", help="Roll a device back to a backup")
    restore.add_argument("-H", "--host", default=None, help="Address of a remote device")
    restore.add_argument("name", nargs="?", default=None, help="Device name (default: this OS)")

    device = sub.add_parser("device", help="Manage device configurations")
    device.add_argument(
        "action", choices=["list", "add", "remove", "edit", "show", "default"]
    )
    device.add_argument("name", nargs="?", default=None)
    device.add_argument(
        "--engine", default="Hamster", help="Engine for 'device add' (default: Hamster)"
    )

    clean = sub.add_parser("clean", help="Remove the download cache")
    clean.add_argument("--all", action="store_true", help="Remove every device and backup too")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    try:
        settings = Settings.from_env(Path(args.home) if args.home else None)
    except ValueError as exc:
        _print(f"Error: {exc}")
        sys.exit(2)
    registry = DeviceRegistry(settings)

    try:
        if args.command == "device":
            _device(args, registry)
        elif args.command == "clean":
            _clean(args, registry)
        else:
            asyncio.run(_run_orchestrated(args, settings))
    except UpdateError as exc:
        logger.debug("Command failed", exc_info=True)
        _print(f"Error: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        _print("\n\nCancelled.")
        sys.exit(1)


if __name__ == "__main__":
    main()
