"""CLI entry point for the historic temperature archive."""

import argparse
import asyncio
import logging
from pathlib import Path

from haakweer.config.loader import (
    get_config_value,
    load_config,
    save_config,
    set_config_value,
)
from haakweer.config.schema import AppConfig
from haakweer.daemon import SyncDaemon, daemon_status, stop_daemon
from haakweer.ingest.open_meteo_client import FetchError, OpenMeteoClient
from haakweer.models.archive import City
from haakweer.pipeline.sync_pipeline import SyncPipeline
from haakweer.reporting.formatters import (
    format_city_line,
    format_days,
    format_report_json,
    format_status,
)
from haakweer.storage import archive_repo
from haakweer.storage.json_store import load_archive, save_archive

DEFAULT_CONFIG = "configs/default.yaml"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="haakweer",
        description="Per-city archive of historic daily temperatures",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG, help="Config YAML path"
    )
    parser.add_argument("--data", default=None, help="Archive JSON path")

    sub = parser.add_subparsers(dest="command")

    # cities
    add_p = sub.add_parser("add", help="Look up a place and add it as a city")
    add_p.add_argument("name", nargs="+", help="Place name, e.g. Berlin")
    sub.add_parser("cities", help="List cities")
    select_p = sub.add_parser("select", help="Select a city")
    select_p.add_argument("city_id")
    delete_p = sub.add_parser("delete", help="Delete a city (default: selected)")
    delete_p.add_argument("city_id", nargs="?")

    # days
    show_p = sub.add_parser("show", help="Show stored days, newest first")
    show_p.add_argument("--city", help="City id (default: selected)")
    toggle_p = sub.add_parser("toggle", help="Toggle the checked flag of a day")
    toggle_p.add_argument("date", help="YYYY-MM-DD")
    toggle_p.add_argument("--city", help="City id (default: selected)")

    # sync
    sync_p = sub.add_parser("sync", help="Sync one city now")
    sync_p.add_argument("--city", help="City id (default: selected)")
    sync_p.add_argument("--start-date", help="First date to archive (YYYY-MM-DD)")
    sync_p.add_argument("--json", action="store_true", help="Print a JSON report")

    # daemon
    daemon_p = sub.add_parser("daemon", help="Sync the selected city periodically")
    daemon_p.add_argument("--interval", type=int, help="Seconds between syncs")
    daemon_p.add_argument("--stop", action="store_true", help="Stop running daemon")
    daemon_p.add_argument("--status", action="store_true", help="Show daemon status")

    # config show / config set
    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config")
    set_p = config_sub.add_parser("set", help="Set a config value")
    set_p.add_argument("keyvalue", help="key=value to set")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    archive_path = Path(args.data or config.storage.archive_path)

    if args.command == "add":
        return _cmd_add(config, archive_path, " ".join(args.name))
    elif args.command == "cities":
        return _cmd_cities(archive_path)
    elif args.command == "select":
        return _cmd_select(archive_path, args.city_id)
    elif args.command == "delete":
        return _cmd_delete(archive_path, args.city_id)
    elif args.command == "show":
        return _cmd_show(archive_path, args.city)
    elif args.command == "toggle":
        return _cmd_toggle(archive_path, args.city, args.date)
    elif args.command == "sync":
        return _cmd_sync(config, archive_path, args)
    elif args.command == "daemon":
        return _cmd_daemon(config, archive_path, args)
    elif args.command == "config":
        return _cmd_config(config, args)
    else:
        parser.print_help()
        return 1


def _cmd_add(config: AppConfig, archive_path: Path, name: str) -> int:
    name = name.strip()
    if not name:
        print("Error: empty city name")
        return 1

    client = OpenMeteoClient.from_config(config.api)
    try:
        result = asyncio.run(client.geocode_top_result(name))
    except FetchError as e:
        print(f"Error: {e}")
        return 1

    if result is None:
        print(f'No matches for "{name}"')
        return 1

    city = City(
        id=str(result.id),
        name=result.display_name,
        latitude=result.latitude,
        longitude=result.longitude,
        timezone=result.timezone,
    )
    state, added = archive_repo.add_city(load_archive(archive_path), city)
    save_archive(state, archive_path)

    if added:
        print(f"Added city: {city.name} [{city.id}]")
    else:
        print(f"City already added: {city.name} [{city.id}]")
    return 0


def _cmd_cities(archive_path: Path) -> int:
    state = archive_repo.ensure_valid_selection(load_archive(archive_path))
    if not state.cities:
        print("No cities yet")
        return 0
    for city in state.cities:
        print(format_city_line(city, selected=city.id == state.selected_city_id))
    return 0


def _cmd_select(archive_path: Path, city_id: str) -> int:
    try:
        state = archive_repo.select_city(load_archive(archive_path), city_id)
    except KeyError as e:
        print(f"Error: {e.args[0]}")
        return 1
    save_archive(state, archive_path)
    print(f"Selected {city_id}")
    return 0


def _cmd_delete(archive_path: Path, city_id: str | None) -> int:
    state = archive_repo.ensure_valid_selection(load_archive(archive_path))
    city_id = city_id or state.selected_city_id
    if city_id is None:
        print("Error: no city selected")
        return 1
    try:
        state = archive_repo.delete_city(state, city_id)
    except KeyError as e:
        print(f"Error: {e.args[0]}")
        return 1
    save_archive(state, archive_path)
    print("City deleted")
    return 0


def _resolve_city(archive_path: Path, city_id: str | None) -> City | None:
    state = archive_repo.ensure_valid_selection(load_archive(archive_path))
    if city_id is not None:
        return archive_repo.find_city(state, city_id)
    return archive_repo.selected_city(state)


def _cmd_show(archive_path: Path, city_id: str | None) -> int:
    city = _resolve_city(archive_path, city_id)
    if city is None:
        print("Select a city to see historic data")
        return 1
    print(f"Historic weather: {city.name}")
    print(format_days(city))
    return 0


def _cmd_toggle(archive_path: Path, city_id: str | None, date: str) -> int:
    city = _resolve_city(archive_path, city_id)
    if city is None:
        print("Error: no such city")
        return 1
    try:
        state, day = archive_repo.toggle_checked(load_archive(archive_path), city.id, date)
    except KeyError as e:
        print(f"Error: {e.args[0]}")
        return 1
    save_archive(state, archive_path)
    print(f"Toggled checked for {day.date} (now {day.checked.value})")
    return 0


def _cmd_sync(config: AppConfig, archive_path: Path, args) -> int:
    if args.start_date:
        try:
            config = set_config_value(config, "sync.start_date", args.start_date)
        except ValueError as e:
            print(f"Error: {e}")
            return 1
    pipeline = SyncPipeline(config, archive_path)
    report = asyncio.run(pipeline.run(city_id=args.city))
    if args.json:
        print(format_report_json(report))
    else:
        print(format_status(report))
    return 0 if not report.errors else 1


def _cmd_daemon(config: AppConfig, archive_path: Path, args) -> int:
    if args.stop:
        return stop_daemon()
    if args.status:
        return daemon_status()
    daemon = SyncDaemon(config, archive_path, interval=args.interval)
    daemon.start()
    return 0


def _cmd_config(config: AppConfig, args) -> int:
    if args.config_command == "show":
        print(config.model_dump_json(indent=2))
        return 0
    elif args.config_command == "set":
        kv = args.keyvalue
        if "=" not in kv:
            print("Error: use key=value format")
            return 1
        key, value = kv.split("=", 1)
        try:
            new_config = set_config_value(config, key.strip(), value.strip())
        except (KeyError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        save_config(new_config, args.config)
        print(f"Set {key.strip()} = {get_config_value(new_config, key.strip())}")
        return 0
    else:
        print("Use: config show | config set key=value")
        return 1
