#!/usr/bin/env python3
"""Main entry point for BP Buddy.

Command line client for the blood pressure log plus the backend server.

Usage:
    # Create an account / sign in (session is stored locally)
    python -m src.main register --email me@example.com --name Me
    python -m src.main login --email me@example.com --remember

    # Log and inspect readings
    python -m src.main add 128 82 --pulse 70 --note "after walk" --tag morning
    python -m src.main list --limit 10
    python -m src.main streak
    python -m src.main delete <reading-id>

    # Run the backend
    python -m src.main serve --port 3001
"""

from __future__ import annotations

import argparse
import copy
import getpass
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

import yaml

from src.errors import BPBuddyError
from src.models import Reading, parse_timestamp
from src.mqtt_publisher import MQTTPublisher, create_mqtt_publisher
from src.server import create_app
from src.session import AppContext

logger = logging.getLogger(__name__)

API_URL_ENV = "BP_BUDDY_API_URL"

# Default configuration
DEFAULT_CONFIG = {
    "api": {
        "base_url": "http://localhost:3001",
        "timeout": None,
    },
    "storage": {
        "database_path": "./data/bp_buddy.db",
    },
    "mqtt": {
        "enabled": False,
        "host": "localhost",
        "port": 1883,
        "username": None,
        "password": None,
        "base_topic": "bp_buddy/readings",
    },
    "server": {
        "host": "127.0.0.1",
        "port": 3001,
        "secret_key": None,
        "token_max_age_days": 7,
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


def load_config(config_path: str | None = None) -> dict:
    """Load configuration from file or use defaults.

    Args:
        config_path: Path to YAML config file

    Returns:
        Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
            if user_config and isinstance(user_config, dict):
                # Deep merge user config into defaults
                for section, values in user_config.items():
                    section_config = config.get(section)
                    if (
                        section_config is not None
                        and isinstance(section_config, dict)
                        and isinstance(values, dict)
                    ):
                        section_config.update(values)
                    else:
                        config[section] = values

    env_url = os.environ.get(API_URL_ENV)
    if env_url:
        config["api"]["base_url"] = env_url

    return config


def setup_logging(config: dict) -> None:
    """Setup logging based on configuration.

    Args:
        config: Configuration dictionary
    """
    log_config = config.get("logging", {})
    level = getattr(logging, log_config.get("level", "INFO").upper())
    format_str = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=format_str, handlers=handlers)


def print_reading(reading: Reading, index: int) -> None:
    """Print a single reading in formatted way."""
    pulse = f"{reading.pulse:3} bpm" if reading.pulse is not None else "  - bpm"
    tags = f" [{', '.join(sorted(reading.tags))}]" if reading.tags else ""
    local = "" if reading.is_confirmed else " (local only)"
    print(
        f"  {index:3}. {reading.timestamp:%Y-%m-%d %H:%M} | "
        f"{reading.systolic:3}/{reading.diastolic:3} mmHg | {pulse} | "
        f"{reading.category}{tags}{local}  id={reading.id}"
    )


def build_context(config: dict) -> tuple[AppContext, MQTTPublisher | None]:
    """Create the app context, restore the stored session and attach MQTT."""
    context = AppContext.from_config(config)

    publisher = None
    mqtt_config = config.get("mqtt", {})
    if mqtt_config.get("enabled", False):
        try:
            publisher = create_mqtt_publisher(
                host=mqtt_config.get("host", "localhost"),
                port=mqtt_config.get("port", 1883),
                username=mqtt_config.get("username"),
                password=mqtt_config.get("password"),
                base_topic=mqtt_config.get("base_topic", "bp_buddy/readings"),
            )
        except ConnectionError as e:
            logger.warning(f"MQTT unavailable, continuing without publishing: {e}")
        else:
            publisher.attach(context)
            publisher.publish_status("online", "Client started")

    context.session.restore()
    return context, publisher


def _require_login(context: AppContext) -> bool:
    if not context.session.is_authenticated:
        print("Not logged in. Run 'login' or 'register' first.")
        return False
    return True


def cmd_register(args: argparse.Namespace, context: AppContext) -> int:
    password = args.password or getpass.getpass("Password: ")
    state = context.session.register(args.email, password, args.name)
    print(f"Registered and logged in as {state.user.email}")
    return 0


def cmd_login(args: argparse.Namespace, context: AppContext) -> int:
    email = args.email or context.session.remembered_email()
    if not email:
        print("Email is required (use --email)")
        return 1
    password = args.password or getpass.getpass("Password: ")
    state = context.session.login(email, password, remember_me=args.remember)
    print(f"Logged in as {state.user.email} ({len(context.cache.list_readings())} readings)")
    return 0


def cmd_logout(_args: argparse.Namespace, context: AppContext) -> int:
    context.session.logout()
    print("Logged out")
    return 0


def cmd_status(args: argparse.Namespace, context: AppContext) -> int:
    state = context.session.state
    if not state.is_authenticated:
        print("Not logged in")
        return 0

    print(f"Logged in as {state.user.name} <{state.user.email}>")
    if args.verify:
        context.session.verify()
        print("Token verified with server")
    return 0


def cmd_add(args: argparse.Namespace, context: AppContext) -> int:
    if not _require_login(context):
        return 1

    draft = Reading(
        systolic=args.systolic,
        diastolic=args.diastolic,
        pulse=args.pulse,
        note=args.note or "",
        tags=set(args.tag or []),
        timestamp=parse_timestamp(args.at) if args.at else datetime.now(),
    )
    reading = context.cache.add_reading(draft)
    status = "saved" if reading.is_confirmed else "kept locally (server unavailable)"
    print(f"Reading {status}: {reading}")
    return 0


def cmd_list(args: argparse.Namespace, context: AppContext) -> int:
    if not _require_login(context):
        return 1

    readings = context.cache.recent(args.limit) if args.limit else context.cache.list_readings()
    if not readings:
        print("No readings yet")
        return 0

    for i, reading in enumerate(readings, 1):
        print_reading(reading, i)
    return 0


def cmd_delete(args: argparse.Namespace, context: AppContext) -> int:
    if not _require_login(context):
        return 1

    context.cache.delete_reading(args.reading_id)
    print(f"Deleted reading {args.reading_id}")
    return 0


def cmd_streak(_args: argparse.Namespace, context: AppContext) -> int:
    if not _require_login(context):
        return 1

    streak = context.cache.streak()
    last = streak.last_reading_date.isoformat() if streak.last_reading_date else "never"
    print(f"Current streak: {streak.current_streak} day(s)")
    print(f"Best streak:    {streak.best_streak} day(s)")
    print(f"Last reading:   {last}")
    return 0


def cmd_stats(_args: argparse.Namespace, context: AppContext) -> int:
    if not _require_login(context):
        return 1

    stats = context.cache.statistics()
    print(f"\n{'=' * 60}")
    print("Reading Statistics")
    print(f"{'=' * 60}")
    print(f"Total readings: {stats['total_readings']}")
    print(f"First reading:  {stats['first_reading'] or '-'}")
    print(f"Last reading:   {stats['last_reading'] or '-'}")
    print(f"Avg systolic:   {stats['avg_systolic'] or '-'}")
    print(f"Avg diastolic:  {stats['avg_diastolic'] or '-'}")
    print(f"Avg pulse:      {stats['avg_pulse'] or '-'}")
    print(f"{'=' * 60}\n")
    return 0


def cmd_serve(args: argparse.Namespace, config: dict) -> int:
    server_config = config.get("server", {})
    host = args.host or server_config.get("host", "127.0.0.1")
    port = args.port or server_config.get("port", 3001)

    app = create_app(server_config)
    logger.info(f"BP Buddy backend listening on http://{host}:{port}")
    app.run(host=host, port=port, debug=args.debug)
    return 0


CLIENT_COMMANDS = {
    "register": cmd_register,
    "login": cmd_login,
    "logout": cmd_logout,
    "status": cmd_status,
    "add": cmd_add,
    "list": cmd_list,
    "streak": cmd_streak,
    "stats": cmd_stats,
    "delete": cmd_delete,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="BP Buddy - blood pressure log client and backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config/config.yaml",
        help="Path to config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    register_parser = subparsers.add_parser("register", help="Create an account")
    register_parser.add_argument("--email", "-e", required=True)
    register_parser.add_argument("--name", required=True)
    register_parser.add_argument("--password", "-p", help="Prompted if omitted")

    login_parser = subparsers.add_parser("login", help="Sign in")
    login_parser.add_argument("--email", "-e", help="Defaults to the remembered email")
    login_parser.add_argument("--password", "-p", help="Prompted if omitted")
    login_parser.add_argument("--remember", action="store_true", help="Remember the email")

    subparsers.add_parser("logout", help="Sign out and clear local data")

    status_parser = subparsers.add_parser("status", help="Show session state")
    status_parser.add_argument(
        "--verify",
        action="store_true",
        help="Also check the stored token with the server",
    )

    add_parser = subparsers.add_parser("add", help="Log a reading")
    add_parser.add_argument("systolic", type=int)
    add_parser.add_argument("diastolic", type=int)
    add_parser.add_argument("--pulse", type=int)
    add_parser.add_argument("--note", "-n")
    add_parser.add_argument("--tag", "-t", action="append", help="Repeatable")
    add_parser.add_argument("--at", help="ISO timestamp (default: now)")

    list_parser = subparsers.add_parser("list", help="List readings, newest first")
    list_parser.add_argument("--limit", "-l", type=int, help="Show only the last N")

    delete_parser = subparsers.add_parser("delete", help="Delete a reading by id")
    delete_parser.add_argument("reading_id", help="Id shown by 'list'")

    subparsers.add_parser("streak", help="Show the daily logging streak")
    subparsers.add_parser("stats", help="Show reading statistics")

    serve_parser = subparsers.add_parser("serve", help="Run the backend server")
    serve_parser.add_argument("--host", help="Bind address (overrides config)")
    serve_parser.add_argument("--port", "-P", type=int, help="Port (overrides config)")

    return parser


def run_command(args: argparse.Namespace, config: dict) -> int:
    """Dispatch a parsed command.

    Returns:
        Exit code
    """
    if args.command == "serve":
        return cmd_serve(args, config)

    handler = CLIENT_COMMANDS[args.command]
    context, publisher = build_context(config)
    try:
        return handler(args, context)
    finally:
        if publisher:
            publisher.publish_status("offline", "Client stopped")
            publisher.disconnect()


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load config
    config = load_config(args.config)

    # Setup logging
    if args.debug:
        config["logging"]["level"] = "DEBUG"
    setup_logging(config)

    try:
        sys.exit(run_command(args, config))

    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(130)
    except BPBuddyError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        if args.debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
