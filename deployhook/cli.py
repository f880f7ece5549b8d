"""
deployhook CLI.

Usage:
    deployhook serve                   # Run hook + control servers (foreground)
    deployhook check                   # Validate the routing tables and print them
    deployhook deploy APP [--json]     # Deploy one app now, using the deploys table
    deployhook update                  # Ask a running server to reload its tables
    deployhook deploy-all              # Ask a running server to redeploy every app
    deployhook status                  # Show a running server's config generation
    deployhook config show             # Show deployhook.yaml
    deployhook config set KEY VALUE    # Set a value in deployhook.yaml
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

import yaml

from deployhook.config import (
    CONFIG_FILENAME,
    CONFIG_KEYS,
    Settings,
    _load_yaml_config,
    get_settings,
    save_yaml_config,
)
from deployhook.core.executor import DeployExecutor
from deployhook.core.models import DeployStatus
from deployhook.core.tables import LoadError, load_snapshot


# --- Helpers ---


def _control_url(settings: Settings) -> str:
    host = settings.control_host
    if host in ("0.0.0.0", "::"):
        host = "127.0.0.1"
    return f"http://{host}:{settings.control_port}"


def _api_get(url: str) -> dict:
    """Make a GET request to the control server."""
    req = Request(url)
    req.add_header("Accept", "application/json")
    with urlopen(req, timeout=5) as resp:
        return json.loads(resp.read())


def _api_post(url: str, data: Optional[dict] = None) -> dict:
    """Make a POST request to the control server."""
    body = json.dumps(data or {}).encode()
    req = Request(url, data=body, method="POST")
    req.add_header("Content-Type", "application/json")
    req.add_header("Accept", "application/json")
    with urlopen(req, timeout=5) as resp:
        return json.loads(resp.read())


def _load(settings: Settings):
    return load_snapshot(
        settings.data_dir,
        hooks_file=settings.hooks_file,
        links_file=settings.links_file,
        deploys_file=settings.deploys_file,
    )


# --- Commands ---


def cmd_serve(args: argparse.Namespace) -> None:
    from deployhook.server import main as serve_main

    serve_main(get_settings())


def cmd_check(args: argparse.Namespace) -> None:
    """Load the routing tables and print what would be served."""
    settings = get_settings()
    try:
        snapshot = _load(settings)
    except LoadError as e:
        print(f"FAILED: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Data dir: {settings.data_dir}")
    for name, path in settings.table_paths.items():
        print(f"  {name:<8} {path}")
    print("=" * 40)
    print(f"\nHooks ({len(snapshot.hooks)}):")
    for hook in snapshot.hooks:
        print(f"  {hook}")

    print(f"\nLinks ({len(snapshot.links)} hooks):")
    for hook, apps in snapshot.links.items():
        print(f"  {hook} -> {', '.join(apps)}")

    print(f"\nDeploys ({len(snapshot.deploys)}):")
    for app, repository in snapshot.deploys.items():
        print(f"  {app}: {repository}")

    unlinked = snapshot.unlinked_apps()
    if unlinked:
        print(f"\nWARNING: linked apps without a repository: {', '.join(unlinked)}")


def cmd_deploy(args: argparse.Namespace) -> None:
    """Run one deploy in the foreground and report the outcome."""
    settings = get_settings()
    try:
        snapshot = _load(settings)
    except LoadError as e:
        print(f"FAILED: {e}", file=sys.stderr)
        sys.exit(1)

    repository = snapshot.deploys.get(args.app)
    executor = DeployExecutor.from_settings(settings)
    result = asyncio.run(executor.deploy(args.app, repository))

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        if result.status == DeployStatus.FAILED:
            sys.exit(1)
        return

    if result.stdout:
        print(result.stdout, end="" if result.stdout.endswith("\n") else "\n")
    if result.stderr:
        print(result.stderr, end="" if result.stderr.endswith("\n") else "\n", file=sys.stderr)
    print(f"{result.app}: {result.status.value}" + (f" ({result.error})" if result.error else ""))
    if result.status == DeployStatus.FAILED:
        sys.exit(1)


def cmd_remote(args: argparse.Namespace) -> None:
    """Trigger update / deploy-all on a running control server."""
    url = f"{_control_url(get_settings())}/{args.command}"
    try:
        result = _api_post(url)
    except URLError as e:
        print(f"Control server not reachable at {url}: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"{args.command}: {result.get('status', 'unknown')}")


def cmd_status(args: argparse.Namespace) -> None:
    url = f"{_control_url(get_settings())}/status"
    try:
        result = _api_get(url)
    except URLError as e:
        print(f"Control server not reachable at {url}: {e}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(result, indent=2))


def cmd_config(args: argparse.Namespace) -> None:
    """Config management: show, set."""
    action = getattr(args, "action", None)
    data_dir = get_settings().data_dir

    if action == "show":
        _config_show(data_dir)
    elif action == "set":
        _config_set(data_dir, args.key, args.value)
    else:
        print("Usage: deployhook config {show|set}")


def _config_show(data_dir: Path) -> None:
    config = _load_yaml_config(data_dir)
    print(f"\nConfig: {data_dir / CONFIG_FILENAME}")
    print("-" * 40)
    if not config:
        print("  (empty, using environment and defaults)")
        return
    for key, value in config.items():
        print(f"  {key}: {value}")


def _config_set(data_dir: Path, key: str, value: str) -> None:
    if key not in CONFIG_KEYS:
        print(f"Unknown config key: {key}")
        print(f"Valid keys: {', '.join(sorted(CONFIG_KEYS))}")
        sys.exit(1)

    config = _load_yaml_config(data_dir)
    # Let YAML type the value (ints, bools)
    config[key] = yaml.safe_load(value) if value else value
    path = save_yaml_config(data_dir, config)
    print(f"Set {key} = {config[key]} in {path}")


# --- CLI entry point ---


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="deployhook",
        description="deployhook: webhook-triggered app deploys",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the hook and control servers")
    subparsers.add_parser("check", help="Validate and print the routing tables")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy one app now")
    deploy_parser.add_argument("app", help="App identifier from the deploys table")
    deploy_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    subparsers.add_parser("update", help="Reload tables on a running server")
    subparsers.add_parser("deploy-all", help="Redeploy every app on a running server")
    subparsers.add_parser("status", help="Show running server status")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_sub = config_parser.add_subparsers(dest="action")
    config_sub.add_parser("show", help=f"Show {CONFIG_FILENAME}")
    config_set_parser = config_sub.add_parser("set", help="Set a config value")
    config_set_parser.add_argument("key", help="Config key")
    config_set_parser.add_argument("value", help="Config value")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "check":
        cmd_check(args)
    elif args.command == "deploy":
        cmd_deploy(args)
    elif args.command in ("update", "deploy-all"):
        cmd_remote(args)
    elif args.command == "status":
        cmd_status(args)
    elif args.command == "config":
        cmd_config(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
