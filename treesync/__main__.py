"""CLI entry point for treesync."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config import Config, load_config
from .errors import TreeSyncError
from .replica import MemoryMirror, ReplicaSynchronizer, SqliteMirror
from .rest import RestApi
from .store import (
    DataClear,
    DataInvalid,
    DataValue,
    Store,
    StoreDelete,
    StoreInvalid,
    StorePatch,
    StorePut,
    StoreReset,
    json_codec,
)


# HTTP stack loggers, kept at WARNING unless debugging.
HTTP_LOGGERS = ("httpx", "httpcore")

LOG_LEVELS = {
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


class JSONLineFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def resolve_log_level(verbose: bool = False, log_level: str | None = None) -> int:
    """Pick the log level from --log-level, falling back to -v."""
    if log_level:
        return LOG_LEVELS[log_level]
    return logging.DEBUG if verbose else logging.WARNING


def setup_logging(level: int = logging.WARNING, json_output: bool = False) -> None:
    """Send treesync logs to stderr, as text or JSON lines."""
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONLineFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))

    logging.basicConfig(level=level, handlers=[handler])

    if level > logging.DEBUG:
        for name in HTTP_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _split_path(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def _make_api(config: Config) -> RestApi:
    if not config.remote.database_url:
        raise SystemExit(
            "No database URL configured (set remote.database_url or TREESYNC_DATABASE_URL)"
        )
    return RestApi(
        config.remote.database_url,
        auth=config.remote.auth_token,
        timeout=config.remote.timeout,
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _parse_json_arg(raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid JSON value: {e}")


async def cmd_get(args: argparse.Namespace) -> int:
    """Read a value."""
    config = load_config(args.config)
    async with _make_api(config) as api:
        response = await api.get(args.path, shallow=args.shallow, etag=args.etag)
    if args.etag:
        print(f"ETag: {response.etag}", file=sys.stderr)
    _print_json(response.data)
    return 0


async def cmd_put(args: argparse.Namespace) -> int:
    """Write a value."""
    config = load_config(args.config)
    async with _make_api(config) as api:
        response = await api.put(
            _parse_json_arg(args.value), args.path, if_match=args.if_match
        )
    _print_json(response.data)
    return 0


async def cmd_patch(args: argparse.Namespace) -> int:
    """Update fields of a value."""
    config = load_config(args.config)
    fields = _parse_json_arg(args.fields)
    if not isinstance(fields, dict):
        print("Patch fields must be a JSON object", file=sys.stderr)
        return 1
    async with _make_api(config) as api:
        response = await api.patch(fields, args.path)
    _print_json(response.data)
    return 0


async def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a value."""
    config = load_config(args.config)
    async with _make_api(config) as api:
        await api.delete(args.path, silent=True, if_match=args.if_match)
    return 0


async def cmd_keys(args: argparse.Namespace) -> int:
    """List the child keys of a path."""
    config = load_config(args.config)
    async with _make_api(config) as api:
        store = Store(api, _split_path(args.path), json_codec())
        for key in await store.keys():
            print(key)
    return 0


def _describe(event) -> str:
    match event:
        case StoreReset(data=data):
            return f"reset {json.dumps(data, sort_keys=True)}"
        case StorePut(key=key, value=value):
            return f"put {key} {json.dumps(value, sort_keys=True)}"
        case StoreDelete(key=key):
            return f"delete {key}"
        case StorePatch(key=key, patch=patch):
            return f"patch {key} {json.dumps(patch.data, sort_keys=True)}"
        case StoreInvalid(reason=reason) | DataInvalid(reason=reason):
            return f"invalid {reason}"
        case DataClear():
            return "clear"
        case DataValue(value=value):
            return f"value {json.dumps(value, sort_keys=True)}"
    return repr(event)


async def cmd_watch(args: argparse.Namespace) -> int:
    """Print the translated change events of a path."""
    config = load_config(args.config)
    async with _make_api(config) as api:
        store = Store(api, _split_path(args.path), json_codec())
        if args.key:
            events = store.stream_entry(args.key)
        elif args.keys_only:
            events = store.stream_keys()
        else:
            events = store.stream_all()

        try:
            async for event in events:
                print(_describe(event), flush=True)
        except TreeSyncError as e:
            print(f"Stream ended: {e}", file=sys.stderr)
            return 1
    return 0


async def cmd_mirror(args: argparse.Namespace) -> int:
    """Keep a local mirror of a path synchronized."""
    config = load_config(args.config)
    name = args.name or args.path.strip("/") or "root"
    codec = json_codec()

    if config.mirror.backend == "memory":
        mirror = MemoryMirror()
    else:
        mirror = SqliteMirror(config.mirror.db_path, name, codec)

    async with _make_api(config) as api:
        store = Store(api, _split_path(args.path), codec)
        replica = ReplicaSynchronizer(
            store,
            mirror,
            reload_strategy=config.mirror.reload_strategy,
            await_mirror_writes=config.mirror.await_writes,
        )

        try:
            await replica.reload()
            print(f"Mirrored {len(replica)} entries from '{store.path}' into '{name}'")

            if args.once:
                return 0

            if config.stream.auto_renew:
                subscription = await replica.stream_renewed(
                    clear_cache=False,
                    renew_delay=config.stream.renew_delay_seconds,
                )
            else:
                subscription = await replica.stream(clear_cache=False)

            try:
                await subscription.wait()
            finally:
                await subscription.cancel()

            if subscription.error is not None:
                print(f"Stream ended: {subscription.error}", file=sys.stderr)
                return 1
        finally:
            await replica.close()

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="treesync",
        description="Client for a remote tree-structured key-value store",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: none, environment only)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # get
    get_parser = subparsers.add_parser("get", help="Read a value")
    get_parser.add_argument("path", help="Path below the database root")
    get_parser.add_argument("--shallow", action="store_true", help="Only read child keys")
    get_parser.add_argument("--etag", action="store_true", help="Print the value's ETag")
    get_parser.set_defaults(func=cmd_get)

    # put
    put_parser = subparsers.add_parser("put", help="Write a JSON value")
    put_parser.add_argument("path", help="Path below the database root")
    put_parser.add_argument("value", help="JSON value")
    put_parser.add_argument("--if-match", default=None, help="Only write if the ETag matches")
    put_parser.set_defaults(func=cmd_put)

    # patch
    patch_parser = subparsers.add_parser("patch", help="Update fields of a value")
    patch_parser.add_argument("path", help="Path below the database root")
    patch_parser.add_argument("fields", help="JSON object of fields to update")
    patch_parser.set_defaults(func=cmd_patch)

    # delete
    delete_parser = subparsers.add_parser("delete", help="Delete a value")
    delete_parser.add_argument("path", help="Path below the database root")
    delete_parser.add_argument("--if-match", default=None, help="Only delete if the ETag matches")
    delete_parser.set_defaults(func=cmd_delete)

    # keys
    keys_parser = subparsers.add_parser("keys", help="List child keys")
    keys_parser.add_argument("path", help="Path below the database root")
    keys_parser.set_defaults(func=cmd_keys)

    # watch
    watch_parser = subparsers.add_parser("watch", help="Print change events of a path")
    watch_parser.add_argument("path", help="Path below the database root")
    watch_group = watch_parser.add_mutually_exclusive_group()
    watch_group.add_argument("--key", default=None, help="Watch a single entry")
    watch_group.add_argument("--keys-only", action="store_true", help="Watch the key set only")
    watch_parser.set_defaults(func=cmd_watch)

    # mirror
    mirror_parser = subparsers.add_parser("mirror", help="Mirror a path locally")
    mirror_parser.add_argument("path", help="Path below the database root")
    mirror_parser.add_argument("--name", default=None, help="Mirror name (default: the path)")
    mirror_parser.add_argument(
        "--once",
        action="store_true",
        help="Reload once and exit instead of streaming changes",
    )
    mirror_parser.set_defaults(func=cmd_mirror)

    args = parser.parse_args()

    setup_logging(resolve_log_level(args.verbose, args.log_level), args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0
    except TreeSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
