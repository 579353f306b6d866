"""
kvctl - command line tool for persistent kvfacade stores.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from kvfacade import Store, StoreError, StoreOptions

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kvctl", description="Inspect and manage persistent kvfacade stores."
    )
    parser.add_argument(
        "--db-dir",
        default=os.environ.get("KVFACADE_DB_DIR"),
        help="Parent directory of store directories (default: $KVFACADE_DB_DIR or cwd)",
    )
    parser.add_argument(
        "--no-sync", action="store_true", help="Do not fsync writes before acknowledging"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    status = commands.add_parser("status", help="Print engine statistics")
    status.add_argument("name")
    status.add_argument("--property", default=None, help="e.g. lsm.num-sstables")

    export = commands.add_parser("export", help="Write entries to stdout as JSON lines")
    export.add_argument("name")

    load = commands.add_parser("import", help="Load a JSON object of entries as one batch")
    load.add_argument("name")
    load.add_argument("file", help="JSON file, or - for stdin")

    checkpoint = commands.add_parser("checkpoint", help="Archive a store")
    checkpoint.add_argument("name")
    checkpoint.add_argument("destination")

    restore = commands.add_parser("restore", help="Replace a store with an archive")
    restore.add_argument("name")
    restore.add_argument("source")
    restore.add_argument("--from", dest="source_name", default=None,
                         help="Name of the store the archive was taken from")
    return parser


def _options(args: argparse.Namespace) -> StoreOptions:
    return StoreOptions(db_dir=args.db_dir, sync=not args.no_sync)


def _read_entries(path: str) -> list[tuple[str, object]]:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(path) as f:
            data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("Import file must hold a JSON object")
    return list(data.items())


async def run(args: argparse.Namespace) -> int:
    options = _options(args)

    if args.command == "restore":
        store = await Store.from_checkpoint(
            args.name, args.source, options, source_name=args.source_name
        )
        await store.stop()
        return 0

    async with await Store.start(args.name, options) as store:
        if args.command == "status":
            print(await store.status(args.property))
        elif args.command == "export":
            for key, value in await store.to_list():
                print(json.dumps({"key": key, "value": value}, default=repr))
        elif args.command == "import":
            entries = _read_entries(args.file)
            await store.from_list(entries)
            logger.info("Imported %d entries into %s", len(entries), args.name)
        elif args.command == "checkpoint":
            print(await store.checkpoint(args.destination))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except (StoreError, OSError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
