import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import config
from .core import MediaLibrary
from .exceptions import LibraryRootUnavailable
from .models import AssetKind, CollisionPolicy
from .reporting import ReportGenerator


def setup_logging(root: Path, verbose: bool):
    """Sets up logging to both console and a file in the library root."""
    log_level = logging.DEBUG if verbose else logging.INFO

    root.mkdir(parents=True, exist_ok=True)
    log_file = root / config.LOG_FILE_NAME

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def default_root() -> Path:
    env = os.environ.get(config.ROOT_ENV_VAR)
    return Path(env) if env else Path.home() / "Documents"


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Media Library: import and catalog local media")

    p.add_argument("--root", type=Path, default=None, help=f"Library root (default: ${config.ROOT_ENV_VAR} or ~/Documents)")
    p.add_argument("--bundle-dir", type=Path, action="append", default=[], help="Read-only directory of bundled scenes")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    kinds = [k.value for k in AssetKind]
    sub = p.add_subparsers(dest="command", required=True)

    ing = sub.add_parser("ingest", help="Copy files into the library")
    ing.add_argument("kind", choices=kinds)
    ing.add_argument("files", type=Path, nargs="+")
    ing.add_argument("--collision", choices=[c.value for c in CollisionPolicy], default=CollisionPolicy.SKIP.value,
                     help="What to do when a file with the same name is already stored")
    ing.add_argument("--report-csv", type=Path, default=None, help="Write per-file outcomes to this CSV")
    ing.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    ls = sub.add_parser("list", help="List stored assets of one kind")
    ls.add_argument("kind", choices=kinds)
    ls.add_argument("--search", default="", help="Only names containing this text")

    sub.add_parser("rescan", help="Rescan every kind and print counts")

    rm = sub.add_parser("delete", help="Remove a stored asset by file name")
    rm.add_argument("kind", choices=kinds)
    rm.add_argument("name")

    return p.parse_args(argv)


async def run(args) -> int:
    library = MediaLibrary(
        args.root,
        bundle_dirs=args.bundle_dir,
        collision=CollisionPolicy(getattr(args, "collision", CollisionPolicy.SKIP.value)),
    )

    if args.command == "ingest":
        kind = AssetKind(args.kind)
        report = await library.ingest(kind, args.files, show_progress=not args.no_progress)
        await library.drain()
        reporter = ReportGenerator()
        logging.info(reporter.summarize(report))
        if args.report_csv:
            reporter.write_csv([report], args.report_csv)
        return 1 if report.failed else 0

    if args.command == "list":
        kind = AssetKind(args.kind)
        await library.rescan(kind, wait_thumbnails=True)
        for record in library.search(kind, args.search):
            print(f"{record.display_name}\t{record.preview}\t{record.storage_path}")
        return 0

    if args.command == "rescan":
        await library.rescan(wait_thumbnails=True)
        for kind in AssetKind:
            logging.info(f"{kind.value}: {len(library.list_assets(kind))} assets ({library.catalog.state(kind).value})")
        return 0

    if args.command == "delete":
        kind = AssetKind(args.kind)
        await library.rescan(kind)
        record = library.find(kind, args.name)
        if record is None:
            logging.error(f"No {kind.value} asset named {args.name}")
            return 1
        return 0 if await library.delete(record) else 1

    return 2


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    args.root = (args.root or default_root()).expanduser().resolve()

    try:
        setup_logging(args.root, args.verbose)
    except OSError as e:
        print(f"Cannot use library root {args.root}: {e}", file=sys.stderr)
        sys.exit(1)

    logging.debug(f"Library root: {args.root}")

    try:
        code = asyncio.run(run(args))
    except LibraryRootUnavailable:
        logging.exception("Library root unavailable.")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
