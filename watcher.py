from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
from logging.handlers import RotatingFileHandler

from filepipe import ContentChangedFilter, RenameProcessor, compile, content_hash, watch


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def setup_logger(logfile: str) -> logging.Logger:
    logger = logging.getLogger("filepipe")
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    # Rotating file handler to avoid unbounded log growth
    handler = RotatingFileHandler(logfile, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    return logger


DEFAULT_ENTRY = "src"
DEFAULT_OUT_DIR = "dist"
DEFAULT_LOG_DIR = "logs"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Copy a file tree into an output directory and report a manifest")
    parser.add_argument(
        "--path", "-p",
        default=DEFAULT_ENTRY,
        help=f"Entry file or directory (default {DEFAULT_ENTRY})"
    )
    parser.add_argument(
        "--out", "-o",
        default=DEFAULT_OUT_DIR,
        help=f"Directory to write outputs to (default {DEFAULT_OUT_DIR})"
    )
    parser.add_argument(
        "--logdir", "-l",
        default=DEFAULT_LOG_DIR,
        help=f"Directory to write logs to (default {DEFAULT_LOG_DIR})"
    )
    parser.add_argument("--hash", type=int, default=8, help="Length of the content hash added to output names, 0 keeps names")
    parser.add_argument("--changed-only", action="store_true", help="Only write files whose content changed")
    parser.add_argument("--no-recursive", dest="recursive", action="store_false", help="Do not descend into subdirectories")
    parser.add_argument("--watch", "-w", action="store_true", help="Keep running and update outputs as files change")
    parser.add_argument(
        "--poll",
        type=float,
        nargs="?",
        const=True,
        default=None,
        help="Poll for changes instead of native notifications, optionally every SECONDS",
    )
    return parser.parse_args(argv)


def build_processor(args: argparse.Namespace) -> RenameProcessor:
    return RenameProcessor(
        out_dir=os.path.abspath(args.out),
        rename=content_hash(args.hash) if args.hash > 0 else None,
        recursive=args.recursive,
        include=ContentChangedFilter() if args.changed_only else None,
    )


async def run(args: argparse.Namespace, logger: logging.Logger) -> None:
    entry = os.path.abspath(args.path)
    processors = [build_processor(args)]

    if not args.watch:
        manifest = await compile(entry, processors)
        print(json.dumps(manifest, indent=2, sort_keys=True))
        return

    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, cancel.set)
        except (NotImplementedError, RuntimeError):
            pass

    async for manifest in watch(entry, processors, cancel=cancel, poll=args.poll):
        logger.info("Manifest updated: %d file(s)", len(manifest))
        print(json.dumps(manifest, indent=2, sort_keys=True), flush=True)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    log_dir = os.path.abspath(args.logdir)
    ensure_dir(log_dir)
    ensure_dir(os.path.abspath(args.out))

    logfile = os.path.join(log_dir, "filepipe.log")
    logger = setup_logger(logfile)

    logger.info("Entry: %s", os.path.abspath(args.path))
    logger.info("Output dir: %s", os.path.abspath(args.out))
    logger.info("Logging to: %s", logfile)

    try:
        asyncio.run(run(args, logger))
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
    logger.info("Stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
