#!/usr/bin/env python3
"""
remove-letterbox – strip uniform dark borders from images.

Scans a single image or a directory of images, detects rows and columns at
the edges whose pixels are all darker than --threshold, and crops them away.
JPEG, PNG and WebP files are rewritten in place. JPEG XL files are written as
a sibling PNG and the .jxl original is removed once the PNG is on disk.

Use --help for full options and examples.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from common import (
    DEFAULT_THRESHOLD,
    DEFAULT_WORKERS,
    MAX_THRESHOLD,
    MIN_THRESHOLD,
    InvalidRectangle,
    PathError,
    setup_logging,
    write_report,
)
from process_cmd import process_path


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_BUG = 2
EXIT_INTERRUPTED = 130


def threshold_type(value: str) -> int:
    """argparse type for a 0-255 darkness threshold."""
    try:
        threshold = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid threshold: {value!r}") from None
    if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
        raise argparse.ArgumentTypeError(
            f"threshold must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}, got {threshold}"
        )
    return threshold


def workers_type(value: str) -> int:
    try:
        workers = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid worker count: {value!r}") from None
    if workers < 1:
        raise argparse.ArgumentTypeError(f"worker count must be at least 1, got {workers}")
    return workers


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Command line tool to remove letterboxing from images.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python remove_letterbox.py --input poster.jpg
    python remove_letterbox.py --input /path/to/frames --recursive
    python remove_letterbox.py --input /path/to/frames -r --threshold 24
    python remove_letterbox.py --input /path/to/frames -r --workers 4 --report run.json
        """,
    )
    parser.add_argument(
        '-i', '--input',
        type=Path,
        required=True,
        help='Input directory or file path',
    )
    parser.add_argument(
        '-r', '--recursive',
        action='store_true',
        help='Process files recursively if input is a directory',
    )
    parser.add_argument(
        '-t', '--threshold',
        type=threshold_type,
        default=DEFAULT_THRESHOLD,
        help='Threshold for letterbox detection (0-255). Higher values detect letterboxes '
             'more aggressively: a pixel is part of the letterbox when all its channel '
             f'values are at or below the threshold (default: {DEFAULT_THRESHOLD})',
    )
    parser.add_argument(
        '--workers',
        type=workers_type,
        default=DEFAULT_WORKERS,
        help=f'Number of parallel worker threads (default: {DEFAULT_WORKERS})',
    )
    parser.add_argument(
        '--report',
        type=Path,
        help='Write a JSON report of the run to this path',
    )
    parser.add_argument(
        '--log',
        type=Path,
        help='Write log output to this file',
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose (debug) logging',
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the script. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    setup_logging(args.log, args.verbose)

    try:
        report = process_path(
            input_path=args.input,
            recursive=args.recursive,
            threshold=args.threshold,
            workers=args.workers,
        )
    except PathError as exc:
        logging.error(str(exc))
        return EXIT_FATAL
    except InvalidRectangle:
        logging.exception("Crop rectangle rejected by the cropper; aborting")
        return EXIT_BUG
    except KeyboardInterrupt:
        logging.warning("Interrupted; files already written are complete")
        return EXIT_INTERRUPTED

    if args.report:
        write_report(report, args.report)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
