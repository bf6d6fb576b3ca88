"""
Shared code for remove-letterbox: constants, types, errors, file walking, reporting.
"""

import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple


DEFAULT_THRESHOLD = 10
MIN_THRESHOLD = 0
MAX_THRESHOLD = 255
DEFAULT_WORKERS = 1
PROGRESS_EVERY = 100
TASK_BATCH_SIZE = 32
JPEG_QUALITY = 95

JXL_EXTENSION = ".jxl"
SUPPORTED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", JXL_EXTENSION})


class LetterboxError(Exception):
    """Base class for all remove-letterbox errors."""


class PathError(LetterboxError):
    """The root input path does not exist or cannot be read."""


class DecodeError(LetterboxError):
    """An image file could not be decoded."""


class EncodeError(LetterboxError):
    """An image could not be encoded to its output format."""


class WriteError(LetterboxError):
    """An output file could not be written, or a transcoded source could not be removed."""


class NoContent(LetterboxError):
    """Every row and column of the image is classified as letterbox."""


class InvalidRectangle(LetterboxError, ValueError):
    """A crop rectangle does not fit the image it is applied to."""


@dataclass(frozen=True)
class CropRect:
    """Region to keep: top/left inclusive, bottom/right exclusive."""
    top: int
    bottom: int
    left: int
    right: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def is_full(self, width: int, height: int) -> bool:
        """Return True if the rectangle covers the whole width x height image."""
        return (self.top, self.bottom, self.left, self.right) == (0, height, 0, width)

    def as_box(self) -> Tuple[int, int, int, int]:
        """Return the rectangle in Pillow's (left, upper, right, lower) order."""
        return (self.left, self.top, self.right, self.bottom)

    def to_dict(self) -> Dict[str, int]:
        return {"top": self.top, "bottom": self.bottom, "left": self.left, "right": self.right}


@dataclass
class FileTask:
    """One image to process and where its result goes."""
    path: Path
    output_path: Path
    transcode: bool = False


@dataclass
class TaskResult:
    """Outcome of processing a single FileTask."""
    task: FileTask
    outcome: str
    bounds: Optional[CropRect] = None
    original_size: Optional[Tuple[int, int]] = None
    cropped_size: Optional[Tuple[int, int]] = None
    error: Optional[str] = None


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """Configure logging to file and console."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def validate_threshold(threshold: int) -> int:
    """Return threshold unchanged if it is a valid 0-255 darkness cutoff."""
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValueError(f"Threshold must be an integer, got {threshold!r}")
    if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
        raise ValueError(
            f"Threshold must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}, got {threshold}"
        )
    return threshold


def check_root(root: Path) -> None:
    """Raise PathError unless root is an existing, readable file or directory."""
    if not root.exists():
        raise PathError(f"Input path does not exist: {root}")
    if root.is_dir():
        try:
            with os.scandir(root):
                pass
        except OSError as exc:
            raise PathError(f"Input directory cannot be read: {root}: {exc}") from exc
    elif root.is_file():
        if not os.access(root, os.R_OK):
            raise PathError(f"Input file cannot be read: {root}")
    else:
        raise PathError(f"Input path is neither a file nor a directory: {root}")


def iter_files(root: Path, recursive: bool = True) -> Iterable[Path]:
    """Iterate through files under root without following symlinks.

    With recursive=False only the files directly inside root are yielded.
    Entries are visited in name order so runs are reproducible.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logging.warning(f"Skipping directory {current}: {exc}")
            continue

        subdirs: List[Path] = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if recursive:
                        subdirs.append(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    yield Path(entry.path)
            except OSError as exc:
                logging.warning(f"Skipping entry {entry.path}: {exc}")
        stack.extend(reversed(subdirs))


def build_report(
    input_path: Path,
    threshold: int,
    recursive: bool,
    stats: Dict[str, int],
    run_started: int,
    run_finished: int,
    details: Optional[Dict[str, object]],
) -> Dict[str, object]:
    """Build JSON-compatible report."""
    report: Dict[str, object] = {
        "run_started": datetime.fromtimestamp(run_started).isoformat(),
        "run_finished": datetime.fromtimestamp(run_finished).isoformat(),
        "duration_seconds": run_finished - run_started,
        "input": str(input_path),
        "threshold": threshold,
        "recursive": recursive,
        "stats": stats,
    }
    if details:
        report.update(details)
    return report


def write_report(report: Dict[str, object], report_path: Path) -> None:
    """Write report to file."""
    report_json = json.dumps(report, indent=2, sort_keys=True)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(report_json, encoding='utf-8')
    logging.info(f"Report written to {report_path}")
