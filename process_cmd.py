"""
Process command: walk the input, strip letterboxing from every supported image.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from common import (
    DEFAULT_THRESHOLD,
    DEFAULT_WORKERS,
    PROGRESS_EVERY,
    TASK_BATCH_SIZE,
    DecodeError,
    EncodeError,
    FileTask,
    NoContent,
    TaskResult,
    WriteError,
    build_report,
    check_root,
    iter_files,
    validate_threshold,
)
from formats import (
    decode_image,
    encode_image,
    format_for_path,
    is_supported_image,
    make_task,
    write_atomic,
)
from letterbox import apply_crop, find_bounds


OUTCOME_CROPPED = "cropped"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_TRANSCODED = "transcoded"
OUTCOME_NO_CONTENT = "no_content"
OUTCOME_ERROR = "error"


def _new_stats() -> Dict[str, int]:
    return {
        "scanned": 0,
        "cropped": 0,
        "unchanged": 0,
        "transcoded": 0,
        "no_content": 0,
        "skipped_unsupported": 0,
        "errors": 0,
    }


def _remove_source(task: FileTask) -> None:
    """Delete a transcoded original once its PNG replacement is in place."""
    try:
        task.path.unlink()
    except OSError as exc:
        raise WriteError(
            f"Wrote {task.output_path} but could not remove original {task.path}: {exc}"
        ) from exc


def process_task(task: FileTask, threshold: int) -> TaskResult:
    """Run decode, detect, crop and encode for one file.

    Per-file failures are returned as an error result. InvalidRectangle is not
    caught: it means the scanner and cropper disagree and must not be skipped.
    """
    try:
        decoded = decode_image(task.path)
        width, height = decoded.size
        try:
            rect = find_bounds(decoded.pixels, threshold)
        except NoContent:
            logging.info(f"Fully dark, skipped: {task.path}")
            return TaskResult(task=task, outcome=OUTCOME_NO_CONTENT, original_size=(width, height))

        logging.debug(f"Bounds for {task.path}: {rect.to_dict()}")
        if rect.is_full(width, height) and not task.transcode:
            logging.info(f"No letterbox found: {task.path}")
            return TaskResult(
                task=task,
                outcome=OUTCOME_UNCHANGED,
                bounds=rect,
                original_size=(width, height),
                cropped_size=(width, height),
            )

        cropped = apply_crop(decoded.pixels, rect)
        data = encode_image(cropped, format_for_path(task.output_path), decoded.info)
        if task.transcode and task.output_path.exists():
            logging.warning(f"Overwriting existing {task.output_path} with transcoded {task.path}")
        write_atomic(data, task.output_path, mode_from=task.path)
        if task.transcode:
            _remove_source(task)
    except (DecodeError, EncodeError, WriteError, OSError) as exc:
        logging.warning(f"Failed to process {task.path}: {exc}")
        return TaskResult(task=task, outcome=OUTCOME_ERROR, error=str(exc))

    cropped_size = (rect.width, rect.height)
    if task.transcode:
        logging.info(
            f"Transcoded {task.path} -> {task.output_path} "
            f"({width}x{height} -> {cropped_size[0]}x{cropped_size[1]})"
        )
        outcome = OUTCOME_TRANSCODED
    else:
        logging.info(
            f"Cropped {task.path} ({width}x{height} -> {cropped_size[0]}x{cropped_size[1]}) "
            f"T:{rect.top} B:{height - rect.bottom} L:{rect.left} R:{width - rect.right}"
        )
        outcome = OUTCOME_CROPPED
    return TaskResult(
        task=task,
        outcome=outcome,
        bounds=rect,
        original_size=(width, height),
        cropped_size=cropped_size,
    )


def _record_result(
    result: TaskResult,
    stats: Dict[str, int],
    details: Dict[str, List[Dict[str, object]]],
) -> None:
    """Fold one TaskResult into the run stats and report lists."""
    task = result.task
    if result.outcome == OUTCOME_ERROR:
        stats["errors"] += 1
        details["errors"].append({"path": str(task.path), "error": result.error})
        return

    stats[result.outcome] += 1
    if result.outcome == OUTCOME_NO_CONTENT:
        details["no_content"].append({"path": str(task.path)})
        return
    if result.outcome == OUTCOME_UNCHANGED:
        return

    entry: Dict[str, object] = {
        "path": str(task.path),
        "bounds": result.bounds.to_dict(),
        "original_size": list(result.original_size),
        "cropped_size": list(result.cropped_size),
    }
    if result.outcome == OUTCOME_TRANSCODED:
        entry["output"] = str(task.output_path)
    details[result.outcome].append(entry)


def collect_tasks(
    input_path: Path,
    recursive: bool,
    stats: Dict[str, int],
    skipped: List[Dict[str, object]],
) -> Iterable[FileTask]:
    """Yield a FileTask for every supported image under input_path."""
    paths = [input_path] if input_path.is_file() else iter_files(input_path, recursive=recursive)
    for file_path in paths:
        if not is_supported_image(file_path):
            stats["skipped_unsupported"] += 1
            logging.warning(f"Skipping non-image file: {file_path}")
            skipped.append({"path": str(file_path)})
            continue
        stats["scanned"] += 1
        yield make_task(file_path)


def process_path(
    input_path: Path,
    recursive: bool = False,
    threshold: int = DEFAULT_THRESHOLD,
    workers: int = DEFAULT_WORKERS,
    progress_callback: Optional[Callable[[int, Dict[str, int]], None]] = None,
) -> Dict[str, object]:
    """Remove letterboxing from a single image or every image in a directory.

    Raises PathError if input_path is missing or unreadable. Failures on
    individual files are logged and reported, never raised.
    """
    validate_threshold(threshold)
    check_root(input_path)

    stats = _new_stats()
    details: Dict[str, List[Dict[str, object]]] = {
        OUTCOME_CROPPED: [],
        OUTCOME_TRANSCODED: [],
        OUTCOME_NO_CONTENT: [],
        "errors": [],
        "skipped": [],
    }
    run_started = int(time.time())
    total_processed = 0
    last_progress_log = 0

    def emit_progress() -> None:
        if progress_callback:
            progress_callback(total_processed, dict(stats))

    def log_progress() -> None:
        nonlocal last_progress_log
        if total_processed - last_progress_log >= PROGRESS_EVERY:
            logging.info(
                f"Progress: scanned={stats['scanned']}, cropped={stats['cropped']}, "
                f"transcoded={stats['transcoded']}, errors={stats['errors']}"
            )
            last_progress_log = total_processed

    def handle(result: TaskResult) -> None:
        nonlocal total_processed
        _record_result(result, stats, details)
        total_processed += 1
        log_progress()
        emit_progress()

    if input_path.is_dir():
        logging.info(f"Processing directory: {input_path} (recursive={recursive})")
    tasks = collect_tasks(input_path, recursive, stats, details["skipped"])

    if workers <= 1:
        for task in tasks:
            handle(process_task(task, threshold))
    else:
        logging.info(f"Using {workers} worker threads")
        batch: List[FileTask] = []
        with ThreadPoolExecutor(max_workers=workers) as executor:

            def flush_batch() -> None:
                if not batch:
                    return
                futures = [executor.submit(process_task, task, threshold) for task in batch]
                for future in as_completed(futures):
                    handle(future.result())
                batch.clear()

            for task in tasks:
                batch.append(task)
                if len(batch) >= TASK_BATCH_SIZE:
                    flush_batch()
            flush_batch()

    run_finished = int(time.time())

    logging.info(
        "Summary: %d images | cropped: %d | transcoded: %d | unchanged: %d | "
        "fully dark: %d | skipped (not an image): %d | errors: %d"
        % (
            stats["scanned"],
            stats["cropped"],
            stats["transcoded"],
            stats["unchanged"],
            stats["no_content"],
            stats["skipped_unsupported"],
            stats["errors"],
        )
    )

    report_details: Dict[str, object] = dict(details)
    if workers > 1:
        report_details["workers"] = workers
    report = build_report(
        input_path=input_path,
        threshold=threshold,
        recursive=recursive,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        details=report_details,
    )
    emit_progress()
    return report
