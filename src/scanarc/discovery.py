"""
Batch discovery.

Scans an input root for page images and turns each directory that holds
them into a BatchJob with a contiguous range of global sequence numbers.
Only the root and its immediate subdirectories are considered.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import DiscoveryError
from .jobs import BatchJob, Pending

LOGGER = logging.getLogger("scanarc.discovery")

PAGE_EXTENSIONS = frozenset({".tif", ".tiff"})


def is_page_image(path: Path) -> bool:
    return path.suffix.lower() in PAGE_EXTENSIONS and path.is_file()


def collect_pages(directory: Path) -> list[Path]:
    """
    List page images directly inside a directory, sorted by path.

    Parameters:
        directory: Directory to list (not recursed)

    Returns:
        Sorted list of page image paths (empty if `directory` is not a directory)

    Raises:
        DiscoveryError: If the directory exists but cannot be listed
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []
    try:
        pages = [p for p in directory.iterdir() if is_page_image(p)]
    except OSError as e:
        raise DiscoveryError(f"Cannot list {directory}: {e}") from e
    return sorted(pages)


def has_pages(directory: Path) -> bool:
    return bool(collect_pages(directory))


def discover(input_root: Path, start_index: int = 1) -> list[BatchJob]:
    """
    Find batches under an input root and assign sequence numbers.

    A batch is the root itself when it directly holds page images, plus
    every immediate subdirectory that does. Batches are ordered by directory
    name; the running sequence counter starts at `start_index` and advances
    by each batch's page count, so numbers are unique and contiguous across
    the whole root.

    Parameters:
        input_root: Directory to scan
        start_index: Sequence number of the first page of the first batch

    Returns:
        List of Pending BatchJobs in processing order

    Raises:
        DiscoveryError: If the root cannot be listed

    Example:
        >>> jobs = discover(Path("input"), start_index=1)
        >>> [(j.name, j.index_start, j.file_count) for j in jobs]
        [('batchA', 1, 3), ('batchB', 4, 10)]
    """
    input_root = Path(input_root)
    if not input_root.is_dir():
        raise DiscoveryError(f"Input root is not a directory: {input_root}")

    candidates: list[Path] = [input_root]
    try:
        candidates.extend(sorted(p for p in input_root.iterdir() if p.is_dir()))
    except OSError as e:
        raise DiscoveryError(f"Cannot list {input_root}: {e}") from e

    batches: list[tuple[Path, int]] = []
    for directory in candidates:
        count = len(collect_pages(directory))
        if count == 0:
            continue
        batches.append((directory, count))

    batches.sort(key=lambda item: item[0].name)

    jobs: list[BatchJob] = []
    next_index = start_index
    for directory, count in batches:
        jobs.append(
            BatchJob(
                directory=directory,
                index_start=next_index,
                file_count=count,
                status=Pending(),
            )
        )
        next_index += count

    LOGGER.info(
        "discovered_batches",
        extra={"input_root": str(input_root), "batches": len(jobs), "pages": next_index - start_index},
    )
    return jobs
