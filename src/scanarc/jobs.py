"""
Batch jobs and their lifecycle.

The filesystem is the only record of completed work: there is no persisted
"done" marker. Whether a batch counts as already processed is recomputed
from the outputs that exist on disk and from which artifact kinds are
currently enabled.

Lifecycle:

    Pending | Failed --run--> Processing --> Done | Failed(reason)
    Pending <--reconcile/force-- AlreadyDone
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .layout import (
    ALL_KINDS,
    ArtifactKind,
    artifact_path,
    batch_name,
    batch_output_dir,
    page_index,
)


@dataclass(frozen=True)
class JobStatus:
    """Base of the job status variants."""

    @property
    def label(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class Pending(JobStatus):
    pass


@dataclass(frozen=True)
class Processing(JobStatus):
    pass


@dataclass(frozen=True)
class Done(JobStatus):
    pass


@dataclass(frozen=True)
class Failed(JobStatus):
    """Batch finished with at least one failed page/kind."""

    reason: str = ""

    def __str__(self) -> str:
        return f"Failed: {self.reason}" if self.reason else "Failed"


@dataclass(frozen=True)
class AlreadyDone(JobStatus):
    """All required outputs found on disk; derived, never persisted."""


@dataclass
class ArtifactConfig:
    """Run-wide switches for which artifact kinds are produced."""

    master: bool = True
    user: bool = True
    text: bool = True
    alto: bool = True

    def is_enabled(self, kind: ArtifactKind) -> bool:
        return bool(getattr(self, kind.value))

    def set(self, kind: ArtifactKind, enabled: bool) -> None:
        setattr(self, kind.value, enabled)

    def toggle(self, kind: ArtifactKind) -> bool:
        """Flip one kind and return its new state."""
        value = not self.is_enabled(kind)
        self.set(kind, value)
        return value

    def enabled(self) -> list[ArtifactKind]:
        """Enabled kinds in production order."""
        return [k for k in ALL_KINDS if self.is_enabled(k)]

    @property
    def any_image(self) -> bool:
        return self.master or self.user

    @property
    def any_ocr(self) -> bool:
        return self.text or self.alto

    @classmethod
    def only(cls, kinds: Iterable[ArtifactKind]) -> "ArtifactConfig":
        wanted = set(kinds)
        return cls(**{k.value: k in wanted for k in ALL_KINDS})

    def describe(self) -> str:
        return ", ".join(f"{k.label}={'ON' if self.is_enabled(k) else 'OFF'}" for k in ALL_KINDS)


@dataclass
class BatchJob:
    """
    One directory of source pages processed as a unit.

    Attributes:
        directory: Source directory holding the page images
        index_start: Global sequence number of the first page
        file_count: Number of page images found at discovery
        status: Current lifecycle state
    """

    directory: Path
    index_start: int
    file_count: int
    status: JobStatus = field(default_factory=Pending)

    @property
    def name(self) -> str:
        return batch_name(self.directory)

    @property
    def index_end(self) -> int:
        """Sequence number of the last page (inclusive)."""
        return self.index_start + self.file_count - 1

    def page_numbers(self) -> range:
        return range(self.index_start, self.index_start + self.file_count)


@dataclass(frozen=True)
class PageRecord:
    """Expected outputs of a single page."""

    index: str
    outputs: dict[ArtifactKind, Path]


def page_records(
    job: BatchJob,
    output_dir: Path,
    digits: int,
    kinds: Iterable[ArtifactKind],
) -> list[PageRecord]:
    """Expected output paths, per page, for the given kinds."""
    kinds = list(kinds)
    records: list[PageRecord] = []
    for number in job.page_numbers():
        index_str = page_index(number, digits)
        records.append(
            PageRecord(
                index=index_str,
                outputs={k: artifact_path(output_dir, index_str, k) for k in kinds},
            )
        )
    return records


def is_already_done(
    job: BatchJob,
    *,
    output_root: Path,
    input_root: Path,
    artifacts: ArtifactConfig,
    digits: int,
) -> bool:
    """
    Decide from disk evidence whether a batch needs no further work.

    Only existence is checked: a truncated file still counts as present.
    With no kinds enabled there is nothing to produce, so an existing output
    directory is enough.
    """
    out_dir = batch_output_dir(output_root, input_root, job.directory)
    if not out_dir.is_dir():
        return False

    kinds = artifacts.enabled()
    if not kinds:
        return True

    for record in page_records(job, out_dir, digits, kinds):
        for path in record.outputs.values():
            if not path.exists():
                return False
    return True


def reconcile(
    jobs: list[BatchJob],
    *,
    output_root: Path,
    input_root: Path,
    artifacts: ArtifactConfig,
    digits: int,
) -> None:
    """
    Recompute AlreadyDone/Pending for every job in place.

    A job finished as Done in this session keeps that status even when the
    check would pass; an AlreadyDone job whose outputs went missing drops
    back to Pending. Other states are left alone.
    """
    for job in jobs:
        complete = is_already_done(
            job,
            output_root=output_root,
            input_root=input_root,
            artifacts=artifacts,
            digits=digits,
        )
        if complete:
            if not isinstance(job.status, Done):
                job.status = AlreadyDone()
        elif isinstance(job.status, AlreadyDone):
            job.status = Pending()
