"""
Job selection and session state.

The orchestrator owns the job list and the enabled-artifact switches and is
the only thing that mutates either. It decides which jobs run, applies
operator overrides (force rerun), and re-reconciles statuses against disk
whenever the required artifacts change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .discovery import discover
from .errors import ConfigError
from .jobs import AlreadyDone, ArtifactConfig, BatchJob, Done, Failed, Pending, Processing, reconcile
from .layout import ArtifactKind
from .pipeline.executor import BatchOutcome, PipelineContext, run_job

LOGGER = logging.getLogger("scanarc.orchestrator")


@dataclass
class ForceResult:
    """What a force-rerun request did to one job."""

    name: str
    changed: bool
    message: str


class Orchestrator:
    """
    Session-level driver for batch jobs.

    Example:
        >>> orch = Orchestrator.from_discovery(ctx, start_index=1)
        >>> outcomes = orch.run_all_pending()
        >>> [(o.name, str(o.status)) for o in outcomes]
        [('batchA', 'Done'), ('batchB', 'Failed: ...')]
    """

    def __init__(self, jobs: list[BatchJob], ctx: PipelineContext, *, start_index: int = 1) -> None:
        self.jobs = jobs
        self.ctx = ctx
        self.start_index = start_index

    @classmethod
    def from_discovery(cls, ctx: PipelineContext, *, start_index: int = 1) -> "Orchestrator":
        """Discover batches under the context's input root and reconcile them."""
        orch = cls(discover(ctx.input_root, start_index), ctx, start_index=start_index)
        orch.reconcile()
        return orch

    @property
    def artifacts(self) -> ArtifactConfig:
        return self.ctx.artifacts

    def reconcile(self) -> None:
        reconcile(
            self.jobs,
            output_root=self.ctx.output_root,
            input_root=self.ctx.input_root,
            artifacts=self.ctx.artifacts,
            digits=self.ctx.digits,
        )

    def rediscover(self) -> None:
        """Replace the job list wholesale from a fresh scan, then reconcile."""
        self.jobs = discover(self.ctx.input_root, self.start_index)
        self.reconcile()

    def toggle(self, kind: ArtifactKind) -> bool:
        """Flip one artifact kind, re-reconcile, and return its new state."""
        enabled = self.ctx.artifacts.toggle(kind)
        LOGGER.info("artifact_toggled", extra={"kind": kind.value, "enabled": enabled})
        self.reconcile()
        return enabled

    def find(self, name: str) -> int:
        """
        Index of the job with the given batch name.

        Raises:
            ConfigError: If no batch has that name
        """
        for i, job in enumerate(self.jobs):
            if job.name == name:
                return i
        known = ", ".join(job.name for job in self.jobs) or "none"
        raise ConfigError(f"Unknown batch {name!r} (known: {known})")

    def _job(self, index: int) -> BatchJob:
        if not self.jobs:
            raise ConfigError("No batches to process.")
        if not 0 <= index < len(self.jobs):
            raise ConfigError(f"Batch index {index} out of range (0-{len(self.jobs) - 1})")
        return self.jobs[index]

    def run_selected(self, index: int) -> BatchOutcome:
        """
        Run one job.

        Raises:
            ConfigError: If the job is AlreadyDone (force it first) or is
                currently Processing
        """
        job = self._job(index)
        if isinstance(job.status, AlreadyDone):
            raise ConfigError(
                f"Batch {job.name} is already processed. Force a rerun to process it again."
            )
        if isinstance(job.status, Processing):
            raise ConfigError(f"Batch {job.name} is being processed.")
        return run_job(job, self.ctx)

    def run_all_pending(self) -> list[BatchOutcome]:
        """Run every Pending or Failed job in order; others are skipped."""
        outcomes: list[BatchOutcome] = []
        runnable = [j for j in self.jobs if isinstance(j.status, (Pending, Failed))]
        LOGGER.info("run_all_pending", extra={"runnable": len(runnable), "jobs": len(self.jobs)})
        for job in runnable:
            outcomes.append(run_job(job, self.ctx))
        return outcomes

    def force_rerun(self, index: int) -> ForceResult:
        """
        Put a Done/AlreadyDone job back to Pending.

        Output files are left untouched; the next run overwrites them.

        Raises:
            ConfigError: If the job is Processing
        """
        job = self._job(index)
        if isinstance(job.status, Processing):
            raise ConfigError(f"Batch {job.name} is being processed; it cannot be forced.")
        if isinstance(job.status, (Done, AlreadyDone)):
            job.status = Pending()
            LOGGER.info("force_rerun", extra={"batch": job.name})
            return ForceResult(job.name, True, f"Batch {job.name} set to Pending for rerun.")
        return ForceResult(job.name, False, f"Batch {job.name} is already {job.status.label}.")

    def force_rerun_all(self) -> int:
        """Put every Done/AlreadyDone job back to Pending; return how many changed."""
        count = 0
        for job in self.jobs:
            if isinstance(job.status, (Done, AlreadyDone)):
                job.status = Pending()
                count += 1
        LOGGER.info("force_rerun_all", extra={"count": count})
        return count
