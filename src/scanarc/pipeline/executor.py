"""
Single batch execution.

Drives one BatchJob through every per-page stage, then (only when the batch
ended Done) through the post-run stages: manifest, ledger, checksums,
previews and report. A Failed batch only gets its ledger (`log.txt`).
Designed to be called by the orchestrator one batch at a time; nothing
here runs concurrently.

Failure semantics:
- A failed page/kind never aborts the batch. Every remaining page and kind
  is still attempted so that as much output as possible is produced.
- The first failure message becomes the Failed reason.
- Post-run stages are each fallible on their own; their errors are logged
  and never change the batch's terminal status.
"""

from __future__ import annotations

import logging
import time
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from scanarc.discovery import collect_pages
from scanarc.errors import (
    ConvergenceWarning,
    DiscoveryError,
    ManifestError,
    PreviewError,
    ReportError,
)
from scanarc.jobs import (
    ArtifactConfig,
    BatchJob,
    Done,
    Failed,
    JobStatus,
    Processing,
    page_records,
)
from scanarc.layout import (
    ArtifactKind,
    artifact_path,
    batch_logs_dir,
    batch_output_dir,
    ocr_output_base,
    page_index,
)
from scanarc.tools import Encoder, EncoderProfile, OcrEngine, ToolResult

from .ledger import LEDGER_FILENAME, ActionLog, write_ledger
from .manifest import Manifest, build_manifest, write_checksums, write_manifest
from .previews import generate_previews
from .report import write_report

LOGGER = logging.getLogger("scanarc.pipeline")

SETTLE_SECONDS = 1.0
WAIT_ATTEMPTS = 5
WAIT_DELAY_SECONDS = 0.5

_PROFILES = {
    ArtifactKind.MASTER: EncoderProfile.MASTER,
    ArtifactKind.USER: EncoderProfile.USER,
}


@dataclass
class PipelineContext:
    """
    Everything a batch run needs besides the job itself.

    Attributes:
        input_root: Root the batches were discovered under
        output_root: Root for batch output and audit directories
        encoder: JPEG2000 encoder adapter
        ocr: OCR engine adapter
        artifacts: Enabled artifact kinds (shared with the orchestrator)
        digits: Zero-padding width of page indexes
        lang: OCR language tag
        alto_version: ALTO version requested from the OCR engine
        dry_run: Log commands without running them
        settle_seconds: Pause before checking for encoder outputs
        wait_attempts: Number of polls in the convergence wait
        wait_delay: Seconds between polls
        sleep: Sleep function (replaceable in tests)
    """

    input_root: Path
    output_root: Path
    encoder: Encoder
    ocr: OcrEngine
    artifacts: ArtifactConfig = field(default_factory=ArtifactConfig)
    digits: int = 4
    lang: str = "ces"
    alto_version: str = "4.4"
    dry_run: bool = False
    settle_seconds: float = SETTLE_SECONDS
    wait_attempts: int = WAIT_ATTEMPTS
    wait_delay: float = WAIT_DELAY_SECONDS
    sleep: Callable[[float], None] = time.sleep

    def output_dir(self, job: BatchJob) -> Path:
        return batch_output_dir(self.output_root, self.input_root, job.directory)

    def logs_dir(self, job: BatchJob) -> Path:
        return batch_logs_dir(self.output_root, job.name)


@dataclass
class BatchOutcome:
    """
    Result of running one batch.

    Attributes:
        name: Batch name
        status: Terminal status (Done or Failed)
        failures: Every per-page/per-kind failure message, in order
        actions: Full action log of the run
        manifest_path: Written manifest, if the post-run stages got that far
        converged: False if expected encoder outputs were still missing
        elapsed_seconds: Wall-clock duration
    """

    name: str
    status: JobStatus
    failures: list[str]
    actions: ActionLog
    manifest_path: Path | None = None
    converged: bool = True
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return isinstance(self.status, Done)


def _record(actions: ActionLog, label: str, result: ToolResult) -> None:
    actions.add(f"[{label}] {result.command}")
    if result.dry_run:
        actions.add("(dry-run)")
    elif result.ok:
        actions.add("OK")
    else:
        if result.stdout.strip():
            actions.add(f"STDOUT: {result.stdout.strip()}")
        actions.error(f"FAILED: {result.stderr.strip() or 'no stderr'}")


def process_batch(
    job: BatchJob,
    ctx: PipelineContext,
    output_dir: Path,
    actions: ActionLog,
) -> list[str]:
    """
    Run every enabled stage for every page of a batch.

    Pages are visited in sequence order. The two image profiles are
    separate encoder calls; text and ALTO come from one OCR call.

    Returns:
        Failure messages in the order they occurred (empty on full success)
    """
    try:
        sources = collect_pages(job.directory)
    except DiscoveryError as e:
        actions.error(str(e))
        return [str(e)]

    if not sources:
        actions.add("Batch contains no page images; skipped.")
        return []

    artifacts = ctx.artifacts
    if not artifacts.enabled():
        actions.add("No artifact kinds enabled; batch skipped.")
        return []

    failures: list[str] = []

    def fail(message: str) -> None:
        actions.error(message)
        failures.append(message)

    for offset, source in enumerate(sources):
        index_str = page_index(job.index_start + offset, ctx.digits)
        actions.add(f"--- File {source} (index {index_str}) ---")

        for kind in (ArtifactKind.MASTER, ArtifactKind.USER):
            if not artifacts.is_enabled(kind):
                continue
            destination = artifact_path(output_dir, index_str, kind)
            result = ctx.encoder.encode(source, destination, _PROFILES[kind])
            _record(actions, f"{ctx.encoder.name} {kind.value}", result)
            if not result.ok:
                error = result.error(f"{kind.label} encode")
                fail(f"{kind.label} failed for `{source}`: {error}")

        if artifacts.any_ocr:
            result = ctx.ocr.recognize(
                source,
                ocr_output_base(output_dir, index_str),
                lang=ctx.lang,
                alto_version=ctx.alto_version,
                want_text=artifacts.text,
                want_alto=artifacts.alto,
            )
            _record(actions, ctx.ocr.name, result)
            if not result.ok:
                fail(f"OCR failed for `{source}`: {result.error('OCR')}")
            elif not result.dry_run:
                for kind in (ArtifactKind.ALTO, ArtifactKind.TEXT):
                    if not artifacts.is_enabled(kind):
                        continue
                    path = artifact_path(output_dir, index_str, kind)
                    if path.exists():
                        actions.add(f"{kind.label} created: {path}")
                    else:
                        actions.warning(f"{kind.label} not created yet: {path}")

    return failures


def wait_for_outputs(
    job: BatchJob,
    ctx: PipelineContext,
    output_dir: Path,
    actions: ActionLog,
) -> bool:
    """
    Poll for the encoder outputs of a finished batch.

    Process exit alone does not guarantee the files are visible yet. Polls
    a fixed number of times with a fixed delay and never waits longer.

    Returns:
        True if every expected file appeared, False otherwise (a
        ConvergenceWarning is issued and logged; the run continues)
    """
    kinds = [k for k in (ArtifactKind.MASTER, ArtifactKind.USER) if ctx.artifacts.is_enabled(k)]
    if not kinds:
        return True

    expected = [
        path
        for record in page_records(job, output_dir, ctx.digits, kinds)
        for path in record.outputs.values()
    ]

    attempts = max(1, ctx.wait_attempts)
    for attempt in range(1, attempts + 1):
        if all(path.exists() for path in expected):
            actions.add(f"All JP2 files present (attempt {attempt}/{attempts})")
            return True
        if attempt < attempts:
            actions.add(f"Waiting for JP2 files... (attempt {attempt}/{attempts})")
            ctx.sleep(ctx.wait_delay)

    missing = sum(1 for path in expected if not path.exists())
    message = f"{missing} JP2 file(s) still missing after {attempts} attempts in {output_dir}"
    actions.warning(f"Warning: {message}")
    warnings.warn(message, ConvergenceWarning, stacklevel=2)
    return False


def _manifest_for(job: BatchJob, ctx: PipelineContext, output_dir: Path) -> Manifest:
    return build_manifest(
        batch_name=job.name,
        input_dir=job.directory,
        output_dir=output_dir,
        logs_dir=ctx.logs_dir(job),
        index_start=job.index_start,
        digits=ctx.digits,
        artifacts=ctx.artifacts,
        lang=ctx.lang,
        alto_version=ctx.alto_version,
    )


def write_failure_ledger(
    job: BatchJob,
    ctx: PipelineContext,
    output_dir: Path,
    actions: ActionLog,
) -> Path | None:
    """
    Write `log.txt` for a Failed batch.

    The ledger lists whatever outputs exist, so partial results stay
    auditable. No manifest.json, previews or report are produced.
    """
    logs_dir = ctx.logs_dir(job)
    try:
        manifest = _manifest_for(job, ctx, output_dir)
        return write_ledger(manifest, logs_dir, actions.lines)
    except (ManifestError, OSError) as e:
        actions.error(f"Writing log.txt failed: {e}")
        return None


def finalize_batch(
    job: BatchJob,
    ctx: PipelineContext,
    output_dir: Path,
    actions: ActionLog,
) -> Path | None:
    """
    Post-run stages for a Done batch: manifest, ledger, checksums, previews, report.

    Returns:
        Path of the written manifest, or None if it could not be produced
    """
    logs_dir = ctx.logs_dir(job)
    try:
        manifest = _manifest_for(job, ctx, output_dir)
    except ManifestError as e:
        actions.error(f"Manifest generation failed: {e}")
        return None

    try:
        manifest_path = write_manifest(manifest, logs_dir)
        write_checksums(manifest, logs_dir)
        actions.add(f"Manifest and checksums written: {manifest_path}")
    except OSError as e:
        actions.error(f"Writing manifest failed: {e}")
        return None

    try:
        if manifest.has_jp2():
            actions.add("Generating WebP previews...")
            try:
                summary = generate_previews(logs_dir)
                actions.add(
                    f"WebP previews in {logs_dir}: {summary.generated} new, "
                    f"{summary.skipped} kept, {summary.failed} failed"
                )
            except PreviewError as e:
                actions.error(f"Preview generation failed: {e}")
            except Exception as e:
                actions.error(f"Preview generation failed: {type(e).__name__}: {e}")
        else:
            actions.add("No JP2 files; previews skipped")

        try:
            report = write_report(logs_dir)
            actions.add(f"HTML report written: {report}")
        except ReportError as e:
            actions.error(f"Report generation failed: {e}")
        except Exception as e:
            actions.error(f"Report generation failed: {type(e).__name__}: {e}")
    finally:
        actions.add(f"Ledger written: {logs_dir / LEDGER_FILENAME}")
        try:
            write_ledger(manifest, logs_dir, actions.lines)
        except OSError as e:
            actions.error(f"Writing log.txt failed: {e}")

    return manifest_path


def run_job(job: BatchJob, ctx: PipelineContext) -> BatchOutcome:
    """
    Run one batch end to end and update its status in place.

    Transitions: Pending/Failed -> Processing -> Done | Failed(first error).
    The caller is responsible for refusing jobs that must not run
    (AlreadyDone, Processing).

    Parameters:
        job: Batch to process (mutated)
        ctx: Pipeline configuration and tool adapters

    Returns:
        BatchOutcome with the terminal status and the full action log

    Example:
        >>> outcome = run_job(jobs[0], ctx)
        >>> outcome.success, outcome.manifest_path
        (True, PosixPath('output/batchA_logs/manifest.json'))
    """
    start_time = time.perf_counter()
    job.status = Processing()
    actions = ActionLog(job.name)
    output_dir = ctx.output_dir(job)

    actions.add(
        f"=== Batch {job.name} ({job.directory}), start index {job.index_start}, "
        f"ALTO v{ctx.alto_version} ==="
    )
    actions.add(f"Encoder: {ctx.encoder.name}; OCR: {ctx.ocr.name}; lang {ctx.lang}")
    actions.add(f"Formats: {ctx.artifacts.describe()}")

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        message = f"Cannot create output directory {output_dir}: {e}"
        actions.error(message)
        job.status = Failed(message)
        return BatchOutcome(
            name=job.name,
            status=job.status,
            failures=[message],
            actions=actions,
            elapsed_seconds=time.perf_counter() - start_time,
        )

    failures = process_batch(job, ctx, output_dir, actions)

    if failures:
        job.status = Failed(failures[0])
        actions.error(f"Batch FAILED ({len(failures)} failure(s))")
        write_failure_ledger(job, ctx, output_dir, actions)
        LOGGER.info(
            "batch_finished",
            extra={"batch": job.name, "status": job.status.label, "failures": len(failures)},
        )
        return BatchOutcome(
            name=job.name,
            status=job.status,
            failures=failures,
            actions=actions,
            elapsed_seconds=time.perf_counter() - start_time,
        )

    job.status = Done()
    actions.add("Batch OK")

    converged = True
    if not ctx.dry_run and ctx.artifacts.any_image:
        actions.add("Waiting for files to settle...")
        ctx.sleep(ctx.settle_seconds)
        converged = wait_for_outputs(job, ctx, output_dir, actions)

    manifest_path = finalize_batch(job, ctx, output_dir, actions)
    LOGGER.info(
        "batch_finished",
        extra={
            "batch": job.name,
            "status": job.status.label,
            "converged": converged,
            "manifest": str(manifest_path) if manifest_path else None,
        },
    )

    return BatchOutcome(
        name=job.name,
        status=job.status,
        failures=[],
        actions=actions,
        manifest_path=manifest_path,
        converged=converged,
        elapsed_seconds=time.perf_counter() - start_time,
    )
