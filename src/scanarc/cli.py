"""
scanarc CLI

Commands:
- status: Discover batches and show their state against the output tree
- run: Process one batch or every pending batch
- check-tools: Report which encoder/OCR binaries will be used
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from datetime import datetime, timezone

import typer
import logging

from scanarc.config import RunConfig, load_config
from scanarc.errors import ConfigError, ScanarcError
from scanarc.jobs import Failed
from scanarc.layout import ALL_KINDS
from scanarc.orchestrator import Orchestrator
from scanarc.pipeline.executor import BatchOutcome, PipelineContext
from scanarc.tools import (
    GROK_BINARY,
    TESSERACT_BINARY,
    GrokEncoder,
    TesseractOcr,
    check_tool,
    find_tessdata_dir,
    resolve_tool,
)

app = typer.Typer(add_completion=False, help="Batch JPEG2000 + OCR conversion with audit manifests")


class JsonFormatter(logging.Formatter):
    """Simple JSON formatter for structured logs."""
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        # Include any custom attributes passed via `extra=`.
        reserved = {
            "name","msg","args","levelname","levelno","pathname","filename","module",
            "exc_info","exc_text","stack_info","lineno","funcName","created","msecs",
            "relativeCreated","thread","threadName","processName","process","taskName",
            "message","asctime",
        }
        for k, v in record.__dict__.items():
            if k in reserved or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except TypeError:
                payload[k] = repr(v)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str, log_file: Path | None = None) -> logging.Logger:
    """
    Configure the `scanarc` logger.

    Records go to stderr and, when `log_file` is given, are appended to that
    file as well. Python warnings (e.g. ConvergenceWarning) are routed into
    the same handlers.
    """
    logger = logging.getLogger("scanarc")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(JsonFormatter())
    logger.handlers[:] = handlers
    logger.propagate = False

    logging.captureWarnings(True)
    warnings_logger = logging.getLogger("py.warnings")
    warnings_logger.handlers[:] = handlers
    warnings_logger.propagate = False
    return logger


LOGGER = logging.getLogger("scanarc")


def build_context(config: RunConfig) -> PipelineContext:
    """Resolve tool binaries and assemble the pipeline context for a session."""
    grok_path = resolve_tool(config.grok_bin, GROK_BINARY, tool_dir="grok")
    tess_path = resolve_tool(
        config.tess_bin,
        TESSERACT_BINARY,
        tool_dir="tesseract",
        local_only=config.force_local_tess,
    )
    tessdata = config.tessdata_dir or find_tessdata_dir(tess_path)
    return PipelineContext(
        input_root=config.input_root,
        output_root=config.output_root,
        encoder=GrokEncoder(binary=grok_path, dry_run=config.dry_run),
        ocr=TesseractOcr(binary=tess_path, tessdata_dir=tessdata, dry_run=config.dry_run),
        artifacts=config.artifact_config(),
        digits=config.digits,
        lang=config.lang,
        alto_version=config.alto_version,
        dry_run=config.dry_run,
    )


def open_session(config: RunConfig) -> Orchestrator:
    """Create the input/output roots if needed, then discover and reconcile."""
    for root in (config.output_root, config.input_root):
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ScanarcError(f"Cannot create directory {root}: {e}") from e
    ctx = build_context(config)
    return Orchestrator.from_discovery(ctx, start_index=config.start_index)


def _config(ctx: typer.Context) -> RunConfig:
    return ctx.obj["config"]


def _fail(e: ScanarcError) -> typer.Exit:
    typer.echo(f"❌ {e}", err=True)
    return typer.Exit(code=2 if isinstance(e, ConfigError) else 1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_file: Path | None = typer.Option(
        None, "--config", help="JSON file with settings (CLI options take precedence)"
    ),
    input_root: Path | None = typer.Option(
        None, "--input", "-i", help="Input root (batches are the root and its subdirectories)"
    ),
    output_root: Path | None = typer.Option(
        None, "--output", "-o", help="Output root (one subdirectory per batch)"
    ),
    start_index: int | None = typer.Option(
        None, "--start-index", help="Sequence number of the first page of the first batch"
    ),
    digits: int | None = typer.Option(None, "--digits", help="Zero-padding width of page indexes"),
    lang: str | None = typer.Option(None, "--lang", help="Tesseract language (e.g. ces, eng+ces)"),
    alto_version: str | None = typer.Option(None, "--alto-version", help="ALTO version (e.g. 4.4)"),
    grok_bin: str | None = typer.Option(
        None, "--grok-bin", help="grk_compress path, or 'auto'"
    ),
    tess_bin: str | None = typer.Option(None, "--tess-bin", help="tesseract path, or 'auto'"),
    tessdata_dir: Path | None = typer.Option(
        None, "--tessdata-dir", help="tessdata directory (auto-detected when omitted)"
    ),
    force_local_tess: bool | None = typer.Option(
        None, "--force-local-tess", help="Only use a bundled ./tesseract copy, never PATH"
    ),
    master: bool | None = typer.Option(None, "--master/--no-master", help="Produce master JP2 (.ac.jp2)"),
    user: bool | None = typer.Option(None, "--user/--no-user", help="Produce user JP2 (.uc.jp2)"),
    text: bool | None = typer.Option(None, "--txt/--no-txt", help="Produce OCR text (.ocr.txt)"),
    alto: bool | None = typer.Option(None, "--alto/--no-alto", help="Produce ALTO XML (.ocr.xml)"),
    dry_run: bool | None = typer.Option(
        None, "--dry-run/--no-dry-run", help="Log tool commands without running them"
    ),
    log_level: str = typer.Option(
        "INFO", "--log-level", help="Logging verbosity (DEBUG, INFO, WARNING, ERROR)"
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Also append JSON log records to this file"
    ),
) -> None:
    """
    Convert directories of scanned TIFF pages into JPEG2000 derivatives,
    OCR text and ALTO XML, with a manifest of content digests per batch.

    Example:
        scanarc --input scans --output out status
        scanarc --input scans --output out --no-alto run batchA
    """
    global LOGGER
    LOGGER = setup_logging(log_level, log_file.expanduser() if log_file else None)

    overrides = {
        "input_root": input_root.expanduser() if input_root else None,
        "output_root": output_root.expanduser() if output_root else None,
        "start_index": start_index,
        "digits": digits,
        "lang": lang,
        "alto_version": alto_version,
        "grok_bin": grok_bin,
        "tess_bin": tess_bin,
        "tessdata_dir": tessdata_dir.expanduser() if tessdata_dir else None,
        "force_local_tess": force_local_tess,
        "master": master,
        "user": user,
        "text": text,
        "alto": alto,
        "dry_run": dry_run,
    }
    try:
        config = load_config(config_file, overrides)
    except ConfigError as e:
        raise _fail(e)
    ctx.obj = {"config": config}


def _print_jobs(orch: Orchestrator, digits: int) -> None:
    if not orch.jobs:
        typer.echo("No batches found.")
        return
    for i, job in enumerate(orch.jobs):
        first = f"{job.index_start:0{digits}d}"
        last = f"{job.index_end:0{digits}d}"
        typer.echo(
            f"  {i:>3}. {job.name:<30} {job.file_count:>5} page(s)  {first}-{last}  {job.status}"
        )


@app.command("status")
def status_cmd(ctx: typer.Context) -> None:
    """Show discovered batches and whether their outputs are complete."""
    config = _config(ctx)
    try:
        orch = open_session(config)
    except ScanarcError as e:
        raise _fail(e)

    formats = ", ".join(
        f"{k.label}={'ON' if orch.artifacts.is_enabled(k) else 'OFF'}" for k in ALL_KINDS
    )
    typer.echo(f"Input:  {config.input_root}")
    typer.echo(f"Output: {config.output_root}")
    typer.echo(f"Formats: {formats}  (lang {config.lang}, ALTO {config.alto_version})\n")
    _print_jobs(orch, config.digits)


def _report(outcome: BatchOutcome) -> None:
    if outcome.success:
        typer.echo(f"✅ {outcome.name}: Done ({outcome.elapsed_seconds:.1f}s)")
        if not outcome.converged:
            typer.echo("   ⚠️  Some JP2 files did not appear in time", err=True)
        if outcome.manifest_path is not None:
            typer.echo(f"   Manifest: {outcome.manifest_path}")
        else:
            typer.echo("   ⚠️  Manifest was not written (see log)", err=True)
        return

    typer.echo(f"❌ {outcome.name}: {outcome.status}", err=True)
    for message in outcome.failures[:5]:
        typer.echo(f"  - {message}", err=True)
    if len(outcome.failures) > 5:
        typer.echo(f"  ... and {len(outcome.failures) - 5} more", err=True)


@app.command("run")
def run_cmd(
    ctx: typer.Context,
    batch: str | None = typer.Argument(None, help="Batch (directory) name to process"),
    run_all: bool = typer.Option(False, "--all", help="Process every Pending or Failed batch"),
    force: bool = typer.Option(
        False, "--force", help="Reprocess batches whose outputs are already complete"
    ),
) -> None:
    """
    Process one batch, or every pending batch with --all.

    Batches whose outputs are already complete are refused unless --force
    is given; forcing never deletes existing files, the rerun overwrites them.

    Example:
        scanarc --input scans --output out run batchA
        scanarc --input scans --output out run --all --force
    """
    config = _config(ctx)
    if (batch is None) == (not run_all):
        typer.echo("Error: give either a batch name or --all", err=True)
        raise typer.Exit(code=2)

    try:
        orch = open_session(config)
        if run_all:
            if force:
                count = orch.force_rerun_all()
                typer.echo(f"{count} completed batch(es) set to Pending.")
            outcomes = orch.run_all_pending()
        else:
            index = orch.find(batch)
            if force:
                typer.echo(orch.force_rerun(index).message)
            outcomes = [orch.run_selected(index)]
    except ScanarcError as e:
        raise _fail(e)

    if not outcomes:
        typer.echo("Nothing to do: no Pending or Failed batches.")
        return

    for outcome in outcomes:
        _report(outcome)

    failed = [o.name for o in outcomes if isinstance(o.status, Failed)]
    typer.echo(f"\n{'='*60}")
    typer.echo("📊 Summary:")
    typer.echo(f"  Batches processed: {len(outcomes)}")
    typer.echo(f"  Batches failed: {len(failed)}")
    typer.echo(f"  Output directory: {config.output_root}")
    if failed:
        raise typer.Exit(code=1)


@app.command("check-tools")
def check_tools_cmd(ctx: typer.Context) -> None:
    """Show the encoder and OCR binaries that will be used and whether they run."""
    config = _config(ctx)
    pctx = build_context(config)

    grok = pctx.encoder
    tess = pctx.ocr
    grok_status = check_tool(grok.binary, ["-h"], dry_run=config.dry_run)
    tess_status = check_tool(tess.binary, ["--version"], dry_run=config.dry_run)

    typer.echo(f"{'✅' if grok_status.ok else '❌'} Grok:      {grok.binary} ({grok_status.detail})")
    typer.echo(f"{'✅' if tess_status.ok else '❌'} Tesseract: {tess.binary} ({tess_status.detail})")
    typer.echo(f"   tessdata:  {tess.tessdata_dir or 'not found'}")

    if not (grok_status.ok and tess_status.ok):
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
