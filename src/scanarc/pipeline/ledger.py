"""
Action log and human-readable execution ledger.

The action log is the ordered narrative of one batch run (commands issued,
tool outcomes, warnings). After the run it is written to `log.txt` together
with the run metadata and the digest of every file the manifest records.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from scanarc.layout import ALL_KINDS

from .manifest import Manifest

LEDGER_FILENAME = "log.txt"
RULE = "=" * 80

LOGGER = logging.getLogger("scanarc.pipeline")


def _clock() -> str:
    return datetime.now().strftime("[%H:%M:%S] ")


class ActionLog:
    """
    Ordered, timestamped log lines for one batch run.

    Every entry is also forwarded to the `scanarc.pipeline` logger with the
    batch name attached, so the persistent JSON log sees the same narrative.
    """

    def __init__(
        self,
        batch: str,
        *,
        logger: logging.Logger | None = None,
        clock: Callable[[], str] = _clock,
    ) -> None:
        self.batch = batch
        self.lines: list[str] = []
        self._logger = logger or LOGGER
        self._clock = clock

    def add(self, message: str, *, level: int = logging.INFO) -> None:
        self.lines.append(f"{self._clock()}{message}")
        self._logger.log(level, message, extra={"batch": self.batch})

    def warning(self, message: str) -> None:
        self.add(message, level=logging.WARNING)

    def error(self, message: str) -> None:
        self.add(message, level=logging.ERROR)

    def __iter__(self):
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)


def render_ledger(manifest: Manifest, actions: list[str]) -> str:
    """Render the ledger text: header, execution log, per-page checksums."""
    formats = ", ".join(
        f"{kind.label}={manifest.has_kind(kind)}" for kind in ALL_KINDS
    )
    out: list[str] = [
        "BATCH PROCESSING LOG",
        "====================",
        "",
        f"Batch: {manifest.batch_name}",
        f"Start index: {manifest.start_index}",
        f"File count: {manifest.file_count}",
        f"Generated: {manifest.generated}",
        f"Language: {manifest.lang}",
        f"ALTO version: {manifest.alto_version}",
        f"Digest: {manifest.digest_algorithm}",
        f"Formats: {formats}",
        "",
        RULE,
        "PROCESS EXECUTION LOG",
        RULE,
        "",
        *actions,
        "",
        RULE,
        "FILE CHECKSUMS",
        RULE,
        "",
    ]
    for page in manifest.pages:
        out.append(f"[Page {page.index}]")
        out.append(f"  Original TIFF: {page.original_tiff.path} = {page.original_tiff.digest}")
        for label, record in page.files()[1:]:
            out.append(f"  {label}: {record.path} = {record.digest}")
        out.append("")
    return "\n".join(out) + "\n"


def write_ledger(manifest: Manifest, logs_dir: Path, actions: list[str]) -> Path:
    """Write `log.txt` into the audit directory and return its path."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / LEDGER_FILENAME
    path.write_text(render_ledger(manifest, list(actions)), encoding="utf-8")
    return path
