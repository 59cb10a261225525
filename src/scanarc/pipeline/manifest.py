"""
Manifest building and verification.

The manifest is a pure function of what is on disk when it is built: source
pages are re-listed, and every expected output that exists is stat'ed and
hashed from its current bytes. An expected output that does not exist is
recorded as absent (the kind may be disabled or may have failed upstream).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
import json

from pydantic import BaseModel, ConfigDict

from scanarc.discovery import collect_pages
from scanarc.errors import DiscoveryError, ManifestError
from scanarc.hashing import DIGEST_ALGORITHM, hash_file
from scanarc.jobs import ArtifactConfig
from scanarc.layout import ALL_KINDS, ArtifactKind, artifact_path, page_index

MANIFEST_FILENAME = "manifest.json"
CHECKSUMS_FILENAME = "checksums.txt"


class FileRecord(BaseModel):
    """Size and digest of one file at the time it was hashed."""

    model_config = ConfigDict(frozen=True)

    path: str
    size: int
    digest: str


class PageEntry(BaseModel):
    """One page: its source image and whichever outputs exist."""

    model_config = ConfigDict(frozen=True)

    index: str
    original_tiff: FileRecord
    ac_jp2: FileRecord | None = None
    uc_jp2: FileRecord | None = None
    txt: FileRecord | None = None
    alto: FileRecord | None = None

    def artifact(self, kind: ArtifactKind) -> FileRecord | None:
        return getattr(self, kind.manifest_field)

    def files(self) -> list[tuple[str, FileRecord]]:
        """All present files as (label, record), source first."""
        out = [("Original TIFF", self.original_tiff)]
        for kind in ALL_KINDS:
            record = self.artifact(kind)
            if record is not None:
                out.append((kind.label, record))
        return out


class Manifest(BaseModel):
    """
    Durable description of a batch's inputs and outputs.

    Field names are part of the on-disk format and must stay stable.
    """

    batch_name: str
    start_index: int
    file_count: int
    input_dir: str
    output_dir: str
    logs_dir: str
    created_at: str
    generated: str
    lang: str
    alto_version: str
    digest_algorithm: str = DIGEST_ALGORITHM
    pages: list[PageEntry]

    def has_kind(self, kind: ArtifactKind) -> bool:
        return any(p.artifact(kind) is not None for p in self.pages)

    def has_jp2(self) -> bool:
        return self.has_kind(ArtifactKind.MASTER) or self.has_kind(ArtifactKind.USER)


def file_record(path: Path) -> FileRecord:
    """
    Stat and hash a file.

    Raises:
        ManifestError: If the file cannot be stat'ed or read
    """
    try:
        size = path.stat().st_size
        digest = hash_file(path)
    except OSError as e:
        raise ManifestError(f"Hashing {path} failed: {e}") from e
    return FileRecord(path=str(path), size=size, digest=digest)


def build_manifest(
    *,
    batch_name: str,
    input_dir: Path,
    output_dir: Path,
    logs_dir: Path,
    index_start: int,
    digits: int,
    artifacts: ArtifactConfig,
    lang: str,
    alto_version: str,
) -> Manifest:
    """
    Build the manifest for one batch from current filesystem state.

    Creates `logs_dir` but writes nothing into it.

    Parameters:
        batch_name: Batch display name
        input_dir: Directory of source page images
        output_dir: Batch output directory
        logs_dir: Audit directory for this batch
        index_start: Sequence number of the first page
        digits: Zero-padding width of page indexes
        artifacts: Which kinds to look for
        lang: OCR language tag
        alto_version: ALTO version requested from the OCR engine

    Returns:
        Manifest with one PageEntry per source page

    Raises:
        ManifestError: If an existing file cannot be read, or the source
            directory cannot be listed

    Example:
        >>> manifest = build_manifest(
        ...     batch_name="batchA",
        ...     input_dir=Path("input/batchA"),
        ...     output_dir=Path("output/batchA"),
        ...     logs_dir=Path("output/batchA_logs"),
        ...     index_start=1,
        ...     digits=4,
        ...     artifacts=ArtifactConfig(),
        ...     lang="ces",
        ...     alto_version="4.4",
        ... )
        >>> manifest.pages[0].ac_jp2.digest
        '5d41402abc4b2a76b9719d911017c592...'
    """
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ManifestError(f"Cannot create logs directory {logs_dir}: {e}") from e

    try:
        sources = collect_pages(input_dir)
    except DiscoveryError as e:
        raise ManifestError(str(e)) from e

    kinds = artifacts.enabled()
    pages: list[PageEntry] = []
    for offset, source in enumerate(sources):
        index_str = page_index(index_start + offset, digits)
        outputs: dict[str, FileRecord | None] = {}
        for kind in kinds:
            path = artifact_path(output_dir, index_str, kind)
            if path.exists():
                outputs[kind.manifest_field] = file_record(path)
        pages.append(
            PageEntry(index=index_str, original_tiff=file_record(source), **outputs)
        )

    now = datetime.now().astimezone().isoformat()
    return Manifest(
        batch_name=batch_name,
        start_index=index_start,
        file_count=len(pages),
        input_dir=str(input_dir),
        output_dir=str(output_dir),
        logs_dir=str(logs_dir),
        created_at=now,
        generated=now,
        lang=lang,
        alto_version=alto_version,
        pages=pages,
    )


def write_manifest(manifest: Manifest, logs_dir: Path) -> Path:
    """Write `manifest.json` (pretty-printed) and return its path."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / MANIFEST_FILENAME
    path.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")
    return path


def write_checksums(manifest: Manifest, logs_dir: Path) -> Path:
    """
    Write `checksums.txt` in `<digest>  <path>` form.

    The layout matches `b3sum -c`.
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / CHECKSUMS_FILENAME
    with path.open("w", encoding="utf-8") as f:
        for page in manifest.pages:
            for _label, record in page.files():
                f.write(f"{record.digest}  {record.path}\n")
    return path


def load_manifest(path: Path) -> Manifest:
    """
    Load a manifest from `manifest.json` or from the directory holding it.

    Raises:
        FileNotFoundError: If the manifest does not exist
        pydantic.ValidationError: If the JSON does not match the schema
    """
    path = Path(path)
    if path.is_dir():
        path = path / MANIFEST_FILENAME
    data = json.loads(path.read_text(encoding="utf-8"))
    return Manifest.model_validate(data)


@dataclass(frozen=True)
class VerificationIssue:
    """
    A file whose on-disk state no longer matches the manifest.

    Attributes:
        page: Page index the file belongs to
        path: File path as recorded in the manifest
        message: Human-readable description of the mismatch
    """

    page: str
    path: str
    message: str


def verify_manifest(manifest: Manifest) -> list[VerificationIssue]:
    """
    Re-hash every file listed in a manifest and report mismatches.

    Unlike reconciliation (existence only), this reads every byte, so it
    catches truncated or altered files.
    """
    issues: list[VerificationIssue] = []
    for page in manifest.pages:
        for label, record in page.files():
            path = Path(record.path)
            if not path.exists():
                issues.append(VerificationIssue(page.index, record.path, f"{label} missing."))
                continue
            try:
                size = path.stat().st_size
                digest = hash_file(path)
            except OSError as e:
                issues.append(VerificationIssue(page.index, record.path, f"{label} unreadable: {e}"))
                continue
            if size != record.size:
                issues.append(
                    VerificationIssue(
                        page.index,
                        record.path,
                        f"{label} size changed ({record.size} -> {size}).",
                    )
                )
            elif digest != record.digest:
                issues.append(
                    VerificationIssue(page.index, record.path, f"{label} digest mismatch.")
                )
    return issues
