"""
Output naming and directory layout.

Every page of every batch gets a global, zero-padded sequence number; its
outputs share that number as a stem and differ only by suffix:

    0001.ac.jp2   master (archival) JPEG2000
    0001.uc.jp2   user (access) JPEG2000
    0001.ocr.txt  OCR plain text
    0001.ocr.xml  OCR layout (ALTO) XML

Audit material for a batch lives beside the outputs in `<batch>_logs/`.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

ROOT_BATCH_NAME = "root"
OCR_STEM_SUFFIX = ".ocr"


class ArtifactKind(str, Enum):
    """One of the derivative types produced per page."""

    MASTER = "master"
    USER = "user"
    TEXT = "text"
    ALTO = "alto"

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]

    @property
    def manifest_field(self) -> str:
        """Field name used for this kind in manifest.json pages."""
        return _MANIFEST_FIELDS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_SUFFIXES = {
    ArtifactKind.MASTER: ".ac.jp2",
    ArtifactKind.USER: ".uc.jp2",
    ArtifactKind.TEXT: ".ocr.txt",
    ArtifactKind.ALTO: ".ocr.xml",
}

_MANIFEST_FIELDS = {
    ArtifactKind.MASTER: "ac_jp2",
    ArtifactKind.USER: "uc_jp2",
    ArtifactKind.TEXT: "txt",
    ArtifactKind.ALTO: "alto",
}

_LABELS = {
    ArtifactKind.MASTER: "AC JP2",
    ArtifactKind.USER: "UC JP2",
    ArtifactKind.TEXT: "TXT",
    ArtifactKind.ALTO: "ALTO",
}

# Kinds in the order they are produced for a page.
ALL_KINDS: tuple[ArtifactKind, ...] = (
    ArtifactKind.MASTER,
    ArtifactKind.USER,
    ArtifactKind.TEXT,
    ArtifactKind.ALTO,
)


def page_index(index: int, digits: int) -> str:
    """
    Format a sequence number as a zero-padded page index.

    Example:
        >>> page_index(7, 4)
        '0007'
    """
    return f"{index:0{digits}d}"


def artifact_path(output_dir: Path, index_str: str, kind: ArtifactKind) -> Path:
    """Expected path of one artifact of one page."""
    return output_dir / f"{index_str}{kind.suffix}"


def ocr_output_base(output_dir: Path, index_str: str) -> Path:
    """Output stem handed to the OCR engine, which appends `.txt` / `.xml`."""
    return output_dir / f"{index_str}{OCR_STEM_SUFFIX}"


def batch_output_dir(output_root: Path, input_root: Path, batch_dir: Path) -> Path:
    """
    Output directory for a batch.

    A batch that is the input root itself writes straight into the output
    root; every other batch gets a subdirectory named after its source
    directory.
    """
    if Path(batch_dir) == Path(input_root):
        return Path(output_root)
    name = Path(batch_dir).name
    if not name:
        return Path(output_root)
    return Path(output_root) / name


def batch_name(batch_dir: Path) -> str:
    """Display and audit name of a batch (`root` when the path has no name)."""
    return Path(batch_dir).name or ROOT_BATCH_NAME


def batch_logs_dir(output_root: Path, name: str) -> Path:
    """Audit directory holding manifest, ledger, previews and report."""
    return Path(output_root) / f"{name}_logs"
