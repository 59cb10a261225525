"""
WebP previews for the batch report.

Previews are made from the source TIFFs listed in the manifest, not from
the JPEG2000 derivatives, and land next to the manifest as
`page_<index>.webp`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from scanarc.errors import PreviewError

from .manifest import MANIFEST_FILENAME, load_manifest

LOGGER = logging.getLogger("scanarc.pipeline")

MAX_DIMENSION = 1024
WEBP_QUALITY = 80


@dataclass
class PreviewSummary:
    generated: int = 0
    skipped: int = 0
    failed: int = 0


def preview_name(index: str) -> str:
    return f"page_{index}.webp"


def convert_to_webp(source: Path, destination: Path, *, max_dimension: int = MAX_DIMENSION) -> None:
    """Downscale an image so its longest side fits and save it as WebP."""
    with Image.open(source) as img:
        img.load()
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        img.save(destination, format="WEBP", quality=WEBP_QUALITY)

    if destination.stat().st_size == 0:
        raise OSError(f"WebP encoder wrote an empty file: {destination}")


def generate_previews(logs_dir: Path) -> PreviewSummary:
    """
    Create a preview for every page in the batch manifest.

    Existing previews are kept; a page that cannot be converted is logged
    and counted but does not stop the others.

    Raises:
        PreviewError: If the manifest is missing or unreadable
    """
    manifest_path = logs_dir / MANIFEST_FILENAME
    if not manifest_path.exists():
        raise PreviewError(f"Manifest not found: {manifest_path}")
    try:
        manifest = load_manifest(manifest_path)
    except (OSError, ValueError) as e:
        raise PreviewError(f"Cannot read manifest {manifest_path}: {e}") from e

    summary = PreviewSummary()
    for page in manifest.pages:
        source = Path(page.original_tiff.path)
        destination = logs_dir / preview_name(page.index)

        if destination.exists():
            summary.skipped += 1
            continue
        if not source.exists():
            LOGGER.warning(
                "preview_source_missing",
                extra={"page": page.index, "source": str(source)},
            )
            summary.failed += 1
            continue

        try:
            convert_to_webp(source, destination)
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError, ValueError) as e:
            LOGGER.warning(
                "preview_failed",
                extra={"page": page.index, "source": str(source), "error": str(e)},
            )
            summary.failed += 1
            continue
        summary.generated += 1

    LOGGER.info(
        "previews_done",
        extra={
            "logs_dir": str(logs_dir),
            "generated": summary.generated,
            "skipped": summary.skipped,
            "failed": summary.failed,
        },
    )
    return summary
