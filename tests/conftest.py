"""Shared fixtures: fake tool adapters and scan trees."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest
from PIL import Image

from scanarc.jobs import ArtifactConfig
from scanarc.pipeline.executor import PipelineContext
from scanarc.tools import EncoderProfile, ToolResult


def make_tiff(path: Path, size: tuple[int, int] = (16, 12), shade: int = 128) -> Path:
    """Write a small real TIFF image."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("L", size, color=shade).save(path, format="TIFF")
    return path


def make_batch(root: Path, name: str | None, count: int) -> Path:
    """Create `count` TIFF pages in `root/name` (or directly in root)."""
    directory = root / name if name else root
    for i in range(count):
        make_tiff(directory / f"scan_{i + 1:03d}.tif", shade=10 * (i + 1))
    return directory


@dataclass
class FakeEncoder:
    """Encoder that writes placeholder JP2 files instead of running grk_compress."""

    fail_sources: set[str] = field(default_factory=set)
    silent: bool = False
    calls: list[tuple[str, str, EncoderProfile]] = field(default_factory=list)
    name: str = "fake-grok"

    def encode(self, source: Path, destination: Path, profile: EncoderProfile) -> ToolResult:
        self.calls.append((source.name, destination.name, profile))
        command = f"fake-grok {source} {destination} {profile.value}"
        if source.name in self.fail_sources:
            return ToolResult(ok=False, command=command, returncode=1, stderr="bad tiff")
        if not self.silent:
            destination.write_bytes(f"{profile.value}:{source.name}".encode())
        return ToolResult(ok=True, command=command, returncode=0)


@dataclass
class FakeOcr:
    """OCR engine that writes `<out_base>.txt` / `.xml` for each wanted output."""

    fail_sources: set[str] = field(default_factory=set)
    calls: list[tuple[str, str, bool, bool]] = field(default_factory=list)
    name: str = "fake-tesseract"

    def recognize(
        self,
        source: Path,
        out_base: Path,
        *,
        lang: str,
        alto_version: str,
        want_text: bool,
        want_alto: bool,
    ) -> ToolResult:
        self.calls.append((source.name, out_base.name, want_text, want_alto))
        command = f"fake-tesseract {source} {out_base} -l {lang}"
        if source.name in self.fail_sources:
            return ToolResult(ok=False, command=command, returncode=1, stderr="ocr crashed")
        if want_text:
            Path(f"{out_base}.txt").write_text(f"text of {source.name}", encoding="utf-8")
        if want_alto:
            Path(f"{out_base}.xml").write_text(
                f'<alto version="{alto_version}"><!-- {source.name} --></alto>',
                encoding="utf-8",
            )
        return ToolResult(ok=True, command=command, returncode=0)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def roots(tmp_path: Path) -> tuple[Path, Path]:
    input_root = tmp_path / "input"
    output_root = tmp_path / "output"
    input_root.mkdir()
    output_root.mkdir()
    return input_root, output_root


@pytest.fixture
def make_context(roots, sleeps):
    """Factory for a PipelineContext wired to fake tools and a recording sleep."""
    input_root, output_root = roots

    def factory(
        encoder: FakeEncoder | None = None,
        ocr: FakeOcr | None = None,
        artifacts: ArtifactConfig | None = None,
        **kwargs,
    ) -> PipelineContext:
        return PipelineContext(
            input_root=input_root,
            output_root=output_root,
            encoder=encoder or FakeEncoder(),
            ocr=ocr or FakeOcr(),
            artifacts=artifacts or ArtifactConfig(),
            sleep=sleeps.append,
            **kwargs,
        )

    return factory
