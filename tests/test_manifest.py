"""Tests for manifest building, checksums, verification and the ledger."""

from pathlib import Path
import json
import logging

import pytest

from conftest import make_batch
from scanarc.errors import ManifestError
from scanarc.hashing import hash_file
from scanarc.jobs import ArtifactConfig
from scanarc.layout import ArtifactKind, artifact_path
from scanarc.pipeline.ledger import ActionLog, render_ledger, write_ledger
from scanarc.pipeline.manifest import (
    CHECKSUMS_FILENAME,
    MANIFEST_FILENAME,
    build_manifest,
    load_manifest,
    verify_manifest,
    write_checksums,
    write_manifest,
)


@pytest.fixture
def batch(tmp_path: Path):
    """A 3-page batch whose outputs exist for every kind except page 2's ALTO."""
    input_dir = make_batch(tmp_path / "input", "batchA", 3)
    output_dir = tmp_path / "output" / "batchA"
    output_dir.mkdir(parents=True)
    for index in ("0001", "0002", "0003"):
        for kind in ArtifactKind:
            if index == "0002" and kind is ArtifactKind.ALTO:
                continue
            artifact_path(output_dir, index, kind).write_text(f"{kind.value}-{index}")
    return input_dir, output_dir, tmp_path / "output" / "batchA_logs"


def _build(batch, artifacts=None):
    input_dir, output_dir, logs_dir = batch
    return build_manifest(
        batch_name="batchA",
        input_dir=input_dir,
        output_dir=output_dir,
        logs_dir=logs_dir,
        index_start=1,
        digits=4,
        artifacts=artifacts or ArtifactConfig(),
        lang="ces",
        alto_version="4.4",
    )


class TestBuildManifest:
    """Tests for build_manifest() function."""

    def test_pages_and_metadata(self, batch):
        manifest = _build(batch)

        assert manifest.batch_name == "batchA"
        assert manifest.file_count == 3
        assert [p.index for p in manifest.pages] == ["0001", "0002", "0003"]
        assert manifest.lang == "ces"
        assert manifest.alto_version == "4.4"
        assert manifest.digest_algorithm == "blake3"
        assert batch[2].is_dir()

    def test_records_size_and_digest_of_current_bytes(self, batch):
        manifest = _build(batch)
        page = manifest.pages[0]

        source = batch[0] / "scan_001.tif"
        assert page.original_tiff.path == str(source)
        assert page.original_tiff.size == source.stat().st_size
        assert page.original_tiff.digest == hash_file(source)

        master = artifact_path(batch[1], "0001", ArtifactKind.MASTER)
        assert page.ac_jp2.size == len("master-0001")
        assert page.ac_jp2.digest == hash_file(master)

    def test_missing_output_recorded_absent(self, batch):
        manifest = _build(batch)

        assert manifest.pages[1].alto is None
        assert manifest.pages[1].txt is not None
        assert manifest.pages[0].alto is not None

    def test_disabled_kind_not_recorded(self, batch):
        manifest = _build(batch, ArtifactConfig(user=False, alto=False))

        assert all(p.uc_jp2 is None and p.alto is None for p in manifest.pages)
        assert all(p.ac_jp2 is not None for p in manifest.pages)
        assert manifest.has_jp2()
        assert not manifest.has_kind(ArtifactKind.ALTO)

    def test_uncreatable_logs_dir_raises(self, batch, tmp_path: Path):
        bogus = tmp_path / "not-a-dir"
        bogus.write_text("x")
        with pytest.raises(ManifestError):
            build_manifest(
                batch_name="x",
                input_dir=bogus / "child",
                output_dir=batch[1],
                logs_dir=bogus / "logs",
                index_start=1,
                digits=4,
                artifacts=ArtifactConfig(),
                lang="ces",
                alto_version="4.4",
            )


class TestManifestFiles:
    def test_write_and_load(self, batch):
        manifest = _build(batch)
        path = write_manifest(manifest, batch[2])

        assert path == batch[2] / MANIFEST_FILENAME
        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data["pages"][0]) == {"index", "original_tiff", "ac_jp2", "uc_jp2", "txt", "alto"}
        assert data["pages"][1]["alto"] is None

        loaded = load_manifest(batch[2])
        assert loaded == manifest

    def test_checksums_lines(self, batch):
        manifest = _build(batch)
        path = write_checksums(manifest, batch[2])

        assert path.name == CHECKSUMS_FILENAME
        lines = path.read_text(encoding="utf-8").splitlines()
        # 3 sources + 3*4 outputs - one absent ALTO
        assert len(lines) == 14
        digest, _, file_path = lines[0].partition("  ")
        assert file_path == manifest.pages[0].original_tiff.path
        assert digest == manifest.pages[0].original_tiff.digest


class TestVerifyManifest:
    """Tests for verify_manifest() function."""

    def test_clean(self, batch):
        assert verify_manifest(_build(batch)) == []

    def test_detects_changes(self, batch):
        manifest = _build(batch)
        output_dir = batch[1]

        artifact_path(output_dir, "0001", ArtifactKind.MASTER).unlink()
        artifact_path(output_dir, "0002", ArtifactKind.TEXT).write_text("text-0002 plus")
        # Same length, different bytes.
        artifact_path(output_dir, "0003", ArtifactKind.USER).write_text("USER-0003")

        issues = verify_manifest(manifest)
        messages = {(i.page, i.message) for i in issues}

        assert ("0001", "AC JP2 missing.") in messages
        assert any(page == "0002" and "size changed" in msg for page, msg in messages)
        assert ("0003", "UC JP2 digest mismatch.") in messages
        assert len(issues) == 3


class TestActionLog:
    def test_lines_are_timestamped_and_logged(self, caplog):
        actions = ActionLog(
            "batchA", logger=logging.getLogger("actionlog.test"), clock=lambda: "[12:00:00] "
        )

        with caplog.at_level(logging.INFO, logger="actionlog.test"):
            actions.add("first")
            actions.error("second")

        assert list(actions) == ["[12:00:00] first", "[12:00:00] second"]
        assert len(actions) == 2
        assert [r.levelno for r in caplog.records] == [logging.INFO, logging.ERROR]
        assert all(r.batch == "batchA" for r in caplog.records)


class TestLedger:
    def test_sections(self, batch):
        manifest = _build(batch)
        text = render_ledger(manifest, ["[10:00:00] did a thing"])

        assert text.startswith("BATCH PROCESSING LOG\n")
        assert "Batch: batchA" in text
        assert "PROCESS EXECUTION LOG" in text
        assert "[10:00:00] did a thing" in text
        assert "FILE CHECKSUMS" in text
        assert text.index("PROCESS EXECUTION LOG") < text.index("FILE CHECKSUMS")
        assert "[Page 0002]" in text
        assert f"Original TIFF: {manifest.pages[0].original_tiff.path}" in text
        assert "ALTO=True" in text

    def test_write(self, batch):
        manifest = _build(batch)
        path = write_ledger(manifest, batch[2], ["line"])

        assert path == batch[2] / "log.txt"
        assert "line" in path.read_text(encoding="utf-8")
