"""Tests for job statuses, output layout and reconciliation."""

from pathlib import Path

from scanarc.jobs import (
    AlreadyDone,
    ArtifactConfig,
    BatchJob,
    Done,
    Failed,
    Pending,
    Processing,
    is_already_done,
    page_records,
    reconcile,
)
from scanarc.layout import (
    ArtifactKind,
    artifact_path,
    batch_logs_dir,
    batch_output_dir,
    page_index,
)


def _write_outputs(out_dir: Path, numbers, kinds) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    for n in numbers:
        for kind in kinds:
            artifact_path(out_dir, page_index(n, 4), kind).write_bytes(b"x")


class TestLayout:
    """Tests for output naming helpers."""

    def test_page_index_zero_padded(self):
        assert page_index(1, 4) == "0001"
        assert page_index(12345, 4) == "12345"

    def test_artifact_suffixes(self, tmp_path: Path):
        names = [artifact_path(tmp_path, "0001", k).name for k in ArtifactKind]
        assert names == ["0001.ac.jp2", "0001.uc.jp2", "0001.ocr.txt", "0001.ocr.xml"]

    def test_batch_output_dir(self, tmp_path: Path):
        """Test that the root batch writes to the output root itself."""
        inp, out = tmp_path / "in", tmp_path / "out"
        assert batch_output_dir(out, inp, inp) == out
        assert batch_output_dir(out, inp, inp / "batchA") == out / "batchA"

    def test_batch_logs_dir(self, tmp_path: Path):
        assert batch_logs_dir(tmp_path, "batchA") == tmp_path / "batchA_logs"


class TestStatus:
    """Tests for the status variants."""

    def test_labels(self):
        assert str(Pending()) == "Pending"
        assert str(AlreadyDone()) == "AlreadyDone"
        assert str(Failed("boom")) == "Failed: boom"

    def test_failed_carries_reason(self):
        assert Failed("x") == Failed("x")
        assert Failed("x") != Failed("y")
        assert Failed("x").reason == "x"


class TestArtifactConfig:
    """Tests for ArtifactConfig."""

    def test_all_enabled_by_default(self):
        assert ArtifactConfig().enabled() == list(ArtifactKind)

    def test_toggle(self):
        cfg = ArtifactConfig()
        assert cfg.toggle(ArtifactKind.USER) is False
        assert ArtifactKind.USER not in cfg.enabled()
        assert cfg.toggle(ArtifactKind.USER) is True

    def test_only(self):
        cfg = ArtifactConfig.only([ArtifactKind.TEXT])
        assert cfg.enabled() == [ArtifactKind.TEXT]
        assert cfg.any_ocr and not cfg.any_image


class TestIsAlreadyDone:
    """Tests for is_already_done() function."""

    def _job(self, tmp_path: Path) -> tuple[BatchJob, Path, Path]:
        inp, out = tmp_path / "in", tmp_path / "out"
        job = BatchJob(directory=inp / "batchA", index_start=1, file_count=3)
        return job, inp, out

    def test_missing_output_dir(self, tmp_path: Path):
        job, inp, out = self._job(tmp_path)
        assert not is_already_done(
            job, output_root=out, input_root=inp, artifacts=ArtifactConfig(), digits=4
        )

    def test_every_page_every_kind_present(self, tmp_path: Path):
        job, inp, out = self._job(tmp_path)
        _write_outputs(out / "batchA", range(1, 4), list(ArtifactKind))

        assert is_already_done(
            job, output_root=out, input_root=inp, artifacts=ArtifactConfig(), digits=4
        )

    def test_any_missing_file_means_incomplete(self, tmp_path: Path):
        """Test removing each single (page, kind) file in turn."""
        job, inp, out = self._job(tmp_path)
        out_dir = out / "batchA"
        for n in range(1, 4):
            for kind in ArtifactKind:
                _write_outputs(out_dir, range(1, 4), list(ArtifactKind))
                artifact_path(out_dir, page_index(n, 4), kind).unlink()
                assert not is_already_done(
                    job, output_root=out, input_root=inp, artifacts=ArtifactConfig(), digits=4
                ), (n, kind)

    def test_only_enabled_kinds_checked(self, tmp_path: Path):
        job, inp, out = self._job(tmp_path)
        _write_outputs(out / "batchA", range(1, 4), [ArtifactKind.TEXT])

        assert is_already_done(
            job,
            output_root=out,
            input_root=inp,
            artifacts=ArtifactConfig.only([ArtifactKind.TEXT]),
            digits=4,
        )

    def test_no_kinds_enabled_needs_only_output_dir(self, tmp_path: Path):
        job, inp, out = self._job(tmp_path)
        (out / "batchA").mkdir(parents=True)

        assert is_already_done(
            job, output_root=out, input_root=inp, artifacts=ArtifactConfig.only([]), digits=4
        )


class TestReconcile:
    """Tests for reconcile() function."""

    def test_transitions(self, tmp_path: Path):
        inp, out = tmp_path / "in", tmp_path / "out"
        complete = BatchJob(inp / "a", 1, 1)
        incomplete = BatchJob(inp / "b", 2, 1, status=AlreadyDone())
        done = BatchJob(inp / "c", 3, 1, status=Done())
        failed = BatchJob(inp / "d", 4, 1, status=Failed("x"))
        _write_outputs(out / "a", [1], list(ArtifactKind))
        _write_outputs(out / "c", [3], list(ArtifactKind))
        jobs = [complete, incomplete, done, failed]

        reconcile(jobs, output_root=out, input_root=inp, artifacts=ArtifactConfig(), digits=4)

        assert isinstance(complete.status, AlreadyDone)
        assert isinstance(incomplete.status, Pending)
        assert isinstance(done.status, Done)
        assert failed.status == Failed("x")

    def test_done_never_demoted(self, tmp_path: Path):
        """Test that a Done job keeps its status even with files missing."""
        inp, out = tmp_path / "in", tmp_path / "out"
        job = BatchJob(inp / "a", 1, 2, status=Done())

        reconcile([job], output_root=out, input_root=inp, artifacts=ArtifactConfig(), digits=4)

        assert isinstance(job.status, Done)

    def test_processing_untouched_when_incomplete(self, tmp_path: Path):
        inp, out = tmp_path / "in", tmp_path / "out"
        job = BatchJob(inp / "a", 1, 2, status=Processing())

        reconcile([job], output_root=out, input_root=inp, artifacts=ArtifactConfig(), digits=4)

        assert isinstance(job.status, Processing)

    def test_deleting_a_file_demotes_on_next_reconcile(self, tmp_path: Path):
        inp, out = tmp_path / "in", tmp_path / "out"
        job = BatchJob(inp / "a", 1, 2)
        _write_outputs(out / "a", [1, 2], list(ArtifactKind))
        kwargs = dict(output_root=out, input_root=inp, artifacts=ArtifactConfig(), digits=4)

        reconcile([job], **kwargs)
        assert isinstance(job.status, AlreadyDone)

        artifact_path(out / "a", "0002", ArtifactKind.ALTO).unlink()
        reconcile([job], **kwargs)
        assert isinstance(job.status, Pending)


class TestPageRecords:
    """Tests for page_records() function."""

    def test_records_per_page(self, tmp_path: Path):
        job = BatchJob(tmp_path / "a", 7, 2)
        records = page_records(job, tmp_path, 4, [ArtifactKind.MASTER, ArtifactKind.TEXT])

        assert [r.index for r in records] == ["0007", "0008"]
        assert records[1].outputs[ArtifactKind.TEXT] == tmp_path / "0008.ocr.txt"
        assert ArtifactKind.USER not in records[0].outputs
