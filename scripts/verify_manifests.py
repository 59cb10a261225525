#!/usr/bin/env python3
"""Re-hash every file recorded in batch manifests and report drift.

Batch status is decided by file existence alone, so a truncated or edited
output still looks complete. This script reads every byte listed in each
`<batch>_logs/manifest.json` under an output root and compares size and
digest against what the manifest recorded.

Usage:
    python scripts/verify_manifests.py output/
    python scripts/verify_manifests.py output/batchA_logs
"""

from pathlib import Path

import typer

from scanarc.pipeline.manifest import MANIFEST_FILENAME, load_manifest, verify_manifest


app = typer.Typer(
    help="Verify batch manifests against the files on disk",
    add_completion=False,
)


def find_manifests(path: Path) -> list[Path]:
    """Manifest files in an audit directory, or in every `*_logs` dir of an output root."""
    if (path / MANIFEST_FILENAME).is_file():
        return [path / MANIFEST_FILENAME]
    return sorted(p / MANIFEST_FILENAME for p in path.glob("*_logs") if (p / MANIFEST_FILENAME).is_file())


@app.command()
def main(
    path: Path = typer.Argument(
        ...,
        help="Output root, or a single <batch>_logs directory",
    ),
) -> None:
    """
    Verify manifests and list every missing or changed file.

    Exits with code 2 when any file no longer matches its manifest.

    Example:
        python scripts/verify_manifests.py output/
    """
    path = path.expanduser()
    if not path.is_dir():
        typer.echo(f"Error: Directory not found: {path}", err=True)
        raise typer.Exit(code=1)

    manifests = find_manifests(path)
    if not manifests:
        typer.echo(f"Error: No {MANIFEST_FILENAME} found under {path}", err=True)
        raise typer.Exit(code=1)

    total_issues = 0
    for manifest_path in manifests:
        try:
            manifest = load_manifest(manifest_path)
        except (OSError, ValueError) as e:
            typer.echo(f"❌ {manifest_path}: cannot read manifest ({e})", err=True)
            total_issues += 1
            continue

        issues = verify_manifest(manifest)
        if issues:
            total_issues += len(issues)
            typer.echo(f"❌ {manifest.batch_name}: {len(issues)} issue(s)")
            for i, issue in enumerate(issues, start=1):
                typer.echo(f"  {i:>3}. [{issue.page}] {issue.path}: {issue.message}")
        else:
            typer.echo(f"✅ {manifest.batch_name}: {manifest.file_count} page(s) verified")

    if total_issues:
        raise typer.Exit(code=2)

    typer.secho(
        f"\nAll {len(manifests)} manifest(s) match the files on disk",
        fg=typer.colors.GREEN,
        bold=True,
    )


if __name__ == "__main__":
    app()
