"""
Static HTML report for a processed batch.

`index.html` is written into the batch audit directory and links to the
previews beside it and to the OCR outputs in the sibling batch directory.
It is meant to be opened from disk or served by any static file server.
"""

from __future__ import annotations

from html import escape
import os
from pathlib import Path
import json

from scanarc.errors import ReportError

from .manifest import MANIFEST_FILENAME, FileRecord, Manifest, load_manifest
from .previews import preview_name

REPORT_FILENAME = "index.html"

_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{title}</title>
  <style>
    body {{ font-family: system-ui, sans-serif; margin: 2rem; }}
    table {{ border-collapse: collapse; }}
    td, th {{ border: 1px solid #ccc; padding: .4rem .6rem; vertical-align: top; }}
    code {{ font-size: .8em; }}
    img {{ max-width: 160px; }}
  </style>
</head>
<body>
  <h1>{title}</h1>
  <p>Created {created} &middot; language <code>{lang}</code> &middot; ALTO {alto_version}
     &middot; {count} page(s) &middot; {algorithm} digests</p>
  <table>
    <thead><tr><th>Page</th><th>Preview</th><th>Files</th></tr></thead>
    <tbody>
{rows}
    </tbody>
  </table>
  <script type="application/json" id="manifest">{client_manifest}</script>
</body>
</html>
"""


def _relative_url(prefix: str, record: FileRecord | None) -> str | None:
    if record is None:
        return None
    return f"{prefix}/{Path(record.path).name}".replace("\\", "/")


def client_manifest(manifest: Manifest) -> dict:
    """Compact page list consumed by the in-page viewer."""
    prefix = os.path.relpath(manifest.output_dir, manifest.logs_dir).replace("\\", "/")
    return {
        "batchName": manifest.batch_name,
        "createdAt": manifest.created_at,
        "lang": manifest.lang,
        "altoVersion": manifest.alto_version,
        "pages": [
            {
                "index": page.index,
                "imageUrl": preview_name(page.index),
                "txtUrl": _relative_url(prefix, page.txt),
                "altoUrl": _relative_url(prefix, page.alto),
            }
            for page in manifest.pages
        ],
    }


def render_report(manifest: Manifest) -> str:
    rows: list[str] = []
    client = client_manifest(manifest)
    for page, entry in zip(manifest.pages, client["pages"]):
        files = []
        for label, record in page.files():
            name = escape(Path(record.path).name)
            files.append(f"{escape(label)}: {name} <code>{escape(record.digest)}</code>")
        links = []
        if entry["txtUrl"]:
            links.append(f'<a href="{escape(entry["txtUrl"])}">text</a>')
        if entry["altoUrl"]:
            links.append(f'<a href="{escape(entry["altoUrl"])}">ALTO</a>')
        rows.append(
            "      <tr>"
            f"<td>{escape(page.index)}<br>{' '.join(links)}</td>"
            f'<td><img src="{escape(entry["imageUrl"])}" alt="page {escape(page.index)}"></td>'
            f"<td>{'<br>'.join(files)}</td>"
            "</tr>"
        )

    # "</" must not terminate the script element early.
    payload = json.dumps(client, ensure_ascii=False).replace("</", "<\\/")
    return _TEMPLATE.format(
        title=escape(f"Batch {manifest.batch_name}"),
        created=escape(manifest.created_at),
        lang=escape(manifest.lang),
        alto_version=escape(manifest.alto_version),
        count=manifest.file_count,
        algorithm=escape(manifest.digest_algorithm),
        rows="\n".join(rows),
        client_manifest=payload,
    )


def write_report(logs_dir: Path) -> Path:
    """
    Render `index.html` from the manifest in `logs_dir`.

    Raises:
        ReportError: If the manifest is missing/unreadable or the report
            cannot be written
    """
    manifest_path = logs_dir / MANIFEST_FILENAME
    if not manifest_path.exists():
        raise ReportError(f"Manifest not found: {manifest_path}")
    try:
        manifest = load_manifest(manifest_path)
        path = logs_dir / REPORT_FILENAME
        path.write_text(render_report(manifest), encoding="utf-8")
    except (OSError, ValueError) as e:
        raise ReportError(f"Cannot write report in {logs_dir}: {e}") from e
    return path
