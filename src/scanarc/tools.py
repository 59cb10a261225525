"""
Adapters for the external command-line tools.

Two tools do the actual work and are treated as black boxes with fixed
argument contracts:

    grk_compress  JPEG2000 encoder (master and user profiles)
    tesseract     OCR engine (plain text and ALTO in a single call)

Calls block until the process exits. A tool that cannot be launched or
exits nonzero produces a failed ToolResult rather than an exception, so
the pipeline can record it and keep going.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from .errors import ToolInvocationError

AUTO = "auto"
GROK_BINARY = "grk_compress"
TESSERACT_BINARY = "tesseract"

# Code-block precinct sizes shared by both JPEG2000 profiles.
PRECINCTS = "[256,256],[256,256],[128,128],[128,128],[128,128],[128,128]"

KNOWN_ALTO_VERSIONS = (
    "4.4", "4.3", "4.2", "4.1", "4.0", "3.0", "2.1", "2.0",
    "1.4", "1.3", "1.2", "1.1", "1.0",
)


class EncoderProfile(str, Enum):
    MASTER = "master"
    USER = "user"


# Lossless, large tiles for the archival master; layered lossy rates for
# the access copy.
PROFILE_ARGS: dict[EncoderProfile, list[str]] = {
    EncoderProfile.MASTER: [
        "-t", "4096,4096",
        "-p", "RPCL",
        "-n", "6",
        "-c", PRECINCTS,
        "-b", "64,64",
        "-X",
        "-M", "1",
        "-S",
        "-E",
        "-u", "R",
    ],
    EncoderProfile.USER: [
        "-r", "362,256,181,128,90,64,45,32,22,16,11,8",
        "-I",
        "-t", "1024,1024",
        "-p", "RPCL",
        "-n", "6",
        "-c", PRECINCTS,
        "-b", "64,64",
        "-X",
        "-M", "1",
        "-u", "R",
        "-H", "4",
    ],
}


@dataclass
class ToolResult:
    """Outcome of one external tool invocation."""

    ok: bool
    command: str
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    dry_run: bool = False

    def error(self, label: str) -> ToolInvocationError:
        """Describe a failed invocation as an exception (not raised here)."""
        if self.returncode is None:
            detail = f"could not launch: {self.stderr.strip()}"
        else:
            detail = f"exit code {self.returncode}"
            first = _first_line(self.stderr) or _first_line(self.stdout)
            if first:
                detail += f": {first}"
        return ToolInvocationError(f"{label} failed ({detail})")


@dataclass
class ToolStatus:
    """Health of a tool binary, as reported by its probe command."""

    ok: bool
    detail: str


def _first_line(text: str) -> str:
    for line in (text or "").splitlines():
        if line.strip():
            return line.strip()
    return ""


def run_tool(
    args: list[str],
    *,
    env: dict[str, str] | None = None,
    dry_run: bool = False,
) -> ToolResult:
    """
    Run a command to completion, capturing exit code and both streams.

    In dry-run mode nothing is launched and the result reports success.
    """
    command = shlex.join(args)
    if dry_run:
        return ToolResult(ok=True, command=command, dry_run=True)

    try:
        proc = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            env=env,
        )
    except OSError as e:
        return ToolResult(ok=False, command=command, returncode=None, stderr=str(e))

    return ToolResult(
        ok=proc.returncode == 0,
        command=command,
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )


class Encoder(Protocol):
    """Minimal interface for a JPEG2000 encoder."""

    name: str

    def encode(self, source: Path, destination: Path, profile: EncoderProfile) -> ToolResult:
        ...


class OcrEngine(Protocol):
    """Minimal interface for an OCR engine producing text and/or ALTO."""

    name: str

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
        ...


@dataclass
class GrokEncoder:
    """Grok-backed JPEG2000 encoder using the grk_compress CLI."""

    binary: Path
    dry_run: bool = False
    name: str = "grok"

    def command(self, source: Path, destination: Path, profile: EncoderProfile) -> list[str]:
        return [
            str(self.binary),
            "-i", str(source),
            "-o", str(destination),
            *PROFILE_ARGS[profile],
        ]

    def encode(self, source: Path, destination: Path, profile: EncoderProfile) -> ToolResult:
        return run_tool(self.command(source, destination, profile), dry_run=self.dry_run)


def alto_major(alto_version: str) -> str:
    """
    Map an ALTO version to the major number tesseract understands.

    Example:
        >>> alto_major("4.4")
        '4'
        >>> alto_major("1.2")
        '4'
    """
    for major in ("4", "3", "2"):
        if alto_version.startswith(major):
            return major
    return "4"


@dataclass
class TesseractOcr:
    """
    Tesseract-backed OCR using the tesseract CLI.

    One invocation per page writes every wanted output next to `out_base`:

        tesseract [--tessdata-dir D] <input> <out_base> -l <lang> [alto] [txt]
            [-c tessedit_create_alto=1 -c alto_version=<major>]
    """

    binary: Path
    tessdata_dir: Path | None = None
    dry_run: bool = False
    name: str = "tesseract"

    def tessdata_location(self) -> tuple[Path, Path] | None:
        """Return (TESSDATA_PREFIX, --tessdata-dir) when a tessdata dir is known."""
        if self.tessdata_dir is None:
            return None
        base = Path(self.tessdata_dir)
        nested = base / "tessdata"
        if nested.is_dir():
            return base, nested
        if base.exists():
            return base.parent, base
        return None

    def command(
        self,
        source: Path,
        out_base: Path,
        *,
        lang: str,
        alto_version: str,
        want_text: bool,
        want_alto: bool,
    ) -> list[str]:
        args = [str(self.binary)]
        location = self.tessdata_location()
        if location is not None:
            args += ["--tessdata-dir", str(location[1])]
        args += [str(source), str(out_base), "-l", lang]
        if want_alto:
            args.append("alto")
        if want_text:
            args.append("txt")
        if want_alto:
            args += [
                "-c", "tessedit_create_alto=1",
                "-c", f"alto_version={alto_major(alto_version)}",
            ]
        return args

    def environment(self) -> dict[str, str] | None:
        location = self.tessdata_location()
        if location is None:
            return None
        env = dict(os.environ)
        env["TESSDATA_PREFIX"] = str(location[0])
        return env

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
        args = self.command(
            source,
            out_base,
            lang=lang,
            alto_version=alto_version,
            want_text=want_text,
            want_alto=want_alto,
        )
        return run_tool(args, env=self.environment(), dry_run=self.dry_run)


def _executable(name: str) -> str:
    return f"{name}.exe" if os.name == "nt" else name


def resolve_tool(
    value: str,
    binary: str,
    *,
    tool_dir: str,
    base_dir: Path | None = None,
    local_only: bool = False,
) -> Path:
    """
    Resolve a tool binary path.

    An explicit value is used as given. With "auto", a bundled copy under
    `<base_dir>/<tool_dir>/bin/` or `<base_dir>/<tool_dir>/` wins, then the
    PATH, and finally the bare executable name. With `local_only` the PATH
    is never searched.

    Example:
        >>> resolve_tool("auto", GROK_BINARY, tool_dir="grok")
        PosixPath('/usr/local/bin/grk_compress')
    """
    if value != AUTO:
        return Path(value)

    exe = _executable(binary)
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    for candidate in (base / tool_dir / "bin" / exe, base / tool_dir / exe):
        if candidate.is_file():
            return candidate

    if local_only:
        return Path(exe)

    found = shutil.which(exe)
    if found:
        return Path(found)
    return Path(exe)


def find_tessdata_dir(tesseract: Path, *, cwd: Path | None = None) -> Path | None:
    """
    Locate the directory that contains a `tessdata` folder for a binary.

    Looks next to the binary, one level up, under `share/` one level up,
    in the working directory, then at $TESSDATA_PREFIX.
    """
    tesseract = Path(tesseract)
    parent = tesseract.parent
    candidates = [parent]
    if parent.parent != parent:
        candidates += [parent.parent, parent.parent / "share"]
    candidates.append(Path(cwd) if cwd is not None else Path.cwd())
    prefix = os.environ.get("TESSDATA_PREFIX")
    if prefix:
        candidates.append(Path(prefix))

    for candidate in candidates:
        if (candidate / "tessdata").is_dir():
            return candidate
    return None


def check_tool(binary: Path, probe_args: list[str], *, dry_run: bool = False) -> ToolStatus:
    """
    Probe a tool binary (e.g. `--version`) and summarize the result.

    Example:
        >>> check_tool(Path("tesseract"), ["--version"])
        ToolStatus(ok=True, detail='tesseract 5.3.4')
    """
    if dry_run:
        return ToolStatus(ok=True, detail="(dry-run)")

    result = run_tool([str(binary), *probe_args])
    if result.returncode is None:
        return ToolStatus(ok=False, detail=f"cannot launch: {result.stderr.strip()}")
    if result.ok:
        return ToolStatus(ok=True, detail=_first_line(result.stdout) or "OK")
    return ToolStatus(
        ok=False,
        detail=f"exit {result.returncode}: {_first_line(result.stderr)}",
    )
