"""
Run configuration.

Settings come from an optional JSON file and are overridden by CLI options.
Validation errors are reported as ConfigError so the CLI can reject them
with a readable message.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .jobs import ArtifactConfig
from .tools import AUTO, KNOWN_ALTO_VERSIONS

DEFAULT_START_INDEX = 1
DEFAULT_DIGITS = 4
DEFAULT_LANG = "ces"
DEFAULT_ALTO_VERSION = "4.4"


class RunConfig(BaseModel):
    """
    Settings for one scanarc session.

    Attributes:
        input_root: Directory holding batches (root and/or subdirectories)
        output_root: Directory receiving outputs and audit directories
        start_index: Sequence number of the first page of the first batch
        digits: Zero-padding width of page indexes
        lang: Tesseract language tag (e.g. "ces", "eng+ces")
        alto_version: ALTO version written by the OCR engine
        grok_bin: Encoder binary path, or "auto"
        tess_bin: OCR binary path, or "auto"
        tessdata_dir: Explicit tessdata location (auto-detected when unset)
        force_local_tess: Resolve tesseract only from a bundled copy, never PATH
        dry_run: Log tool commands without running them
        master, user, text, alto: Enabled artifact kinds
    """

    model_config = ConfigDict(extra="forbid")

    input_root: Path = Path("input")
    output_root: Path = Path("output")
    start_index: int = Field(default=DEFAULT_START_INDEX, ge=0)
    digits: int = Field(default=DEFAULT_DIGITS, ge=1, le=9)
    lang: str = DEFAULT_LANG
    alto_version: str = DEFAULT_ALTO_VERSION
    grok_bin: str = AUTO
    tess_bin: str = AUTO
    tessdata_dir: Path | None = None
    force_local_tess: bool = False
    dry_run: bool = False
    master: bool = True
    user: bool = True
    text: bool = True
    alto: bool = True

    @field_validator("alto_version")
    @classmethod
    def _known_alto_version(cls, value: str) -> str:
        if value not in KNOWN_ALTO_VERSIONS:
            raise ValueError(
                f"unknown ALTO version {value!r} (expected one of {', '.join(KNOWN_ALTO_VERSIONS)})"
            )
        return value

    @field_validator("lang")
    @classmethod
    def _non_empty_lang(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("language tag must not be empty")
        return value

    def artifact_config(self) -> ArtifactConfig:
        return ArtifactConfig(
            master=self.master, user=self.user, text=self.text, alto=self.alto
        )


def make_config(data: dict[str, Any]) -> RunConfig:
    """
    Validate a settings mapping.

    Raises:
        ConfigError: If any value is invalid
    """
    try:
        return RunConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e


def load_config(path: Path | None, overrides: dict[str, Any] | None = None) -> RunConfig:
    """
    Load settings from a JSON file and apply overrides.

    Override values of None are ignored so unset CLI options do not clobber
    the file.

    Raises:
        ConfigError: If the file cannot be read or a value is invalid
    """
    data: dict[str, Any] = {}
    if path is not None:
        try:
            loaded = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {path} must hold a JSON object")
        data.update(loaded)

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return make_config(data)
