"""
Error taxonomy for scanarc.

Per-page tool failures are recorded as messages and never raised out of a
batch; these exceptions mark the places where an operation genuinely stops.
"""

from __future__ import annotations


class ScanarcError(Exception):
    """Base class for all scanarc errors."""


class DiscoveryError(ScanarcError):
    """The input tree could not be listed."""


class ToolInvocationError(ScanarcError):
    """An external tool failed to launch or exited nonzero."""


class ManifestError(ScanarcError):
    """An existing output file could not be stat'ed or hashed."""


class ConfigError(ScanarcError, ValueError):
    """An invalid configuration value or operator request."""


class PreviewError(ScanarcError):
    """Preview generation could not start (missing or unreadable manifest)."""


class ReportError(ScanarcError):
    """The static report could not be written."""


class ConvergenceWarning(UserWarning):
    """Expected output files were still missing after the bounded wait."""
