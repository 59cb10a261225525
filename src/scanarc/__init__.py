"""scanarc: batch JPEG2000 + OCR conversion with a verifiable audit trail."""

__version__ = "0.1.0"
