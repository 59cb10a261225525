"""
Pipeline module for scanarc batch processing.

Provides the batch executor, manifest and ledger writers, and the preview
and report stages that follow a successful batch.
"""
