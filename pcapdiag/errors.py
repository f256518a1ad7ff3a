"""
Exception hierarchy for capture analysis.

Only input-level failures are raised. Per-frame decode problems never
surface as exceptions; they are counted as malformed packets instead.
"""

from __future__ import annotations


class PcapDiagError(Exception):
    """Base class for all analysis errors."""


class CaptureOpenError(PcapDiagError, OSError):
    """The capture source could not be opened."""


class InvalidCaptureError(PcapDiagError, ValueError):
    """The capture global header is missing, corrupt or unrecognized."""


class UnsupportedCaptureFormatError(InvalidCaptureError):
    """The capture uses a container format other than legacy pcap."""

    def __init__(self, format_name: str):
        super().__init__(f"Unsupported capture format: {format_name} (only legacy pcap is supported)")
        self.format_name = format_name


class CaptureReadError(PcapDiagError):
    """Reading the capture failed part way through the stream."""


class AnalysisCancelled(PcapDiagError):
    """The caller asked the running analysis to stop."""

    def __init__(self, packets_processed: int):
        super().__init__(f"Analysis cancelled after {packets_processed} packets")
        self.packets_processed = packets_processed


__all__ = [
    'PcapDiagError',
    'CaptureOpenError',
    'InvalidCaptureError',
    'UnsupportedCaptureFormatError',
    'CaptureReadError',
    'AnalysisCancelled',
]
