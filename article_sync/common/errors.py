"""Errors surfaced by the transformation core.

Everything else either degrades silently (parse anomalies, unsupported
constructs) or is caught per item (image uploads).
"""

from __future__ import annotations


class UnsupportedOutputFormatError(ValueError):
    """Raised when a render targets an output format with no emitter."""

    def __init__(self, output_format: object):
        self.output_format = output_format
        super().__init__(f"Unsupported output format: {output_format!r}")
