"""
Exceptions raised while building, encoding and decoding trace events.
"""

from __future__ import annotations
from typing import Optional


class MissingField(ValueError):
    """A required field was never staged on an EventBuilder."""

    def __init__(self, kind: Optional[str], field: str) -> None:
        self.kind = kind
        self.field = field
        if kind is None:
            message = f"{field} must be initialized"
        else:
            message = f"{kind}::{field} must be initialized"
        super().__init__(message)


class TraceFormatError(ValueError):
    """A document or event does not match the Chrome Trace Event Format."""
