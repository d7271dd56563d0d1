# src/gridmark/errors.py
from __future__ import annotations

# Callers in a continuous-scanning loop look for this phrase to decide
# "keep trying with a new frame" instead of surfacing an error.
SHEET_NOT_FOUND_MARKER = "Unidentified object"


class OMRError(Exception):
    """Base class for every failure raised by the decode pipeline."""


class DecodeError(OMRError):
    """The input could not be interpreted as an image."""


class InvalidSheetError(OMRError):
    """The image decoded fine but does not look like an answer sheet."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"{SHEET_NOT_FOUND_MARKER}: {reason}. Position the answer sheet in view.")


class NoContentDetected(InvalidSheetError):
    """No ink was found on the bounding-box sampling lines."""


class DecodeCancelled(OMRError):
    """The caller abandoned the decode before it finished."""


def is_sheet_not_found(err: BaseException | str) -> bool:
    """True if `err` (an exception or its message) means 'reposition the sheet'."""
    if isinstance(err, InvalidSheetError):
        return True
    return SHEET_NOT_FOUND_MARKER in str(err)
