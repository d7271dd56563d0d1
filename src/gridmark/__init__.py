"""gridmark: decode photographed bubble sheets into one answer per question."""

from .decode_core import QuestionAnswer, decode, decode_async, decode_many
from .errors import (
    SHEET_NOT_FOUND_MARKER,
    DecodeCancelled,
    DecodeError,
    InvalidSheetError,
    NoContentDetected,
    OMRError,
    is_sheet_not_found,
)
from .scoring_defaults import DEFAULTS, DecodeSettings

__version__ = "0.1.0"

__all__ = [
    "DEFAULTS",
    "DecodeCancelled",
    "DecodeError",
    "DecodeSettings",
    "InvalidSheetError",
    "NoContentDetected",
    "OMRError",
    "QuestionAnswer",
    "SHEET_NOT_FOUND_MARKER",
    "decode",
    "decode_async",
    "decode_many",
    "is_sheet_not_found",
]
