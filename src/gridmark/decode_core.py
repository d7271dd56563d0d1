# src/gridmark/decode_core.py
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

import numpy as np

from .bbox_core import detect_content_box
from .classify_core import OptionSample, explain, measure_brightness, window_half_width
from .errors import DecodeCancelled, OMRError
from .layout_core import compute_grid, option_centers
from .locate_core import refine_center
from .preprocess_core import ImageData, normalize_contrast, to_grayscale
from .scoring_defaults import DEFAULTS, DecodeSettings
from .validate_core import validate_sheet
from .visualize_core import OptionMark

logger = logging.getLogger(__name__)

Annotator = Callable[[np.ndarray, List[OptionMark]], Any]


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class QuestionAnswer:
    question_number: int
    selected_answer: Optional[int]

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {"questionNumber": self.question_number, "selectedAnswer": self.selected_answer}


def _annotate(annotator: Annotator, gray: np.ndarray, marks: List[OptionMark]) -> None:
    # Overlay is a side channel: it must never change the decode result.
    try:
        annotator(gray, marks)
    except Exception:
        logger.exception("Diagnostic overlay failed; continuing without it")


def decode(
    image_data: ImageData,
    total_questions: int = 100,
    settings: Optional[DecodeSettings] = None,
    cancel: Optional[CancelToken] = None,
    annotator: Optional[Annotator] = None,
) -> List[QuestionAnswer]:
    """
    Decode one photographed/scanned bubble sheet.

    `image_data` is raw image bytes, a base64 string (a `data:image/...;base64,`
    prefix is stripped) or an already-decoded array. Returns exactly
    `total_questions` answers numbered 1..N. An `annotator` is called once with
    the decoded grayscale source (before contrast stretching) and every OptionMark.

    Raises:
      DecodeError        -- input is not an image
      InvalidSheetError  -- no plausible grid in the frame (NoContentDetected included)
      DecodeCancelled    -- `cancel.is_set()` became true mid-decode
    """
    if total_questions < 1:
        raise ValueError(f"total_questions must be >= 1, got {total_questions}")
    cfg = settings or DEFAULTS

    source = to_grayscale(image_data)
    gray = normalize_contrast(source)
    box = detect_content_box(gray, cfg.sheet)
    validate_sheet(gray, box, cfg.sheet)

    grid = compute_grid(box, total_questions, cfg.layout)
    half = window_half_width(grid, cfg.scoring)
    logger.debug(
        "Grid: %d rows x %d per row, question_width=%.1f option_width=%.1f row_height=%.1f",
        grid.rows, grid.questions_per_row, grid.question_width, grid.option_width, grid.row_height,
    )

    answers: List[QuestionAnswer] = []
    marks: List[OptionMark] = []
    for q in range(total_questions):
        if cancel is not None and cancel.is_set():
            raise DecodeCancelled(f"decode cancelled at question {q + 1} of {total_questions}")

        samples: List[OptionSample] = []
        for opt, nominal in enumerate(option_centers(grid, q, cfg.layout), start=1):
            center = refine_center(gray, nominal, grid, cfg.layout)
            samples.append(OptionSample(opt, center, measure_brightness(gray, center, half)))

        decision = explain([s.brightness for s in samples], cfg.scoring)
        answers.append(QuestionAnswer(q + 1, decision.selected))
        if annotator is not None:
            marks.extend(
                OptionMark(q + 1, s.option_number, s.center, s.option_number == decision.selected)
                for s in samples
            )
        logger.debug(
            "Q%d brightness=%s -> %s (rule %d)",
            q + 1, [round(s.brightness, 1) for s in samples], decision.selected, decision.rule,
        )

    if annotator is not None:
        _annotate(annotator, source, marks)
    return answers


async def decode_async(
    image_data: ImageData,
    total_questions: int = 100,
    settings: Optional[DecodeSettings] = None,
    cancel: Optional[CancelToken] = None,
    annotator: Optional[Annotator] = None,
) -> List[QuestionAnswer]:
    """Run `decode` on a worker thread so an event loop keeps serving requests."""
    return await asyncio.to_thread(decode, image_data, total_questions, settings, cancel, annotator)


def decode_many(
    images: Sequence[ImageData],
    total_questions: int = 100,
    settings: Optional[DecodeSettings] = None,
    max_workers: Optional[int] = None,
    annotators: Optional[Sequence[Optional[Annotator]]] = None,
) -> List[Union[List[QuestionAnswer], OMRError]]:
    """
    Decode independent images in parallel. Results keep input order; an image
    that fails with an OMRError yields that error instead of a list of answers.
    """
    if annotators is not None and len(annotators) != len(images):
        raise ValueError("annotators must match images one-to-one")

    def _one(i: int) -> Union[List[QuestionAnswer], OMRError]:
        ann = annotators[i] if annotators is not None else None
        try:
            return decode(images[i], total_questions, settings, annotator=ann)
        except OMRError as e:
            return e

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(_one, range(len(images))))
