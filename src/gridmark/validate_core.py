# src/gridmark/validate_core.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import numpy as np

from .bbox_core import BoundingBox
from .errors import InvalidSheetError
from .scoring_defaults import SheetDefaults

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationMetrics:
    ink_coverage: float
    aspect_ratio: float
    content_area_fraction: float
    min_dimension_ok: bool
    limits: SheetDefaults

    def failures(self) -> List[str]:
        s = self.limits
        out: List[str] = []
        if not (s.min_ink <= self.ink_coverage <= s.max_ink):
            out.append(f"ink coverage {self.ink_coverage:.3f} outside [{s.min_ink}, {s.max_ink}]")
        if not (s.min_aspect <= self.aspect_ratio <= s.max_aspect):
            out.append(f"aspect ratio {self.aspect_ratio:.2f} outside [{s.min_aspect}, {s.max_aspect}]")
        if self.content_area_fraction < s.min_area_fraction:
            out.append(f"content area {self.content_area_fraction:.2f} below {s.min_area_fraction}")
        if not self.min_dimension_ok:
            out.append(f"content smaller than {s.min_dimension_ratio:.0%} of the frame")
        return out

    @property
    def accepted(self) -> bool:
        return not self.failures()


def ink_coverage(gray: np.ndarray, box: BoundingBox, ink_threshold: int, step: int) -> float:
    """Fraction of ink pixels inside `box`, sampling every `step`-th pixel on both axes."""
    step = max(1, int(step))
    sample = gray[box.min_y:box.max_y:step, box.min_x:box.max_x:step]
    if sample.size == 0:
        return 0.0
    return float(np.count_nonzero(sample < ink_threshold)) / float(sample.size)


def measure_sheet(gray: np.ndarray, box: BoundingBox, sheet: SheetDefaults) -> ValidationMetrics:
    h, w = gray.shape[:2]
    return ValidationMetrics(
        ink_coverage=ink_coverage(gray, box, sheet.ink_threshold, sheet.sample_step),
        aspect_ratio=box.width / float(box.height),
        content_area_fraction=box.area / float(w * h),
        min_dimension_ok=(box.width > w * sheet.min_dimension_ratio
                          and box.height > h * sheet.min_dimension_ratio),
        limits=sheet,
    )


def validate_sheet(gray: np.ndarray, box: BoundingBox, sheet: SheetDefaults) -> ValidationMetrics:
    """Return the metrics if the box looks like an answer sheet, else raise InvalidSheetError."""
    metrics = measure_sheet(gray, box, sheet)
    logger.debug(
        "Sheet metrics: ink=%.3f aspect=%.2f area=%.2f dims_ok=%s",
        metrics.ink_coverage, metrics.aspect_ratio,
        metrics.content_area_fraction, metrics.min_dimension_ok,
    )
    failures = metrics.failures()
    if failures:
        raise InvalidSheetError("; ".join(failures))
    return metrics
