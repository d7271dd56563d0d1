# src/gridmark/classify_core.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .layout_core import GridConfig
from .scoring_defaults import ScoringDefaults


@dataclass(frozen=True)
class OptionSample:
    option_number: int
    center: Tuple[int, int]
    brightness: float


@dataclass(frozen=True)
class Decision:
    selected: Optional[int]   # 1-based option number or None
    rule: int                 # cascade rule that fired, 0 when none did
    darkest: float
    second: float
    avg_others: float
    avg_all: float


def window_half_width(grid: GridConfig, scoring: ScoringDefaults) -> int:
    return max(1, int(min(grid.option_width, grid.row_height) * scoring.window_ratio))


def measure_brightness(gray: np.ndarray, center: Tuple[int, int], half: int) -> float:
    """Mean intensity of the (2*half+1)^2 window around `center`, clamped to the image."""
    h, w = gray.shape[:2]
    x, y = center
    x0 = max(0, x - half); x1 = min(w, x + half + 1)
    y0 = max(0, y - half); y1 = min(h, y + half + 1)
    win = gray[y0:y1, x0:x1]
    if win.size == 0:
        return 255.0
    return float(win.mean())


def explain(brightness: Sequence[float], scoring: ScoringDefaults) -> Decision:
    """
    Relative-darkness cascade. Each option is compared against the others on
    the same question, so a global exposure shift does not change the outcome.

    Rules (first match selects the darkest option):
      1. darkest < avg_others * strict_ratio
      2. darkest < dark_max and avg_others > others_min
      3. second - darkest > second_gap and darkest < second_gap_max
      4. darkest < avg_all * all_ratio
      5. avg_others - darkest > others_gap and darkest < others_gap_max
      6. second - darkest > faint_gap and darkest < faint_max
    Otherwise nothing is selected (blank or ambiguous).
    """
    if len(brightness) < 2:
        raise ValueError("need at least two option samples to classify")

    # stable sort: equal brightness keeps the lower option number first
    order = sorted(range(len(brightness)), key=lambda i: brightness[i])
    values = [float(brightness[i]) for i in order]
    darkest, second = values[0], values[1]
    avg_others = sum(values[1:]) / (len(values) - 1)
    avg_all = sum(values) / len(values)
    s = scoring

    rules = (
        darkest < avg_others * s.strict_ratio,
        darkest < s.dark_max and avg_others > s.others_min,
        (second - darkest) > s.second_gap and darkest < s.second_gap_max,
        darkest < avg_all * s.all_ratio,
        (avg_others - darkest) > s.others_gap and darkest < s.others_gap_max,
        (second - darkest) > s.faint_gap and darkest < s.faint_max,
    )
    fired = next((n for n, hit in enumerate(rules, start=1) if hit), 0)
    selected = order[0] + 1 if fired else None
    return Decision(selected, fired, darkest, second, avg_others, avg_all)


def classify(brightness: Sequence[float], scoring: ScoringDefaults) -> Optional[int]:
    return explain(brightness, scoring).selected
