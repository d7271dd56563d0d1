# src/gridmark/scoring_defaults.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Tuple


@dataclass(frozen=True)
class SheetDefaults:
    # Bounding-box detection and sheet validation
    ink_threshold: int = 200                       # pixel < threshold counts as ink
    vertical_lines: Tuple[float, ...] = (0.25, 0.75)  # x positions (fraction of width) of the vertical scans
    expand_ratio: float = 0.02                     # grow the box by this fraction of each dimension
    missing_content: str = "reject"                # "reject" | "fallback"
    fallback_margin: float = 0.05                  # inset used by "fallback" mode
    sample_step: int = 5                           # sparse sampling stride for ink coverage
    min_ink: float = 0.05
    max_ink: float = 0.60
    min_aspect: float = 0.3
    max_aspect: float = 3.0
    min_area_fraction: float = 0.15
    min_dimension_ratio: float = 0.20


@dataclass(frozen=True)
class LayoutDefaults:
    # Grid geometry. Offsets are fractions of the question block / option cell.
    questions_per_row: int = 10
    options: int = 4
    option_divisor: float = 4.2     # option_width = question_width / option_divisor
    block_x_offset: float = 0.15
    block_y_offset: float = 0.55
    option_x_offset: float = 0.6
    search_ratio: float = 0.4       # locator half-width = option_width * search_ratio
    search_step: int = 2


@dataclass(frozen=True)
class ScoringDefaults:
    # Fill classifier cascade, checked in this order
    window_ratio: float = 0.15      # half-width = min(option_width, row_height) * window_ratio
    strict_ratio: float = 0.92      # 1: darkest < avg_others * strict_ratio
    dark_max: float = 150.0         # 2: darkest < dark_max and avg_others > others_min
    others_min: float = 165.0
    second_gap: float = 12.0        # 3: second - darkest > second_gap and darkest < second_gap_max
    second_gap_max: float = 180.0
    all_ratio: float = 0.88         # 4: darkest < avg_all * all_ratio
    others_gap: float = 10.0        # 5: avg_others - darkest > others_gap and darkest < others_gap_max
    others_gap_max: float = 190.0
    faint_gap: float = 8.0          # 6: second - darkest > faint_gap and darkest < faint_max
    faint_max: float = 200.0


@dataclass(frozen=True)
class DecodeSettings:
    sheet: SheetDefaults = field(default_factory=SheetDefaults)
    layout: LayoutDefaults = field(default_factory=LayoutDefaults)
    scoring: ScoringDefaults = field(default_factory=ScoringDefaults)


DEFAULTS = DecodeSettings()


def apply_overrides(
    settings: DecodeSettings | None = None,
    ink_threshold: int | None = None,
    questions_per_row: int | None = None,
    missing_content: str | None = None,
) -> DecodeSettings:
    # produce an overridden immutable config without mutating DEFAULTS
    base = settings or DEFAULTS
    sheet = base.sheet
    layout = base.layout
    if ink_threshold is not None:
        sheet = replace(sheet, ink_threshold=ink_threshold)
    if missing_content is not None:
        sheet = replace(sheet, missing_content=missing_content)
    if questions_per_row is not None:
        layout = replace(layout, questions_per_row=questions_per_row)
    return replace(base, sheet=sheet, layout=layout)
