# src/gridmark/layout_core.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Tuple

from .bbox_core import BoundingBox
from .scoring_defaults import LayoutDefaults


@dataclass(frozen=True)
class GridConfig:
    total_questions: int
    questions_per_row: int
    rows: int
    options: int
    margin_x: float
    margin_y: float
    content_width: float
    content_height: float
    row_height: float
    question_width: float
    option_width: float


def compute_grid(box: BoundingBox, total_questions: int, layout: LayoutDefaults) -> GridConfig:
    if total_questions < 1:
        raise ValueError(f"total_questions must be >= 1, got {total_questions}")
    if layout.questions_per_row < 1:
        raise ValueError("questions_per_row must be >= 1")

    rows = math.ceil(total_questions / layout.questions_per_row)
    question_width = box.width / layout.questions_per_row
    return GridConfig(
        total_questions=total_questions,
        questions_per_row=layout.questions_per_row,
        rows=rows,
        options=layout.options,
        margin_x=float(box.min_x),
        margin_y=float(box.min_y),
        content_width=float(box.width),
        content_height=float(box.height),
        row_height=box.height / rows,
        question_width=question_width,
        option_width=question_width / layout.option_divisor,
    )


def question_origin(grid: GridConfig, q: int, layout: LayoutDefaults) -> Tuple[float, float]:
    """Nominal block anchor for 0-based question index `q`."""
    row, col = divmod(q, grid.questions_per_row)
    x = grid.margin_x + col * grid.question_width + grid.question_width * layout.block_x_offset
    y = grid.margin_y + row * grid.row_height + grid.row_height * layout.block_y_offset
    return x, y


def option_center(grid: GridConfig, q: int, option: int, layout: LayoutDefaults) -> Tuple[float, float]:
    """Nominal center of 1-based `option` for 0-based question `q`."""
    bx, by = question_origin(grid, q, layout)
    return bx + (option - 1) * grid.option_width + grid.option_width * layout.option_x_offset, by


def option_centers(grid: GridConfig, q: int, layout: LayoutDefaults) -> List[Tuple[float, float]]:
    return [option_center(grid, q, opt, layout) for opt in range(1, grid.options + 1)]
