# src/gridmark/visualize_core.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Tuple, Union

import cv2
import numpy as np

SELECTED_COLOR = (0, 200, 0)     # BGR
UNSELECTED_COLOR = (0, 0, 255)


@dataclass(frozen=True)
class OptionMark:
    question_number: int
    option_number: int
    center: Tuple[int, int]
    selected: bool


def render_annotated_image(
    gray: np.ndarray,
    marks: Iterable[OptionMark],
    radius: int = 6,
    thickness: int = 2,
) -> np.ndarray:
    """Draw a circle at every refined option center: green if selected, red otherwise."""
    out = cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR) if gray.ndim == 2 else gray.copy()
    for m in marks:
        color = SELECTED_COLOR if m.selected else UNSELECTED_COLOR
        cv2.circle(out, (int(m.center[0]), int(m.center[1])), max(1, int(radius)), color, thickness, lineType=cv2.LINE_AA)
    return out


def file_annotator(out_image: Union[str, Path], radius: int = 6) -> Callable[[np.ndarray, list], str]:
    """
    Build an annotator for `decode` that writes the overlay to `out_image` (PNG/JPG).
    Raises OSError if the image cannot be written; `decode` logs and ignores it.
    """
    out_path = Path(out_image).expanduser().resolve()

    def _write(gray: np.ndarray, marks: list) -> str:
        vis = render_annotated_image(gray, marks, radius=radius)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(out_path), vis):
            raise OSError(f"Could not write annotated image: {out_path}")
        return str(out_path)

    return _write
