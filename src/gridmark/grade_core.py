# src/gridmark/grade_core.py
from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import fitz  # PyMuPDF
import numpy as np

from .decode_core import QuestionAnswer, decode_many
from .errors import DecodeError, InvalidSheetError, OMRError
from .scoring_defaults import DecodeSettings
from .visualize_core import file_annotator

logger = logging.getLogger(__name__)

_LETTERS = {"A": 1, "B": 2, "C": 3, "D": 4}


@dataclass(frozen=True)
class QuestionResult:
    question_number: int
    selected_answer: Optional[int]
    correct_answer: Optional[int]
    is_correct: bool


@dataclass(frozen=True)
class ScanScore:
    results: List[QuestionResult]
    correct: int
    wrong: int
    total: int
    percentage: float


@dataclass(frozen=True)
class Page:
    source: str
    index: int                              # 1-based page within source
    image: Optional[np.ndarray]             # grayscale; None when loading failed
    error: Optional[DecodeError] = None


# ------------------------------------------------------------------------------
# Key handling & scoring
# ------------------------------------------------------------------------------

def parse_key(raw: str) -> List[Optional[int]]:
    """Answers as option numbers; accepts 1-4 or A-D, `-` for an unkeyed question."""
    key: List[Optional[int]] = []
    for ch in raw.upper():
        if ch in "1234":
            key.append(int(ch))
        elif ch in _LETTERS:
            key.append(_LETTERS[ch])
        elif ch == "-":
            key.append(None)
        elif ch.isalnum():
            raise ValueError(f"Invalid answer key character: {ch!r} (expected 1-4 or A-D)")
    return key


def load_key_txt(path: str | Path) -> List[Optional[int]]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_key(f.read())


def score_answers(answers: Sequence[QuestionAnswer], key: Sequence[Optional[int]]) -> ScanScore:
    """
    Compare decoded answers to the key question by question. Questions past the
    end of the key (or keyed `-`) have no correct answer and count as wrong.
    """
    results: List[QuestionResult] = []
    for i, ans in enumerate(answers):
        correct = key[i] if i < len(key) else None
        results.append(QuestionResult(
            question_number=ans.question_number,
            selected_answer=ans.selected_answer,
            correct_answer=correct,
            is_correct=correct is not None and ans.selected_answer == correct,
        ))
    n_correct = sum(1 for r in results if r.is_correct)
    total = len(results)
    percentage = round(n_correct / total * 100, 2) if total else 0.0
    return ScanScore(results, n_correct, total - n_correct, total, percentage)


# ------------------------------------------------------------------------------
# I/O helpers
# ------------------------------------------------------------------------------

def _load_pdf(p: str, dpi: int) -> List[Page]:
    zoom = dpi / 72.0
    pages: List[Page] = []
    with fitz.open(p) as doc:
        for i, page in enumerate(doc, start=1):
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), colorspace=fitz.csGRAY, alpha=False)
            img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.stride)[:, :pix.width]
            pages.append(Page(p, i, img.copy()))
    if not pages:
        raise DecodeError(f"Could not read any page from PDF: {p}")
    return pages


def _load_image(p: str) -> np.ndarray:
    img = cv2.imdecode(np.fromfile(p, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
    if img is None:
        raise DecodeError(f"Could not read image: {p}")
    return img


def load_pages(paths: Sequence[str], dpi: int = 300) -> List[Page]:
    """
    Load raster images and every page of PDFs as grayscale arrays.
    A file that cannot be read becomes a single Page carrying the error,
    so one bad input does not abort a batch.
    """
    pages: List[Page] = []
    for p in paths:
        try:
            if p.lower().endswith(".pdf"):
                pages.extend(_load_pdf(p, dpi))
            else:
                pages.append(Page(p, 1, _load_image(p)))
        except DecodeError as e:
            pages.append(Page(p, 1, None, e))
        except (OSError, RuntimeError, ValueError) as e:
            # fitz raises RuntimeError subclasses for damaged PDFs
            pages.append(Page(p, 1, None, DecodeError(f"Could not read {p}: {e}")))
    return pages


def _ensure_dir(path: str) -> None:
    if path and not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)


def _status(outcome) -> Tuple[str, str]:
    if isinstance(outcome, InvalidSheetError):
        return "rejected", str(outcome)
    if isinstance(outcome, OMRError):
        return "error", str(outcome)
    return "ok", ""


def grade_inputs(
    inputs: Sequence[str],
    out_csv: str,
    total_questions: int = 100,
    key: Optional[Sequence[Optional[int]]] = None,
    settings: Optional[DecodeSettings] = None,
    out_annotated_dir: Optional[str] = None,
    dpi: int = 300,
    workers: Optional[int] = None,
) -> List[dict]:
    """
    Decode every page of `inputs` in parallel and write one CSV row per page.

    Columns: source, page, status, detail, Q1..QN and, with a key,
    score, total, percentage. Rejected or failed pages keep blank answers.
    """
    pages = load_pages(list(inputs), dpi=dpi)

    annotators = None
    if out_annotated_dir:
        _ensure_dir(out_annotated_dir)
        annotators = [
            file_annotator(os.path.join(
                out_annotated_dir, f"{Path(pg.source).stem}_p{pg.index:03d}_overlay.png"))
            for pg in pages
        ]

    readable = [i for i, pg in enumerate(pages) if pg.error is None]
    decoded = decode_many(
        [pages[i].image for i in readable], total_questions, settings,
        max_workers=workers,
        annotators=[annotators[i] for i in readable] if annotators is not None else None,
    )
    outcomes: List[object] = [pg.error for pg in pages]
    for i, outcome in zip(readable, decoded):
        outcomes[i] = outcome

    header = ["source", "page", "status", "detail"] + [f"Q{i + 1}" for i in range(total_questions)]
    if key is not None:
        header += ["score", "total", "percentage"]

    _ensure_dir(os.path.dirname(out_csv) or ".")
    summary: List[dict] = []
    with open(out_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)

        for pg, outcome in zip(pages, outcomes):
            status, detail = _status(outcome)
            answers = outcome if status == "ok" else []
            row = [pg.source, str(pg.index), status, detail]
            if answers:
                row += ["" if a.selected_answer is None else str(a.selected_answer) for a in answers]
            else:
                row += [""] * total_questions

            score = None
            if key is not None:
                if answers:
                    score = score_answers(answers, key)
                    row += [str(score.correct), str(score.total), f"{score.percentage:.2f}"]
                else:
                    row += ["", "", ""]

            if status != "ok":
                logger.warning("%s page %d %s: %s", pg.source, pg.index, status, detail)
            writer.writerow(row)
            summary.append({"source": pg.source, "page": pg.index, "status": status,
                            "answers": answers, "score": score})

    return summary
