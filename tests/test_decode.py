import asyncio
import base64
import threading

import numpy as np
import pytest

import gridmark.decode_core as decode_core
from gridmark import (
    DecodeCancelled,
    DecodeError,
    InvalidSheetError,
    QuestionAnswer,
    decode,
    decode_async,
    decode_many,
    is_sheet_not_found,
)
from gridmark.tools.synthetic_sheet import encode_png
from gridmark.visualize_core import file_annotator, render_annotated_image


def _selected(answers):
    return [a.selected_answer for a in answers]


def test_end_to_end_synthetic_sheet(sheet, sheet_png):
    assert sheet.image.shape == (1400, 1000)
    answers = decode(sheet_png, 100)
    assert _selected(answers) == sheet.answers


def test_decodes_blank_questions_as_none(sheet_with_blanks):
    answers = decode(encode_png(sheet_with_blanks.image), 100)
    assert _selected(answers) == sheet_with_blanks.answers
    assert any(a is None for a in sheet_with_blanks.answers)


def test_accepts_array_and_data_uri(sheet, sheet_png):
    from_array = decode(sheet.image, 100)
    uri = "data:image/png;base64," + base64.b64encode(sheet_png).decode("ascii")
    from_uri = decode(uri, 100)
    assert from_array == from_uri
    assert _selected(from_uri) == sheet.answers


@pytest.mark.parametrize("n", [1, 7, 10, 100, 137])
def test_output_length_and_numbering(sheet_png, n):
    answers = decode(sheet_png, n)
    assert len(answers) == n
    assert [a.question_number for a in answers] == list(range(1, n + 1))
    assert all(a.selected_answer in (None, 1, 2, 3, 4) for a in answers)


def test_deterministic(sheet_png):
    assert decode(sheet_png, 100) == decode(sheet_png, 100)


def test_question_answer_dict():
    assert QuestionAnswer(3, None).to_dict() == {"questionNumber": 3, "selectedAnswer": None}


def test_white_image_rejected_before_grid(white, monkeypatch):
    def _no_grid(*args, **kwargs):
        raise AssertionError("grid computed for a rejected image")

    monkeypatch.setattr(decode_core, "compute_grid", _no_grid)
    with pytest.raises(InvalidSheetError) as exc:
        decode(encode_png(white), 100)
    assert is_sheet_not_found(exc.value)
    assert is_sheet_not_found(str(exc.value))


def test_black_image_rejected(black):
    with pytest.raises(InvalidSheetError):
        decode(encode_png(black), 100)


def test_garbage_bytes_are_a_decode_error():
    with pytest.raises(DecodeError) as exc:
        decode(b"\x00\x01garbage", 100)
    assert not is_sheet_not_found(exc.value)


def test_invalid_question_count(sheet_png):
    with pytest.raises(ValueError):
        decode(sheet_png, 0)


def test_cancel_before_start(sheet_png):
    ev = threading.Event()
    ev.set()
    with pytest.raises(DecodeCancelled):
        decode(sheet_png, 100, cancel=ev)


def test_cancel_mid_decode_returns_nothing(sheet_png):
    class CancelAfter:
        def __init__(self, n):
            self.calls = 0
            self.n = n

        def is_set(self):
            self.calls += 1
            return self.calls > self.n

    token = CancelAfter(30)
    with pytest.raises(DecodeCancelled):
        decode(sheet_png, 100, cancel=token)
    assert token.calls == 31


def test_annotator_receives_marks(sheet, sheet_png):
    seen = {}

    def annotator(gray, marks):
        seen["shape"] = gray.shape
        seen["marks"] = marks

    answers = decode(sheet_png, 100, annotator=annotator)
    assert seen["shape"] == (1400, 1000)
    assert len(seen["marks"]) == 400
    selected = [m for m in seen["marks"] if m.selected]
    assert len(selected) == sum(1 for a in answers if a.selected_answer is not None)


def test_annotator_draws_on_source_not_stretched_image(sheet):
    # squeeze the sheet into 60..187 so contrast stretching changes every pixel
    low = (sheet.image.astype(np.uint16) // 2 + 60).astype(np.uint8)
    seen = {}

    def annotator(gray, marks):
        seen["gray"] = gray

    answers = decode(encode_png(low), 100, annotator=annotator)
    assert _selected(answers) == sheet.answers
    assert np.array_equal(seen["gray"], low)


def test_line_wrapped_base64_sheet(sheet, sheet_png):
    uri = "data:image/png;base64," + base64.encodebytes(sheet_png).decode("ascii")
    assert _selected(decode(uri, 100)) == sheet.answers


def test_failing_annotator_does_not_change_result(sheet_png, caplog):
    def broken(gray, marks):
        raise RuntimeError("disk full")

    with caplog.at_level("ERROR"):
        answers = decode(sheet_png, 100, annotator=broken)
    assert answers == decode(sheet_png, 100)
    assert "Diagnostic overlay failed" in caplog.text


def test_file_annotator_writes_overlay(sheet_png, tmp_path):
    out = tmp_path / "overlays" / "sheet.png"
    decode(sheet_png, 100, annotator=file_annotator(out))
    assert out.exists() and out.stat().st_size > 0


def test_render_annotated_image_is_color(sheet):
    vis = render_annotated_image(sheet.image, [])
    assert vis.shape == (1400, 1000, 3)


def test_decode_async(sheet, sheet_png):
    answers = asyncio.run(decode_async(sheet_png, 100))
    assert _selected(answers) == sheet.answers


def test_decode_many_keeps_order_and_errors(sheet, sheet_png, white):
    results = decode_many([sheet_png, encode_png(white), sheet.image], 100, max_workers=3)
    assert _selected(results[0]) == sheet.answers
    assert isinstance(results[1], InvalidSheetError)
    assert results[2] == results[0]


def test_decode_many_checks_annotators(sheet_png):
    with pytest.raises(ValueError):
        decode_many([sheet_png], 100, annotators=[None, None])


def test_filled_cell_brightness_is_exact(sheet):
    # the locator must land inside the painted cell, so windows read the fill value
    from gridmark.classify_core import measure_brightness, window_half_width
    from gridmark.layout_core import option_centers
    from gridmark.locate_core import refine_center
    from gridmark.scoring_defaults import DEFAULTS

    half = window_half_width(sheet.grid, DEFAULTS.scoring)
    for q in (0, 9, 55, 99):
        values = [
            measure_brightness(sheet.image, refine_center(sheet.image, c, sheet.grid, DEFAULTS.layout), half)
            for c in option_centers(sheet.grid, q, DEFAULTS.layout)
        ]
        expected = [60.0 if opt == sheet.answers[q] else 220.0 for opt in range(1, 5)]
        assert values == pytest.approx(expected)
        assert np.argmin(values) + 1 == sheet.answers[q]
