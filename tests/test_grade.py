import csv

import cv2
import fitz
import pytest

from gridmark.decode_core import QuestionAnswer
from gridmark.errors import DecodeError
from gridmark.grade_core import grade_inputs, load_key_txt, load_pages, parse_key, score_answers
from gridmark.tools.synthetic_sheet import encode_png


def test_parse_key_letters_digits_and_unkeyed():
    assert parse_key("A\nb\n3\n-\nD4") == [1, 2, 3, None, 4, 4]


@pytest.mark.parametrize("bad", ["ABE", "1235"])
def test_parse_key_rejects_unknown_answers(bad):
    with pytest.raises(ValueError):
        parse_key(bad)


def test_load_key_txt(tmp_path):
    p = tmp_path / "key.txt"
    p.write_text("1\n2\n3\n", encoding="utf-8")
    assert load_key_txt(p) == [1, 2, 3]


def test_score_answers():
    answers = [QuestionAnswer(1, 1), QuestionAnswer(2, None), QuestionAnswer(3, 4)]
    score = score_answers(answers, [1, 2, 3])
    assert (score.correct, score.wrong, score.total) == (1, 2, 3)
    assert score.percentage == 33.33
    assert [r.is_correct for r in score.results] == [True, False, False]
    assert score.results[1].correct_answer == 2


def test_score_answers_short_key():
    answers = [QuestionAnswer(1, 1), QuestionAnswer(2, 2)]
    score = score_answers(answers, [1])
    assert score.results[1].correct_answer is None
    assert score.correct == 1 and score.percentage == 50.0


def test_grade_inputs_writes_csv(tmp_path, sheet, white):
    good = tmp_path / "good.png"
    blank = tmp_path / "blank.png"
    cv2.imwrite(str(good), sheet.image)
    cv2.imwrite(str(blank), white)
    out_csv = tmp_path / "out" / "results.csv"
    ann = tmp_path / "ann"

    summary = grade_inputs([str(good), str(blank)], str(out_csv), total_questions=100,
                           key=sheet.answers, out_annotated_dir=str(ann), workers=2)

    assert [s["status"] for s in summary] == ["ok", "rejected"]
    assert summary[0]["score"].percentage == 100.0

    with open(out_csv, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    header, ok_row, rejected_row = rows
    assert header[:4] == ["source", "page", "status", "detail"]
    assert header[-3:] == ["score", "total", "percentage"]
    assert ok_row[4:104] == [str(a) for a in sheet.answers]
    assert ok_row[-3:] == ["100", "100", "100.00"]
    assert rejected_row[2] == "rejected"
    assert "Unidentified object" in rejected_row[3]
    assert (ann / "good_p001_overlay.png").exists()


def test_unreadable_file_becomes_error_row(tmp_path, sheet):
    good = tmp_path / "good.png"
    bad = tmp_path / "bad.png"
    broken_pdf = tmp_path / "broken.pdf"
    cv2.imwrite(str(good), sheet.image)
    bad.write_bytes(b"not an image")
    broken_pdf.write_bytes(b"%PDF-1.4 truncated")
    out_csv = tmp_path / "results.csv"

    summary = grade_inputs([str(bad), str(good), str(broken_pdf)], str(out_csv),
                           total_questions=100, key=sheet.answers,
                           out_annotated_dir=str(tmp_path / "ann"))

    assert [s["status"] for s in summary] == ["error", "ok", "error"]
    assert summary[1]["score"].percentage == 100.0
    with open(out_csv, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert len(rows) == 4
    assert rows[1][:3] == [str(bad), "1", "error"]
    assert "Could not read" in rows[1][3]
    assert rows[1][4:] == [""] * 103
    assert rows[2][2] == "ok"
    assert (tmp_path / "ann" / "good_p001_overlay.png").exists()
    assert not (tmp_path / "ann" / "bad_p001_overlay.png").exists()


def test_load_pages_keeps_going_after_missing_file(tmp_path, sheet):
    good = tmp_path / "good.png"
    cv2.imwrite(str(good), sheet.image)
    pages = load_pages([str(tmp_path / "missing.png"), str(good)])
    assert pages[0].image is None
    assert isinstance(pages[0].error, DecodeError)
    assert pages[1].error is None and pages[1].image.shape == (1400, 1000)


def test_load_pages_renders_pdf(tmp_path, sheet):
    pdf = tmp_path / "scan.pdf"
    doc = fitz.open()
    page = doc.new_page(width=500, height=700)
    page.insert_image(page.rect, stream=encode_png(sheet.image))
    doc.save(str(pdf))
    doc.close()

    pages = load_pages([str(pdf)], dpi=144)
    assert len(pages) == 1
    assert pages[0].index == 1
    assert pages[0].image.shape == (1400, 1000)
