import numpy as np
import pytest

from gridmark.tools.synthetic_sheet import encode_png, random_answers, render_synthetic_sheet


@pytest.fixture(scope="session")
def sheet():
    """1000x1400 canvas, 100 questions, one option at 60 and three at 220 per question."""
    return render_synthetic_sheet(random_answers(100, seed=7))


@pytest.fixture(scope="session")
def sheet_png(sheet):
    return encode_png(sheet.image)


@pytest.fixture(scope="session")
def sheet_with_blanks():
    return render_synthetic_sheet(random_answers(100, seed=11, blank_rate=0.3))


@pytest.fixture()
def white():
    return np.full((1400, 1000), 255, dtype=np.uint8)


@pytest.fixture()
def black():
    return np.zeros((1400, 1000), dtype=np.uint8)
