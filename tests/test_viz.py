from pathlib import Path

import cv2
import numpy as np
import pytest

from scrollstitch.viz import build_output_path, draw_seams, save_image, validate_format


@pytest.mark.parametrize(
    "output, fmt, expected",
    [
        ("00", "png", "00.png"),
        ("shots/page", "JPG", "shots/page.jpg"),
        ("page.png", "png", "page.png"),
        ("page.v2", "webp", "page.v2.webp"),
    ],
)
def test_build_output_path(output, fmt, expected):
    assert build_output_path(output, fmt) == Path(expected)


def test_validate_format_rejects_unknown():
    assert validate_format(".TIFF") == "tiff"
    with pytest.raises(ValueError):
        validate_format("gif")


def test_save_image_creates_parents(tmp_path, make_document):
    image = make_document(20, 15)
    path = tmp_path / "nested" / "out.png"
    save_image(path, image)
    assert np.array_equal(cv2.imread(str(path)), image)


def test_draw_seams_marks_rows_without_touching_input(make_document):
    image = make_document(30, 12)
    image.setflags(write=False)
    marked = draw_seams(image, [10, 20])
    assert marked.shape == (30, 12, 3)
    assert (marked[10] == (0, 0, 255)).all()
    assert (marked[20] == (0, 0, 255)).all()
    assert np.array_equal(marked[:10], image[:10])


def test_draw_seams_converts_gray(make_document):
    gray = make_document(10, 10, channels=1)
    assert draw_seams(gray, [5]).shape == (10, 10, 3)
