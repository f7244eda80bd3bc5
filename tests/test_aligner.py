import numpy as np
import pytest

from scrollstitch.aligner import Classification, OverlapAligner
from scrollstitch.errors import FrameSizeMismatch
from scrollstitch.frame import as_frame


def _pair(document, view_height, shift):
    prev = as_frame(document[:view_height], index=0)
    curr = as_frame(document[shift : shift + view_height], index=1)
    return prev, curr


def test_identical_frames_are_duplicates(make_document):
    doc = make_document(200, 64)
    frame = as_frame(doc[:150])
    result = OverlapAligner(overlap_pixels=50).align(frame, as_frame(doc[:150]))
    assert result.classification is Classification.DUPLICATE
    assert result.offset == 0
    assert result.score == 0.0
    assert result.confidence == 1.0


@pytest.mark.parametrize("width", [1, 7, 64])
@pytest.mark.parametrize("shift", [1, 13, 40, 99])
def test_shifted_copy_advances_by_exact_shift(make_document, width, shift):
    doc = make_document(300, width, seed=shift + width)
    prev, curr = _pair(doc, 160, shift)
    result = OverlapAligner(overlap_pixels=100).align(prev, curr)
    assert result.classification is Classification.ADVANCE
    assert result.offset == shift
    assert result.confidence == pytest.approx(1.0)


def test_disjoint_content_has_no_overlap(make_document):
    prev = as_frame(make_document(160, 48, seed=1))
    curr = as_frame(make_document(160, 48, seed=2))
    result = OverlapAligner(overlap_pixels=100).align(prev, curr)
    assert result.classification is Classification.NO_OVERLAP
    assert result.offset == 0
    assert result.score > 0.05


def test_uniform_content_degenerates_to_duplicate():
    blank = np.full((120, 40, 3), 200, dtype=np.uint8)
    result = OverlapAligner(overlap_pixels=60).align(as_frame(blank), as_frame(blank))
    assert result.classification is Classification.DUPLICATE
    assert result.offset == 0


def test_ties_resolve_to_smaller_offset(make_document):
    period = make_document(10, 16, seed=5)
    doc = np.concatenate([period] * 20, axis=0)
    doc[:5] = make_document(5, 16, seed=6)
    prev, curr = _pair(doc, 100, 10)
    aligner = OverlapAligner(overlap_pixels=50, sample_stride=1)
    scores = aligner.score_offsets(prev, curr, 50)
    assert scores[10] == scores[20] == 0.0
    result = aligner.align(prev, curr)
    assert result.classification is Classification.ADVANCE
    assert result.offset == 10


def test_motion_below_min_offset_counts_as_duplicate(make_document):
    doc = make_document(200, 32, seed=8)
    prev, curr = _pair(doc, 120, 2)
    result = OverlapAligner(overlap_pixels=50, min_offset=5).align(prev, curr)
    assert result.classification is Classification.DUPLICATE
    assert result.offset == 2


def test_noisy_still_frame_is_a_duplicate_not_an_advance(make_smooth_page, add_noise):
    page = make_smooth_page(200, 200)
    still = add_noise(page, amplitude=3, seed=4)
    aligner = OverlapAligner()
    result = aligner.align(as_frame(page), as_frame(still))
    assert result.classification is Classification.DUPLICATE
    assert result.offset == 0
    assert result.score == result.zero_score
    scores = aligner.score_offsets(as_frame(page), as_frame(still), result.search_max)
    assert result.zero_score == scores.min()


def test_near_zero_winner_above_duplicate_threshold_never_advances(make_smooth_page, add_noise):
    page = make_smooth_page(200, 200)
    still = add_noise(page, amplitude=3, seed=4)
    result = OverlapAligner(duplicate_threshold=0.001).align(as_frame(page), as_frame(still))
    assert result.classification is Classification.NO_OVERLAP
    assert result.offset == 0
    assert result.candidate_offset == 0


def test_noisy_shifted_copy_still_advances(make_smooth_page, add_noise):
    page = make_smooth_page(300, 120)
    prev = as_frame(page[:160])
    curr = as_frame(add_noise(page[37:197], amplitude=3, seed=9))
    result = OverlapAligner(overlap_pixels=100).align(prev, curr)
    assert result.classification is Classification.ADVANCE
    assert result.offset == 37


def test_oversized_window_is_clamped_and_warned_once(make_document):
    doc = make_document(200, 32, seed=3)
    messages = []
    aligner = OverlapAligner(overlap_pixels=500, warning_handler=messages.append)
    prev, curr = _pair(doc, 80, 30)
    first = aligner.align(prev, curr)
    second = aligner.align(prev, curr)
    assert first.search_max == 79
    assert first.classification is Classification.ADVANCE
    assert first.offset == 30
    assert second.offset == 30
    assert len(messages) == 1
    aligner.reset()
    aligner.align(prev, curr)
    assert len(messages) == 2


def test_width_mismatch_is_fatal(make_document):
    prev = as_frame(make_document(50, 30))
    curr = as_frame(make_document(50, 31))
    with pytest.raises(FrameSizeMismatch):
        OverlapAligner(overlap_pixels=20).align(prev, curr)


def test_single_row_frames_cannot_advance(make_document):
    row = as_frame(make_document(1, 10, seed=1))
    other = as_frame(make_document(1, 10, seed=2))
    result = OverlapAligner(overlap_pixels=20).align(row, other)
    assert result.classification is Classification.NO_OVERLAP
    assert result.search_max == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"overlap_pixels": 0},
        {"min_offset": 0},
        {"sample_stride": 0},
        {"duplicate_threshold": 0.2, "max_dissimilarity": 0.1},
        {"max_dissimilarity": 1.5},
    ],
)
def test_invalid_tunables_are_rejected(kwargs):
    with pytest.raises(ValueError):
        OverlapAligner(**kwargs)


def test_result_serializes(make_document):
    doc = make_document(200, 16)
    prev, curr = _pair(doc, 100, 12)
    data = OverlapAligner(overlap_pixels=40).align(prev, curr).as_dict()
    assert data["classification"] == "advance"
    assert data["offset"] == 12
    assert data["search_max"] == 40
