import cv2
import numpy as np
import pytest

from scrollstitch.config import SessionConfig
from scrollstitch.io import (
    ArrayFrameSource,
    CallbackScrollDriver,
    FramesSource,
    NullScrollDriver,
    VideoSource,
    list_frame_paths,
    open_source,
)
from scrollstitch.orchestrator import CaptureOrchestrator


def _write_frames(directory, frames, names):
    directory.mkdir(parents=True, exist_ok=True)
    for frame, name in zip(frames, names):
        assert cv2.imwrite(str(directory / name), frame)


def test_array_source_yields_indexed_frames_then_none(make_document):
    frames = [make_document(10, 10, seed=i) for i in range(3)]
    source = ArrayFrameSource(frames, fps=2.0)
    out = [source.next_frame() for _ in range(3)]
    assert [f.index for f in out] == [0, 1, 2]
    assert [f.timestamp for f in out] == [0.0, 0.5, 1.0]
    assert source.next_frame() is None
    assert source.length() == 3
    assert source.resolution() == (10, 10)
    assert source.fps() == 2.0


def test_frame_paths_sort_numerically(tmp_path, make_document):
    names = ["frame_10.png", "frame_2.png", "frame_1.png"]
    _write_frames(tmp_path, [make_document(8, 8, seed=i) for i in range(3)], names)
    paths = list_frame_paths(tmp_path)
    assert [p.name for p in paths] == ["frame_1.png", "frame_2.png", "frame_10.png"]


def test_frame_paths_pattern_and_empty_dir(tmp_path, make_document):
    _write_frames(tmp_path, [make_document(8, 8)] * 2, ["a_1.png", "b_1.png"])
    assert [p.name for p in list_frame_paths(tmp_path, "a_*.png")] == ["a_1.png"]
    with pytest.raises(FileNotFoundError):
        list_frame_paths(tmp_path / "missing")


def test_frames_source_reads_pngs_losslessly(tmp_path, make_document):
    frames = [make_document(12, 9, seed=i) for i in range(2)]
    _write_frames(tmp_path, frames, ["frame_0001.png", "frame_0002.png"])
    source = FramesSource(list_frame_paths(tmp_path))
    assert source.resolution() == (9, 12)
    first = source.next_frame()
    second = source.next_frame()
    assert np.array_equal(first.pixels, frames[0])
    assert np.array_equal(second.pixels, frames[1])
    assert source.next_frame() is None


def test_frames_source_requires_paths():
    with pytest.raises(FileNotFoundError):
        FramesSource([])


def test_open_source_validates_config(tmp_path):
    with pytest.raises(ValueError):
        open_source({"input_type": "frames"})
    with pytest.raises(FileNotFoundError):
        open_source({"input_type": "frames", "path": "missing"}, root_dir=tmp_path)
    with pytest.raises(ValueError):
        open_source({"input_type": "webcam", "path": "."}, root_dir=tmp_path)


def test_scroll_drivers():
    null = NullScrollDriver()
    null.step("space")
    null.step("space")
    assert null.steps == 2
    keys = []
    CallbackScrollDriver(keys.append).step("down")
    assert keys == ["down"]


def test_frames_directory_end_to_end(tmp_path, make_document, scroll_views):
    doc = make_document(300, 64, seed=21)
    frames = scroll_views(doc, 110, [0, 35, 70, 70])
    _write_frames(tmp_path, frames, [f"frame_{i:04d}.png" for i in range(1, 5)])
    source = open_source({"input_type": "frames", "path": "."}, root_dir=tmp_path)
    config = SessionConfig(initial_delay_s=0.0, scroll_delay_ms=0, overlap_pixels=80)
    with source:
        result = CaptureOrchestrator(source, NullScrollDriver(), config).run()
    assert result.classifications == ["advance", "advance", "duplicate"]
    assert np.array_equal(result.image, doc[:180])


def _write_clip(path, count, fps=10.0, size=(64, 48)):
    """Uniform gray frames whose level encodes the frame number (i * 20)."""
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, size)
    if not writer.isOpened():
        pytest.skip("MJPG VideoWriter unavailable in this OpenCV build")
    try:
        for i in range(count):
            writer.write(np.full((size[1], size[0], 3), i * 20, dtype=np.uint8))
    finally:
        writer.release()


def test_video_source_reads_every_frame(tmp_path):
    clip = tmp_path / "clip.avi"
    _write_clip(clip, 6)
    source = VideoSource(clip)
    frames = []
    while True:
        frame = source.next_frame()
        if frame is None:
            break
        frames.append(frame)
    source.close()

    assert [f.index for f in frames] == list(range(6))
    assert source.length() == 6
    assert source.fps() == pytest.approx(10.0)
    assert source.resolution() == (64, 48)
    assert frames[0].size == (64, 48)


def test_video_source_subsamples_to_sample_fps(tmp_path):
    clip = tmp_path / "clip.avi"
    _write_clip(clip, 9)
    source = open_source({"input_type": "video", "path": "clip.avi", "sample_fps": 5}, root_dir=tmp_path)
    levels = []
    with source:
        assert source.length() == 5
        assert source.fps() == pytest.approx(5.0)
        while True:
            frame = source.next_frame()
            if frame is None:
                break
            levels.append(float(frame.pixels.mean()))

    # Every second frame: 0, 2, 4, 6, 8.
    assert levels == pytest.approx([0, 40, 80, 120, 160], abs=4)


def test_video_source_rejects_bad_sample_fps(tmp_path):
    clip = tmp_path / "clip.avi"
    _write_clip(clip, 2)
    with pytest.raises(ValueError):
        VideoSource(clip, sample_fps=0)
