#!/usr/bin/env python3
"""Stitch a recorded scroll (frames directory or video) into one tall image."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
import time
from typing import Any, Dict, Optional


# --- CLI parsing ---


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scroll capture stitching from recorded frames.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--frames_dir", default=None, help="Directory of extracted frames")
    source.add_argument("--video", default=None, help="Screen recording to sample frames from")
    parser.add_argument("--frame_pattern", default=None, help="Glob for frames (e.g. 'frame_*.png')")
    parser.add_argument(
        "--sample_fps",
        type=float,
        default=None,
        help="Subsample video to this many frames per second",
    )
    parser.add_argument("--config", default=None, help="YAML session config")
    parser.add_argument("--crop", default=None, help="Crop region as 'x,y,width,height'")
    parser.add_argument("--crop_preset", default=None, help="Built-in crop preset name (e.g. 1080p)")
    parser.add_argument("--overlap", type=int, default=None, help="Overlap window in pixels")
    parser.add_argument("--min_offset", type=int, default=None, help="Smallest accepted scroll offset")
    parser.add_argument("--stride", type=int, default=None, help="Horizontal sample stride")
    parser.add_argument("--dup_thresh", type=float, default=None, help="Duplicate score threshold")
    parser.add_argument("--max_dissim", type=float, default=None, help="Max accepted dissimilarity")
    parser.add_argument("--max_scrolls", type=int, default=None, help="Maximum frames after the first")
    parser.add_argument("--max_duration", type=float, default=None, help="Session budget in seconds")
    parser.add_argument(
        "--retry_limit",
        type=int,
        default=None,
        help="Stop after this many consecutive duplicates (default: never for recordings)",
    )
    parser.add_argument(
        "--prefetch",
        action="store_true",
        help="Read frames on a worker thread while aligning",
    )
    parser.add_argument("--output", default="00", help="Output path without extension")
    parser.add_argument(
        "--format",
        default="png",
        help="Output format: png, jpg, jpeg, bmp, tiff, tif, webp",
    )
    parser.add_argument(
        "--debug_seams",
        type=int,
        default=0,
        choices=[0, 1],
        help="Also save a copy with seam lines drawn",
    )
    return parser


# --- Logging and serialization helpers ---


def _setup_logging(log_path: Optional[Path]) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s %(message)s",
        handlers=handlers,
    )


def _write_json(path: Path, payload: Dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def _cli_overrides(args) -> Dict[str, Any]:
    overrides = {
        "overlap_pixels": args.overlap,
        "min_offset": args.min_offset,
        "sample_stride": args.stride,
        "duplicate_threshold": args.dup_thresh,
        "max_dissimilarity": args.max_dissim,
        "max_scrolls": args.max_scrolls,
        "max_duration_s": args.max_duration,
        "duplicate_retry_limit": args.retry_limit,
    }
    if args.crop_preset is not None:
        overrides["crop"] = args.crop_preset
    elif args.crop is not None:
        overrides["crop"] = args.crop
    if args.prefetch:
        overrides["prefetch"] = True
    return {k: v for k, v in overrides.items() if v is not None}


# --- Main pipeline ---


def main() -> int:
    args = _build_parser().parse_args()

    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))

    from scrollstitch.config import config_from_mapping, load_session_config  # noqa: E402
    from scrollstitch.errors import CaptureError, InvalidRegion  # noqa: E402
    from scrollstitch.io import NullScrollDriver, open_source  # noqa: E402
    from scrollstitch.orchestrator import CaptureOrchestrator  # noqa: E402
    from scrollstitch.viz import build_output_path, draw_seams, save_image  # noqa: E402

    start_time = time.perf_counter()

    try:
        output_path = build_output_path(args.output, args.format)
    except ValueError as exc:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
        logging.error("%s", exc)
        return 1

    _setup_logging(output_path.with_suffix(".log"))
    debug_path = output_path.with_suffix(".debug.json")
    debug: Dict[str, Any] = {
        "source": args.frames_dir or args.video,
        "output": str(output_path),
        "config": None,
        "result": None,
        "failure_stage": None,
        "message": None,
        "runtime_ms": None,
    }

    try:
        values: Dict[str, Any] = {}
        if args.config:
            values.update(load_session_config(args.config).as_dict())
        values.update(_cli_overrides(args))
        # Recorded input: the scroll already happened, so no waits.
        values["initial_delay_s"] = 0.0
        values["scroll_delay_ms"] = 0
        # Recordings hold each scroll position for many frames.
        if args.retry_limit is None:
            values["duplicate_retry_limit"] = None
        config = config_from_mapping(values)
        debug["config"] = config.as_dict()
    except (ValueError, FileNotFoundError) as exc:
        debug["failure_stage"] = "config"
        debug["message"] = str(exc)
        debug["runtime_ms"] = int((time.perf_counter() - start_time) * 1000)
        _write_json(debug_path, debug)
        logging.error("Invalid configuration: %s", exc)
        return 1

    if args.video:
        source_cfg = {"input_type": "video", "path": args.video, "sample_fps": args.sample_fps}
    else:
        source_cfg = {"input_type": "frames", "path": args.frames_dir, "frame_pattern": args.frame_pattern}

    try:
        source = open_source(source_cfg)
    except (ValueError, FileNotFoundError) as exc:
        debug["failure_stage"] = "open_source"
        debug["message"] = str(exc)
        debug["runtime_ms"] = int((time.perf_counter() - start_time) * 1000)
        _write_json(debug_path, debug)
        logging.error("Failed to open source: %s", exc)
        return 1

    logging.info(
        "Stitching %s frames from %s (fps=%s overlap=%s crop=%s)",
        source.length(),
        debug["source"],
        source.fps(),
        config.overlap_pixels,
        config.crop.as_string() if config.crop else "full",
    )

    try:
        result = CaptureOrchestrator(source, NullScrollDriver(), config).run()
    except (InvalidRegion, CaptureError) as exc:
        debug["failure_stage"] = "capture"
        debug["message"] = str(exc)
        debug["runtime_ms"] = int((time.perf_counter() - start_time) * 1000)
        _write_json(debug_path, debug)
        logging.error("Capture aborted without output: %s", exc)
        return 1
    finally:
        source.close()

    save_image(output_path, result.image)
    if args.debug_seams:
        seam_path = output_path.with_name(f"{output_path.stem}_seams{output_path.suffix}")
        save_image(seam_path, draw_seams(result.image, result.seams))

    debug["result"] = result.as_dict()
    debug["runtime_ms"] = int((time.perf_counter() - start_time) * 1000)
    _write_json(debug_path, debug)
    logging.info("Saved to %s (%s, %s)", output_path, result.status.value, result.stop_reason.value)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
